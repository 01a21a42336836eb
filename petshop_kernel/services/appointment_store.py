"""
AppointmentStore -- the scheduling side, as seen by the till.

Responsibility:
    The till reads an appointment, marks it completed, cancels a batch and
    lists a day's agenda.  Appointments are owned by the scheduling side, so
    the kernel depends on the AppointmentStore interface; SqlAppointmentStore
    is the implementation over the shared database.

Architecture position:
    Kernel > Services.  SqlAppointmentStore owns one transaction per call,
    because CompletionCoordinator needs the status update committed
    independently of the ledger write.

Failure modes:
    - AppointmentNotFoundError: unknown id.
    - ValidationError: unknown status value.
    - StorageError: the store failed (the transaction is rolled back).
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from petshop_kernel.db.engine import session_scope
from petshop_kernel.domain.dtos import AppointmentInfo
from petshop_kernel.exceptions import (
    AppointmentNotFoundError,
    StorageError,
    ValidationError,
)
from petshop_kernel.logging_config import get_logger
from petshop_kernel.models.appointment import Appointment, AppointmentStatus

logger = get_logger("services.appointments")


class AppointmentStore(ABC):
    """Interface the till needs from the scheduling side."""

    @abstractmethod
    def get(self, appointment_id: UUID) -> AppointmentInfo:
        ...

    @abstractmethod
    def update_status(
        self, appointment_id: UUID, status: AppointmentStatus | str
    ) -> AppointmentInfo:
        ...

    @abstractmethod
    def cancel_many(self, appointment_ids: Iterable[UUID]) -> int:
        ...

    @abstractmethod
    def list_for_day(self, day: date) -> list[AppointmentInfo]:
        ...


class SqlAppointmentStore(AppointmentStore):
    """AppointmentStore over the ``appointments`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _wrap(self, operation: str, exc: SQLAlchemyError) -> StorageError:
        logger.error(
            "appointment_store_failed",
            extra={"operation": operation, "error": str(exc)},
        )
        return StorageError(operation, str(getattr(exc, "orig", None) or exc))

    def get(self, appointment_id: UUID) -> AppointmentInfo:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(Appointment, appointment_id)
                if row is None:
                    raise AppointmentNotFoundError(str(appointment_id))
                return AppointmentInfo.from_model(row)
        except SQLAlchemyError as exc:
            raise self._wrap("get_appointment", exc) from exc

    def update_status(
        self, appointment_id: UUID, status: AppointmentStatus | str
    ) -> AppointmentInfo:
        try:
            new_status = AppointmentStatus(status)
        except ValueError:
            raise ValidationError("status", status, "unknown appointment status")

        try:
            with session_scope(self._session_factory) as session:
                row = session.get(Appointment, appointment_id)
                if row is None:
                    raise AppointmentNotFoundError(str(appointment_id))
                previous = row.status_value
                row.status = new_status.value
                session.flush()
                info = AppointmentInfo.from_model(row)
        except SQLAlchemyError as exc:
            raise self._wrap("update_appointment_status", exc) from exc

        logger.info(
            "appointment_status_changed",
            extra={
                "appointment_id": str(appointment_id),
                "from_status": previous,
                "to_status": new_status.value,
            },
        )
        return info

    def cancel_many(self, appointment_ids: Iterable[UUID]) -> int:
        """Cancel every listed appointment that is not completed.  Returns the count."""
        ids = list(appointment_ids)
        if not ids:
            return 0
        stmt = (
            update(Appointment)
            .where(
                Appointment.id.in_(ids),
                Appointment.status != AppointmentStatus.COMPLETED.value,
            )
            .values(status=AppointmentStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        try:
            with session_scope(self._session_factory) as session:
                cancelled = session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise self._wrap("cancel_appointments", exc) from exc

        logger.info(
            "appointments_cancelled",
            extra={"requested": len(ids), "cancelled": cancelled},
        )
        return cancelled

    def list_for_day(self, day: date) -> list[AppointmentInfo]:
        stmt = (
            select(Appointment)
            .where(Appointment.appointment_date == day)
            .order_by(Appointment.start_time)
        )
        try:
            with session_scope(self._session_factory) as session:
                return [AppointmentInfo.from_model(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise self._wrap("list_appointments", exc) from exc
