"""
CompletionCoordinator -- appointment completion as a resumable two-step write.

Responsibility:
    Completing an appointment records its revenue in the ledger and marks
    the appointment completed.  The two writes touch different owners'
    tables and are committed separately, so the coordinator fixes their
    order and makes every failure point recoverable:

        complete_appointment()
             |
             v
        [1] ledger record for appointment_id   (own transaction)
             |  fails -> LedgerWriteError (nothing written; re-run is safe)
             v
        [2] appointment.status = completed      (own transaction)
             |  fails -> PartialCompletionError (record exists;
             |           resume_completion() retries step 2 only)
             v
        CompletionResult

Architecture position:
    Kernel > Services.  Unlike the flush-only services it is handed a
    session factory, because step 1 must be durable before step 2 starts.

Invariants enforced:
    - Step 1 precedes step 2.  Step 2 is never attempted after a step 1
      failure.
    - At most one ledger record per appointment: step 1 reuses an existing
      record (a re-run after a partial failure, or a concurrent completion)
      instead of writing a second one.  The unique constraint on
      financial_records.appointment_id backs this up.
    - Cancelled appointments are never completed.
    - A draft with a zero amount (service not in the catalog) skips step 1;
      the ledger only holds positive amounts.

Failure modes:
    - AppointmentNotFoundError / AppointmentCancelledError.
    - LedgerWriteError: step 1 failed.
    - PartialCompletionError: step 1 succeeded, step 2 failed.
"""

from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from petshop_kernel.config import Settings
from petshop_kernel.db.engine import session_scope
from petshop_kernel.db.types import ZERO, parse_amount
from petshop_kernel.domain.catalog import ServiceCatalog, build_completion_draft
from petshop_kernel.domain.clock import Clock, SystemClock, business_today
from petshop_kernel.domain.dtos import (
    AppointmentInfo,
    CompletionResult,
    FinancialRecordInfo,
    RecordDraft,
)
from petshop_kernel.exceptions import (
    AppointmentCancelledError,
    LedgerWriteError,
    PartialCompletionError,
    StorageError,
    ValidationError,
)
from petshop_kernel.logging_config import LogContext, get_logger
from petshop_kernel.models.appointment import AppointmentStatus
from petshop_kernel.selectors.ledger_selector import LedgerSelector
from petshop_kernel.services.appointment_store import AppointmentStore
from petshop_kernel.services.ledger_service import LedgerService

logger = get_logger("services.completion")


class CompletionCoordinator:
    """
    Drives appointment completion.

    Contract:
        ``complete_appointment`` may be called again after any failure; it
        never produces a second ledger record for the same appointment.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        appointments: AppointmentStore,
        settings: Settings | None = None,
        clock: Clock | None = None,
        catalog: ServiceCatalog | None = None,
    ):
        self._session_factory = session_factory
        self._appointments = appointments
        self._settings = settings or Settings()
        self._clock = clock or SystemClock()
        self._catalog = catalog or ServiceCatalog.from_settings(self._settings)

    # =========================================================================
    # Steps
    # =========================================================================

    def _load_completable(self, appointment_id: UUID) -> AppointmentInfo:
        appointment = self._appointments.get(appointment_id)
        if appointment.is_cancelled:
            logger.warning("completion_rejected", extra={"reason": "cancelled"})
            raise AppointmentCancelledError(str(appointment_id))
        return appointment

    def _existing_record(self, appointment_id: UUID) -> FinancialRecordInfo | None:
        with session_scope(self._session_factory) as session:
            return LedgerSelector(
                session, self._settings.cash_payment_method
            ).record_for_appointment(appointment_id)

    def _write_record(
        self,
        appointment_id: UUID,
        draft: RecordDraft,
        actor_id: str | None,
    ) -> tuple[FinancialRecordInfo, bool]:
        """Step 1.  Returns (record, reused)."""
        try:
            existing = self._existing_record(appointment_id)
            if existing is not None:
                logger.info(
                    "completion_record_reused",
                    extra={"record_id": str(existing.id)},
                )
                return existing, True

            with session_scope(self._session_factory) as session:
                record = LedgerService(session, self._settings, self._clock).append(
                    draft, actor_id=actor_id, appointment_id=appointment_id
                )
            return record, False
        except StorageError as exc:
            # A concurrent completion may have inserted the record first
            try:
                existing = self._existing_record(appointment_id)
            except StorageError:
                existing = None
            if existing is not None:
                logger.info(
                    "completion_record_reused",
                    extra={"record_id": str(existing.id), "after": "conflict"},
                )
                return existing, True
            logger.error("completion_ledger_failed", extra={"reason": str(exc)})
            raise LedgerWriteError(str(appointment_id), str(exc)) from exc
        except ValidationError as exc:
            logger.error("completion_ledger_failed", extra={"reason": str(exc)})
            raise LedgerWriteError(str(appointment_id), str(exc)) from exc

    def _mark_completed(
        self,
        appointment: AppointmentInfo,
        record: FinancialRecordInfo | None,
    ) -> AppointmentInfo:
        """Step 2."""
        if appointment.is_completed:
            return appointment
        try:
            return self._appointments.update_status(
                appointment.id, AppointmentStatus.COMPLETED
            )
        except Exception as exc:
            if record is None:
                raise
            logger.error(
                "completion_partial",
                extra={"record_id": str(record.id), "reason": str(exc)},
            )
            raise PartialCompletionError(
                str(appointment.id), str(record.id), str(exc)
            ) from exc

    # =========================================================================
    # Public API
    # =========================================================================

    def complete_appointment(
        self,
        appointment_id: UUID,
        draft: RecordDraft,
        actor_id: str | None = None,
    ) -> CompletionResult:
        """
        Record the appointment's revenue, then mark it completed.

        Args:
            appointment_id: Appointment to complete.
            draft: Ledger entry to write (see build_completion_draft()).
            actor_id: User completing the appointment.

        Raises:
            AppointmentNotFoundError: Unknown appointment.
            AppointmentCancelledError: The appointment was cancelled.
            LedgerWriteError: Step 1 failed; nothing was written.
            PartialCompletionError: Step 2 failed; the record exists.
        """
        with LogContext.bind(appointment_id=appointment_id, actor_id=actor_id):
            appointment = self._load_completable(appointment_id)

            try:
                amount = parse_amount(draft.amount, "amount")
            except ValidationError as exc:
                raise LedgerWriteError(str(appointment_id), str(exc)) from exc

            if amount == ZERO:
                logger.warning(
                    "completion_without_revenue",
                    extra={"service_type": appointment.service_type},
                )
                record, reused = None, False
            else:
                record, reused = self._write_record(appointment_id, draft, actor_id)

            completed = self._mark_completed(appointment, record)
            logger.info(
                "appointment_completed",
                extra={
                    "record_id": str(record.id) if record else None,
                    "record_reused": reused,
                },
            )
            return CompletionResult(
                appointment=completed,
                record=record,
                record_reused=reused,
            )

    def complete_with_catalog(
        self,
        appointment_id: UUID,
        actor_id: str | None = None,
    ) -> CompletionResult:
        """Complete using the catalog price of the appointment's service, dated today."""
        appointment = self._appointments.get(appointment_id)
        draft = build_completion_draft(
            appointment.service_type,
            appointment.pet_name,
            self._catalog,
            business_today(self._clock, self._settings.tzinfo),
            category=self._settings.categories.service,
        )
        return self.complete_appointment(appointment_id, draft, actor_id=actor_id)

    def resume_completion(
        self,
        appointment_id: UUID,
        actor_id: str | None = None,
    ) -> CompletionResult:
        """
        Retry only the status update after a PartialCompletionError.

        Raises:
            LedgerWriteError: If no ledger record exists for the appointment;
                run complete_appointment() instead.
            PartialCompletionError: If the status update fails again.
        """
        with LogContext.bind(appointment_id=appointment_id, actor_id=actor_id):
            appointment = self._load_completable(appointment_id)
            try:
                record = self._existing_record(appointment_id)
            except StorageError as exc:
                raise LedgerWriteError(str(appointment_id), str(exc)) from exc
            if record is None:
                raise LedgerWriteError(
                    str(appointment_id),
                    "no ledger entry to resume from; complete the appointment again",
                )

            completed = self._mark_completed(appointment, record)
            logger.info(
                "appointment_completed",
                extra={"record_id": str(record.id), "record_reused": True, "resumed": True},
            )
            return CompletionResult(appointment=completed, record=record, record_reused=True)
