"""
Module: petshop_kernel.selectors.dashboard_selector
Responsibility: The dashboard header: today's revenue, today's active
    appointments and whether the till is open.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Today" is the business day in the configured timezone.
    - Cancelled appointments are not counted.
    - Nothing is cached; consumers re-fetch after every write.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petshop_kernel.config import Settings
from petshop_kernel.domain.clock import Clock, SystemClock, business_today
from petshop_kernel.domain.dtos import DashboardStats
from petshop_kernel.exceptions import StorageError
from petshop_kernel.models.appointment import Appointment, AppointmentStatus
from petshop_kernel.selectors.base import BaseSelector
from petshop_kernel.selectors.ledger_selector import LedgerSelector
from petshop_kernel.selectors.register_selector import RegisterSelector


class DashboardSelector(BaseSelector[Appointment]):

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._settings = settings or Settings()
        self._clock = clock or SystemClock()

    def today(self):
        return business_today(self._clock, self._settings.tzinfo)

    def today_revenue(self) -> Decimal:
        ledger = LedgerSelector(self.session, self._settings.cash_payment_method)
        return ledger.daily_income_total(self.today())

    def today_appointment_count(self) -> int:
        stmt = select(func.count(Appointment.id)).where(
            Appointment.appointment_date == self.today(),
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
        try:
            return int(self.session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise StorageError("today_appointment_count", str(getattr(exc, "orig", None) or exc)) from exc

    def snapshot(self) -> DashboardStats:
        register = RegisterSelector(
            self.session, self._settings.cash_payment_method
        ).current()
        return DashboardStats(
            business_date=self.today(),
            revenue=self.today_revenue(),
            appointments_count=self.today_appointment_count(),
            register_status=register.status if register is not None else None,
        )
