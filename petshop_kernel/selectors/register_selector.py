"""
Module: petshop_kernel.selectors.register_selector
Responsibility: Read-only access to cash registers: the current register
    the dashboard shows, the closing history, and the preview of the close
    dialog.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Current" is the register with the latest opened_at.  The partial
      unique index guarantees at most one of them is open.
    - closing_preview() uses the same reconciliation calculator as
      RegisterService.close_register(), so the preview and the stored
      expected amount agree.

Failure modes:
    - RegisterNotFoundError from closing_preview() for an unknown id.
    - StorageError when the store fails.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petshop_kernel.domain.dtos import CashRegisterInfo, ClosingPreview
from petshop_kernel.domain.reconciliation import (
    DEFAULT_CASH_LABEL,
    cash_totals,
    expected_cash,
)
from petshop_kernel.exceptions import RegisterNotFoundError, StorageError
from petshop_kernel.models.cash_register import CashRegister, RegisterStatus
from petshop_kernel.selectors.base import BaseSelector
from petshop_kernel.selectors.ledger_selector import LedgerSelector


class RegisterSelector(BaseSelector[CashRegister]):
    """Read-side access to cash registers."""

    def __init__(self, session: Session, cash_label: str = DEFAULT_CASH_LABEL):
        super().__init__(session)
        self._cash_label = cash_label

    def _first(self, operation: str, stmt) -> CashRegister | None:
        try:
            return self.session.scalars(stmt.limit(1)).first()
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(getattr(exc, "orig", None) or exc)) from exc

    def current(self) -> CashRegisterInfo | None:
        """The most recently opened register, open or closed."""
        row = self._first(
            "current_register",
            select(CashRegister).order_by(CashRegister.opened_at.desc()),
        )
        return CashRegisterInfo.from_model(row) if row is not None else None

    def open_register(self) -> CashRegisterInfo | None:
        row = self._first(
            "open_register",
            select(CashRegister).where(CashRegister.status == RegisterStatus.OPEN.value),
        )
        return CashRegisterInfo.from_model(row) if row is not None else None

    def get(self, register_id: UUID) -> CashRegisterInfo | None:
        row = self._first(
            "get_register",
            select(CashRegister).where(CashRegister.id == register_id),
        )
        return CashRegisterInfo.from_model(row) if row is not None else None

    def history(self, limit: int = 30) -> list[CashRegisterInfo]:
        """Registers newest first, as listed on the till history screen."""
        stmt = select(CashRegister).order_by(CashRegister.opened_at.desc()).limit(limit)
        try:
            rows = self.session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise StorageError("register_history", str(getattr(exc, "orig", None) or exc)) from exc
        return [CashRegisterInfo.from_model(row) for row in rows]

    def closing_preview(self, register_id: UUID, business_date: date) -> ClosingPreview:
        """
        Figures for the close dialog of ``register_id``.

        Args:
            register_id: Register about to be closed.
            business_date: The shop's current trading day.

        Raises:
            RegisterNotFoundError: If the register does not exist.
        """
        register = self.get(register_id)
        if register is None:
            raise RegisterNotFoundError(str(register_id))

        records = LedgerSelector(self.session, self._cash_label).records_for(business_date)
        income, expense = cash_totals(records, business_date, self._cash_label)
        return ClosingPreview(
            register_id=register.id,
            business_date=business_date,
            initial_amount=register.initial_amount,
            cash_income=income,
            cash_expense=expense,
            expected_amount=expected_cash(
                register.initial_amount, records, business_date, self._cash_label
            ),
        )
