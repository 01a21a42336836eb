"""
Module: petshop_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: date-range listings for the
    financial page, the daily income total behind the dashboard revenue
    card, the cash records a register close reconciles against, and the
    lookup that makes appointment completion resumable.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Range queries are inclusive on the attributed date and ordered by
      date desc, then created_at desc.
    - Totals are summed as Decimal in Python so SQLite and PostgreSQL give
      identical cents.

Failure modes:
    - ValidationError when start > end.
    - StorageError when the store fails.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petshop_kernel.db.types import ZERO, round_money
from petshop_kernel.domain.dtos import FinancialRecordInfo, LedgerSummary, RecordType
from petshop_kernel.domain.reconciliation import DEFAULT_CASH_LABEL, is_cash
from petshop_kernel.exceptions import StorageError, ValidationError
from petshop_kernel.models.financial_record import FinancialRecord
from petshop_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[FinancialRecord]):
    """Read-side access to financial records."""

    def __init__(self, session: Session, cash_label: str = DEFAULT_CASH_LABEL):
        super().__init__(session)
        self._cash_label = cash_label

    def _fetch(self, operation: str, stmt) -> list[FinancialRecord]:
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(getattr(exc, "orig", None) or exc)) from exc

    def query(
        self,
        start: date,
        end: date,
        record_type: RecordType | str | None = None,
        category: str | None = None,
        payment_method: str | None = None,
    ) -> list[FinancialRecordInfo]:
        """
        Records attributed to [start, end], newest first.

        Args:
            start: First day (inclusive).
            end: Last day (inclusive).
            record_type: Optional income/expense filter.
            category: Optional exact category filter.
            payment_method: Optional exact payment method filter.

        Raises:
            ValidationError: If start > end or record_type is unknown.
        """
        if start > end:
            raise ValidationError("start", start, f"start must not be after end ({end})")

        stmt = select(FinancialRecord).where(
            FinancialRecord.record_date >= start,
            FinancialRecord.record_date <= end,
        )
        if record_type is not None:
            try:
                type_value = RecordType(record_type).value
            except ValueError:
                raise ValidationError("record_type", record_type, "must be income or expense")
            stmt = stmt.where(FinancialRecord.record_type == type_value)
        if category is not None:
            stmt = stmt.where(FinancialRecord.category == category)
        if payment_method is not None:
            stmt = stmt.where(FinancialRecord.payment_method == payment_method)
        stmt = stmt.order_by(
            FinancialRecord.record_date.desc(),
            FinancialRecord.created_at.desc(),
        )

        rows = self._fetch("ledger_query", stmt)
        return [FinancialRecordInfo.from_model(row) for row in rows]

    def daily_income_total(self, day: date) -> Decimal:
        """Sum of income attributed to ``day``; zero when there is none."""
        stmt = select(FinancialRecord).where(
            FinancialRecord.record_date == day,
            FinancialRecord.record_type == RecordType.INCOME.value,
        )
        rows = self._fetch("daily_income_total", stmt)
        return round_money(sum((Decimal(row.amount) for row in rows), ZERO))

    def records_for(self, day: date) -> list[FinancialRecordInfo]:
        stmt = (
            select(FinancialRecord)
            .where(FinancialRecord.record_date == day)
            .order_by(FinancialRecord.created_at)
        )
        rows = self._fetch("records_for_day", stmt)
        return [FinancialRecordInfo.from_model(row) for row in rows]

    def cash_records_for(self, day: date) -> list[FinancialRecordInfo]:
        """Records of ``day`` that went through the drawer (cash or unset method)."""
        return [
            record
            for record in self.records_for(day)
            if is_cash(record, self._cash_label)
        ]

    def summary(self, start: date, end: date) -> LedgerSummary:
        records = self.query(start, end)
        income = sum((r.amount for r in records if r.record_type == RecordType.INCOME), ZERO)
        expense = sum((r.amount for r in records if r.record_type == RecordType.EXPENSE), ZERO)
        return LedgerSummary(
            start=start,
            end=end,
            total_income=round_money(income),
            total_expense=round_money(expense),
        )

    def record_for_appointment(self, appointment_id: UUID) -> FinancialRecordInfo | None:
        """The ledger entry written when ``appointment_id`` was completed, if any."""
        stmt = select(FinancialRecord).where(
            FinancialRecord.appointment_id == appointment_id
        )
        rows = self._fetch("record_for_appointment", stmt)
        if not rows:
            return None
        return FinancialRecordInfo.from_model(rows[0])
