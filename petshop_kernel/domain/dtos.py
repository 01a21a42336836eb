"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures handed to callers: register and
    ledger snapshots, drafts for new ledger entries, sale tenders, appointment
    snapshots, and the aggregates the dashboard and financial pages display.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Callers never receive ORM rows; a DTO cannot be used to mutate a
      stored record.
    - The register discrepancy is derived here, never stored.

Data flow:
    RecordDraft -> LedgerService.append() -> FinancialRecord -> FinancialRecordInfo
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from petshop_kernel.domain.reconciliation import (
    DEFAULT_TOLERANCE,
    Discrepancy,
    classify_discrepancy,
)

if TYPE_CHECKING:
    from petshop_kernel.models.appointment import Appointment as AppointmentModel
    from petshop_kernel.models.cash_register import CashRegister as CashRegisterModel
    from petshop_kernel.models.financial_record import (
        FinancialRecord as FinancialRecordModel,
    )


class RecordType(str, Enum):
    """Direction of a ledger entry.  Amounts are always positive."""

    INCOME = "income"
    EXPENSE = "expense"


def _value(raw) -> str:
    return getattr(raw, "value", raw)


@dataclass(frozen=True)
class CashRegisterInfo:
    """Snapshot of a cash register row."""

    id: UUID
    status: str
    initial_amount: Decimal
    opened_by: str
    opened_at: datetime
    final_amount: Decimal | None = None
    expected_amount: Decimal | None = None
    closed_by: str | None = None
    closed_at: datetime | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @property
    def discrepancy(self) -> Decimal | None:
        """Counted minus expected; None while the register is open."""
        if self.final_amount is None or self.expected_amount is None:
            return None
        return self.final_amount - self.expected_amount

    def classify(self, tolerance: Decimal = DEFAULT_TOLERANCE) -> Discrepancy | None:
        if self.final_amount is None or self.expected_amount is None:
            return None
        return classify_discrepancy(self.final_amount, self.expected_amount, tolerance)

    @classmethod
    def from_model(cls, model: CashRegisterModel) -> CashRegisterInfo:
        return cls(
            id=model.id,
            status=_value(model.status),
            initial_amount=model.initial_amount,
            opened_by=model.opened_by,
            opened_at=model.opened_at,
            final_amount=model.final_amount,
            expected_amount=model.expected_amount,
            closed_by=model.closed_by,
            closed_at=model.closed_at,
            notes=model.notes,
        )


@dataclass(frozen=True)
class FinancialRecordInfo:
    """Snapshot of a stored ledger entry."""

    id: UUID
    description: str
    amount: Decimal
    record_type: RecordType
    category: str
    payment_method: str | None
    record_date: date
    created_at: datetime
    appointment_id: UUID | None = None
    created_by: str | None = None

    @property
    def is_income(self) -> bool:
        return self.record_type == RecordType.INCOME

    @classmethod
    def from_model(cls, model: FinancialRecordModel) -> FinancialRecordInfo:
        return cls(
            id=model.id,
            description=model.description,
            amount=model.amount,
            record_type=RecordType(_value(model.record_type)),
            category=model.category,
            payment_method=model.payment_method,
            record_date=model.record_date,
            created_at=model.created_at,
            appointment_id=model.appointment_id,
            created_by=model.created_by,
        )


@dataclass(frozen=True)
class RecordDraft:
    """
    A ledger entry not yet written.

    ``amount`` is kept as given (string, int, Decimal) and is parsed by
    LedgerService.append(), so a bad value from a form is rejected there with
    a ValidationError rather than here with a TypeError.
    """

    description: str
    amount: object
    record_type: RecordType | str
    record_date: date
    category: str | None = None
    payment_method: str | None = None


@dataclass(frozen=True)
class Tender:
    """One payment method's share of a point-of-sale checkout."""

    method: str
    amount: object


@dataclass(frozen=True)
class AppointmentInfo:
    id: UUID
    appointment_date: date
    start_time: time
    service_type: str
    status: str
    end_time: time | None = None
    pet_name: str | None = None
    client_id: UUID | None = None
    pet_id: UUID | None = None
    notes: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @classmethod
    def from_model(cls, model: AppointmentModel) -> AppointmentInfo:
        return cls(
            id=model.id,
            appointment_date=model.appointment_date,
            start_time=model.start_time,
            service_type=model.service_type,
            status=_value(model.status),
            end_time=model.end_time,
            pet_name=model.pet_name,
            client_id=model.client_id,
            pet_id=model.pet_id,
            notes=model.notes,
        )


@dataclass(frozen=True)
class ClosingPreview:
    """Figures shown in the close-register dialog before the count is entered."""

    register_id: UUID
    business_date: date
    initial_amount: Decimal
    cash_income: Decimal
    cash_expense: Decimal
    expected_amount: Decimal


@dataclass(frozen=True)
class LedgerSummary:
    start: date
    end: date
    total_income: Decimal
    total_expense: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense


@dataclass(frozen=True)
class DashboardStats:
    """Dashboard header numbers.  Recomputed on every request."""

    business_date: date
    revenue: Decimal
    appointments_count: int
    register_status: str | None


@dataclass(frozen=True)
class CompletionResult:
    """
    Outcome of completing an appointment.

    ``record`` is None when the service had no price and no revenue was
    recorded.  ``record_reused`` is True when the ledger entry already existed
    from an earlier, interrupted attempt.
    """

    appointment: AppointmentInfo
    record: FinancialRecordInfo | None
    record_reused: bool = False
