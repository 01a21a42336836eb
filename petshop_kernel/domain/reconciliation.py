"""
Reconciliation -- Pure cash-drawer arithmetic.

Responsibility:
    Computes what should be in the drawer at closing time and classifies the
    difference against what was counted.  Used by RegisterService when a
    register is closed and by RegisterSelector for the closing preview, so
    both report the same number.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Works on any object
    exposing ``amount``, ``record_type``, ``payment_method`` and
    ``record_date`` (FinancialRecordInfo DTOs or FinancialRecord rows).

Invariants enforced:
    - expected = opening float + cash income - cash expense.
    - The result does not depend on the order of the records.
    - A record is cash when its payment method equals the cash label or is
      unset.  Older rows were written before the label was stamped.

Failure modes:
    - None for well-formed input.  Unknown record types are ignored.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from petshop_kernel.db.types import ZERO, round_money

DEFAULT_CASH_LABEL = "Cash"
DEFAULT_TOLERANCE = Decimal("0.01")

_INCOME = "income"
_EXPENSE = "expense"


class DiscrepancyStatus(str, Enum):
    MATCHED = "matched"
    OVERAGE = "overage"
    SHORTAGE = "shortage"


@dataclass(frozen=True)
class Discrepancy:
    """Counted minus expected, with its classification."""

    amount: Decimal
    status: DiscrepancyStatus

    @property
    def is_matched(self) -> bool:
        return self.status == DiscrepancyStatus.MATCHED


def _type_of(record) -> str:
    record_type = record.record_type
    return getattr(record_type, "value", record_type)


def is_cash(record, cash_label: str = DEFAULT_CASH_LABEL) -> bool:
    method = record.payment_method
    if method is None or not str(method).strip():
        return True
    return str(method).strip() == cash_label


def cash_totals(
    records: Iterable,
    business_date: date | None = None,
    cash_label: str = DEFAULT_CASH_LABEL,
) -> tuple[Decimal, Decimal]:
    """
    Sum cash income and cash expense.

    Args:
        records: Ledger records (DTOs or rows).
        business_date: If given, only records attributed to this day count.
        cash_label: Payment method name that identifies cash.

    Returns:
        (income, expense), both rounded to cents.
    """
    income = ZERO
    expense = ZERO
    for record in records:
        if business_date is not None and record.record_date != business_date:
            continue
        if not is_cash(record, cash_label):
            continue
        record_type = _type_of(record)
        if record_type == _INCOME:
            income += Decimal(record.amount)
        elif record_type == _EXPENSE:
            expense += Decimal(record.amount)
    return round_money(income), round_money(expense)


def expected_cash(
    opening_float: Decimal,
    records: Iterable,
    business_date: date | None = None,
    cash_label: str = DEFAULT_CASH_LABEL,
) -> Decimal:
    """Opening float plus cash income minus cash expense."""
    income, expense = cash_totals(records, business_date, cash_label)
    return round_money(Decimal(opening_float) + income - expense)


def classify_discrepancy(
    counted: Decimal,
    expected: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> Discrepancy:
    """
    Classify counted vs. expected.

    |counted - expected| below ``tolerance`` is MATCHED; otherwise the sign
    decides between OVERAGE and SHORTAGE.  Reporting only: a mismatch never
    blocks a close.
    """
    raw = Decimal(counted) - Decimal(expected)
    if abs(raw) < Decimal(tolerance):
        status = DiscrepancyStatus.MATCHED
    elif raw > 0:
        status = DiscrepancyStatus.OVERAGE
    else:
        status = DiscrepancyStatus.SHORTAGE
    return Discrepancy(amount=round_money(raw), status=status)
