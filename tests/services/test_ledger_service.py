"""
Tests for LedgerService: appends, manual entries and point-of-sale sales.

Verifies:
- Invalid drafts are rejected before anything is persisted
- Defaults (cash payment method, per-type category) are stamped at write time
- Sales require an open register and split across tenders
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from petshop_kernel.domain.dtos import RecordDraft, RecordType, Tender
from petshop_kernel.exceptions import (
    RegisterClosedError,
    StorageError,
    ValidationError,
)
from petshop_kernel.models.financial_record import FinancialRecord
from petshop_kernel.services.ledger_service import LedgerService
from tests.conftest import ADMIN_ID, ADMIN_PASSWORD, NOW_UTC, TODAY


def _count(session) -> int:
    return session.scalar(select(func.count()).select_from(FinancialRecord))


def _draft(**overrides) -> RecordDraft:
    values = dict(
        description="Dog food 10kg",
        amount="120.00",
        record_type=RecordType.INCOME,
        record_date=TODAY,
    )
    values.update(overrides)
    return RecordDraft(**values)


class TestAppend:
    """Tests for LedgerService.append."""

    def test_append_returns_stored_record(self, ledger_service, session):
        record = ledger_service.append(_draft(), actor_id=ADMIN_ID)

        assert record.id is not None
        assert record.amount == Decimal("120.00")
        assert record.record_type == RecordType.INCOME
        assert record.record_date == TODAY
        assert record.created_by == ADMIN_ID
        assert record.created_at == NOW_UTC
        assert _count(session) == 1

    def test_defaults_stamped(self, ledger_service, session):
        income = ledger_service.append(_draft())
        expense = ledger_service.append(_draft(record_type="expense", description="Rent"))

        assert income.payment_method == "Cash"
        assert income.category == "Ad-hoc Income"
        assert expense.payment_method == "Cash"
        assert expense.category == "Operating Expense"

        stored = session.get(FinancialRecord, income.id)
        assert stored.payment_method == "Cash"

    def test_blank_payment_method_defaults_to_cash(self, ledger_service):
        record = ledger_service.append(_draft(payment_method="   ", category=""))
        assert record.payment_method == "Cash"
        assert record.category == "Ad-hoc Income"

    def test_explicit_values_kept(self, ledger_service):
        record = ledger_service.append(
            _draft(payment_method="Pix", category="Pet Food", description="  Kibble  ")
        )
        assert record.payment_method == "Pix"
        assert record.category == "Pet Food"
        assert record.description == "Kibble"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"amount": "0"}, "amount"),
            ({"amount": "0.001"}, "amount"),
            ({"amount": "-5"}, "amount"),
            ({"amount": "five"}, "amount"),
            ({"amount": None}, "amount"),
            ({"description": ""}, "description"),
            ({"description": "   "}, "description"),
            ({"description": None}, "description"),
            ({"record_date": None}, "date"),
            ({"record_date": "2024-06-14"}, "date"),
            ({"record_date": datetime(2024, 6, 14, 23, 30, tzinfo=timezone.utc)}, "date"),
            ({"record_type": "refund"}, "type"),
        ],
    )
    def test_invalid_draft_persists_nothing(self, ledger_service, session, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            ledger_service.append(_draft(**overrides))
        assert exc_info.value.field == field
        assert _count(session) == 0

    def test_rejection_logged(self, ledger_service, captured_logs):
        with pytest.raises(ValidationError):
            ledger_service.append(_draft(amount="-1"))
        rejected = [r for r in captured_logs() if r["message"] == "ledger_append_rejected"]
        assert rejected and rejected[0]["level"] == "WARNING"

    def test_append_logged(self, ledger_service, captured_logs):
        record = ledger_service.append(_draft())
        appended = [r for r in captured_logs() if r["message"] == "ledger_record_appended"]
        assert appended[0]["record_id"] == str(record.id)
        assert appended[0]["amount"] == "120.00"

    def test_duplicate_appointment_is_storage_error(self, ledger_service, session):
        appointment_id = uuid4()
        ledger_service.append(_draft(), appointment_id=appointment_id)

        with pytest.raises(StorageError) as exc_info:
            ledger_service.append(_draft(), appointment_id=appointment_id)
        assert exc_info.value.operation == "ledger_append"


class TestManualEntry:

    def test_manual_expense(self, ledger_service):
        record = ledger_service.record_manual_entry(
            "Electricity", "310,40", "expense", date(2024, 6, 10), actor_id=ADMIN_ID
        )
        assert record.record_type == RecordType.EXPENSE
        assert record.amount == Decimal("310.40")
        assert record.record_date == date(2024, 6, 10)
        assert record.category == "Operating Expense"

    def test_manual_entry_validates(self, ledger_service, session):
        with pytest.raises(ValidationError):
            ledger_service.record_manual_entry("", "10", "income", TODAY)
        assert _count(session) == 0


class TestRecordSale:

    def test_sale_requires_open_register(self, ledger_service, session):
        with pytest.raises(RegisterClosedError):
            ledger_service.record_sale("Collar", [Tender("Cash", "25.00")])
        assert _count(session) == 0

    def test_split_tender_sale(self, ledger_service, register_service, session):
        register_service.open_register("50.00", ADMIN_ID, ADMIN_PASSWORD)

        records = ledger_service.record_sale(
            "Collar and leash",
            [Tender("Cash", "30.00"), Tender("Pix", "45.50")],
            actor_id=ADMIN_ID,
        )

        assert [r.payment_method for r in records] == ["Cash", "Pix"]
        assert [r.amount for r in records] == [Decimal("30.00"), Decimal("45.50")]
        assert all(r.category == "Sales" for r in records)
        assert all(r.record_date == TODAY for r in records)
        assert all(r.record_type == RecordType.INCOME for r in records)
        assert _count(session) == 2

    def test_one_bad_tender_writes_nothing(self, ledger_service, register_service, session):
        register_service.open_register("50.00", ADMIN_ID, ADMIN_PASSWORD)

        with pytest.raises(ValidationError) as exc_info:
            ledger_service.record_sale(
                "Collar", [Tender("Cash", "30.00"), Tender("Pix", "-1")]
            )
        assert exc_info.value.field == "amount"
        assert _count(session) == 0

    def test_tender_without_method_rejected(self, ledger_service, register_service):
        register_service.open_register("50.00", ADMIN_ID, ADMIN_PASSWORD)
        with pytest.raises(ValidationError) as exc_info:
            ledger_service.record_sale("Collar", [Tender("", "30.00")])
        assert exc_info.value.field == "tenders[0].method"

    def test_sale_without_tenders_rejected(self, ledger_service, register_service):
        register_service.open_register("50.00", ADMIN_ID, ADMIN_PASSWORD)
        with pytest.raises(ValidationError):
            ledger_service.record_sale("Collar", [])

    def test_sale_dated_in_shop_timezone(self, session, settings, clock, register_service):
        """01:30 UTC on the 15th is still the 14th in Sao Paulo."""
        register_service.open_register("0", ADMIN_ID, ADMIN_PASSWORD)
        clock.set_time(datetime(2024, 6, 15, 1, 30, tzinfo=timezone.utc))

        records = LedgerService(session, settings, clock).record_sale(
            "Late sale", [Tender("Cash", "10")]
        )
        assert records[0].record_date == TODAY
