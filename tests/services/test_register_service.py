"""
Tests for RegisterService: opening and closing the daily cash register.

Verifies:
- Opening validates the amount, then the password, then the state
- Only one register can be open, even when the state check is stale
- Closing computes expected cash from today's cash records
- A register closes exactly once; the first close's values survive
- State transitions are logged
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from petshop_kernel.domain.dtos import RecordType
from petshop_kernel.domain.reconciliation import DiscrepancyStatus
from petshop_kernel.exceptions import (
    AuthenticationError,
    RegisterAlreadyOpenError,
    RegisterClosedError,
    RegisterNotFoundError,
    RegisterNotOpenError,
    StateError,
    ValidationError,
)
from petshop_kernel.models.cash_register import CashRegister, RegisterStatus
from petshop_kernel.models.financial_record import FinancialRecord
from petshop_kernel.services.register_service import RegisterService
from tests.conftest import (
    ADMIN_ID,
    ADMIN_PASSWORD,
    OTHER_ADMIN_ID,
    OTHER_ADMIN_PASSWORD,
    TODAY,
)


def _open_count(session) -> int:
    return session.scalar(
        select(func.count()).select_from(CashRegister).where(
            CashRegister.status == RegisterStatus.OPEN.value
        )
    )


class TestOpenRegister:
    """Tests for open_register."""

    def test_open_sets_fields(self, register_service, clock):
        info = register_service.open_register("100.00", ADMIN_ID, ADMIN_PASSWORD)

        assert info.is_open
        assert info.initial_amount == Decimal("100.00")
        assert info.opened_by == ADMIN_ID
        assert info.final_amount is None
        assert info.expected_amount is None
        assert info.discrepancy is None

    def test_open_writes_no_ledger_record(self, register_service, session):
        register_service.open_register("100.00", ADMIN_ID, ADMIN_PASSWORD)
        assert session.scalar(select(func.count()).select_from(FinancialRecord)) == 0

    def test_zero_float_allowed(self, register_service):
        info = register_service.open_register("0", ADMIN_ID, ADMIN_PASSWORD)
        assert info.initial_amount == Decimal("0.00")

    @pytest.mark.parametrize("amount", ["abc", "-10", None, "", "1e30"])
    def test_invalid_amount_rejected(self, register_service, session, verifier, amount):
        with pytest.raises(ValidationError):
            register_service.open_register(amount, ADMIN_ID, ADMIN_PASSWORD)
        assert session.scalar(select(func.count()).select_from(CashRegister)) == 0
        # Validation happens before the password is checked
        assert verifier.calls == []

    def test_wrong_password_rejected(self, register_service, session):
        with pytest.raises(AuthenticationError) as exc_info:
            register_service.open_register("100.00", ADMIN_ID, "wrong")
        assert exc_info.value.user_id == ADMIN_ID
        assert session.scalar(select(func.count()).select_from(CashRegister)) == 0

    def test_password_of_other_user_rejected(self, register_service):
        with pytest.raises(AuthenticationError):
            register_service.open_register("100.00", OTHER_ADMIN_ID, ADMIN_PASSWORD)

    def test_second_open_rejected(self, register_service, session):
        first = register_service.open_register("100.00", ADMIN_ID, ADMIN_PASSWORD)

        with pytest.raises(RegisterAlreadyOpenError) as exc_info:
            register_service.open_register("50.00", ADMIN_ID, ADMIN_PASSWORD)

        assert isinstance(exc_info.value, StateError)
        assert exc_info.value.open_register_id == str(first.id)
        assert _open_count(session) == 1

    def test_open_after_close_allowed(self, register_service, clock):
        first = register_service.open_register("100.00", ADMIN_ID, ADMIN_PASSWORD)
        register_service.close_register(first.id, "100.00", ADMIN_ID)
        clock.advance(3600)

        second = register_service.open_register("80.00", ADMIN_ID, ADMIN_PASSWORD)
        assert second.is_open
        assert second.id != first.id

    def test_open_logged(self, register_service, captured_logs):
        info = register_service.open_register("100.00", ADMIN_ID, ADMIN_PASSWORD)

        opened = [r for r in captured_logs() if r["message"] == "register_opened"]
        assert len(opened) == 1
        assert opened[0]["register_id"] == str(info.id)
        assert opened[0]["actor_id"] == ADMIN_ID


class TestOpenRegisterRace:
    """The partial unique index settles a race the state check cannot see."""

    def test_stale_check_loses_to_committed_open(
        self, session_factory, verifier, settings, clock, monkeypatch
    ):
        # Administrator A opens and commits
        with session_factory() as session_a:
            RegisterService(session_a, verifier, settings, clock).open_register(
                "100.00", ADMIN_ID, ADMIN_PASSWORD
            )
            session_a.commit()

        # Administrator B's check ran before A committed: it saw no register
        session_b = session_factory()
        service_b = RegisterService(session_b, verifier, settings, clock)
        monkeypatch.setattr(service_b, "_latest_register", lambda: None)

        with pytest.raises(RegisterAlreadyOpenError):
            service_b.open_register("50.00", OTHER_ADMIN_ID, OTHER_ADMIN_PASSWORD)
        session_b.close()

        with session_factory() as check:
            assert _open_count(check) == 1
            assert check.scalar(select(func.count()).select_from(CashRegister)) == 1


class TestCloseRegister:
    """Tests for close_register."""

    @pytest.fixture
    def open_register(self, register_service):
        return register_service.open_register("100.00", ADMIN_ID, ADMIN_PASSWORD)

    def _cash_day(self, ledger_service):
        ledger_service.record_manual_entry("Shampoo sale", "50.00", RecordType.INCOME, TODAY)
        ledger_service.record_manual_entry("Cleaning supplies", "20.00", RecordType.EXPENSE, TODAY)

    def test_matched_close(self, register_service, ledger_service, open_register):
        self._cash_day(ledger_service)

        info = register_service.close_register(open_register.id, "130.00", ADMIN_ID)

        assert not info.is_open
        assert info.status == RegisterStatus.CLOSED.value
        assert info.expected_amount == Decimal("130.00")
        assert info.final_amount == Decimal("130.00")
        assert info.closed_by == ADMIN_ID
        assert info.closed_at is not None
        assert info.discrepancy == Decimal("0.00")
        assert info.classify().status == DiscrepancyStatus.MATCHED

    def test_shortage_close(self, register_service, ledger_service, open_register):
        self._cash_day(ledger_service)

        info = register_service.close_register(
            open_register.id, "125.00", ADMIN_ID, notes="  Change given twice  "
        )

        assert info.discrepancy == Decimal("-5.00")
        assert info.classify().status == DiscrepancyStatus.SHORTAGE
        assert info.notes == "Change given twice"

    def test_non_cash_and_other_days_ignored(self, register_service, ledger_service, open_register):
        ledger_service.record_manual_entry("Card sale", "70.00", "income", TODAY, payment_method="Credit Card")
        ledger_service.record_manual_entry("Pix sale", "30.00", "income", TODAY, payment_method="Pix")
        ledger_service.record_manual_entry(
            "Yesterday", "500.00", "income", TODAY - timedelta(days=1)
        )
        ledger_service.record_manual_entry("Cash sale", "10.00", "income", TODAY)

        info = register_service.close_register(open_register.id, "110.00", ADMIN_ID)
        assert info.expected_amount == Decimal("110.00")

    def test_close_twice_rejected_and_first_values_intact(
        self, register_service, open_register
    ):
        first = register_service.close_register(open_register.id, "100.00", ADMIN_ID)

        with pytest.raises(RegisterNotOpenError):
            register_service.close_register(open_register.id, "999.00", OTHER_ADMIN_ID)

        stored = register_service.session.get(CashRegister, open_register.id)
        assert stored.final_amount == first.final_amount
        assert stored.expected_amount == first.expected_amount
        assert stored.closed_by == ADMIN_ID

    def test_lost_race_changes_nothing(
        self, session_factory, verifier, settings, clock, register_service, open_register, session
    ):
        session.commit()

        # Both administrators load the open register
        session_b = session_factory()
        service_b = RegisterService(session_b, verifier, settings, clock)
        assert session_b.get(CashRegister, open_register.id).is_open

        register_service.close_register(open_register.id, "100.00", ADMIN_ID)
        session.commit()

        # B still holds the stale open row; the conditional update matches nothing
        with pytest.raises(RegisterNotOpenError):
            service_b.close_register(open_register.id, "42.00", OTHER_ADMIN_ID)
        session_b.close()

        with session_factory() as check:
            stored = check.get(CashRegister, open_register.id)
            assert stored.final_amount == Decimal("100.00")
            assert stored.closed_by == ADMIN_ID

    def test_unknown_register(self, register_service):
        with pytest.raises(RegisterNotFoundError):
            register_service.close_register(uuid4(), "10.00", ADMIN_ID)

    @pytest.mark.parametrize("amount", ["-1", "ten", None, "12345678901234567890123456789"])
    def test_invalid_counted_amount(self, register_service, open_register, amount):
        with pytest.raises(ValidationError):
            register_service.close_register(open_register.id, amount, ADMIN_ID)
        assert register_service.session.get(CashRegister, open_register.id).is_open

    def test_close_logged_with_discrepancy(self, register_service, open_register, captured_logs):
        register_service.close_register(open_register.id, "90.00", ADMIN_ID)

        closed = [r for r in captured_logs() if r["message"] == "register_closed"]
        assert len(closed) == 1
        assert closed[0]["discrepancy"] == "-10.00"
        assert closed[0]["discrepancy_status"] == "shortage"


class TestRequireOpenRegister:

    def test_raises_when_none_open(self, register_service):
        with pytest.raises(RegisterClosedError):
            register_service.require_open_register()

    def test_returns_open_register(self, register_service):
        opened = register_service.open_register("10", ADMIN_ID, ADMIN_PASSWORD)
        assert register_service.require_open_register().id == opened.id
