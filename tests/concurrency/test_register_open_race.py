"""
Register Open/Close Race Tests (PostgreSQL).

Two administrators press "open register" at the same moment against an
empty history.  Both pass the service-level check; the partial unique index
must let exactly one insert through.  The same holds for two closes of one
register: the conditional update lets exactly one win.

Expected Behavior:
- Exactly one open succeeds; the other raises a StateError
- Exactly one close succeeds; the other raises RegisterNotOpenError and the
  winner's counted amount is what is stored
"""

import os
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select, text

from petshop_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from petshop_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from petshop_kernel.exceptions import RegisterNotOpenError, StateError
from petshop_kernel.models.cash_register import CashRegister, RegisterStatus
from petshop_kernel.services.register_service import RegisterService
from tests.conftest import ADMIN_ID, ADMIN_PASSWORD, OTHER_ADMIN_ID, OTHER_ADMIN_PASSWORD

pytestmark = pytest.mark.postgres


@pytest.fixture
def pg_factory():
    init_engine_from_url(os.environ["DATABASE_URL"])
    create_tables()
    register_immutability_listeners()
    factory = get_session_factory()
    with factory() as session:
        # TRUNCATE bypasses the ORM delete guard; test cleanup only
        session.execute(text("TRUNCATE TABLE cash_registers, financial_records"))
        session.commit()
    yield factory
    with factory() as session:
        session.execute(text("TRUNCATE TABLE cash_registers, financial_records"))
        session.commit()
    unregister_immutability_listeners()
    reset_engine()


def test_concurrent_opens_leave_one_open_register(pg_factory, verifier, settings, clock):
    barrier = Barrier(2)
    stale_check = RegisterService._latest_register

    def _open(actor_id, password):
        with pg_factory() as session:
            service = RegisterService(session, verifier, settings, clock)
            # Both checks see an empty history before either insert commits
            stale_check(service)
            barrier.wait(timeout=10)
            service._latest_register = lambda: None
            try:
                service.open_register("100.00", actor_id, password)
                session.commit()
                return "opened"
            except StateError:
                session.rollback()
                return "rejected"

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(
            pool.map(
                lambda args: _open(*args),
                [(ADMIN_ID, ADMIN_PASSWORD), (OTHER_ADMIN_ID, OTHER_ADMIN_PASSWORD)],
            )
        )

    assert sorted(results) == ["opened", "rejected"]
    with pg_factory() as session:
        open_count = session.scalar(
            select(func.count()).select_from(CashRegister).where(
                CashRegister.status == RegisterStatus.OPEN.value
            )
        )
        assert open_count == 1


def test_concurrent_closes_have_one_winner(pg_factory, verifier, settings, clock):
    with pg_factory() as session:
        opened = RegisterService(session, verifier, settings, clock).open_register(
            "100.00", ADMIN_ID, ADMIN_PASSWORD
        )
        session.commit()

    barrier = Barrier(2)

    def _close(actor_id, counted):
        with pg_factory() as session:
            service = RegisterService(session, verifier, settings, clock)
            assert session.get(CashRegister, opened.id).is_open
            barrier.wait(timeout=10)
            try:
                service.close_register(opened.id, counted, actor_id)
                session.commit()
                return counted
            except RegisterNotOpenError:
                session.rollback()
                return None

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(
            pool.map(
                lambda args: _close(*args),
                [(ADMIN_ID, "100.00"), (OTHER_ADMIN_ID, "90.00")],
            )
        )

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    with pg_factory() as session:
        stored = session.get(CashRegister, opened.id)
        assert stored.is_closed
        assert str(stored.final_amount) == winners[0]
