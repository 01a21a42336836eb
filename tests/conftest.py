"""
Pytest fixtures for the petshop kernel test suite.

Provides:
- A fresh SQLite database file per test (tables created, immutability
  listeners installed)
- A deterministic clock pinned to a Sao Paulo business day
- A stub identity verifier
- Service, selector and coordinator factories
- Captured JSON logs

Environment Variables:
- DATABASE_URL: when it points at PostgreSQL, tests marked ``postgres``
  run against it; otherwise they are skipped.
"""

import json
import logging
import os
from datetime import date, datetime, time, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from petshop_kernel.config import CategoryDefaults, Settings
from petshop_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from petshop_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from petshop_kernel.domain.clock import DeterministicClock
from petshop_kernel.domain.identity import IdentityVerifier
from petshop_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from petshop_kernel.models.appointment import Appointment, AppointmentStatus
from petshop_kernel.selectors.dashboard_selector import DashboardSelector
from petshop_kernel.selectors.ledger_selector import LedgerSelector
from petshop_kernel.selectors.register_selector import RegisterSelector
from petshop_kernel.services.appointment_store import SqlAppointmentStore
from petshop_kernel.services.completion_coordinator import CompletionCoordinator
from petshop_kernel.services.ledger_service import LedgerService
from petshop_kernel.services.register_service import RegisterService

ADMIN_ID = "admin-1"
ADMIN_PASSWORD = "s3cret"
OTHER_ADMIN_ID = "admin-2"
OTHER_ADMIN_PASSWORD = "hunter2"

# 15:00 UTC is 12:00 in Sao Paulo on the same day
NOW_UTC = datetime(2024, 6, 14, 15, 0, 0, tzinfo=timezone.utc)
TODAY = date(2024, 6, 14)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture petshop_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, register_service):
            register_service.open_register(...)
            logs = captured_logs()
            assert any(r["message"] == "register_opened" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("petshop_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    url = os.environ.get("DATABASE_URL", "")
    if url.startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'till.db'}"


@pytest.fixture
def engine(database_url):
    """Fresh database with all tables and immutability listeners."""
    eng = init_engine_from_url(database_url)
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session whose uncommitted work is discarded after the test."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Collaborators
# =============================================================================


class StubVerifier(IdentityVerifier):
    """Plaintext passwords; records every call."""

    def __init__(self, passwords: dict[str, str]):
        self.passwords = dict(passwords)
        self.calls: list[str] = []

    def reverify_password(self, user_id: str, password: str) -> bool:
        self.calls.append(user_id)
        return bool(password) and self.passwords.get(user_id) == password


@pytest.fixture
def verifier() -> StubVerifier:
    return StubVerifier(
        {ADMIN_ID: ADMIN_PASSWORD, OTHER_ADMIN_ID: OTHER_ADMIN_PASSWORD}
    )


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(NOW_UTC)


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        database_url=database_url,
        timezone="America/Sao_Paulo",
        cash_payment_method="Cash",
        categories=CategoryDefaults(),
        service_prices={
            "Full Bath": "80.00",
            "Veterinary Consultation": "150.00",
            "Nail Trim": "20.00",
        },
    )


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def register_service(session, verifier, settings, clock) -> RegisterService:
    return RegisterService(session, verifier, settings, clock)


@pytest.fixture
def ledger_service(session, settings, clock) -> LedgerService:
    return LedgerService(session, settings, clock)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def register_selector(session) -> RegisterSelector:
    return RegisterSelector(session)


@pytest.fixture
def dashboard_selector(session, settings, clock) -> DashboardSelector:
    return DashboardSelector(session, settings, clock)


@pytest.fixture
def appointment_store(session_factory) -> SqlAppointmentStore:
    return SqlAppointmentStore(session_factory)


@pytest.fixture
def coordinator(session_factory, appointment_store, settings, clock) -> CompletionCoordinator:
    return CompletionCoordinator(session_factory, appointment_store, settings, clock)


@pytest.fixture
def make_appointment(session_factory):
    """Insert and commit an appointment; returns its id."""

    def _make(
        service_type: str = "Full Bath",
        pet_name: str | None = "Rex",
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        day: date = TODAY,
        start: time = time(10, 0),
    ) -> UUID:
        appointment_id = uuid4()
        with session_scope(session_factory) as sess:
            sess.add(
                Appointment(
                    id=appointment_id,
                    appointment_date=day,
                    start_time=start,
                    service_type=service_type,
                    pet_name=pet_name,
                    status=status.value,
                )
            )
        return appointment_id

    return _make
