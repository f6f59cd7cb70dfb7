"""
Pytest fixtures for the kanzlei ledger test suite.

Provides:
- A fresh SQLite file database per test (tables, triggers and ORM
  append-only listeners installed)
- Deterministic clock and a private ScopeLocks registry per test
- In-memory collaborator fakes and wired services

Environment Variables:
- KANZLEI_TEST_DATABASE_URL: run against another database (e.g. an empty
  PostgreSQL database) instead of the per-test SQLite file.
"""

import json
import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from kanzlei_config import get_policy_tables
from kanzlei_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from kanzlei_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from kanzlei_kernel.db.triggers import (
    install_immutability_triggers,
    uninstall_immutability_triggers,
)
from kanzlei_kernel.domain.clock import DeterministicClock
from kanzlei_kernel.domain.dtos import Jurisdiction
from kanzlei_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from kanzlei_kernel.services.scope_locks import ScopeLocks
from kanzlei_services.export_service import ExportService
from kanzlei_services.invoice_events import InvoiceEventHandler
from tests.factories import (
    WORKSPACE_ID,
    InMemoryRecords,
    StaticJurisdiction,
    StaticProfiles,
    make_profile,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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
    Capture kanzlei_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, handler):
            handler.on_cash_payment_recorded(invoice, payment)
            logs = captured_logs()
            assert any(r["message"] == "kassenbeleg_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("kanzlei_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """A file-backed SQLite database per test, so threads share one database."""
    url = os.environ.get("KANZLEI_TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'kanzlei.db'}"
    engine = init_engine_from_url(url, echo=False)
    create_tables()
    register_immutability_listeners()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session for one test; services commit through it."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def unprotected(db_engine):
    """
    Disable ORM listeners and database triggers (TESTS ONLY).

    Used by tests that tamper with stored rows to prove verification
    detects it.

    Usage::

        with unprotected():
            session.execute(update(FiscalSignature)...)
    """

    @contextmanager
    def _off():
        unregister_immutability_listeners()
        uninstall_immutability_triggers(db_engine)
        try:
            yield
        finally:
            install_immutability_triggers(db_engine)
            register_immutability_listeners()

    return _off


# =============================================================================
# Clock, locks, policy
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2025, 1, 15, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def locks() -> ScopeLocks:
    return ScopeLocks()


@pytest.fixture
def policy_tables():
    return get_policy_tables()


# =============================================================================
# Collaborators and services
# =============================================================================


@pytest.fixture
def records() -> InMemoryRecords:
    return InMemoryRecords()


@pytest.fixture
def profiles() -> StaticProfiles:
    return StaticProfiles({WORKSPACE_ID: make_profile()})


@pytest.fixture
def jurisdiction() -> StaticJurisdiction:
    return StaticJurisdiction(Jurisdiction.DE)


@pytest.fixture
def invoice_events(session, clock, locks) -> InvoiceEventHandler:
    return InvoiceEventHandler(session, clock, locks)


@pytest.fixture
def export_service(
    session, records, profiles, jurisdiction, clock, locks, policy_tables
) -> ExportService:
    return ExportService(
        session,
        invoices=records,
        expenses=records,
        time_entries=records,
        profiles=profiles,
        jurisdictions=jurisdiction,
        clock=clock,
        locks=locks,
        tables=policy_tables,
    )
