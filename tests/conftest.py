"""
Pytest fixtures for the reimbursement kernel test suite.

Provides:
- Structured logging configuration and log capture
- Deterministic clock
- Sample claims (builders live in tests/factories.py)
- In-memory and SQLite-backed request stores

Environment Variables:
- DATABASE_URL: optional database URL for the SQL-backed fixtures.  When
  unset, each test gets its own SQLite file under tmp_path.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from reimbursement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from reimbursement_kernel.domain.clock import DeterministicClock
from reimbursement_kernel.domain.request import BankDetails, ClaimSubmission, DocumentRef
from reimbursement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from reimbursement_kernel.services.request_service import RequestService
from reimbursement_kernel.services.request_store import InMemoryRequestStore
from reimbursement_kernel.services.sql_request_store import SqlRequestStore
from tests.factories import make_claim


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
    Capture reimbursement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service, student_claim):
            service.create_request(student_claim)
            logs = captured_logs()
            assert any(r["message"] == "request_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("reimbursement_kernel")
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
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2025-07-01 09:30:00 UTC."""
    return DeterministicClock(datetime(2025, 7, 1, 9, 30, 0, tzinfo=timezone.utc))


# =============================================================================
# Claims
# =============================================================================


@pytest.fixture
def student_claim() -> ClaimSubmission:
    return make_claim(
        bank=BankDetails(
            account_name="Asha Rao",
            ifsc_code="SBIN0001234",
            account_number="123456789012",
        ),
        documents=(
            DocumentRef(
                filename="nptel-certificate.pdf",
                url="https://files.example.edu/nptel-certificate.pdf",
                mimetype="application/pdf",
                public_id="reimbursements/nptel-certificate",
            ),
        ),
        remarks="NPTEL Cloud Computing exam fee",
    )


@pytest.fixture
def faculty_claim() -> ClaimSubmission:
    return make_claim(
        applicant_type="Faculty",
        reimbursement_type="Conference",
        department="Computer Engineering",
        user_id="faculty-007",
        name="Dr. Meera Iyer",
        email="meera.iyer@example.edu",
        student_id=None,
        division=None,
        job_title="Assistant Professor",
        amount=Decimal("12000.00"),
    )


# =============================================================================
# Stores and services
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def service(memory_store, deterministic_clock) -> RequestService:
    """RequestService over an in-memory store with the deterministic clock."""
    return RequestService(memory_store, deterministic_clock)


@pytest.fixture
def db_engine(tmp_path):
    """Engine with a fresh schema for one test.

    SQLite file databases (not :memory:) so that concurrency tests get real
    per-thread connections.
    """
    db_url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'reimbursements.db'}"
    engine = init_engine_from_url(db_url)
    drop_tables()
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def sql_store(session_factory) -> SqlRequestStore:
    return SqlRequestStore(session_factory)


@pytest.fixture
def sql_service(sql_store, deterministic_clock) -> RequestService:
    return RequestService(sql_store, deterministic_clock)
