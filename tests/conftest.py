"""
Pytest fixtures for the payroll engine test suite.

Provides:
- Structured logging configuration and log capture
- SQLite in-memory database sessions (PostgreSQL via DATABASE_URL)
- Deterministic clock and actor

Environment Variables:
- DATABASE_URL: database URL for persistence tests.  Defaults to an
  in-memory SQLite database.
"""

import json
import logging
import os
from io import StringIO
from uuid import uuid4

import pytest

from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.db.immutability import unregister_immutability_listeners
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "property: hypothesis property-based test"
    )


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
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "payroll_run_processed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
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


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite://")


@pytest.fixture
def session():
    """A fresh schema per test; rolled back and dropped afterwards."""
    init_engine_from_url(get_database_url())
    create_tables()
    db = get_session()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
        unregister_immutability_listeners()
        drop_tables()
        reset_engine()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID
