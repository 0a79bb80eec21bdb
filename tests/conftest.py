"""
Pytest fixtures for the approval kernel test suite.

Provides:
- Structured logging configuration and log capture
- A DeterministicClock shared by every service under test
- Policies built from the shipped default configuration
- In-memory and SQLite-backed SQL workflow stores
- Small builders for actors and bypass records

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL for the SQL store tests.
  If not set, an in-memory SQLite database is used.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from approval_config import get_active_config
from approval_config.bridges import (
    build_approval_service,
    build_chain_policy,
    build_engine_settings,
    build_escalation_policy,
)
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.chain_policy import BypassAuditRecord
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.workflow import Actor
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.services.decision_processor import DecisionProcessor
from approval_kernel.services.timeout_scheduler import TimeoutScheduler
from approval_kernel.store.memory import InMemoryWorkflowStore
from approval_kernel.store.sql import SqlWorkflowStore

START_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

DEFAULT_SQL_URL = "sqlite://"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
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
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.create_workflow(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
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
# Clock and configuration
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture(scope="session")
def approval_config():
    return get_active_config()


@pytest.fixture
def chain_policy(approval_config):
    return build_chain_policy(approval_config)


@pytest.fixture
def escalation_policy(approval_config):
    return build_escalation_policy(approval_config)


@pytest.fixture
def settings(approval_config):
    return build_engine_settings(approval_config)


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def sql_store():
    """SqlWorkflowStore over fresh tables (in-memory SQLite by default)."""
    init_engine_from_url(os.environ.get("DATABASE_URL", DEFAULT_SQL_URL))
    drop_tables()
    create_tables()
    try:
        yield SqlWorkflowStore(get_session_factory())
    finally:
        drop_tables()
        reset_engine()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every store implementation, for contract tests."""
    if request.param == "memory":
        return InMemoryWorkflowStore()
    return request.getfixturevalue("sql_store")


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def service(approval_config, memory_store, clock):
    return build_approval_service(approval_config, memory_store, clock)


@pytest.fixture
def processor(memory_store, escalation_policy, settings, clock):
    return DecisionProcessor(memory_store, escalation_policy, settings, clock)


@pytest.fixture
def scheduler(memory_store, escalation_policy, settings, clock):
    return TimeoutScheduler(memory_store, escalation_policy, settings, clock)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def requester_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_actor():
    """Build an Actor with a fresh identity in the given role."""

    def _make(role: str, actor_id: UUID | None = None) -> Actor:
        return Actor(actor_id=actor_id or uuid4(), role=role)

    return _make


@pytest.fixture
def make_record():
    """Build a BypassAuditRecord with sensible defaults."""

    def _make(
        risk_score=85,
        reason_category="system_failure",
        financial_impact=Decimal("1200.00"),
        bypass_id=None,
    ) -> BypassAuditRecord:
        return BypassAuditRecord(
            bypass_id=bypass_id or f"BYP-{uuid4().hex[:8]}",
            reason_category=reason_category,
            financial_impact=financial_impact,
            risk_score=risk_score,
        )

    return _make
