"""Tests for the structured logging system (approval_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.workflow import WorkflowStatus
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "approval_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("level_approved", extra={"level_number": 2, "role": "general-manager"})

        record = _parse_log(stream)
        assert record["level_number"] == 2
        assert record["role"] == "general-manager"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(workflow_id="wf-123", actor_id="actor-456")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["workflow_id"] == "wf-123"
        assert record["actor_id"] == "actor-456"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Approval kernel exceptions carry .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from approval_kernel.exceptions import VersionConflictError

        try:
            raise VersionConflictError("wf-1", 3, 4)
        except VersionConflictError:
            logger.error("conflict", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "VERSION_CONFLICT"
        assert record["exc_type"] == "VersionConflictError"
        assert record["exc_workflow_id"] == "wf-1"
        assert record["exc_expected_version"] == 3
        assert record["exc_actual_version"] == 4

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "workflow_id" not in record
        assert "actor_id" not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        deadline = datetime(2024, 3, 1, 13, 0, tzinfo=timezone.utc)
        logger.info(
            "with_values",
            extra={
                "subject_id": uid,
                "deadline_at": deadline,
                "remaining": timedelta(minutes=2),
                "financial_impact": Decimal("1200.00"),
                "status": WorkflowStatus.EXPIRED,
            },
        )

        record = _parse_log(stream)
        assert record["subject_id"] == str(uid)
        assert record["deadline_at"] == deadline.isoformat()
        assert record["remaining"] == 120.0
        assert record["financial_impact"] == "1200.00"
        assert record["status"] == "expired"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(workflow_id="x", actor_id="y")
        assert LogContext.get_all() == {"workflow_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(workflow_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(workflow_id="outer")
        with LogContext.bind(workflow_id="inner"):
            assert LogContext.get_all()["workflow_id"] == "inner"
        assert LogContext.get_all()["workflow_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "workflow_id" not in LogContext.get_all()
        with LogContext.bind(workflow_id="temp"):
            assert LogContext.get_all()["workflow_id"] == "temp"
        assert "workflow_id" not in LogContext.get_all()

    def test_bind_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(workflow_id="temp", actor_id="someone"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="bogus"):
            LogContext.bind(workflow_id="wf", bogus="value")
        with pytest.raises(TypeError, match="bogus"):
            LogContext.set(bogus="value")
        assert LogContext.get_all() == {}

    def test_uuid_values_stored_as_strings(self):
        workflow_id = uuid4()
        with LogContext.bind(workflow_id=workflow_id):
            assert LogContext.get_all() == {"workflow_id": str(workflow_id)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            workflow_id="w",
            actor_id="a",
            trace_id="t",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 4
        assert ctx["correlation_id"] == "c"
        assert ctx["trace_id"] == "t"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("approval_kernel")
        assert len(root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.timeout_scheduler")
        assert logger.name == "approval_kernel.services.timeout_scheduler"

    def test_logger_hierarchy(self):
        """Child loggers inherit the approval_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "approval_kernel.deep.nested.module"

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="debug")
        get_logger("test").debug("debug_visible")

        assert _parse_log(stream)["message"] == "debug_visible"
