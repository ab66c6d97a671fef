"""Tests for the structured logging system (meal_kernel/logging_config.py)."""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from meal_engines.lifecycle import OrderStatus
from meal_kernel import logging_config
from meal_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Start each test with a bare meal_kernel logger and put the suite's back after."""
    kernel = logging.getLogger("meal_kernel")
    saved = (list(kernel.handlers), kernel.level, kernel.propagate)
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    handlers, level, propagate = saved
    for h in handlers:
        kernel.addHandler(h)
    kernel.setLevel(level)
    kernel.propagate = propagate
    logging_config._configured = bool(handlers)


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
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "meal_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("order_frozen", extra={"remaining_freezes": 1, "status": "Frozen"})

        record = _parse_log(stream)
        assert record["remaining_freezes"] == 1
        assert record["status"] == "Frozen"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", employee_id="emp-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["employee_id"] == "emp-456"

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

    def test_kernel_exception_fields_extracted(self):
        """Kernel exceptions carry a .code and their structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from meal_kernel.exceptions import StartDateInPastError

        try:
            raise StartDateInPastError(date(2023, 12, 31), date(2024, 1, 1))
        except StartDateInPastError:
            logger.error("create_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "START_DATE_IN_PAST"
        assert record["exc_type"] == "StartDateInPastError"
        assert record["exc_start"] == "2023-12-31"
        assert record["exc_today"] == "2024-01-01"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "employee_id" not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_values", extra={
            "subscription_id": uid,
            "amount": Decimal("125.00"),
            "days": frozenset({3, 1}),
        })

        record = _parse_log(stream)
        assert record["subscription_id"] == str(uid)
        assert record["amount"] == "125.00"
        assert record["days"] == [1, 3]

    def test_dates_enums_and_sets_keep_their_shape(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("shapes", extra={
            "run_at": datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
            "order_date": date(2024, 1, 2),
            "status": OrderStatus.FROZEN,
            "working_days": frozenset({5, 1, 3}),
        })

        record = _parse_log(stream)
        assert record["run_at"] == "2024-01-01T10:00:00+00:00"
        assert record["order_date"] == "2024-01-02"
        assert record["status"] == OrderStatus.FROZEN.value
        assert record["working_days"] == [1, 3, 5]

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", subscription_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "subscription_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(employee_id="outer")
        with LogContext.bind(employee_id="inner"):
            assert LogContext.get_all()["employee_id"] == "inner"
        assert LogContext.get_all()["employee_id"] == "outer"

    def test_bind_restores_none(self):
        assert "batch_id" not in LogContext.get_all()
        with LogContext.bind(batch_id="temp"):
            assert LogContext.get_all()["batch_id"] == "temp"
        assert "batch_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(unknown="x", company_id="c"):
            assert LogContext.get_all() == {"company_id": "c"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            company_id="co",
            employee_id="e",
            subscription_id="s",
            batch_id="b",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["batch_id"] == "b"


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
        assert logging.getLogger("meal_kernel").handlers == [h1]

    def test_get_logger_returns_child(self):
        assert get_logger("modules.lunch.service").name == "meal_kernel.modules.lunch.service"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "meal_kernel.deep.nested.module"
