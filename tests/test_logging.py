"""Tests for the structured logging system (pharma_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pharma_kernel.logging_config import (
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
    configure_logging(level=logging.DEBUG)


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


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "pharma_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("movement_appended", extra={"seq": 42, "direction": "OUT"})

        record = _parse_log(stream)
        assert record["seq"] == 42
        assert record["direction"] == "OUT"

    def test_decimal_serialized_as_exact_string(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("projected", extra={"projected": Decimal("15.000000001")})

        assert _parse_log(stream)["projected"] == "15.000000001"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", operation="issue_stock")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["operation"] == "issue_stock"

    def test_safety_violation_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from pharma_kernel.exceptions import SafetyStockViolation

        try:
            raise SafetyStockViolation("site-1", "item-1", Decimal("60"), Decimal("5"), Decimal("10"))
        except SafetyStockViolation:
            get_logger("test").error("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "SAFETY_STOCK_VIOLATION"
        assert record["exc_type"] == "SafetyStockViolation"
        assert record["exc_projected"] == "5"
        assert record["exc_safety_stock"] == "10"
        assert "traceback" in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"order_id": uid})

        assert _parse_log(stream)["order_id"] == str(uid)

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", site_id="s")
        assert LogContext.get_all() == {"correlation_id": "x", "site_id": "s"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner"):
            assert LogContext.get_all()["operation"] == "inner"
        assert LogContext.get_all()["operation"] == "outer"

    def test_bind_stringifies_uuid(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor):
            assert LogContext.get_all()["actor_id"] == str(actor)
        assert "actor_id" not in LogContext.get_all()

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            operation="o",
            site_id="s",
            item_id="i",
            movement_id="m",
        )
        assert len(LogContext.get_all()) == 6


class TestConfigureLogging:

    def test_idempotent(self):
        reset_logging()
        kernel_logger = logging.getLogger("pharma_kernel")
        before = len(kernel_logger.handlers)
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert h1 in kernel_logger.handlers
        assert h2 not in kernel_logger.handlers
        assert len(kernel_logger.handlers) == before + 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.movement_writer").name == "pharma_kernel.services.movement_writer"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "pharma_kernel.deep.nested.module"
