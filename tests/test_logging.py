"""Tests for the structured logging system (stock_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.logging_config import (
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
    """Parse all JSON log lines from a stream."""
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
        assert record["logger"] == "stock_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("ledger_appended", extra={"appended": 2, "first_sequence": 7})

        record = _parse_log(stream)
        assert record["appended"] == 2
        assert record["first_sequence"] == 7

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(run_id="run-1", connector="transfer")
        logger.info("sync_started")

        record = _parse_log(stream)
        assert record["run_id"] == "run-1"
        assert record["connector"] == "transfer"

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
        assert "exc_code" not in record
        assert "traceback" in record

    def test_stock_exception_code_extracted(self):
        """Stock kernel exceptions carry a .code attribute and their context."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from stock_kernel.exceptions import SyncIntegrityError

        try:
            raise SyncIntegrityError("L-1", Decimal("3"), Decimal("4"))
        except SyncIntegrityError:
            logger.error("negative_sync_delta", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NEGATIVE_SYNC_DELTA"
        assert record["exc_type"] == "SyncIntegrityError"
        assert record["exc_line_id"] == "L-1"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "run_id" not in record
        assert "connector" not in record

    def test_special_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info(
            "typed",
            extra={"entry_id": uid, "qty": Decimal("2.50"), "day": date(2024, 1, 5)},
        )

        record = _parse_log(stream)
        assert record["entry_id"] == str(uid)
        assert record["qty"] == "2.50"
        assert record["day"] == "2024-01-05"

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
        LogContext.set(run_id="x", table="sales")
        assert LogContext.get_all() == {"run_id": "x", "table": "sales"}

    def test_clear(self):
        LogContext.set(run_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(warehouse_group="UAE")
        with LogContext.bind(warehouse_group="EG"):
            assert LogContext.get_all()["warehouse_group"] == "EG"
        assert LogContext.get_all()["warehouse_group"] == "UAE"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "run_id" not in LogContext.get_all()
        with LogContext.bind(run_id="temp"):
            assert LogContext.get_all()["run_id"] == "temp"
        assert "run_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(run_id="r", colour="blue"):
            assert LogContext.get_all() == {"run_id": "r"}

    def test_nested_bind_restores_outer_fields(self):
        with LogContext.bind(run_id="r", connector="sales"):
            with LogContext.bind(table="sales"):
                assert LogContext.get_all() == {
                    "run_id": "r", "connector": "sales", "table": "sales",
                }
            assert LogContext.get_all() == {"run_id": "r", "connector": "sales"}
        assert LogContext.get_all() == {}

    def test_all_fields(self):
        LogContext.set(
            run_id="r",
            connector="sales",
            source_type="SALE_EG",
            table="sales",
            warehouse_group="EG",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["source_type"] == "SALE_EG"


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
        root = logging.getLogger("stock_kernel")
        assert len(root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.ledger")
        assert logger.name == "stock_kernel.services.ledger"

    def test_logger_hierarchy(self):
        """Child loggers inherit the stock_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("services.connectors.transfer")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "stock_kernel.services.connectors.transfer"
