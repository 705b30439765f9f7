"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import ImmutabilityViolationError, UnbalancedTransactionError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from ledger_kernel.models.transaction import TransactionStatus


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests; leave the suite-wide setup behind."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


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
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("posted", extra={"sequence": 42, "document_number": "JE-2024-0042"})

        record = _parse_log(stream)
        assert record["sequence"] == 42
        assert record["document_number"] == "JE-2024-0042"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        account_id = uuid4()
        get_logger("test").info(
            "balance_delta_applied",
            extra={
                "account_id": account_id,
                "delta": Decimal("12.50"),
                "status": TransactionStatus.POSTED,
                "posted_at": datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc),
            },
        )

        record = _parse_log(stream)
        assert record["account_id"] == str(account_id)
        assert record["delta"] == "12.50"
        assert record["status"] == "posted"
        assert record["posted_at"] == "2024-06-15T12:00:00+00:00"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        tenant_id = uuid4()
        LogContext.set(correlation_id="req-1", tenant_id=tenant_id, operation="create_transaction")
        get_logger("test").info("working")

        record = _parse_log(stream)
        assert record["correlation_id"] == "req-1"
        assert record["tenant_id"] == str(tenant_id)
        assert record["operation"] == "create_transaction"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "tenant_id" not in record

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("bad input")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "bad input"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise UnbalancedTransactionError(Decimal("100"), Decimal("90"))
        except UnbalancedTransactionError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "UNBALANCED_TRANSACTION"
        assert record["exc_total_debits"] == "100"
        assert record["exc_total_credits"] == "90"
        assert record["exc_difference"] == "10"
        assert record["exc_short_side"] == "credit"

    def test_immutability_violation_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ImmutabilityViolationError("Transaction", "abc", "Voided transactions are immutable")
        except ImmutabilityViolationError:
            get_logger("test").warning("blocked", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "IMMUTABILITY_VIOLATION"
        assert record["exc_entity_type"] == "Transaction"
        assert record["exc_reason"] == "Voided transactions are immutable"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        for i in range(5):
            logger.info("line", extra={"i": i, "amount": Decimal(i)})

        records = _parse_all_logs(stream)
        assert [r["i"] for r in records] == [0, 1, 2, 3, 4]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="abc", actor_id="user-1")
        assert LogContext.get_all() == {"correlation_id": "abc", "actor_id": "user-1"}

    def test_clear(self):
        LogContext.set(correlation_id="abc")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_additive_set(self):
        LogContext.set(correlation_id="abc")
        LogContext.set(tenant_id="t-1")
        assert LogContext.get_all() == {"correlation_id": "abc", "tenant_id": "t-1"}

    def test_bind_context_manager(self):
        with LogContext.bind(correlation_id="inner", transaction_id="txn-1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "transaction_id": "txn-1"}
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer", tenant_id="t-1")
        with LogContext.bind(correlation_id="inner", operation="void_transaction"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all() == {"correlation_id": "outer", "tenant_id": "t-1"}

    def test_bind_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(correlation_id="inner"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_bind_ignores_none_and_unknown_fields(self):
        with LogContext.bind(tenant_id=None, not_a_field="x", operation="op"):
            assert LogContext.get_all() == {"operation": "op"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        configure_logging(handler=second)

        handlers = logging.getLogger("ledger_kernel").handlers
        assert handlers.count(handler) == 1
        assert second not in handlers

    def test_level_applied(self):
        configure_logging(level="WARNING", stream=StringIO())
        assert logging.getLogger("ledger_kernel").level == logging.WARNING

    def test_does_not_propagate(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("ledger_kernel").propagate is False

    def test_get_logger_returns_child(self):
        assert get_logger("services.ledger").name == "ledger_kernel.services.ledger"

    def test_child_records_reach_configured_handler(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("selectors.ledger").warning("balance_discrepancies_found", extra={"count": 2})

        record = _parse_log(stream)
        assert record["logger"] == "ledger_kernel.selectors.ledger"
        assert record["count"] == 2
