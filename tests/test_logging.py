"""Tests for the structured logging system (campaign_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from campaign_batch import BulkOrchestrator
from campaign_kernel.exceptions import WriteConflictError
from campaign_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from campaign_services import CampaignCalculator, validate_campaign
from tests.conftest import InMemoryRecordStore, make_campaign


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

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "campaign_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("batch_done", extra={"inserted": 42, "status": "completed"})

        record = _parse_log(stream)
        assert record["inserted"] == 42
        assert record["status"] == "completed"

    def test_decimal_and_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("value", extra={"amount": Decimal("40.000000"), "record_id": uid})

        record = _parse_log(stream)
        assert record["amount"] == "40.000000"
        assert record["record_id"] == str(uid)

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(operation_id="abc-123", entity_type="campaign")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["operation_id"] == "abc-123"
        assert record["entity_type"] == "campaign"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "entity_type" not in record
        assert "operation_id" not in record

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise WriteConflictError("CN-0001", "existing-id")
        except WriteConflictError:
            get_logger("test").error("write_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "WRITE_CONFLICT"
        assert record["exc_type"] == "WriteConflictError"
        assert record["exc_natural_key"] == "CN-0001"
        assert record["exc_existing_id"] == "existing-id"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(operation_id="x", entity_type="y")
        assert LogContext.get_all() == {"operation_id": "x", "entity_type": "y"}

    def test_clear(self):
        LogContext.set(operation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(operation_id="outer")
        with LogContext.bind(operation_id="inner"):
            assert LogContext.get_all()["operation_id"] == "inner"
        assert LogContext.get_all()["operation_id"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(entity_type="campaign"):
            assert LogContext.get_all()["entity_type"] == "campaign"
        assert "entity_type" not in LogContext.get_all()

    def test_additive_set(self):
        LogContext.set(operation_id="a")
        LogContext.set(entity_type="b")
        assert LogContext.get_all() == {"operation_id": "a", "entity_type": "b"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("campaign_kernel").handlers) == 1

    def test_reset_allows_reconfigure(self):
        first, _ = _make_handler()
        configure_logging(handler=first)
        reset_logging()
        second, stream = _make_handler()
        configure_logging(handler=second)
        get_logger("test").info("again")
        assert _parse_log(stream)["message"] == "again"


# ---------------------------------------------------------------------------
# Bulk operations carry their context
# ---------------------------------------------------------------------------


class TestBulkOperationLogging:

    def test_records_carry_operation_context(self, engine, deterministic_clock):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        orchestrator = BulkOrchestrator(
            store=InMemoryRecordStore("campaign_number"),
            engine=engine,
            calculator=CampaignCalculator(engine, clock=deterministic_clock),
            validator=validate_campaign,
            natural_key_field="campaign_number",
            clock=deterministic_clock,
            entity_type="campaign",
        )

        orchestrator.bulk_create([make_campaign(1), make_campaign(2)])

        logs = _parse_all_logs(stream)
        started = next(r for r in logs if r["message"] == "bulk_operation_started")
        completed = next(r for r in logs if r["message"] == "bulk_operation_completed")
        assert started["entity_type"] == "campaign"
        assert started["total_items"] == 2
        assert started["calculation_version"] == "1.0.0"
        assert started["operation_id"] == completed["operation_id"]
        assert "operation_id" not in LogContext.get_all()
