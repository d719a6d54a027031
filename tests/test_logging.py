"""Structured JSON logging: formatter, request context and configuration."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from conflict_kernel.domain.values import CaseType
from conflict_kernel.exceptions import RateLimitExceededError
from conflict_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure the kernel logger onto a buffer; call the fixture to read JSON lines."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _records


log = get_logger("tests")


class TestStructuredFormatter:

    def test_envelope(self, emitted):
        log.info("appeal_submitted")
        [record] = emitted()
        assert record["level"] == "INFO"
        assert record["message"] == "appeal_submitted"
        assert record["logger"] == "conflict_kernel.tests"
        assert datetime.fromisoformat(record["ts"]).tzinfo is not None

    def test_extra_fields(self, emitted):
        log.info("conflict_refund_completed", extra={"amount": 2500, "refund_id": "re_1"})
        [record] = emitted()
        assert (record["amount"], record["refund_id"]) == (2500, "re_1")

    def test_context_fields(self, emitted):
        LogContext.set(request_id="req-1", case_id="APL-000009")
        log.info("appeal_assigned")
        [record] = emitted()
        assert record["request_id"] == "req-1"
        assert record["case_id"] == "APL-000009"
        assert "batch_id" not in record

    def test_extra_does_not_override_context(self, emitted):
        LogContext.set(actor_id="ctx")
        log.info("collision", extra={"actor_id": "extra"})
        assert emitted()[0]["actor_id"] == "ctx"

    def test_plain_exception(self, emitted):
        try:
            raise ValueError("boom")
        except ValueError:
            log.error("failed", exc_info=True)

        [record] = emitted()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields(self, emitted):
        try:
            raise RateLimitExceededError("user-1", "refund", 30)
        except RateLimitExceededError:
            log.warning("limited", exc_info=True)

        [record] = emitted()
        assert record["exc_code"] == "RATE_LIMIT_EXCEEDED"
        assert record["exc_action"] == "refund"
        assert record["exc_retry_after_seconds"] == 30

    def test_value_types(self, emitted):
        @dataclass(frozen=True)
        class Totals:
            matched: int
            batch: str

        entry_id = uuid4()
        log.info("typed", extra={
            "entry_id": entry_id,
            "case_type": CaseType.ADJUSTMENT,
            "at": datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc),
            "statuses": frozenset({"pending_owner"}),
            "totals": Totals(3, "RECON-1"),
        })

        [record] = emitted()
        assert record["entry_id"] == str(entry_id)
        assert record["case_type"] == "adjustment"
        assert record["at"] == "2026-03-02T12:00:00+00:00"
        assert record["statuses"] == ["pending_owner"]
        assert record["totals"] == {"matched": 3, "batch": "RECON-1"}

    def test_level_threshold(self, emitted):
        log.debug("hidden")
        log.info("shown")
        log.warning("also_shown")
        assert [r["message"] for r in emitted()] == ["shown", "also_shown"]


class TestLogContext:

    def test_set_only_updates_given_fields(self):
        LogContext.set(request_id="x", actor_id="y")
        LogContext.set(actor_id=None, case_id="c")
        assert LogContext.get_all() == {"request_id": "x", "actor_id": "y", "case_id": "c"}

    def test_set_rejects_unknown_field(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="acme")

    def test_values_are_stringified(self):
        actor = uuid4()
        LogContext.set(actor_id=actor)
        assert LogContext.get_all()["actor_id"] == str(actor)

    def test_clear(self):
        LogContext.set(request_id="x", batch_id="b")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(case_id="outer")
        with LogContext.bind(case_id="inner"):
            assert LogContext.get_all()["case_id"] == "inner"
        assert LogContext.get_all()["case_id"] == "outer"

    def test_bind_restores_absence(self):
        with LogContext.bind(batch_id="RECON-1"):
            assert LogContext.get_all() == {"batch_id": "RECON-1"}
        assert LogContext.get_all() == {}

    def test_nested_binds(self):
        with LogContext.bind(request_id="r1"):
            with LogContext.bind(request_id="r2", appointment_id="p"):
                assert LogContext.get_all() == {"request_id": "r2", "appointment_id": "p"}
            assert LogContext.get_all() == {"request_id": "r1"}

    def test_bind_ignores_unknown_and_none(self):
        with LogContext.bind(not_a_field="x", request_id="r", case_id=None):
            assert LogContext.get_all() == {"request_id": "r"}


class TestConfigureLogging:

    def test_first_call_wins(self):
        first, second = logging.NullHandler(), logging.NullHandler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        assert logging.getLogger("conflict_kernel").handlers == [first]

    def test_does_not_propagate(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("conflict_kernel").propagate is False

    def test_reset_removes_handlers(self):
        configure_logging(handler=logging.NullHandler())
        reset_logging()
        root = logging.getLogger("conflict_kernel")
        assert root.handlers == []
        assert root.level == logging.WARNING

    def test_child_loggers(self, emitted):
        assert get_logger("services.ledger").name == "conflict_kernel.services.ledger"
        get_logger("deep.nested.module").warning("hierarchy")
        assert emitted()[0]["logger"] == "conflict_kernel.deep.nested.module"
