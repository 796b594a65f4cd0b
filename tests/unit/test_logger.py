"""Unit tests for structured logging."""

import json
import logging
from decimal import Decimal

from restock.monitoring.logger import StructuredLogger


def events(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records]


def test_log_emits_one_json_object(caplog):
    logger = StructuredLogger("restock.test.logger")
    caplog.set_level(logging.INFO, logger="restock.test.logger")

    logger.log("orchestrator_start", retailers=["best-buy", "target"])

    assert events(caplog) == [{"event": "orchestrator_start", "retailers": ["best-buy", "target"]}]


def test_non_serializable_values_are_stringified(caplog):
    logger = StructuredLogger("restock.test.logger")
    caplog.set_level(logging.INFO, logger="restock.test.logger")

    logger.log("custom", price=Decimal("26.94"))

    assert events(caplog)[0]["price"] == "26.94"


def test_adapter_error_is_a_warning(caplog):
    logger = StructuredLogger("restock.test.logger")
    caplog.set_level(logging.DEBUG, logger="restock.test.logger")

    logger.adapter_error("walmart", operation="search_products", error_kind="network", error="timeout")

    record = caplog.records[0]
    assert record.levelno == logging.WARNING
    assert json.loads(record.getMessage()) == {
        "event": "adapter_error",
        "retailer": "walmart",
        "operation": "search_products",
        "error_kind": "network",
        "error": "timeout",
        "status": None,
    }


def test_circuit_breaker_event(caplog):
    logger = StructuredLogger("restock.test.logger")
    caplog.set_level(logging.INFO, logger="restock.test.logger")

    logger.circuit_breaker_state("target", "open")

    assert events(caplog) == [{"event": "circuit_breaker", "retailer": "target", "cb_state": "open"}]


def test_debug_events_respect_level(caplog):
    logger = StructuredLogger("restock.test.quiet", level="INFO")
    caplog.set_level(logging.INFO, logger="restock.test.quiet")

    logger.circuit_skip("target", "check_availability", "circuit_open")

    assert caplog.records == []


def test_circuit_skip_carries_error_kind(caplog):
    logger = StructuredLogger("restock.test.logger", level="DEBUG")
    caplog.set_level(logging.DEBUG, logger="restock.test.logger")

    logger.circuit_skip("target", "search_products", "circuit_open")

    assert events(caplog) == [{
        "event": "circuit_skip",
        "retailer": "target",
        "operation": "search_products",
        "error_kind": "circuit_open",
    }]
