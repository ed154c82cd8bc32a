"""
Tests for structured logging configuration.
"""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from stagelog.logging import _elasticsearch_compatible, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestElasticsearchCompatible:
    def test_renames_fields(self):
        out = _elasticsearch_compatible(None, "info", {"timestamp": "t", "level": "info", "event": "x"})
        assert out == {"@timestamp": "t", "log.level": "info", "event": "x"}


class TestConfigureLogging:
    def test_json_output(self, caplog):
        configure_logging(level="INFO", json_format=True, service="orders-api")
        with caplog.at_level(logging.INFO):
            get_logger("test.json").info("GET /orders", status=200)

        record = json.loads(caplog.records[-1].getMessage())
        assert record["event"] == "GET /orders"
        assert record["status"] == 200
        assert record["service.name"] == "orders-api"
        assert record["log.level"] == "info"
        assert "@timestamp" in record

    def test_level_filters(self, caplog):
        configure_logging(level="WARNING", json_format=True)
        with caplog.at_level(logging.DEBUG):
            get_logger("test.level").info("dropped")
            get_logger("test.level").warning("kept")

        messages = [r.getMessage() for r in caplog.records]
        assert not any("dropped" in m for m in messages)
        assert any("kept" in m for m in messages)

    def test_console_output(self, caplog):
        configure_logging(level="INFO", json_format=False)
        with caplog.at_level(logging.INFO):
            get_logger("test.console").info("hello", answer=42)
        assert "hello" in caplog.records[-1].getMessage()
