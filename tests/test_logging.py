"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from tally.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    setup_logging,
)


def _record(msg="Test message", level=logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_context_fields_are_top_level(self):
        record = _record("Request handled")
        record.request_id = "req-1"
        record.user_id = "user-1"
        record.duration_ms = 12.5

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["user_id"] == "user-1"
        assert data["duration_ms"] == 12.5
        assert "request_id" not in data.get("extra", {})

    def test_other_fields_go_to_extra(self):
        record = _record("Order paid")
        record.order_id = "o-1"
        record.count = 3

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"] == {"order_id": "o-1", "count": 3}

    def test_json_format_with_exception(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            record = _record("Error occurred", logging.ERROR, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        exception_text = "".join(data["exception"])
        assert "ValueError" in exception_text
        assert "Test error" in exception_text


class TestContextFilter:
    def test_adds_default_fields(self):
        record = _record()

        assert ContextFilter().filter(record) is True
        for field in ("request_id", "user_id", "path", "method", "status_code", "duration_ms"):
            assert getattr(record, field) is None

    def test_preserves_existing_values(self):
        record = _record()
        record.request_id = "existing"

        ContextFilter().filter(record)

        assert record.request_id == "existing"


class TestGetLoggingConfig:
    def test_default_text_format(self):
        with patch("tally.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "text"
            mock_settings.log_level = "INFO"

            config = get_logging_config()

        assert "json" not in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "standard"

    def test_structured_format(self):
        with patch("tally.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "structured"
            mock_settings.log_level = "debug"

            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert config["handlers"]["console"]["level"] == "DEBUG"

    def test_json_format(self):
        with patch("tally.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "WARNING"

            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert "context" in config["handlers"]["console"]["filters"]


class TestGetLogContext:
    def test_filters_none(self):
        context = get_log_context(request_id="req-1", user_id=None, order_id="o-1")
        assert context == {"request_id": "req-1", "order_id": "o-1"}

    def test_default_logger_name(self):
        assert get_logger().name == "tally"


def test_json_logging_output(capsys):
    with patch("tally.app.core.logging.settings") as mock_settings:
        mock_settings.log_format = "json"
        mock_settings.log_level = "INFO"

        setup_logging()

    get_logger("tally.test").warning(
        "Rate limit exceeded",
        extra=get_log_context(rate_limit_key="ip:abc", path="/inventory/orders"),
    )

    data = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert data["level"] == "WARNING"
    assert data["logger"] == "tally.test"
    assert data["path"] == "/inventory/orders"
    assert data["extra"]["rate_limit_key"] == "ip:abc"
