"""Tests for logging configuration."""

import json
import logging
from unittest.mock import Mock

import pytest

from storefront.logging_config import (
    StructuredJsonFormatter,
    configure_logging,
    get_correlation_id,
    is_serverless,
    log_execution_time,
    set_correlation_id,
    set_session_id,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord("storefront.cart", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:

    def test_generated_when_missing(self):
        cid = set_correlation_id()
        assert cid
        assert get_correlation_id() == cid

    def test_explicit(self):
        assert set_correlation_id("abc") == "abc"
        assert get_correlation_id() == "abc"


class TestStructuredJsonFormatter:
    """Tests for StructuredJsonFormatter."""

    def test_format_includes_context(self):
        set_correlation_id("cid-1")
        set_session_id("sess-1")

        data = json.loads(StructuredJsonFormatter("storefront-test").format(make_record()))

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["service"] == "storefront-test"
        assert data["correlation_id"] == "cid-1"
        assert data["session_id"] == "sess-1"

    def test_passthrough_fields(self):
        record = make_record(product_id="42", metrics={"count": 3}, error={"message": "x"}, ignored="y")

        data = json.loads(StructuredJsonFormatter().format(record))

        assert data["product_id"] == "42"
        assert data["metrics"] == {"count": 3}
        assert data["error"] == {"message": "x"}
        assert "ignored" not in data


class TestConfigureLogging:

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    @pytest.mark.parametrize("marker", ["AWS_LAMBDA_FUNCTION_NAME", "NETLIFY"])
    def test_json_in_serverless(self, monkeypatch, marker):
        monkeypatch.setenv(marker, "1")

        root = configure_logging("DEBUG", "fn")

        assert is_serverless() is True
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredJsonFormatter)

    def test_plain_text_locally(self, monkeypatch):
        monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)
        monkeypatch.delenv("NETLIFY", raising=False)

        root = configure_logging("warning")

        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, StructuredJsonFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING


class TestLogExecutionTime:

    def test_returns_result(self):
        logger = Mock()

        @log_execution_time(logger)
        def work():
            return 5

        assert work() == 5
        logger.log.assert_called_once()
        assert logger.log.call_args.args[0] == logging.DEBUG

    def test_logs_and_reraises(self):
        logger = Mock()

        @log_execution_time(logger)
        def broken():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            broken()
        logger.error.assert_called_once()
