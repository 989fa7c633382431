"""
Unit tests for arb_data/exceptions.py and arb_data/logging_config.py

Tests:
- Exception hierarchy, context and alert flags
- StructuredFormatter / ConsoleFormatter output
- log_context() and LoggerAdapter context injection
- configure_logging() and add_file_handler()
"""

import json
import logging

import pytest

from arb_data import retry as retry_module
from arb_data.exceptions import (
    APIError,
    ArbBotError,
    ExchangeHTTPError,
    MarketDataError,
    OrderbookNotFoundError,
    OrderSubmissionError,
    RateLimitError,
    TradingError,
)
from arb_data.logging_config import (
    ConsoleFormatter,
    LoggerAdapter,
    StructuredFormatter,
    add_file_handler,
    add_package_file_handler,
    configure_logging,
    log_context,
)


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        assert issubclass(OrderSubmissionError, TradingError)
        assert issubclass(ExchangeHTTPError, APIError)
        assert issubclass(RateLimitError, APIError)
        assert issubclass(OrderbookNotFoundError, MarketDataError)
        assert issubclass(MarketDataError, ArbBotError)

    def test_context_in_str(self):
        error = ArbBotError("failed", context={"market_id": "0xm1"})
        assert str(error) == "failed (market_id=0xm1)"
        assert str(ArbBotError("plain")) == "plain"

    def test_order_submission_error_reason(self):
        error = OrderSubmissionError("leg failed", reason="FOK_ORDER_KILLED", market_id="0xm1")
        assert error.reason == "FOK_ORDER_KILLED"
        assert error.context["market_id"] == "0xm1"
        assert error.should_alert is True

    def test_exchange_http_error_fields(self):
        error = ExchangeHTTPError(
            "forbidden", status_code=403, body=None, headers={"cf-ray": "x"}, endpoint="/order"
        )
        assert error.status_code == 403
        assert error.body == ""
        assert error.headers == {"cf-ray": "x"}
        assert error.context == {"status_code": 403, "endpoint": "/order"}

    def test_rate_limit_not_alerting(self):
        assert RateLimitError("slow", retry_after=5).should_alert is False

    def test_orderbook_not_found(self):
        error = OrderbookNotFoundError("missing", token_id="t1", market_id="0xm1")
        assert error.token_id == "t1"
        assert error.error_type == "orderbook_not_found"


def make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("intra_arb.test", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Tests for log formatters."""

    def test_structured_formatter_json(self):
        line = StructuredFormatter().format(make_record(market_id="0xm1", edge_bps=500.0))
        data = json.loads(line)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["market_id"] == "0xm1"
        assert data["edge_bps"] == 500.0

    def test_console_formatter_context(self):
        line = ConsoleFormatter(use_color=False).format(make_record(market_id="0xm1"))
        assert "hello" in line
        assert "[market:0xm1]" in line


@pytest.fixture
def restore_package_loggers():
    """Undo configure_logging() side effects."""
    saved = {}
    for name in ("intra_arb", "arb_data", retry_module.logger.name):
        pkg_logger = logging.getLogger(name)
        saved[name] = (list(pkg_logger.handlers), pkg_logger.level, pkg_logger.propagate)
    yield
    for name, (handlers, level, propagate) in saved.items():
        pkg_logger = logging.getLogger(name)
        for handler in pkg_logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler not in handlers:
                handler.close()
        pkg_logger.handlers = handlers
        pkg_logger.setLevel(level)
        pkg_logger.propagate = propagate


class TestContextHelpers:
    """Tests for log_context and LoggerAdapter."""

    def test_log_context_sets_record_attributes(self):
        with log_context(market_id="0xm1"):
            record = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "m", None, None)
        assert record.market_id == "0xm1"

        after = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "m", None, None)
        assert not hasattr(after, "market_id")

    def test_logger_adapter_merges_extra(self):
        adapter = LoggerAdapter(logging.getLogger("intra_arb.test"), market_id="0xm1")
        msg, kwargs = adapter.process("hi", {"extra": {"token": "t1"}})
        assert msg == "hi"
        assert kwargs["extra"] == {"token": "t1", "market_id": "0xm1"}


class TestConfigureLogging:
    """Tests for configure_logging and add_file_handler."""

    def test_configures_both_packages(self, restore_package_loggers):
        root = configure_logging("DEBUG", use_color=False)

        assert root.name == "intra_arb"
        assert root.level == logging.DEBUG
        assert logging.getLogger("arb_data").handlers == root.handlers
        assert root.propagate is False

    def test_module_loggers_report_through_package(self, restore_package_loggers):
        configure_logging("INFO", use_color=False)

        assert retry_module.logger.handlers == []
        assert retry_module.logger.propagate is True

    def test_file_handler_writes_json(self, tmp_path, restore_package_loggers):
        root = configure_logging("INFO", use_color=False)
        log_file = tmp_path / "arb.log"
        add_file_handler(root, str(log_file))

        logging.getLogger("intra_arb.engine").info("scan done")
        for handler in root.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["message"] == "scan done"
        assert data["logger"] == "intra_arb.engine"

    def test_package_file_handler_collects_both_packages(self, tmp_path, restore_package_loggers):
        """Retry warnings from arb_data land in the same file as bot logs."""
        configure_logging("INFO", use_color=False)
        log_file = tmp_path / "arb.log"
        add_package_file_handler(str(log_file))

        logging.getLogger("intra_arb.engine").info("scan done")
        retry_module.logger.warning("retrying fetch")
        for name in ("intra_arb", "arb_data"):
            for handler in logging.getLogger(name).handlers:
                handler.flush()

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [(d["logger"], d["message"]) for d in lines] == [
            ("intra_arb.engine", "scan done"),
            ("arb_data.retry", "retrying fetch"),
        ]
