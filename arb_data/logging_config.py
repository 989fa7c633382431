"""
Structured logging configuration for the arbitrage bot.

Provides consistent logging across all modules with:
- JSON-lines output for the decision/audit file
- Human-readable console output with colors
- Context injection (market_id, token, order_id, reason)
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import contextmanager

# Record attributes copied into structured output when present
CONTEXT_KEYS = (
    "market_id",
    "token",
    "order_id",
    "reason",
    "error_type",
    "edge_bps",
    "size_usd",
)

# Top-level packages whose loggers share handlers
PACKAGE_LOGGERS = ("intra_arb", "arb_data")

# Cache of configured loggers
_loggers: Dict[str, logging.Logger] = {}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured log output."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        for key in CONTEXT_KEYS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter with colors."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "") if self.use_color else ""
        reset = self.RESET if self.use_color else ""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        context_parts = []
        if hasattr(record, "market_id"):
            context_parts.append(f"market:{str(record.market_id)[:16]}")
        if hasattr(record, "token"):
            context_parts.append(f"token:{str(record.token)[:12]}...")
        if hasattr(record, "reason"):
            context_parts.append(f"reason:{record.reason}")

        context = f" [{', '.join(context_parts)}]" if context_parts else ""

        base_msg = (
            f"{color}{timestamp} [{record.levelname}] {record.name}:{context} "
            f"{record.getMessage()}{reset}"
        )

        if record.exc_info:
            base_msg += f"\n{self.formatException(record.exc_info)}"

        return base_msg


def configure_logging(level: str = "INFO", use_color: bool = True) -> logging.Logger:
    """
    Configure the package root loggers once at process start.

    Both import packages share one console handler so module loggers created
    with logging.getLogger(__name__) inherit it.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ConsoleFormatter(use_color=use_color))

    root = logging.getLogger(PACKAGE_LOGGERS[0])
    for name in PACKAGE_LOGGERS:
        pkg_logger = logging.getLogger(name)
        pkg_logger.handlers = [handler]
        pkg_logger.setLevel(getattr(logging, level.upper()))
        pkg_logger.propagate = False

    # Loggers handed out by get_logger() before this call now report through
    # their package logger
    for name, module_logger in _loggers.items():
        if name.split(".")[0] in PACKAGE_LOGGERS:
            module_logger.handlers = []
            module_logger.setLevel(logging.NOTSET)
            module_logger.propagate = True
    return root


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Get a configured logger for a module.

    Args:
        name: Logger name (typically __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Prevent duplicate handlers
    if not logger.handlers:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ConsoleFormatter())
        console.setLevel(logging.DEBUG)
        logger.addHandler(console)

    logger.propagate = False

    _loggers[name] = logger
    return logger


def _json_file_handler(filepath: str, level: str) -> logging.FileHandler:
    file_handler = logging.FileHandler(filepath)
    file_handler.setFormatter(StructuredFormatter())
    file_handler.setLevel(getattr(logging, level.upper()))
    return file_handler


def add_file_handler(logger: logging.Logger, filepath: str, level: str = "DEBUG") -> None:
    """
    Add a JSON file handler to a logger.

    Args:
        logger: Logger to add handler to
        filepath: Path to log file
        level: Minimum log level for file output
    """
    logger.addHandler(_json_file_handler(filepath, level))


def add_package_file_handler(filepath: str, level: str = "DEBUG") -> None:
    """Write JSON logs from every package logger to one file."""
    file_handler = _json_file_handler(filepath, level)
    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).addHandler(file_handler)


@contextmanager
def log_context(**context):
    """
    Context manager for adding structured context to logs.

    Usage:
        with log_context(market_id="0xabc", token="123"):
            logger.info("Submitting order")  # Will include market_id and token
    """
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        for key, value in context.items():
            setattr(record, key, value)
        return record

    logging.setLogRecordFactory(record_factory)
    try:
        yield
    finally:
        logging.setLogRecordFactory(old_factory)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that automatically adds context to all log calls.

    Usage:
        ctx_logger = LoggerAdapter(logging.getLogger(__name__), market_id="0xabc")
        ctx_logger.info("Trade executed")  # Includes market_id in output
    """

    def __init__(self, logger: logging.Logger, **context):
        super().__init__(logger, context)

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
