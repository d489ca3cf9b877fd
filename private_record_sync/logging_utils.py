"""
Structured JSON logging utilities for cloud environments.

Record sync operations and failure classifications log through the
standard logging module; this module provides a JSON formatter for
log pipelines that expect one JSON object per line, plus a logger
adapter that stamps every entry with the record it concerns.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord has; anything else came from ``extra``
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as single-line JSON objects with consistent fields:
    - timestamp: ISO 8601 format in UTC
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - Additional context fields from extra dict (record_name, error_kind, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_obj[key] = value
                except (TypeError, ValueError):
                    log_obj[key] = str(value)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "private_record_sync",
) -> logging.Logger:
    """
    Configure structured JSON logging on stdout.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger;
            pass None for the root logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_sync_logger(name: str) -> logging.Logger:
    """
    Get a logger for sync components with consistent naming.

    Args:
        name: Component name (e.g., 'controller', 'cosmos')

    Returns:
        Logger instance with name 'private_record_sync.{name}'
    """
    return logging.getLogger(f"private_record_sync.{name}")


class RecordLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds record context to all log messages.

    Unlike the stock LoggerAdapter, per-call ``extra`` values are merged
    with the adapter's context instead of replacing it.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add extra context to log record."""
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra or {})
        kwargs["extra"] = extra
        return msg, kwargs
