"""JSON log formatter for structured logging.

This module provides a custom logging formatter that outputs logs in JSON format
with a standardized schema for centralized log aggregation and analysis.

Example log output:
    {
        "timestamp": "2025-10-21T10:30:00.000Z",
        "level": "INFO",
        "service": "payroll_api",
        "logger": "libs.secrets.manager",
        "message": "Secrets loaded",
        "context": {
            "environment": "production",
            "provider": "vault"
        }
    }
"""

import json
import logging
import traceback
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

# Attributes every LogRecord carries; anything else arrived via ``extra``
RESERVED_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "context",
        "exc_info",
        "exc_text",
        "exc_message",
        "stack_info",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """Custom formatter that outputs logs as JSON.

    Formats log records into structured JSON with a consistent schema.
    Includes timestamp, level, service name, logger name, message, and
    optional context data.

    Attributes:
        service_name: Name of the service emitting logs
        include_context: Whether to include extra context fields

    Example:
        >>> formatter = JSONFormatter(service_name="payroll_api")
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(formatter)
        >>> logger = logging.getLogger(__name__)
        >>> logger.addHandler(handler)
        >>> logger.info("Secrets loaded", extra={"provider": "vault"})
    """

    def __init__(
        self, service_name: str, include_context: bool = True, *args: Any, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Context comes from an explicit ``extra={"context": {...}}`` dict when
        present, otherwise from every non-standard attribute on the record.

        Args:
            record: The log record to format

        Returns:
            JSON string representation of the log record
        """
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            context = extract_context(record)
            if context:
                log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": self._exception_message(record),
                "traceback": record.exc_text or self._format_exception(record.exc_info),
            }

        log_entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_entry, default=str)

    def _format_timestamp(self, created: float) -> str:
        """Format timestamp as ISO 8601 in UTC.

        Example:
            >>> formatter = JSONFormatter(service_name="test")
            >>> formatter._format_timestamp(1697884200.0)
            '2023-10-21T10:30:00.000Z'
        """
        dt = datetime.fromtimestamp(created, tz=UTC)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def _format_exception(
        self,
        exc_info: tuple[type[BaseException] | None, BaseException | None, TracebackType | None],
    ) -> str:
        return "".join(traceback.format_exception(*exc_info))

    def _exception_message(self, record: logging.LogRecord) -> str | None:
        # Set by SecretRedactionFilter when the exception text was redacted
        exc_message = getattr(record, "exc_message", None)
        if exc_message is not None:
            return exc_message
        return str(record.exc_info[1]) if record.exc_info and record.exc_info[1] else None


def extract_context(record: logging.LogRecord) -> dict[str, Any] | None:
    """Extract context dict from log record.

    Args:
        record: The log record

    Returns:
        Context dictionary if present, None otherwise

    Example:
        >>> record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        >>> record.secret_name = "JWT_SECRET"
        >>> extract_context(record)
        {'secret_name': 'JWT_SECRET'}
    """
    context = getattr(record, "context", None)
    if context and isinstance(context, dict):
        return dict(context)

    extra = {key: value for key, value in record.__dict__.items() if key not in RESERVED_FIELDS}
    return extra if extra else None
