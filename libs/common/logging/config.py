"""Centralized logging configuration.

This module provides standardized logging setup using structured JSON output,
with optional redaction of loaded secret values. Processes should call
configure_logging() once at startup, before secrets are loaded.

Example:
    >>> from libs.common.logging.config import configure_logging
    >>> logger = configure_logging(service_name="payroll_api", log_level="INFO")
    >>> logger.info("Service started", extra={"context": {"port": 8000}})
"""

import logging
import sys

from libs.common.logging.formatter import JSONFormatter
from libs.common.logging.redaction import SecretRedactionFilter


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    redaction_filter: SecretRedactionFilter | None = None,
    include_context: bool = True,
) -> logging.Logger:
    """Configure structured JSON logging for a service.

    Sets up the root logger with:
    - JSON formatted output to stdout
    - Secret value redaction (when a filter is supplied)
    - Specified log level

    Existing root handlers are removed to avoid duplicate output.

    Args:
        service_name: Name of the service (e.g., "payroll_api")
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        redaction_filter: Filter masking registered secret values
        include_context: Whether to include context dict in output

    Returns:
        Configured root logger instance

    Raises:
        ValueError: If log_level is invalid
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter(service_name=service_name, include_context=include_context))
    if redaction_filter is not None:
        handler.addFilter(redaction_filter)

    root_logger.addHandler(handler)
    return root_logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance (root logger when name is None)."""
    return logging.getLogger(name)
