"""Centralized structured logging library.

This package provides structured JSON logging with redaction of loaded secret
values.

Usage:
    # At process startup
    from libs.common.logging import SecretRedactionFilter, configure_logging
    redaction = SecretRedactionFilter()
    configure_logging(service_name="payroll_api", log_level="INFO", redaction_filter=redaction)

    # In modules
    logger = logging.getLogger(__name__)
    logger.info("Secret loaded", extra={"secret_name": "JWT_SECRET"})
"""

from libs.common.logging.config import configure_logging, get_logger
from libs.common.logging.formatter import JSONFormatter
from libs.common.logging.redaction import REDACTED, SecretRedactionFilter

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    # Redaction
    "SecretRedactionFilter",
    "REDACTED",
    # Formatter (for advanced usage)
    "JSONFormatter",
]
