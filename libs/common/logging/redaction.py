"""Redaction of loaded secret values from log output.

Secret names are safe to log; values are not. Callers are expected never to
log values, and this filter is the backstop: once a value is registered, any
occurrence of it in a rendered message, a string context field, or the
attached exception text is replaced before the record reaches a handler.

Example:
    >>> redaction = SecretRedactionFilter()
    >>> redaction.register("s3cr3t-value")
    >>> handler.addFilter(redaction)
    >>> logger.info("connecting with s3cr3t-value")  # emits "connecting with ***REDACTED***"
"""

import logging
import threading
import traceback
from collections.abc import Iterable

from libs.common.logging.formatter import RESERVED_FIELDS

REDACTED = "***REDACTED***"
MIN_REDACTED_LENGTH = 4


class SecretRedactionFilter(logging.Filter):
    """Logging filter that masks registered secret values.

    Values shorter than MIN_REDACTED_LENGTH characters are ignored, since
    matching them would mangle ordinary text.
    """

    def __init__(self, values: Iterable[str] = ()) -> None:
        super().__init__()
        self._values: set[str] = set()
        self._lock = threading.Lock()
        self.register_all(values)

    def __len__(self) -> int:
        return len(self._values)

    def register(self, value: str | None) -> None:
        if not value or len(value) < MIN_REDACTED_LENGTH:
            return
        with self._lock:
            self._values.add(value)

    def register_all(self, values: Iterable[str | None]) -> None:
        for value in values:
            self.register(value)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def redact(self, text: str) -> str:
        """Replace every registered value in text (longest first, so overlaps mask fully)."""
        with self._lock:
            values = sorted(self._values, key=len, reverse=True)
        for value in values:
            if value in text:
                text = text.replace(value, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place.

        Returns:
            True (always allows the record through)
        """
        if not self._values:
            return True

        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        for key, value in list(record.__dict__.items()):
            if key == "context" and isinstance(value, dict):
                record.context = {
                    k: self.redact(v) if isinstance(v, str) else v for k, v in value.items()
                }
            elif key not in RESERVED_FIELDS and isinstance(value, str):
                record.__dict__[key] = self.redact(value)

        if record.exc_info and record.exc_info[1] is not None:
            # Pre-render so formatters use the masked text instead of the live exception
            record.exc_text = self.redact("".join(traceback.format_exception(*record.exc_info)))
            record.exc_message = self.redact(str(record.exc_info[1]))
        if record.stack_info:
            record.stack_info = self.redact(record.stack_info)
        return True
