"""
Thread-safe in-memory cache for secret values with TTL expiration.

Used at two levels: one instance owned by the SecretsManager façade, and one
owned by each provider that talks to a remote store. Never a module-level
singleton, so tests get isolated instances.

Architecture:
    - Thread-safe with threading.Lock for concurrent access
    - In-memory only (NO disk persistence)
    - Lazy eviction: expired entries are dropped on read, no background thread
    - Last-writer-wins: set() always overwrites

Example Usage:
    >>> from datetime import timedelta
    >>> cache = SecretCache(ttl=timedelta(minutes=5))
    >>> cache.set("JWT_SECRET", "value")
    >>> cache.get("JWT_SECRET")
    'value'
    >>> cache.invalidate("JWT_SECRET")
    >>> cache.get("JWT_SECRET") is None
    True
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CachedEntry:
    """
    One cached secret value.

    Attributes:
        value: Opaque secret payload
        expires_at: Absolute expiry; the entry is never served once now > expires_at
        cached_at: When the entry was stored (diagnostics only)
    """

    value: str
    expires_at: datetime
    cached_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class SecretCache:
    """
    Thread-safe in-memory TTL cache mapping secret names to values.

    get() returns None both when a name was never cached and when its entry
    expired; callers cannot tell the two apart because both need a fresh fetch.

    Attributes:
        _entries: Internal storage dict mapping names to CachedEntry
        _ttl: Default time-to-live for set() calls without an explicit ttl
        _clock: Callable returning the current UTC time (injectable for tests)
        _lock: Threading lock for concurrent access protection

    Examples:
        >>> cache = SecretCache(ttl=timedelta(seconds=30))
        >>> cache.set("DATABASE_PASSWORD", "s3cr3t", ttl=timedelta(seconds=5))
        >>> len(cache)
        1
        >>> cache.clear()
        >>> len(cache)
        0
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize SecretCache.

        Args:
            ttl: Default time-to-live for cached entries. A zero TTL disables
                caching (entries expire immediately).
            clock: Current-time source, returns an aware UTC datetime.
        """
        if ttl < timedelta(0):
            raise ValueError("Cache TTL must not be negative")
        self._entries: dict[str, CachedEntry] = {}
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, name: str) -> str | None:
        """
        Retrieve cached secret value if present and not expired.

        Expired entries are removed from the cache on read.

        Returns:
            str: Cached value if found and fresh
            None: If never cached or expired
        """
        entry = self.get_entry(name)
        return entry.value if entry is not None else None

    def get_entry(self, name: str) -> CachedEntry | None:
        """Like get(), but returns the full CachedEntry (for diagnostics)."""
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._entries[name]
                return None

            return entry

    def set(self, name: str, value: str, ttl: timedelta | None = None) -> None:
        """
        Store a value, overwriting any existing entry for that name.

        Args:
            name: Secret name
            value: Secret value to cache
            ttl: Optional per-entry TTL; defaults to the cache's TTL.
                A zero TTL stores nothing.
        """
        effective_ttl = self._ttl if ttl is None else ttl
        with self._lock:
            if effective_ttl <= timedelta(0):
                self._entries.pop(name, None)
                return
            now = self._clock()
            self._entries[name] = CachedEntry(
                value=value,
                expires_at=now + effective_ttl,
                cached_at=now,
            )

    def invalidate(self, name: str) -> None:
        """Remove one entry (no-op when absent)."""
        with self._lock:
            self._entries.pop(name, None)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        """
        Return number of stored entries (for monitoring/debugging).

        Includes expired entries that haven't been read yet.
        """
        with self._lock:
            return len(self._entries)
