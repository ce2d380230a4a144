"""Result cache for fetched documents.

Clients consult a :class:`ResultCache` before walking a page tree.  Any
object with ``get``/``set`` satisfies the protocol; :class:`MemoryCache` is
the in-process default.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Protocol, runtime_checkable

from notionmap.observability import get_logger

log = get_logger("notionmap.cache")


@runtime_checkable
class ResultCache(Protocol):
    """Protocol for document caches."""

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` on a miss."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*."""
        ...


class MemoryCache:
    """Thread-safe in-memory cache with a fixed time-to-live.

    Expired entries are dropped when read and swept on every write.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of every entry.  ``0`` disables caching.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(self, ttl_seconds: float = 600.0, clock: Any = time.monotonic) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        log.debug("Cache hit", extra={"extra_fields": {"op": "cache_get", "key": key}})
        return value

    def set(self, key: str, value: Any) -> None:
        if self._ttl == 0:
            return
        with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for stale_key in expired:
                del self._entries[stale_key]
            self._entries[key] = (now + self._ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
