"""Keyed TTL cache injected into the integrator and the discovery engine."""

import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheStats:
    """Cache usage counters."""

    hits: int
    misses: int
    entries: int

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups that were hits (0 if no lookups)."""
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache:
    """In-memory cache whose entries expire after a fixed TTL.

    Expired entries are evicted lazily on lookup. All operations take an
    internal lock, so one instance may be shared by several threads.

    Args:
        ttl_seconds: Entry lifetime in seconds
        clock: Monotonic clock (injectable for tests)

    Example:
        >>> cache = TTLCache(ttl_seconds=300)
        >>> cache.put(("db", "a1b2"), "result")
        >>> cache.get(("db", "a1b2"))
        'result'
    """

    def __init__(
        self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Any | None:
        """Get cached value.

        Args:
            key: Cache key

        Returns:
            Cached value or None if missing or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        """Store value under key, replacing any previous entry."""
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> bool:
        """Remove one entry.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Clear cache."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        """Get hit/miss counters and live entry count."""
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, entries=len(self._entries))

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() < entry[0]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
