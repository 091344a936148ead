"""
In-memory TTL cache for API responses.

Entries expire for fresh reads after ``ttl_seconds`` but remain readable
through :meth:`TTLCache.get_stale`, so callers can serve degraded data when
the upstream source is unavailable.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from functools import wraps
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from marketdash.logging_config import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value plus its bookkeeping."""

    key: str
    value: V
    stored_at: float
    last_accessed: float
    access_count: int = 0


@dataclass
class CacheStats:
    """Cumulative cache statistics (diagnostic only)."""

    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    size: int = 0
    oldest_entry: Optional[float] = None
    newest_entry: Optional[float] = None
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class TTLCache(Generic[V]):
    """
    Key/value store with per-instance TTL, stale reads and hit/miss stats.

    Not thread-safe - use ThreadSafeTTLCache when callers share the cache
    across threads.

    Example:
        cache = TTLCache(ttl_seconds=900)

        cache.set("yield_curve_1m", data)
        fresh = cache.get("yield_curve_1m")        # None once expired
        fallback = cache.get_stale("yield_curve_1m")  # ignores expiry
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Time to live for fresh reads
            max_entries: Optional capacity; the oldest stored entry is evicted
                when a new key would exceed it. None means unbounded.
            clock: Returns the current time in seconds
            name: Label used in log messages
        """
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self._stats = CacheStats()

    def _is_entry_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.stored_at > self.ttl

    def _touch(self, entry: CacheEntry[V], now: float) -> None:
        entry.last_accessed = now
        entry.access_count += 1

    def get(self, key: str) -> Optional[V]:
        """
        Return the value if present and not expired, else None.

        Counts a hit or a miss. Access metadata is only updated on a hit.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            logger.debug("[%s] miss: %s", self.name, key)
            return None

        now = self._clock()
        if self._is_entry_expired(entry, now):
            self._stats.misses += 1
            logger.debug("[%s] expired: %s", self.name, key)
            return None

        self._touch(entry, now)
        self._stats.hits += 1
        return entry.value

    def get_stale(self, key: str) -> Optional[V]:
        """
        Return the value if present, regardless of expiration.

        Serving an expired entry counts as a stale hit so observers can tell
        fresh from degraded reads.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        self._touch(entry, now)
        if self._is_entry_expired(entry, now):
            self._stats.stale_hits += 1
            logger.debug("[%s] serving stale: %s", self.name, key)
        return entry.value

    def has(self, key: str) -> bool:
        """True if an entry exists for key, expired or not."""
        return key in self._entries

    def is_expired(self, key: str) -> bool:
        """True if the entry is missing or past its TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return True
        return self._is_entry_expired(entry, self._clock())

    def set(self, key: str, value: V) -> None:
        """Insert or overwrite key, restarting its expiration clock."""
        now = self._clock()
        is_new_key = key not in self._entries

        if is_new_key and self.max_entries is not None and len(self._entries) >= self.max_entries:
            self._evict_oldest()

        self._entries[key] = CacheEntry(key=key, value=value, stored_at=now, last_accessed=now)

        if is_new_key:
            self._stats.size += 1
        if self._stats.oldest_entry is None or self._stats.oldest_entry > now:
            self._stats.oldest_entry = now
        self._stats.newest_entry = now

    def _evict_oldest(self) -> None:
        oldest = min(self._entries.values(), key=lambda entry: entry.stored_at)
        del self._entries[oldest.key]
        self._stats.size -= 1
        self._stats.evictions += 1
        logger.debug("[%s] evicted: %s", self.name, oldest.key)

    def force_refresh(self, key: str) -> None:
        """Drop key so the next read goes to the source."""
        if self._entries.pop(key, None) is not None:
            self._stats.size -= 1
            logger.debug("[%s] forced refresh: %s", self.name, key)

    def get_time_to_expiration(self, key: str) -> Optional[float]:
        """
        Seconds until key expires (negative once expired), or None if absent.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self.ttl - (self._clock() - entry.stored_at)

    def get_entry(self, key: str) -> Optional[CacheEntry[V]]:
        """Copy of the entry with its metadata. Does not count as an access."""
        entry = self._entries.get(key)
        return replace(entry) if entry is not None else None

    def keys(self) -> List[str]:
        return list(self._entries)

    def cleanup(self) -> int:
        """
        Remove expired entries.

        Never called implicitly: expired entries are kept for stale reads
        until a caller decides they are no longer useful.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_entry_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        self._stats.size -= len(expired)
        if expired:
            logger.debug("[%s] cleaned up %d expired entries", self.name, len(expired))
        return len(expired)

    def clear(self) -> None:
        """Empty the cache. Cumulative hit/miss counters are preserved."""
        self._entries.clear()
        self._stats.size = 0
        self._stats.oldest_entry = None
        self._stats.newest_entry = None
        logger.debug("[%s] cleared", self.name)

    def get_stats(self) -> CacheStats:
        """Snapshot of the statistics."""
        return replace(self._stats)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


def _synchronized(method: Callable) -> Callable:
    @wraps(method)
    def wrapper(self: "ThreadSafeTTLCache", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class ThreadSafeTTLCache(TTLCache[V]):
    """
    TTLCache guarded by a re-entrant lock.

    Use when the cache is shared with worker threads, e.g. blocking HTTP
    calls dispatched through asyncio.to_thread.
    """

    def __init__(self, ttl_seconds: float, **kwargs: Any):
        super().__init__(ttl_seconds, **kwargs)
        self._lock = threading.RLock()

    get = _synchronized(TTLCache.get)
    get_stale = _synchronized(TTLCache.get_stale)
    has = _synchronized(TTLCache.has)
    is_expired = _synchronized(TTLCache.is_expired)
    set = _synchronized(TTLCache.set)
    force_refresh = _synchronized(TTLCache.force_refresh)
    get_time_to_expiration = _synchronized(TTLCache.get_time_to_expiration)
    get_entry = _synchronized(TTLCache.get_entry)
    keys = _synchronized(TTLCache.keys)
    cleanup = _synchronized(TTLCache.cleanup)
    clear = _synchronized(TTLCache.clear)
    get_stats = _synchronized(TTLCache.get_stats)
    __len__ = _synchronized(TTLCache.__len__)
    __contains__ = _synchronized(TTLCache.__contains__)
