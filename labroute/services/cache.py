"""
In-memory TTL cache and in-flight request deduplication.

Both guard the shared logistics API: the cache avoids repeated reads and
the deduplicator collapses concurrent identical operations into one call.
Neither locks; all callers run on the same event loop.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_MS = 300_000
DEFAULT_MAX_SIZE = 1000


@dataclass
class CacheEntry:
    """Single cached value with its expiry."""
    value: Any
    expires_at: Optional[float]
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class CacheStats:
    """Counters for cache effectiveness."""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class MemoryCache:
    """
    Key-value cache with per-entry TTL and LRU eviction.

    Expired entries are dropped lazily on access. When the cache is full
    the least recently used entry is evicted to make room.
    """

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_ms = default_ttl_ms
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for *key*, or *default* if absent or expired."""
        entry = self._entries.get(key)

        if entry is None:
            self.stats.misses += 1
            logger.debug("Cache MISS: %s", key)
            return default

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.stats.misses += 1
            self.stats.expirations += 1
            logger.debug("Cache EXPIRED: %s", key)
            return default

        entry.access_count += 1
        self._entries.move_to_end(key)
        self.stats.hits += 1
        logger.debug("Cache HIT: %s", key)
        return entry.value

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Store *value* under *key*. ``ttl_ms=0`` means no expiry."""
        if ttl_ms is None:
            ttl_ms = self.default_ttl_ms

        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        expires_at = self._clock() + ttl_ms / 1000 if ttl_ms else None
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
        self._entries.move_to_end(key)
        logger.debug("Cache SET: %s (ttl=%sms)", key, ttl_ms)

    def has(self, key: str) -> bool:
        """Check presence without touching hit/miss counters."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        deleted = self._entries.pop(key, None) is not None
        if deleted:
            logger.debug("Cache DELETE: %s", key)
        return deleted

    def invalidate_prefix(self, prefix: str) -> int:
        """Delete every key starting with *prefix*; return how many were removed."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Cache INVALIDATE: %s* (%d entries)", prefix, len(keys))
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
        self.stats = CacheStats()

    def purge_expired(self) -> int:
        """Drop all expired entries eagerly."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.stats.expirations += len(expired)
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        ttl_ms: Optional[int] = None,
    ) -> T:
        """Cache-aside read: return the cached value or fetch and store it."""
        if self.has(key):
            return self.get(key)

        logger.debug("Cache FETCH: %s", key)
        value = await fetch()
        self.set(key, value, ttl_ms)
        return value

    def _evict_lru(self) -> None:
        key, _ = self._entries.popitem(last=False)
        self.stats.evictions += 1
        logger.debug("Cache EVICT: %s", key)


@dataclass
class RequestDeduplicator:
    """
    Collapse concurrent calls that share a key into one execution.

    The first caller for a key starts the operation; later callers with the
    same key await the same task. The key is released once the task
    settles, so a subsequent call runs the operation again.
    """
    _pending: dict[str, "asyncio.Task[Any]"] = field(default_factory=dict)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def dedupe(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is not None:
            logger.debug("Dedupe: reusing in-flight request %s", key)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self._run(key, operation))
        self._pending[key] = task
        return await asyncio.shield(task)

    async def _run(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        finally:
            self._pending.pop(key, None)

    def clear(self) -> None:
        """Forget in-flight keys. Running tasks are not cancelled."""
        self._pending.clear()
