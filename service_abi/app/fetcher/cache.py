"""
In-memory result cache with TTL expiry and a hard entry cap.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from shared.logging import get_logger


T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_ENTRIES = 100


@dataclass
class CacheEntry(Generic[T]):
    """Stored value plus its write and expiry times (clock seconds)."""
    data: T
    written_at: float
    expires_at: float


class ResultCache(Generic[T]):
    """TTL and capacity bounded key/value store.

    Eviction is by write order: when full, the entry with the smallest
    ``written_at`` goes, regardless of how recently it was read. This is not
    LRU.

    All operations take an internal lock, so the capacity check in ``set`` is
    atomic with the insert it guards and ``size() <= max_entries`` holds even
    when the cache is shared across threads.
    """

    def __init__(self,
                 ttl: float = DEFAULT_TTL_SECONDS,
                 max_entries: int = DEFAULT_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[T]:
        """Return the live value for ``key``, dropping it first if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if self._clock() > entry.expires_at:
                del self._entries[key]
                return None

            return entry.data

    def set(self, key: str, data: T, ttl: Optional[float] = None) -> None:
        with self._lock:
            # Rewrites move the key to the end so ties keep insertion order
            if self._entries.pop(key, None) is None and len(self._entries) >= self.max_entries:
                self._evict_oldest()

            now = self._clock()
            self._entries[key] = CacheEntry(
                data=data,
                written_at=now,
                expires_at=now + (ttl if ttl is not None else self.ttl),
            )

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    async def get_or_set(self,
                         key: str,
                         factory: Callable[[], Awaitable[T]],
                         ttl: Optional[float] = None) -> T:
        """Return the cached value or build, store and return a new one.

        Concurrent callers that miss on the same key each run ``factory``.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        data = await factory()
        self.set(key, data, ttl)
        return data

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl,
            }

    def _evict_oldest(self) -> None:
        # min() keeps the first of equal timestamps, i.e. the earliest insert
        oldest_key = min(self._entries, key=lambda k: self._entries[k].written_at, default=None)
        if oldest_key is not None:
            del self._entries[oldest_key]


async def sweep_periodically(cache: ResultCache, interval: float) -> None:
    """Call ``cache.cleanup()`` every ``interval`` seconds until cancelled."""
    logger = get_logger("abi.cache_sweeper")

    while True:
        await asyncio.sleep(interval)
        removed = cache.cleanup()
        if removed:
            logger.debug("Expired cache entries removed", removed=removed, size=cache.size())
