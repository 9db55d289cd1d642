"""
CacheManager - Async in-memory cache-aside store with TTL.

Features:
- Memory-based cache keyed by string, one entry per key
- TTL (Time To Live) with lazy expiry on read
- get_or_compute for the cache-aside pattern, no negative caching
- Optional single-flight for concurrent misses on the same key
- Oldest-entry eviction when max_size is reached
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from userfeed.services.deduplicator import RequestDeduplicator
from userfeed.services.errors import CacheError

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if entry is past its TTL."""
        return now > self.expires_at


class CacheManager:
    """
    Async cache-aside store with TTL.

    The lock guards reads and writes of the entry map only. It is never held
    while a value is being computed.

    Usage:
        cache = CacheManager(max_size=100)

        users = await cache.get_or_compute(
            "users", timedelta(minutes=10), fetch_all_users
        )
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: timedelta = timedelta(minutes=10),
        deduplicate: bool = True,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()
        self._deduplicator = RequestDeduplicator(debug=debug) if deduplicate else None

    async def get_or_compute(
        self,
        key: str,
        ttl: timedelta | None,
        compute: Callable[[], Awaitable[T]],
        on_hit: Callable[[T], None] | None = None,
    ) -> T:
        """
        Return the live value for ``key``, computing and storing it on a miss.

        Args:
            key: Cache key
            ttl: Time to live for a freshly computed value (default if None)
            compute: Async function producing the value
            on_hit: Called with the cached value when the lookup is a hit

        Returns:
            The cached or freshly computed value

        Raises:
            Whatever ``compute`` raises; the key stays absent in that case
        """
        found, value = await self._lookup(key)
        if found:
            if on_hit is not None:
                on_hit(value)
            return value

        async def compute_and_store() -> T:
            data = await compute()
            await self.set(key, data, ttl)
            return data

        if self._deduplicator is not None:
            return await self._deduplicator.dedupe(key, compute_and_store)
        return await compute_and_store()

    async def get(self, key: str) -> Any | None:
        """Get a live value from cache, None when absent or expired."""
        _, value = await self._lookup(key)
        return value

    async def _lookup(self, key: str) -> tuple[bool, Any]:
        async with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}")
                return False, None

            if entry.is_expired(self._clock()):
                del self._memory[key]
                self._stats.misses += 1
                self._log(f"EXPIRED: {key[:50]}")
                return False, None

            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}")
            return True, entry.data

    async def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        if ttl is None:
            ttl = self._default_ttl
        if ttl.total_seconds() <= 0:
            raise CacheError(f"TTL must be positive, got {ttl} for key '{key}'")

        now = self._clock()
        entry = CacheEntry(
            data=data, stored_at=now, expires_at=now + ttl.total_seconds()
        )

        async with self._lock:
            if len(self._memory) >= self._max_size and key not in self._memory:
                self._evict_oldest()

            self._memory[key] = entry
            self._log(f"SET: {key[:50]} (TTL: {ttl.total_seconds()}s)")

    async def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        async with self._lock:
            if key in self._memory:
                del self._memory[key]
                self._log(f"DELETE: {key[:50]}")
                return True
            return False

    async def invalidate(self, pattern: str) -> int:
        """
        Invalidate all keys matching a pattern.

        Args:
            pattern: Substring to match in keys

        Returns:
            Number of entries invalidated
        """
        async with self._lock:
            keys_to_delete = [k for k in self._memory if pattern in k]
            for key in keys_to_delete:
                del self._memory[key]

            if keys_to_delete:
                self._log(
                    f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'"
                )

            return len(keys_to_delete)

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            count = len(self._memory)
            self._memory.clear()
            self._log(f"CLEAR: {count} entries removed")

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._memory[key]

            if expired_keys:
                self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

            return len(expired_keys)

    async def close(self) -> None:
        """Cancel computations still in flight."""
        if self._deduplicator is not None:
            await self._deduplicator.cancel_all()

    def _evict_oldest(self) -> None:
        """Evict the oldest entry. Caller holds the lock."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].stored_at,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
