"""
Cache-aside stores for dashboard data.

Features:
- One store per data type, holding a single "current" value under a fixed key
- Read-through loading from the database on miss or after the safety TTL
- Explicit refresh that recomputes and swaps the value in one assignment,
  so readers keep seeing the old value until the new one is ready
- A last-good-value cache used by fetch clients as their fallback slot
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from nextskip.services.errors import CacheError

T = TypeVar("T")

CACHE_KEY = "all"

Loader = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    timestamp: datetime
    ttl: timedelta | None

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        if self.ttl is None:
            return False
        return now > self.timestamp + self.ttl


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    loads: int = 0
    refreshes: int = 0
    load_failures: int = 0

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
            "loads": self.loads,
            "refreshes": self.refreshes,
            "load_failures": self.load_failures,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class CacheAsideStore(Generic[T]):
    """
    Read-through cache for one data type.

    Usage:
        store = CacheAsideStore("contests", load_contests, ttl=timedelta(hours=12))

        contests = await store.get()        # loads on first call
        await store.refresh()               # writers call this after a commit
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[T]],
        ttl: timedelta,
        clock: Callable[[], datetime] = _utcnow,
        debug: bool = False,
    ):
        self.name = name
        self.ttl = ttl
        self._loader = loader
        self._clock = clock
        self._debug = debug
        self._entry: CacheEntry[T] | None = None
        self._load_lock = asyncio.Lock()
        self._stats = CacheStats()

    async def get(self) -> T:
        """
        Return the current value, loading it if absent or past its TTL.

        Raises:
            CacheError: If the loader fails and no previous value exists
        """
        entry = self._entry
        if entry is not None and not entry.is_expired(self._clock()):
            self._stats.hits += 1
            self._log(f"HIT: {self.name}")
            return entry.data

        self._stats.misses += 1
        self._log(f"MISS: {self.name}")

        async with self._load_lock:
            # Another reader may have loaded while we waited
            entry = self._entry
            if entry is not None and not entry.is_expired(self._clock()):
                return entry.data
            return await self._load(entry)

    async def refresh(self) -> None:
        """Recompute the value and swap it in, keeping the old value on failure."""
        self._stats.refreshes += 1
        async with self._load_lock:
            await self._load(self._entry)
        self._log(f"REFRESH: {self.name}")

    def invalidate(self) -> None:
        """Drop the current value so the next read loads from the store."""
        self._entry = None
        self._log(f"INVALIDATE: {self.name}")

    def peek(self) -> T | None:
        """Current value without loading, None when empty."""
        return self._entry.data if self._entry else None

    @property
    def loaded_at(self) -> datetime | None:
        return self._entry.timestamp if self._entry else None

    async def _load(self, previous: CacheEntry[T] | None) -> T:
        try:
            data = await self._loader()
        except Exception as e:
            self._stats.load_failures += 1
            if previous is not None:
                logger.error(
                    f"Cache '{self.name}' load failed, keeping previous value: {e}"
                )
                return previous.data
            raise CacheError(f"Cache '{self.name}' load failed: {e}") from e

        self._stats.loads += 1
        self._entry = CacheEntry(data=data, timestamp=self._clock(), ttl=self.ttl)
        return data

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheAsideStore] {message}")


class CacheRegistry:
    """
    One cache-aside store per data type, constructed once at process start.

    Usage:
        caches = CacheRegistry()
        caches.register("contests", load_contests, timedelta(hours=12))
        await caches.get("contests").get()
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow, debug: bool = False):
        self._stores: dict[str, CacheAsideStore[Any]] = {}
        self._clock = clock
        self._debug = debug

    def register(
        self,
        name: str,
        loader: Loader,
        ttl: timedelta,
    ) -> CacheAsideStore[Any]:
        store: CacheAsideStore[Any] = CacheAsideStore(
            name, loader, ttl, clock=self._clock, debug=self._debug
        )
        self._stores[name] = store
        logger.debug(f"Registered cache: {name} (TTL: {ttl.total_seconds()}s)")
        return store

    def get(self, name: str) -> CacheAsideStore[Any]:
        try:
            return self._stores[name]
        except KeyError:
            raise CacheError(f"Unknown cache '{name}'") from None

    def names(self) -> list[str]:
        return list(self._stores)

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: s.get_stats().to_dict() for name, s in self._stores.items()}


class LastGoodValueCache:
    """
    Fallback slots for fetch clients, keyed by (cache name, key).

    Values never expire; each successful fetch overwrites its slot.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._slots: dict[tuple[str, str], CacheEntry[Any]] = {}
        self._clock = clock

    def put(self, cache_name: str, key: str, data: Any) -> None:
        self._slots[(cache_name, key)] = CacheEntry(
            data=data, timestamp=self._clock(), ttl=None
        )

    def get(self, cache_name: str, key: str) -> CacheEntry[Any] | None:
        return self._slots.get((cache_name, key))
