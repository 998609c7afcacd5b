"""
Caching and periodic refresh for remote configuration payloads.

This module provides:
- CacheConfig / RefreshConfig / BackoffConfig: cache adapter choice, TTL,
  refresh timing and retry backoff
- MemoryAdapter: in-process TTL cache on a monotonic clock
- RedisAdapter: shared cache in Redis (JSON payloads, SETEX)
- CachedSource: wraps an async fetch with the cache and an optional
  background refresh loop

Invariants:
    - Adapters return None for missing or expired keys
    - A failed background refresh is logged and retried after an
      exponential backoff delay; the first success returns to the interval
    - A payload rejected by on_refresh is never cached
    - stop() always cancels and awaits the refresh task

Example:
    >>> cache = CacheConfig(adapter="memory", ttl=120, refresh=RefreshConfig(interval=30, jitter=5))
    >>> source = CachedSource(fetch_flags, cache, key="flags", on_refresh=apply_flags)
    >>> data = await source.get()
    >>> source.start()
    ...
    >>> await source.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300
DEFAULT_REFRESH_INTERVAL = 60.0
DEFAULT_MAX_BACKOFF = 300.0

Fetch = Callable[[], Awaitable[Any]]
RefreshCallback = Callable[[Any], Any]


class CacheAdapter(ABC):
    """Async key/value cache with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Cached value, or None if missing or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value; ``ttl`` None means no expiry."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        """Release connections (no-op by default)."""
        return None


class MemoryAdapter(CacheAdapter):
    """In-process cache.

    Args:
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: Dict[str, Any] = {}
        self._expiry: Dict[str, float] = {}
        self._clock = clock

    async def get(self, key: str) -> Any:
        expiry = self._expiry.get(key)
        if expiry is not None and self._clock() >= expiry:
            self._store.pop(key, None)
            self._expiry.pop(key, None)
            return None
        return self._store.get(key)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._store[key] = value
        if ttl is not None:
            self._expiry[key] = self._clock() + ttl
        else:
            self._expiry.pop(key, None)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)
        self._expiry.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)


class RedisAdapter(CacheAdapter):
    """Redis-backed cache storing JSON payloads.

    Args:
        client: Existing redis.asyncio client (tests, shared pools)
        **options: Connection options for redis.asyncio.Redis when no
            client is given (host, port, db, ...). A ``url`` option uses
            Redis.from_url.
    """

    def __init__(self, client: Optional[aioredis.Redis] = None, **options: Any) -> None:
        if client is None:
            url = options.pop("url", None)
            client = aioredis.Redis.from_url(url, **options) if url else aioredis.Redis(**options)
        self._client = client

    async def get(self, key: str) -> Any:
        raw = await self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl is None:
            await self._client.set(key, payload)
        else:
            await self._client.setex(key, max(1, int(ttl)), payload)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


@dataclass
class BackoffConfig:
    """Delay growth after consecutive refresh failures.

    Attributes:
        initial: Delay in seconds after the first failure
        multiplier: Factor applied for each further failure
        max_delay: Upper bound on the delay
    """

    initial: float = 1.0
    multiplier: float = 2.0
    max_delay: float = DEFAULT_MAX_BACKOFF

    def backoff_time(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (1 for the first failure)."""
        exponent = max(attempt, 1) - 1
        try:
            delay = self.initial * self.multiplier**exponent
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)


@dataclass
class RefreshConfig:
    """Refresh timing.

    Attributes:
        interval: Seconds between refreshes
        jitter: Upper bound of a uniform random delay added to each interval
        backoff: Retry delays used instead of the interval after failures
    """

    interval: float = DEFAULT_REFRESH_INTERVAL
    jitter: float = 0.0
    backoff: BackoffConfig = field(default_factory=BackoffConfig)

    def next_delay(self) -> float:
        """Seconds until the next refresh."""
        extra = random.uniform(0.0, self.jitter) if self.jitter > 0 else 0.0
        return self.interval + extra


@dataclass
class CacheConfig:
    """Cache adapter choice and timing.

    Attributes:
        adapter: "memory" or "redis"
        ttl: Default entry TTL in seconds
        stale_while_revalidate: Serve the last payload while refetching
        refresh: Background refresh timing
        options: Adapter constructor options (Redis connection settings)
    """

    adapter: str = "memory"
    ttl: float = DEFAULT_TTL
    stale_while_revalidate: bool = False
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    options: Dict[str, Any] = field(default_factory=dict)
    _backend: Optional[CacheAdapter] = field(default=None, init=False, repr=False, compare=False)

    def backend(self) -> CacheAdapter:
        """The adapter instance, created on first use.

        Raises:
            ValueError: For an unknown adapter name
        """
        if self._backend is None:
            if self.adapter == "memory":
                self._backend = MemoryAdapter()
            elif self.adapter == "redis":
                self._backend = RedisAdapter(**self.options)
            else:
                raise ValueError(f"Unknown cache adapter: {self.adapter}")
        return self._backend

    def use_adapter(self, adapter: CacheAdapter) -> CacheConfig:
        """Install a prebuilt adapter."""
        self._backend = adapter
        return self

    async def get(self, key: str) -> Any:
        return await self.backend().get(key)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        await self.backend().set(key, value, self.ttl if ttl is None else ttl)

    async def delete(self, key: str) -> None:
        await self.backend().delete(key)


class CachedSource:
    """An async fetch fronted by a cache, with optional periodic refresh.

    Args:
        fetch: Zero-argument coroutine function returning the payload
        cache: CacheConfig providing the adapter and timing
        key: Cache key
        on_refresh: Called with each freshly fetched payload (sync or async)
    """

    def __init__(
        self,
        fetch: Fetch,
        cache: CacheConfig,
        key: str,
        on_refresh: Optional[RefreshCallback] = None,
    ) -> None:
        self.fetch = fetch
        self.cache = cache
        self.key = key
        self.on_refresh = on_refresh

        self._last: Any = None
        self._running = False
        self._task: Optional[asyncio.Task[None]] = None
        self._revalidate_task: Optional[asyncio.Task[None]] = None
        self._refresh_count = 0
        self._failure_count = 0
        self._consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._running

    async def get(self) -> Any:
        """Cached payload, fetching on a miss.

        With stale_while_revalidate a miss that has a previous payload
        returns it immediately and refetches in the background.
        """
        cached = await self.cache.get(self.key)
        if cached is not None:
            return cached

        if self.cache.stale_while_revalidate and self._last is not None:
            if self._revalidate_task is None or self._revalidate_task.done():
                self._revalidate_task = asyncio.create_task(self._refresh_logged())
            return self._last

        return await self.refresh()

    async def refresh(self) -> Any:
        """Fetch now, hand the payload to on_refresh, then cache it.

        A payload that on_refresh rejects (by raising) is not cached and
        does not replace the last good payload.
        """
        data = await self.fetch()

        if self.on_refresh is not None:
            result = self.on_refresh(data)
            if inspect.isawaitable(result):
                await result

        await self.cache.set(self.key, data)
        self._last = data
        self._refresh_count += 1
        logger.debug(f"Refreshed {self.key}", extra={"refresh_count": self._refresh_count})
        return data

    def start(self) -> None:
        """Start the background refresh loop on the running event loop."""
        if self._running:
            logger.warning(f"Refresher for {self.key} already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(
            f"Started refresher for {self.key}",
            extra={"interval": self.cache.refresh.interval, "jitter": self.cache.refresh.jitter},
        )

    async def stop(self) -> None:
        """Stop the refresh loop and wait for it to exit."""
        self._running = False
        tasks = [t for t in (self._task, self._revalidate_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None
        self._revalidate_task = None
        logger.info(f"Stopped refresher for {self.key}")

    async def _refresh_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._next_delay())
            await self._refresh_logged()

    async def _refresh_logged(self) -> None:
        try:
            await self.refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failure_count += 1
            self._consecutive_failures += 1
            logger.error(
                f"Refresh failed for {self.key}: {e}",
                exc_info=True,
                extra={"consecutive_failures": self._consecutive_failures},
            )
        else:
            self._consecutive_failures = 0

    def _next_delay(self) -> float:
        if self._consecutive_failures:
            return self.cache.refresh.backoff.backoff_time(self._consecutive_failures)
        return self.cache.refresh.next_delay()

    def get_stats(self) -> Dict[str, Any]:
        """Refresher statistics."""
        return {
            "key": self.key,
            "running": self._running,
            "refresh_count": self._refresh_count,
            "failure_count": self._failure_count,
            "consecutive_failures": self._consecutive_failures,
        }
