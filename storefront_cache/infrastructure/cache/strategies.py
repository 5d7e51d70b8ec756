"""
Cache Access Strategies

Five access patterns composed over a shared CacheManager. They share only the
CacheStrategy shape (get / set / invalidate); there is no common base class.

    CacheAsideStrategy  read through a stampede lock, writes go to cache only
    WriteThroughCache   writes hit source and cache together, rollback on source failure
    WriteBehindCache    writes hit cache now, source later from a pending buffer
    MultiLevelCache     in-process L1 (bounded, short-lived) in front of Redis
    TimeBasedCache      active per-key expiry timers with an expiry hook

Source fetchers receive the logical key; updaters receive (key, value). Both
may be sync or async callables.

Author: System Architect
Date: 2025-12-13
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from storefront_cache.core.config.constants import Stage
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.cache_manager import CacheManager, resolve

logger = get_logger(__name__)

KeyFetcher = Callable[[str], Any]
KeyUpdater = Callable[[str, Any], Any]


@dataclass(frozen=True)
class StrategyConfig:
    """Fixed cache policy applied by a strategy to every key it handles."""

    ttl: int = 3600
    tags: tuple[str, ...] = field(default_factory=tuple)
    compress: bool = False


async def _invalidate_tags(cache: CacheManager, tags: tuple[str, ...]) -> int:
    removed = 0
    for tag in tags:
        removed += await cache.invalidate_tag(tag)
    return removed


# =============================================================================
# CACHE-ASIDE
# =============================================================================


class CacheAsideStrategy:
    """
    Lazy loading with stampede protection.

    Callers own source-of-truth writes; set() only touches the cache.
    """

    def __init__(self, cache: CacheManager, fetcher: KeyFetcher, config: StrategyConfig | None = None):
        self._cache = cache
        self._fetcher = fetcher
        self._config = config or StrategyConfig()

    async def get(self, key: str) -> Any:
        return await self._cache.get_or_set_with_lock(
            key,
            partial(self._fetcher, key),
            ttl=self._config.ttl,
            tags=self._config.tags,
            compress=self._config.compress,
        )

    async def set(self, key: str, value: Any) -> bool:
        return await self._cache.set(
            key, value, ttl=self._config.ttl, tags=self._config.tags, compress=self._config.compress
        )

    async def invalidate(self, key: str | None = None) -> int:
        if key is not None:
            return int(await self._cache.delete(key, self._config.tags))
        return await _invalidate_tags(self._cache, self._config.tags)


# =============================================================================
# WRITE-THROUGH
# =============================================================================


class WriteThroughCache:
    """
    Source and cache written concurrently.

    A source failure deletes the cache entry and re-raises. A cache failure
    alone is tolerated because the source is authoritative.
    """

    def __init__(
        self,
        cache: CacheManager,
        fetcher: KeyFetcher,
        updater: KeyUpdater,
        config: StrategyConfig | None = None,
    ):
        self._cache = cache
        self._fetcher = fetcher
        self._updater = updater
        self._config = config or StrategyConfig()

    async def get(self, key: str) -> Any:
        return await self._cache.get_or_set(
            key,
            partial(self._fetcher, key),
            ttl=self._config.ttl,
            tags=self._config.tags,
            compress=self._config.compress,
        )

    async def set(self, key: str, value: Any) -> bool:
        """
        STAGE-S.1: Write-through

        Returns:
            bool: Whether the cache write succeeded (source write always did)
        """
        source_result, cached = await asyncio.gather(
            resolve(self._updater, key, value),
            self._cache.set(
                key, value, ttl=self._config.ttl, tags=self._config.tags, compress=self._config.compress
            ),
            return_exceptions=True,
        )

        if isinstance(source_result, BaseException):
            await self._cache.delete(key, self._config.tags)
            log_stage(
                logger,
                Stage.WRITE_THROUGH,
                "Source write failed, cache entry rolled back",
                level="error",
                key=key,
                error=str(source_result),
            )
            raise source_result

        if cached is not True:
            log_stage(logger, Stage.WRITE_THROUGH, "Cache write failed after source write", level="warning", key=key)
            return False
        return True

    async def invalidate(self, key: str | None = None) -> int:
        if key is not None:
            return int(await self._cache.delete(key, self._config.tags))
        return await _invalidate_tags(self._cache, self._config.tags)


# =============================================================================
# WRITE-BEHIND
# =============================================================================


class WriteBehindCache:
    """
    Cache written immediately; source writes buffered and flushed periodically.

    Delivery to the source is at-least-once: a failed item is re-buffered for
    the next cycle unless a newer value for the same key is already pending.
    Call shutdown() before exit, otherwise buffered writes are lost.
    """

    def __init__(
        self,
        cache: CacheManager,
        fetcher: KeyFetcher,
        updater: KeyUpdater,
        config: StrategyConfig | None = None,
        flush_interval: float | None = None,
    ):
        self._cache = cache
        self._fetcher = fetcher
        self._updater = updater
        self._config = config or StrategyConfig()
        self._flush_interval = flush_interval or cache.config.CACHE_WRITE_BEHIND_INTERVAL

        self._pending: dict[str, Any] = {}
        self._flush_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic flush task (idempotent, needs a running loop)."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._flush_periodically())

    async def _flush_periodically(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._flush_interval)
            except asyncio.TimeoutError:
                await self.flush()

    async def get(self, key: str) -> Any:
        if key in self._pending:
            return self._pending[key]
        return await self._cache.get_or_set(
            key,
            partial(self._fetcher, key),
            ttl=self._config.ttl,
            tags=self._config.tags,
            compress=self._config.compress,
        )

    async def set(self, key: str, value: Any) -> bool:
        cached = await self._cache.set(
            key, value, ttl=self._config.ttl, tags=self._config.tags, compress=self._config.compress
        )
        self._pending[key] = value
        self.start()
        return cached

    async def flush(self) -> int:
        """
        Drain the buffer into the source.

        STAGE-S.2: Write-behind flush

        Returns:
            int: Number of items written to the source
        """
        async with self._flush_lock:
            batch, self._pending = self._pending, {}
            items = list(batch.items())
            written = 0
            attempted = 0
            try:
                for key, value in items:
                    try:
                        await resolve(self._updater, key, value)
                        written += 1
                    except Exception as e:
                        self._pending.setdefault(key, value)
                        log_stage(
                            logger,
                            Stage.WRITE_BEHIND_FLUSH,
                            "Deferred write failed, requeued",
                            level="error",
                            key=key,
                            error=str(e),
                        )
                    attempted += 1
            finally:
                # Cancelled mid-batch: the in-flight item and the rest go back
                for key, value in items[attempted:]:
                    self._pending.setdefault(key, value)

        if batch:
            log_stage(
                logger, Stage.WRITE_BEHIND_FLUSH, "Write-behind flush complete",
                written=written, requeued=len(batch) - written,
            )
        return written

    async def invalidate(self, key: str | None = None) -> int:
        if key is not None:
            return int(await self._cache.delete(key, self._config.tags))
        return await _invalidate_tags(self._cache, self._config.tags)

    async def shutdown(self) -> int:
        """
        Stop the flush task and write out whatever is still buffered.

        A periodic flush already in progress is allowed to finish.
        """
        if self._task is not None:
            self._stopping.set()
            if not self._task.cancelled():
                await self._task
            self._task = None
        return await self.flush()


# =============================================================================
# MULTI-LEVEL (L1 + L2)
# =============================================================================


class L1Storage:
    """
    Bounded in-process map with a per-entry freshness window.

    Overflow evicts the oldest inserted key (insertion order, not recency).
    Operations never await, so no lock is needed under asyncio.
    """

    def __init__(self, max_size: int = 1000, ttl: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (value, self._clock() + self._ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)


class MultiLevelCache:
    """
    L1 (this process) → L2 (Redis via CacheManager) → fetcher.

    STAGE-S.3: Multi-level lookup
    """

    def __init__(
        self,
        cache: CacheManager,
        fetcher: KeyFetcher,
        config: StrategyConfig | None = None,
        l1_max_size: int | None = None,
        l1_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache = cache
        self._fetcher = fetcher
        self._config = config or StrategyConfig()
        self._l1 = L1Storage(
            max_size=l1_max_size or cache.config.CACHE_L1_MAX_SIZE,
            ttl=l1_ttl or cache.config.CACHE_L1_TTL,
            clock=clock,
        )

    @property
    def l1(self) -> L1Storage:
        return self._l1

    async def get(self, key: str) -> Any:
        value = self._l1.get(key)
        if value is not None:
            log_stage(logger, Stage.MULTI_LEVEL, "L1 hit", level="debug", key=key)
            return value

        value = await self._cache.get(key, tags=self._config.tags, compress=self._config.compress)
        if value is not None:
            self._l1.set(key, value)
            return value

        value = await resolve(self._fetcher, key)
        await self._cache.set(
            key, value, ttl=self._config.ttl, tags=self._config.tags, compress=self._config.compress
        )
        self._l1.set(key, value)
        return value

    async def set(self, key: str, value: Any) -> bool:
        self._l1.set(key, value)
        return await self._cache.set(
            key, value, ttl=self._config.ttl, tags=self._config.tags, compress=self._config.compress
        )

    async def invalidate(self, key: str | None = None) -> int:
        if key is not None:
            self._l1.delete(key)
            return int(await self._cache.delete(key, self._config.tags))
        self._l1.clear()
        return await _invalidate_tags(self._cache, self._config.tags)

    def clear_l1(self) -> None:
        self._l1.clear()


# =============================================================================
# TIME-BASED
# =============================================================================


class TimeBasedCache:
    """
    Store TTL plus an active local timer per key.

    The timer deletes the key when it elapses and fires on_expire(key).
    Re-setting a key cancels its previous timer.
    """

    def __init__(
        self,
        cache: CacheManager,
        config: StrategyConfig | None = None,
        on_expire: Callable[[str], Any] | None = None,
    ):
        self._cache = cache
        self._config = config or StrategyConfig()
        self._on_expire = on_expire
        self._timers: dict[str, asyncio.Task] = {}

    @property
    def scheduled(self) -> list[str]:
        return list(self._timers)

    async def get(self, key: str) -> Any | None:
        return await self._cache.get(key, tags=self._config.tags, compress=self._config.compress)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        ttl = ttl if ttl is not None else self._config.ttl
        self._cancel(key)
        stored = await self._cache.set(
            key, value, ttl=ttl, tags=self._config.tags, compress=self._config.compress
        )
        self._schedule(key, ttl)
        return stored

    def _schedule(self, key: str, ttl: float) -> None:
        self._cancel(key)
        self._timers[key] = asyncio.create_task(self._expire_after(key, ttl))

    async def _expire_after(self, key: str, ttl: float) -> None:
        try:
            await asyncio.sleep(ttl)
            await self._cache.delete(key, self._config.tags)
            log_stage(logger, Stage.TIMED_EXPIRY, "Cache key expired", key=key, ttl=ttl)
            if self._on_expire is not None:
                try:
                    await resolve(self._on_expire, key)
                except Exception as e:
                    log_stage(
                        logger, Stage.TIMED_EXPIRY, "Expiry hook failed", level="error", key=key, error=str(e)
                    )
        finally:
            if self._timers.get(key) is asyncio.current_task():
                del self._timers[key]

    def _cancel(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    async def invalidate(self, key: str | None = None) -> int:
        if key is not None:
            self._cancel(key)
            return int(await self._cache.delete(key, self._config.tags))
        self.shutdown()
        return await _invalidate_tags(self._cache, self._config.tags)

    def shutdown(self) -> None:
        """Cancel every pending expiry timer."""
        for key in list(self._timers):
            self._cancel(key)


# =============================================================================
# FACTORY
# =============================================================================


def create_strategy(
    kind: str,
    cache: CacheManager,
    config: StrategyConfig | None = None,
    fetcher: KeyFetcher | None = None,
    updater: KeyUpdater | None = None,
    **options: Any,
):
    """
    Build a strategy by name: cache-aside, write-through, write-behind,
    multi-level or time-based.

    Raises:
        ValueError: Unknown kind or missing fetcher/updater for the kind
    """
    if kind in ("write-through", "write-behind") and (fetcher is None or updater is None):
        raise ValueError(f"{kind} requires both fetcher and updater")
    if kind in ("cache-aside", "multi-level") and fetcher is None:
        raise ValueError(f"{kind} requires a fetcher")

    if kind == "cache-aside":
        return CacheAsideStrategy(cache, fetcher, config)
    if kind == "write-through":
        return WriteThroughCache(cache, fetcher, updater, config)
    if kind == "write-behind":
        return WriteBehindCache(cache, fetcher, updater, config, **options)
    if kind == "multi-level":
        return MultiLevelCache(cache, fetcher, config, **options)
    if kind == "time-based":
        return TimeBasedCache(cache, config, **options)
    raise ValueError(f"Unknown cache strategy: {kind}")
