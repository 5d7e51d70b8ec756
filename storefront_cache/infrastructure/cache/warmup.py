"""
Cache Warmup

Pre-populates the cache from a source in fixed-size concurrent batches. Each
batch settles completely (successes and failures) before the next starts,
which bounds peak load on the source to `concurrency` in-flight fetches.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from storefront_cache.core.config.constants import Stage
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.cache_manager import CacheManager, resolve

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], Any]


@dataclass(frozen=True)
class WarmupResult:
    warmed_up: int
    failed: int
    duration_ms: int
    batches: int

    @property
    def total(self) -> int:
        return self.warmed_up + self.failed


class CacheWarmer:
    """
    Usage:
        warmer = CacheWarmer(cache)
        result = await warmer.warmup_keys(
            product_ids,
            storefront.fetch_product,
            concurrency=5,
            key_builder=lambda product_id: f"product:{product_id}",
            tags=["products"],
        )
    """

    def __init__(self, cache: CacheManager):
        self._cache = cache

    async def warmup_keys(
        self,
        keys: Sequence[str],
        fetcher: Callable[[str], Any],
        concurrency: int | None = None,
        ttl: int | None = None,
        tags: Sequence[str] = ("warmup",),
        on_progress: ProgressCallback | None = None,
        key_builder: Callable[[str], str] | None = None,
        serialize: bool = True,
        compress: bool = False,
    ) -> WarmupResult:
        """
        Fetch and cache every key, `concurrency` at a time.

        STAGE-O.2: Warmup

        A failing fetch (or a cache write that reports failure) is logged and
        counted; it never aborts the run. on_progress(completed, total) is
        called after every item.
        """
        if concurrency is None:
            concurrency = self._cache.config.CACHE_WARMUP_CONCURRENCY
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        started = time.perf_counter()
        total = len(keys)
        warmed_up = 0
        failed = 0
        batches = 0

        async def warm_one(item: str) -> bool:
            nonlocal warmed_up, failed
            try:
                value = await resolve(fetcher, item)
                cache_key = key_builder(item) if key_builder else item
                stored = await self._cache.set(
                    cache_key, value, ttl=ttl, tags=tags, compress=compress, serialize=serialize
                )
                if not stored:
                    raise RuntimeError("cache write failed")
                warmed_up += 1
                return True
            except Exception as e:
                failed += 1
                log_stage(logger, Stage.WARMUP, "Warmup failed for key", level="warning", key=item, error=str(e))
                return False
            finally:
                if on_progress is not None:
                    await resolve(on_progress, warmed_up + failed, total)

        log_stage(logger, Stage.WARMUP, "Starting cache warmup", total=total, concurrency=concurrency)

        for start in range(0, total, concurrency):
            batch = keys[start:start + concurrency]
            batches += 1
            await asyncio.gather(*(warm_one(item) for item in batch), return_exceptions=True)

        result = WarmupResult(
            warmed_up=warmed_up,
            failed=failed,
            duration_ms=int((time.perf_counter() - started) * 1000),
            batches=batches,
        )
        log_stage(
            logger,
            Stage.WARMUP,
            "Cache warmup completed",
            warmed_up=result.warmed_up,
            failed=result.failed,
            batches=result.batches,
            duration_ms=result.duration_ms,
        )
        return result
