"""
Warmup Service

Resolves warmup requests (products, pages, custom items) into CacheWarmer runs
fed by the storefront API.

Key conventions match CacheHelpers: product:<id> under tag products,
page:<path> under tag pages (raw, compressed).
"""

import time
from collections.abc import Sequence
from typing import Any

from storefront_cache.application.api.models.cache import WarmupConfig, WarmupResponse
from storefront_cache.core.config.constants import Stage, WarmupType
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.helpers import PAGES, PRODUCTS
from storefront_cache.infrastructure.cache.warmup import CacheWarmer, WarmupResult
from storefront_cache.infrastructure.storefront.client import StorefrontClient

logger = get_logger(__name__)

DEFAULT_PAGES = [
    "/",
    "/boutique",
    "/nouvelle-collection",
    "/tous-les-produits",
    "/aube",
    "/zenith",
    "/crepuscule",
]

PRODUCT_ITEM_PREFIX = "product:"
USER_ITEM_PREFIX = "user:"


class WarmupService:
    def __init__(self, warmer: CacheWarmer, storefront: StorefrontClient):
        self._warmer = warmer
        self._storefront = storefront

    async def run(self, warmup_type: WarmupType, items: Sequence[str], config: WarmupConfig) -> WarmupResponse:
        """
        Raises:
            ValueError: Custom warmup without items
        """
        if warmup_type is WarmupType.CUSTOM and not items:
            raise ValueError("Items are required for custom warmup")

        started = time.perf_counter()

        if warmup_type is WarmupType.PRODUCTS:
            specified = bool(items)
            product_ids = list(items) or await self._storefront.popular_product_ids()
            result = await self.warmup_products(product_ids, config.concurrency)
            scope = "specified" if specified else "popular"
            message = f"Warmed up {result.warmed_up} {scope} products"

        elif warmup_type is WarmupType.PAGES:
            specified = bool(items)
            paths = list(items) or DEFAULT_PAGES
            result = await self.warmup_pages(paths, config.concurrency)
            scope = "specified" if specified else "default"
            message = f"Warmed up {result.warmed_up} {scope} pages"

        else:
            result = await self.warmup_custom(items, config)
            message = f"Custom warmup completed: {result.warmed_up} success, {result.failed} failed"

        return WarmupResponse(
            success=True,
            message=message,
            warmed_up=result.warmed_up,
            failed=result.failed,
            duration=int((time.perf_counter() - started) * 1000),
        )

    async def warmup_products(self, product_ids: Sequence[str], concurrency: int) -> WarmupResult:
        return await self._warmer.warmup_keys(
            product_ids,
            self._storefront.fetch_product,
            concurrency=concurrency,
            ttl=PRODUCTS.ttl,
            tags=[PRODUCTS.tag],
            key_builder=lambda product_id: f"{PRODUCTS.namespace}:{product_id}",
            compress=PRODUCTS.compress,
            on_progress=self._progress("products"),
        )

    async def warmup_pages(self, paths: Sequence[str], concurrency: int) -> WarmupResult:
        return await self._warmer.warmup_keys(
            paths,
            self._storefront.fetch_page,
            concurrency=concurrency,
            ttl=PAGES.ttl,
            tags=[PAGES.tag],
            key_builder=lambda path: f"{PAGES.namespace}:{path}",
            serialize=PAGES.serialize,
            compress=PAGES.compress,
            on_progress=self._progress("pages"),
        )

    async def warmup_custom(self, items: Sequence[str], config: WarmupConfig) -> WarmupResult:
        """Items are routed by shape: '/path', 'product:<id>', 'user:<id>' or a bare key."""
        return await self._warmer.warmup_keys(
            items,
            self._fetch_custom,
            concurrency=config.concurrency,
            ttl=config.ttl,
            tags=config.tags,
            key_builder=self.custom_key,
            on_progress=self._progress("custom"),
        )

    @staticmethod
    def custom_key(item: str) -> str:
        if item.startswith("/"):
            return f"{PAGES.namespace}:{item}"
        return item

    async def _fetch_custom(self, item: str) -> Any:
        if item.startswith("/"):
            return await self._storefront.fetch_page(item)
        if item.startswith(PRODUCT_ITEM_PREFIX):
            return await self._storefront.fetch_product(item[len(PRODUCT_ITEM_PREFIX):])
        if item.startswith(USER_ITEM_PREFIX):
            return await self._storefront.fetch_user(item[len(USER_ITEM_PREFIX):])
        return {"cached": True, "timestamp": int(time.time() * 1000)}

    @staticmethod
    def _progress(label: str):
        def report(completed: int, total: int) -> None:
            log_stage(logger, Stage.WARMUP, "Warmup progress", level="debug", source=label, completed=completed, total=total)

        return report
