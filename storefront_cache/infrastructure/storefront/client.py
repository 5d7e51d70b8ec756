"""
Storefront HTTP Client

Reads products, users and rendered pages from the storefront so warmup can
populate the cache from the source of truth.

Usage:
    async with StorefrontClient(base_url="https://shop.example") as storefront:
        product = await storefront.fetch_product("42")
        html = await storefront.fetch_page("/boutique")
"""

from typing import Any

import httpx

from storefront_cache.core.exceptions import StorefrontFetchError
from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

# Product ids warmed when the storefront cannot list featured products
FALLBACK_PRODUCT_IDS = ["1", "2", "3", "4", "5"]


class StorefrontClient:
    """
    Thin async client over the storefront API.

    Attributes:
        base_url: Storefront origin, e.g. https://shop.example
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "StorefrontClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
        self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("StorefrontClient must be used as an async context manager")
        return self._client

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        client = self._ensure_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorefrontFetchError(
                f"Storefront returned {e.response.status_code} for {path}",
                details={"path": path, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise StorefrontFetchError.from_exception(e, f"Storefront request failed for {path}", path=path) from e
        return response

    async def fetch_product(self, product_id: str) -> Any:
        response = await self._get(f"/api/products/{product_id}")
        return response.json()

    async def fetch_user(self, user_id: str) -> Any:
        response = await self._get(f"/api/users/{user_id}")
        return response.json()

    async def fetch_page(self, path: str) -> str:
        response = await self._get(path)
        return response.text

    async def popular_product_ids(self, limit: int = 20) -> list[str]:
        """
        Featured product ids, or FALLBACK_PRODUCT_IDS when the listing fails.
        """
        try:
            response = await self._get("/api/products", params={"featured": "true", "limit": limit})
            products = response.json().get("products") or []
            return [str(product["id"]) for product in products]
        except (StorefrontFetchError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Featured products unavailable, using fallback ids", error=str(e))
            return list(FALLBACK_PRODUCT_IDS)
