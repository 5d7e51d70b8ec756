"""
Namespaced cache helpers for storefront entities.

Each namespace pins the key format, tag, TTL and encoding so that reads and
writes for an entity always agree on the physical key.
"""

from dataclasses import dataclass
from typing import Any

import orjson

from storefront_cache.infrastructure.cache.cache_manager import CacheManager


@dataclass(frozen=True)
class EntityPolicy:
    namespace: str
    tag: str
    ttl: int
    compress: bool = False
    serialize: bool = True


PRODUCTS = EntityPolicy(namespace="product", tag="products", ttl=3600, compress=True)
USERS = EntityPolicy(namespace="user", tag="users", ttl=1800)
SESSIONS = EntityPolicy(namespace="session", tag="sessions", ttl=7200)
PAGES = EntityPolicy(namespace="page", tag="pages", ttl=86400, compress=True, serialize=False)
API = EntityPolicy(namespace="api", tag="api", ttl=600)


class EntityCache:
    """get / set / invalidate for one entity namespace."""

    def __init__(self, cache: CacheManager, policy: EntityPolicy):
        self._cache = cache
        self.policy = policy

    def key(self, identifier: str) -> str:
        return f"{self.policy.namespace}:{identifier}"

    async def get(self, identifier: str) -> Any | None:
        return await self._cache.get(
            self.key(identifier),
            tags=[self.policy.tag],
            compress=self.policy.compress,
            serialize=self.policy.serialize,
        )

    async def set(self, identifier: str, value: Any, ttl: int | None = None) -> bool:
        return await self._cache.set(
            self.key(identifier),
            value,
            ttl=ttl or self.policy.ttl,
            tags=[self.policy.tag],
            compress=self.policy.compress,
            serialize=self.policy.serialize,
        )

    async def invalidate(self, identifier: str | None = None) -> int:
        """Drop one entry, or the whole namespace tag when no identifier is given."""
        if identifier is not None:
            return int(await self._cache.delete(self.key(identifier), [self.policy.tag]))
        return await self._cache.invalidate_tag(self.policy.tag)


class ApiResponseCache(EntityCache):
    """API payloads keyed by endpoint plus canonical JSON of the params."""

    def endpoint_key(self, endpoint: str, params: dict[str, Any] | None = None) -> str:
        if params:
            encoded = orjson.dumps(params, option=orjson.OPT_SORT_KEYS).decode("utf-8")
            return f"{endpoint}:{encoded}"
        return endpoint

    async def get_response(self, endpoint: str, params: dict[str, Any] | None = None) -> Any | None:
        return await self.get(self.endpoint_key(endpoint, params))

    async def set_response(
        self, endpoint: str, data: Any, params: dict[str, Any] | None = None, ttl: int | None = None
    ) -> bool:
        return await self.set(self.endpoint_key(endpoint, params), data, ttl=ttl)


class CacheHelpers:
    """
    Usage:
        helpers = CacheHelpers(cache)
        await helpers.products.set("42", product)
        await helpers.users.invalidate("7")
        await helpers.api.set_response("/products", payload, {"page": 2})
    """

    def __init__(self, cache: CacheManager):
        self.products = EntityCache(cache, PRODUCTS)
        self.users = EntityCache(cache, USERS)
        self.sessions = EntityCache(cache, SESSIONS)
        self.pages = EntityCache(cache, PAGES)
        self.api = ApiResponseCache(cache, API)
