"""
Function-level caching decorator backed by get_or_set_with_lock.
"""

import functools
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, ParamSpec, TypeVar

from storefront_cache.infrastructure.cache.cache_manager import CacheManager

P = ParamSpec("P")
R = TypeVar("R")


def cached(
    cache: CacheManager,
    key_builder: Callable[..., str],
    ttl: int = 600,
    tags: Sequence[str] = (),
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Cache the result of an async function under key_builder(*args, **kwargs).

    Concurrent callers for the same key share one execution per lock window.

    Usage:
        @cached(cache, key_builder=lambda product_id: f"product-detail:{product_id}", tags=["products"])
        async def load_product_detail(product_id: str) -> dict:
            ...
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            key = key_builder(*args, **kwargs)

            async def fetch() -> Any:
                return await fn(*args, **kwargs)

            return await cache.get_or_set_with_lock(key, fetch, ttl=ttl, tags=list(tags))

        return wrapper

    return decorator
