"""
HTTP Response Caching
=====================

Three consumers of the CacheManager for the HTTP layer:

1. `with_cache(handler, ...)`: wraps a GET route handler. A hit short-circuits
   with the stored status/headers/body; a miss runs the handler and stores the
   response when it is 2xx. Responses carry `X-Cache: HIT|MISS` and
   `X-Cache-Key`.
2. `with_cache_invalidation(handler, ...)`: after a successful mutation
   (POST/PUT/PATCH/DELETE), invalidates tags/keys.
3. `PageCacheMiddleware`: sets browser and CDN cache headers on anonymous
   page responses.

A cache failure never reaches the client; at worst the response is uncached.

Usage:
    app.add_api_route("/api/products", with_cache(list_products, tags=["products"]), methods=["GET"])
    app.add_middleware(PageCacheMiddleware, ttl=3600, paths=["/boutique"])
"""

import base64
import functools
from collections.abc import Awaitable, Callable, Sequence
from typing import Any
from urllib.parse import urlencode

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import StreamingResponse

from storefront_cache.core.config.constants import (
    CACHE_STATUS_HIT,
    CACHE_STATUS_MISS,
    HEADER_CACHE_KEY,
    HEADER_CACHE_STATUS,
    MUTATING_METHODS,
    Stage,
)
from storefront_cache.core.config.settings import get_settings
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.cache_manager import CacheManager, resolve

logger = get_logger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

# Recomputed by Response on rebuild
_UNCACHED_HEADERS = {"content-length"}


def build_response_cache_key(
    request: Request,
    vary_by: Sequence[str] = (),
    include_query: bool = True,
    exclude_params: Sequence[str] = (),
) -> str:
    """
    route:<path>[?<sorted query>][|headers:<h>:<v>|...]|<METHOD>

    Example:
        GET /api/products?page=2&sort=price with vary_by=["accept-language"]
        → route:/api/products?page=2&sort=price|headers:accept-language:fr|GET
    """
    key = f"route:{request.url.path}"

    if include_query:
        params = sorted(
            (name, value)
            for name, value in request.query_params.multi_items()
            if name not in exclude_params
        )
        if params:
            key += f"?{urlencode(params)}"

    if vary_by:
        header_values = "|".join(f"{name}:{request.headers.get(name, '')}" for name in vary_by)
        key += f"|headers:{header_values}"

    return f"{key}|{request.method}"


def _resolve_cache(request: Request, cache: CacheManager | None) -> CacheManager:
    return cache or request.app.state.cache_manager


def _serialize_response(response: Response) -> dict[str, Any]:
    headers = {
        name: value
        for name, value in response.headers.items()
        if not name.lower().startswith("x-cache") and name.lower() not in _UNCACHED_HEADERS
    }
    return {
        "status": response.status_code,
        "headers": headers,
        "body": base64.b64encode(response.body).decode("ascii"),
    }


def _rebuild_response(entry: dict[str, Any], cache_status: str, cache_key: str) -> Response:
    response = Response(
        content=base64.b64decode(entry["body"]),
        status_code=entry["status"],
        headers=entry["headers"],
    )
    response.headers[HEADER_CACHE_STATUS] = cache_status
    response.headers[HEADER_CACHE_KEY] = cache_key
    return response


def with_cache(
    handler: Handler,
    cache: CacheManager | None = None,
    ttl: int | None = None,
    tags: Sequence[str] = ("api",),
    vary_by: Sequence[str] = (),
    skip_cache: Callable[[Request], Any] | None = None,
    on_hit: Callable[[str], Any] | None = None,
    on_miss: Callable[[str], Any] | None = None,
    on_error: Callable[[Exception], Any] | None = None,
    include_query: bool = True,
    exclude_params: Sequence[str] = (),
    key_builder: Callable[[Request], str] | None = None,
) -> Handler:
    """
    Wrap a GET handler with response caching.

    Args:
        handler: async (Request) -> Response
        cache: CacheManager; defaults to app.state.cache_manager
        ttl: Entry TTL in seconds (CACHE_API_TTL when omitted)
        tags: Tags the cached response is stored under
        vary_by: Request headers that take part in the key
        skip_cache: Predicate that bypasses caching for a request
        on_hit / on_miss: Called with the cache key
        on_error: Called with any exception raised by the cache round-trip
        include_query / exclude_params: Query string handling for the key
        key_builder: Replaces the default key derivation entirely

    The handler is invoked at most once per request. Streaming responses are
    passed through uncached.
    """
    tags = list(tags)

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        if request.method != "GET":
            return await handler(request)
        if skip_cache is not None and await resolve(skip_cache, request):
            return await handler(request)

        manager = _resolve_cache(request, cache)
        cache_key = (
            key_builder(request)
            if key_builder
            else build_response_cache_key(request, vary_by, include_query, exclude_params)
        )

        try:
            entry = await manager.get(cache_key, tags=tags)
            if entry is not None:
                response = _rebuild_response(entry, CACHE_STATUS_HIT, cache_key)
                if on_hit is not None:
                    await resolve(on_hit, cache_key)
                return response
        except Exception as e:
            log_stage(logger, Stage.RESPONSE_CACHE, "Response cache read failed", level="error", error=str(e))
            if on_error is not None:
                await resolve(on_error, e)

        if on_miss is not None:
            await resolve(on_miss, cache_key)

        response = await handler(request)

        if isinstance(response, StreamingResponse) or not 200 <= response.status_code < 300:
            return response

        try:
            entry_ttl = ttl if ttl is not None else manager.config.CACHE_API_TTL
            await manager.set(cache_key, _serialize_response(response), ttl=entry_ttl, tags=tags)
        except Exception as e:
            log_stage(logger, Stage.RESPONSE_CACHE, "Response cache write failed", level="error", error=str(e))
            if on_error is not None:
                await resolve(on_error, e)

        response.headers[HEADER_CACHE_STATUS] = CACHE_STATUS_MISS
        response.headers[HEADER_CACHE_KEY] = cache_key
        return response

    return wrapper


def with_cache_invalidation(
    handler: Handler,
    tags: Sequence[str] = (),
    keys: Sequence[str] = (),
    custom_invalidation: Callable[[Request], Any] | None = None,
    cache: CacheManager | None = None,
) -> Handler:
    """
    Invalidate tags/keys after a successful mutation.

    Invalidation errors are logged; the handler's response is always returned.
    """

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        response = await handler(request)

        if request.method in MUTATING_METHODS and 200 <= response.status_code < 300:
            manager = _resolve_cache(request, cache)
            try:
                for tag in tags:
                    await manager.invalidate_tag(tag)
                for key in keys:
                    await manager.delete(key)
                if custom_invalidation is not None:
                    await resolve(custom_invalidation, request)
                log_stage(
                    logger, Stage.RESPONSE_CACHE, "Cache invalidated after mutation",
                    method=request.method, path=request.url.path,
                )
            except Exception as e:
                log_stage(logger, Stage.RESPONSE_CACHE, "Mutation invalidation failed", level="error", error=str(e))

        return response

    return wrapper


class PageCacheMiddleware(BaseHTTPMiddleware):
    """
    Browser and CDN cache headers for anonymous page views.

    Skipped when the request carries an Authorization header or a session
    cookie, when skip_cache(request) is true, for non-GET/HEAD methods and
    for non-2xx responses.
    """

    def __init__(
        self,
        app,
        ttl: int | None = None,
        paths: Sequence[str] | None = None,
        skip_cache: Callable[[Request], bool] | None = None,
        session_cookie: str = "session",
    ):
        super().__init__(app)
        self.ttl = ttl if ttl is not None else get_settings().cache.CACHE_PAGE_TTL
        self.paths = tuple(paths) if paths else None
        self.skip_cache = skip_cache
        self.session_cookie = session_cookie

    def _is_cacheable(self, request: Request) -> bool:
        if request.method not in ("GET", "HEAD"):
            return False
        if self.paths is not None and not request.url.path.startswith(self.paths):
            return False
        if request.headers.get("authorization") or request.cookies.get(self.session_cookie):
            return False
        if self.skip_cache is not None and self.skip_cache(request):
            return False
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if self._is_cacheable(request) and 200 <= response.status_code < 300:
            response.headers["Cache-Control"] = f"public, max-age={self.ttl}, s-maxage={self.ttl}"
            response.headers["CDN-Cache-Control"] = f"public, max-age={self.ttl}"

        return response
