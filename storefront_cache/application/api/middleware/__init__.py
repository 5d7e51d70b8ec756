"""
HTTP middleware and handler wrappers.

- request_logging: request id binding and access log
- response_cache: with_cache / with_cache_invalidation handler wrappers and
  PageCacheMiddleware for browser/CDN cache headers
"""

from .request_logging import RequestLoggingMiddleware
from .response_cache import (
    PageCacheMiddleware,
    build_response_cache_key,
    with_cache,
    with_cache_invalidation,
)

__all__ = [
    "PageCacheMiddleware",
    "RequestLoggingMiddleware",
    "build_response_cache_key",
    "with_cache",
    "with_cache_invalidation",
]
