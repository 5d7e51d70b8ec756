"""
Storefront Cache Service

Key/tag based caching layer for the storefront: a CacheManager over Redis,
access-pattern strategies, bulk invalidation, warmup orchestration and the
HTTP response-cache middleware that consumes them.
"""

__version__ = "1.0.0"
