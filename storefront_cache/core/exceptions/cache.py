"""
Cache-Related Exceptions

Raised by the Redis adapter and the serialization layer. CacheManager
catches every CacheError and degrades to a miss or a failed write.

Author: System Architect
Date: 2025-12-08
"""

from storefront_cache.core.exceptions.base import StorefrontCacheError


class CacheError(StorefrontCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when the store cannot be reached.

    Common causes:
    - Redis server is down
    - Network connectivity issues or timeouts
    - Incorrect host/port configuration
    - Authentication failure
    """

    status_code = 503


class CacheKeyError(CacheError):
    """
    Raised when a store command fails for a reachable server.

    Common causes:
    - Wrong value type at key (e.g. SMEMBERS on a string)
    - Memory limit exceeded
    - Script errors
    """
    pass


class CacheSerializationError(CacheError):
    """Raised when a value cannot be encoded, decoded or decompressed."""
    pass
