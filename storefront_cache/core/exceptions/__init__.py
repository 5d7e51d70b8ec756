"""
Exception Module

Module Structure:
-----------------
- **base.py**: StorefrontCacheError base class + ConfigurationError
- **cache.py**: Store and serialization exceptions
- **auth.py**: Admin authorization exceptions
- **warmup.py**: Warmup source exceptions

Usage:
------
```python
from storefront_cache.core.exceptions import CacheConnectionError, AdminAuthorizationError
```
"""

from storefront_cache.core.exceptions.auth import AdminAuthorizationError, AuthorizationError
from storefront_cache.core.exceptions.base import ConfigurationError, StorefrontCacheError
from storefront_cache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
)
from storefront_cache.core.exceptions.warmup import StorefrontFetchError, WarmupError

__all__ = [
    # Base
    "StorefrontCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheSerializationError",
    # Auth
    "AuthorizationError",
    "AdminAuthorizationError",
    # Warmup
    "WarmupError",
    "StorefrontFetchError",
]
