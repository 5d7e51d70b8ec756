"""
Configuration Module

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Key namespaces, header names and enums (Stage, InvalidationType, WarmupType)

Usage:
------
```python
from storefront_cache.core.config import get_settings
from storefront_cache.core.config.constants import Stage

settings = get_settings()
ttl = settings.cache.CACHE_DEFAULT_TTL
```

Testing:
-------
```python
os.environ["CACHE_ADMIN_TOKEN"] = "secret"
settings = reload_settings()
assert settings.security.CACHE_ADMIN_TOKEN == "secret"
```
"""

from storefront_cache.core.config.constants import (
    CACHE_KEY_PREFIX,
    COMPRESSION_MARKER,
    HEADER_CACHE_KEY,
    HEADER_CACHE_STATUS,
    HEADER_REQUEST_ID,
    LOCK_KEY_PREFIX,
    TAG_KEY_PREFIX,
    InvalidationType,
    Stage,
    WarmupType,
)
from storefront_cache.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "InvalidationType",
    "WarmupType",
    # Constants
    "CACHE_KEY_PREFIX",
    "TAG_KEY_PREFIX",
    "LOCK_KEY_PREFIX",
    "COMPRESSION_MARKER",
    "HEADER_REQUEST_ID",
    "HEADER_CACHE_STATUS",
    "HEADER_CACHE_KEY",
]
