"""
Warmup Exceptions

Author: System Architect
Date: 2025-12-08
"""

from storefront_cache.core.exceptions.base import StorefrontCacheError


class WarmupError(StorefrontCacheError):
    """Raised when a warmup item cannot be fetched from its source."""
    pass


class StorefrontFetchError(WarmupError):
    """Raised when the storefront API answers with an error or is unreachable."""

    status_code = 502
