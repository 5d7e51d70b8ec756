"""
Authorization Exceptions

Author: System Architect
Date: 2025-12-08
"""

from storefront_cache.core.exceptions.base import StorefrontCacheError


class AuthorizationError(StorefrontCacheError):
    """Base exception for authorization failures."""

    status_code = 401


class AdminAuthorizationError(AuthorizationError):
    """
    Raised when a cache admin request carries a missing or wrong bearer token.

    Also raised when no admin token is configured at all, so a
    misconfigured deployment refuses every admin request.
    """
    pass
