"""
Bulk Cache Invalidation

Single entry point for administrative invalidation by tag, key, glob pattern
or full flush, with optional extra tag/key lists, plus the admin token check
that guards it.
"""

import hmac
from collections.abc import Sequence
from dataclasses import dataclass

from storefront_cache.core.config.constants import InvalidationType, Stage
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.cache_manager import CacheManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvalidationResult:
    success: bool
    message: str
    invalidated: int


def is_valid_admin_token(provided: str | None, configured: str | None) -> bool:
    """
    Constant-time comparison of a presented token with the configured secret.

    Fails closed: no configured secret means no token is ever valid.
    """
    if not configured:
        log_stage(logger, Stage.ADMIN_AUTH, "CACHE_ADMIN_TOKEN not configured", level="warning")
        return False
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), configured.encode("utf-8"))


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of an 'Authorization: Bearer <token>' header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class CacheInvalidator:
    """
    Runs one invalidation request against the CacheManager.

    Usage:
        invalidator = CacheInvalidator(cache)
        result = await invalidator.invalidate("tag", "products", keys=["home"])
    """

    def __init__(self, cache: CacheManager, pattern_batch_size: int = 100):
        self._cache = cache
        self._pattern_batch_size = pattern_batch_size

    async def invalidate(
        self,
        invalidation_type: InvalidationType | str,
        value: str | None = None,
        tags: Sequence[str] | None = None,
        keys: Sequence[str] | None = None,
    ) -> InvalidationResult:
        """
        STAGE-O.1: Bulk invalidation

        Raises:
            ValueError: Unknown type, or missing value for tag/key/pattern
        """
        invalidation_type = InvalidationType(invalidation_type)
        if invalidation_type is not InvalidationType.ALL and not value:
            raise ValueError(f"{invalidation_type.value.capitalize()} value is required")

        success = True
        if invalidation_type is InvalidationType.TAG:
            invalidated = await self._cache.invalidate_tag(value)
            message = f"Invalidated {invalidated} keys for tag: {value}"

        elif invalidation_type is InvalidationType.KEY:
            deleted = await self._cache.delete(value)
            invalidated = 1 if deleted else 0
            message = f"Invalidated key: {value}" if deleted else f"Key not found: {value}"

        elif invalidation_type is InvalidationType.PATTERN:
            invalidated = await self._cache.delete_matching(value, batch_size=self._pattern_batch_size)
            message = f"Invalidated {invalidated} keys matching pattern: {value}"

        else:
            invalidated = 0
            success = await self._cache.flush()
            message = "All cache cleared successfully" if success else "Failed to clear cache"

        if tags:
            for tag in tags:
                invalidated += await self._cache.invalidate_tag(tag)
            message += f" | Invalidated {len(tags)} additional tags"

        if keys:
            for key in keys:
                if await self._cache.delete(key):
                    invalidated += 1
            message += f" | Invalidated {len(keys)} additional keys"

        log_stage(
            logger,
            Stage.INVALIDATION,
            "Cache invalidation complete",
            invalidation_type=invalidation_type.value,
            value=value,
            invalidated=invalidated,
            success=success,
        )
        return InvalidationResult(success=success, message=message, invalidated=invalidated)
