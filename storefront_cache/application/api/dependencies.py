"""
FastAPI Dependencies
====================

Application singletons (settings, CacheManager, storefront client) are built
once in the lifespan and stored on `app.state`; these providers hand them to
route handlers. Tests swap them with `app.dependency_overrides`.
"""

from typing import Annotated

from fastapi import Depends, Header, Request

from storefront_cache.application.services.cache_stats_service import CacheStatsService
from storefront_cache.application.services.warmup_service import WarmupService
from storefront_cache.core.config.constants import Stage
from storefront_cache.core.config.settings import Settings
from storefront_cache.core.exceptions import AdminAuthorizationError
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.cache_manager import CacheManager
from storefront_cache.infrastructure.cache.invalidation import (
    CacheInvalidator,
    extract_bearer_token,
    is_valid_admin_token,
)
from storefront_cache.infrastructure.cache.warmup import CacheWarmer
from storefront_cache.infrastructure.storefront.client import StorefrontClient

logger = get_logger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache_manager(request: Request) -> CacheManager:
    """The CacheManager built during startup."""
    return request.app.state.cache_manager


def get_storefront(request: Request) -> StorefrontClient:
    return request.app.state.storefront


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]


def get_invalidator(cache: CacheManagerDep, settings: SettingsDep) -> CacheInvalidator:
    return CacheInvalidator(cache, pattern_batch_size=settings.cache.CACHE_PATTERN_DELETE_BATCH)


def get_stats_service(cache: CacheManagerDep) -> CacheStatsService:
    return CacheStatsService(cache)


def get_warmup_service(
    cache: CacheManagerDep,
    storefront: Annotated[StorefrontClient, Depends(get_storefront)],
) -> WarmupService:
    return WarmupService(CacheWarmer(cache), storefront)


async def require_admin_token(
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """
    Bearer token check for invalidation and warmup.

    Raises:
        AdminAuthorizationError: Missing or wrong token, or no token configured
    """
    token = extract_bearer_token(authorization)
    if not is_valid_admin_token(token, settings.security.CACHE_ADMIN_TOKEN):
        log_stage(logger, Stage.ADMIN_AUTH, "Admin request rejected", level="warning")
        raise AdminAuthorizationError("Unauthorized")


async def require_stats_access(
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Stats are open outside production; production requires an Authorization header."""
    if settings.app.ENVIRONMENT == "production" and not authorization:
        raise AdminAuthorizationError("Unauthorized")


InvalidatorDep = Annotated[CacheInvalidator, Depends(get_invalidator)]
StatsServiceDep = Annotated[CacheStatsService, Depends(get_stats_service)]
WarmupServiceDep = Annotated[WarmupService, Depends(get_warmup_service)]
