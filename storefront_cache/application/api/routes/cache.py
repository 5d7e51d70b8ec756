"""
Cache Administration Routes

    POST /cache/invalidate   bulk invalidation (bearer token)
    GET  /cache/stats        counters and store figures (header required in production)
    POST /cache/warmup       warmup from the storefront (bearer token)

Unauthorized requests are answered by the AdminAuthorizationError handler
registered in create_app().
"""

from fastapi import APIRouter, Depends, status

from storefront_cache.application.api.dependencies import (
    InvalidatorDep,
    StatsServiceDep,
    WarmupServiceDep,
    require_admin_token,
    require_stats_access,
)
from storefront_cache.application.api.models.cache import (
    CacheStatsResponse,
    InvalidateRequest,
    InvalidateResponse,
    WarmupRequest,
    WarmupResponse,
)
from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])


@router.post(
    "/invalidate",
    response_model=InvalidateResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin_token)],
)
async def invalidate_cache(body: InvalidateRequest, invalidator: InvalidatorDep) -> InvalidateResponse:
    result = await invalidator.invalidate(body.type, body.value, tags=body.tags, keys=body.keys)
    return InvalidateResponse(success=result.success, message=result.message, invalidated=result.invalidated)


@router.get(
    "/stats",
    response_model=CacheStatsResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_stats_access)],
)
async def cache_stats(stats_service: StatsServiceDep) -> CacheStatsResponse:
    return CacheStatsResponse(data=await stats_service.collect())


@router.post(
    "/warmup",
    response_model=WarmupResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin_token)],
)
async def warmup_cache(body: WarmupRequest, warmup_service: WarmupServiceDep) -> WarmupResponse:
    logger.info("Cache warmup requested", warmup_type=body.type.value, items=len(body.items))
    return await warmup_service.run(body.type, body.items, body.config)
