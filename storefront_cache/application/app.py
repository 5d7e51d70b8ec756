#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Builds the cache service: store adapter, CacheManager and storefront client
are created once per process in the lifespan and published on `app.state`
for the dependency providers.

Architecture:
    create_app()
        ├── RequestLoggingMiddleware (request id + access log)
        ├── CORSMiddleware
        ├── /                      service info
        ├── /health                store health
        └── {API_BASE_PATH}/cache  invalidate / stats / warmup

Author: System Architect
Date: 2025-12-13
"""

from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront_cache.application.api.middleware import RequestLoggingMiddleware
from storefront_cache.application.api.routes import cache_router
from storefront_cache.core.config.constants import HEADER_CACHE_KEY, HEADER_CACHE_STATUS, HEADER_REQUEST_ID, Stage
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import (
    AdminAuthorizationError,
    CacheConnectionError,
    StorefrontCacheError,
)
from storefront_cache.core.interfaces.cache import KeyValueStore
from storefront_cache.core.logging.logger import get_logger, get_request_id, log_stage, setup_logging
from storefront_cache.infrastructure.cache.cache_manager import CacheManager
from storefront_cache.infrastructure.cache.redis_client import RedisClient
from storefront_cache.infrastructure.storefront.client import StorefrontClient

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect the store and open the storefront client; undo both on shutdown.

    An unreachable store does not abort startup: every cache read then
    degrades to a miss and every write to a no-op.
    """
    settings: Settings = app.state.settings
    store: KeyValueStore = app.state.store

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting Storefront Cache Service",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    async with AsyncExitStack() as stack:
        try:
            await store.connect()
            log_stage(logger, Stage.STORE_CONNECT, "Store connected")
        except CacheConnectionError as e:
            log_stage(
                logger, Stage.STORE_CONNECT, "Store unavailable, running degraded",
                level="warning", error=e.message,
            )

        app.state.cache_manager = CacheManager(store, settings)
        app.state.storefront = await stack.enter_async_context(app.state.storefront)

        logger.info("Application startup complete")

        try:
            yield
        finally:
            logger.info("Shutting down application")
            await store.disconnect()
            logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    settings: Settings | None = None,
    store: KeyValueStore | None = None,
    storefront: StorefrontClient | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Defaults to get_settings()
        store: KeyValueStore; defaults to a RedisClient for the settings
        storefront: Storefront client used by warmup

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Tag-aware Redis cache layer for the storefront",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.store = store or RedisClient(settings)
    app.state.storefront = storefront or StorefrontClient(
        settings.app.STOREFRONT_BASE_URL, timeout=settings.app.STOREFRONT_TIMEOUT
    )

    # Last added runs first: request ids are bound before CORS handling
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID, HEADER_CACHE_STATUS, HEADER_CACHE_KEY],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(cache_router, prefix=settings.API_BASE_PATH)

    _register_root_routes(app)
    _register_exception_handlers(app)

    return app


def _register_root_routes(app: FastAPI) -> None:
    @app.get("/", tags=["Root"])
    async def root(request: Request):
        settings: Settings = request.app.state.settings
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/health", tags=["Health"])
    async def health(request: Request):
        report = await request.app.state.cache_manager.health_check()
        status_code = 200 if report["status"] == "healthy" else 503
        return JSONResponse(status_code=status_code, content=report)


# ============================================================================
# Exception Handlers
# ============================================================================


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AdminAuthorizationError)
    async def admin_authorization_handler(request: Request, exc: AdminAuthorizationError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})

    @app.exception_handler(StorefrontCacheError)
    async def storefront_cache_error_handler(request: Request, exc: StorefrontCacheError):
        if exc.request_id is None:
            exc.request_id = get_request_id()
        logger.error(
            f"Storefront cache exception: {exc.message}",
            error_type=type(exc).__name__,
            status_code=exc.status_code,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Create application instance
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "storefront_cache.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
