from .cache import (
    CacheStatsResponse,
    InvalidateRequest,
    InvalidateResponse,
    WarmupConfig,
    WarmupRequest,
    WarmupResponse,
)

__all__ = [
    "CacheStatsResponse",
    "InvalidateRequest",
    "InvalidateResponse",
    "WarmupConfig",
    "WarmupRequest",
    "WarmupResponse",
]
