"""
Cache Admin API Models
======================

Request and response bodies for the cache administration routes. JSON fields
are camelCase on the wire (`hitRate`, `warmedUp`) and snake_case in Python;
both spellings are accepted on input.

Missing values that depend on the request type (a tag value, custom warmup
items) are checked by the services, which raise ValueError (400).
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront_cache.core.config.constants import InvalidationType, WarmupType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# INVALIDATION
# ============================================================================


class InvalidateRequest(CamelModel):
    """
    Example:
        {"type": "tag", "value": "products", "keys": ["home"]}
    """

    type: InvalidationType = Field(..., description="tag, key, pattern or all")
    value: str | None = Field(default=None, description="Tag, key or glob pattern")
    tags: list[str] = Field(default_factory=list, description="Additional tags to invalidate")
    keys: list[str] = Field(default_factory=list, description="Additional keys to delete")


class InvalidateResponse(CamelModel):
    success: bool
    message: str
    invalidated: int = Field(..., ge=0)


# ============================================================================
# STATISTICS
# ============================================================================


class StoreOperations(CamelModel):
    keyspace_hits: int = 0
    keyspace_misses: int = 0
    evicted_keys: int = 0


class CacheStatsData(CamelModel):
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    keys: int = Field(..., ge=0)
    memory: str
    hit_rate: float = Field(..., ge=0, le=100, description="Hit rate in percent, 2 decimals")
    uptime: str = "0s"
    connections: int = 0
    operations: StoreOperations = Field(default_factory=StoreOperations)


class CacheStatsResponse(CamelModel):
    success: bool = True
    data: CacheStatsData


# ============================================================================
# WARMUP
# ============================================================================


class WarmupConfig(CamelModel):
    concurrency: int = Field(default=5, ge=1, le=50)
    ttl: int = Field(default=3600, ge=1)
    tags: list[str] = Field(default_factory=lambda: ["warmup"])


class WarmupRequest(CamelModel):
    """
    Example:
        {"type": "custom", "items": ["/boutique", "product:42"], "config": {"concurrency": 3}}
    """

    type: WarmupType
    items: list[str] = Field(default_factory=list)
    config: WarmupConfig = Field(default_factory=WarmupConfig)


class WarmupResponse(CamelModel):
    success: bool
    message: str
    warmed_up: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    duration: int = Field(..., ge=0, description="Milliseconds")
