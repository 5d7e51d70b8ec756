"""
Cache Infrastructure

- **redis_client.py**: KeyValueStore implementation over redis.asyncio
- **serializers.py**: JSON / raw / typed serializers and compression
- **cache_manager.py**: CacheManager (keys, tags, stats, stampede lock)
- **strategies.py**: cache-aside, write-through, write-behind, multi-level, time-based
- **invalidation.py**: bulk invalidation and admin token check
- **warmup.py**: batched concurrent warmup
- **helpers.py**: namespaced entity helpers
- **decorators.py**: `cached` decorator
"""

from storefront_cache.infrastructure.cache.cache_manager import CacheManager, CacheStats
from storefront_cache.infrastructure.cache.decorators import cached
from storefront_cache.infrastructure.cache.helpers import CacheHelpers
from storefront_cache.infrastructure.cache.invalidation import (
    CacheInvalidator,
    InvalidationResult,
    is_valid_admin_token,
)
from storefront_cache.infrastructure.cache.redis_client import RedisClient
from storefront_cache.infrastructure.cache.strategies import (
    CacheAsideStrategy,
    MultiLevelCache,
    StrategyConfig,
    TimeBasedCache,
    WriteBehindCache,
    WriteThroughCache,
    create_strategy,
)
from storefront_cache.infrastructure.cache.warmup import CacheWarmer, WarmupResult

__all__ = [
    "CacheAsideStrategy",
    "CacheHelpers",
    "CacheInvalidator",
    "CacheManager",
    "CacheStats",
    "CacheWarmer",
    "InvalidationResult",
    "MultiLevelCache",
    "RedisClient",
    "StrategyConfig",
    "TimeBasedCache",
    "WarmupResult",
    "WriteBehindCache",
    "WriteThroughCache",
    "cached",
    "create_strategy",
    "is_valid_admin_token",
]
