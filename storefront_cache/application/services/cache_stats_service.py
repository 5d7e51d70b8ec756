"""
Cache statistics assembly for the stats route.
"""

from storefront_cache.application.api.models.cache import CacheStatsData, StoreOperations
from storefront_cache.infrastructure.cache.cache_manager import CacheManager


def format_uptime(seconds: int) -> str:
    """
    Human readable uptime.

    Examples:
        >>> format_uptime(93784)
        '1d 2h 3m'
        >>> format_uptime(45)
        '45s'
    """
    days, remainder = divmod(max(seconds, 0), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class CacheStatsService:
    def __init__(self, cache: CacheManager):
        self._cache = cache

    async def collect(self) -> CacheStatsData:
        """Local counters plus best-effort server figures; never raises for store failures."""
        stats = await self._cache.get_stats()
        server = await self._cache.get_server_info()

        return CacheStatsData(
            hits=stats.hits,
            misses=stats.misses,
            errors=stats.errors,
            keys=stats.keys,
            memory=stats.memory,
            hit_rate=round(stats.hit_rate * 100, 2),
            uptime=format_uptime(server.get("uptime_in_seconds", 0)),
            connections=server.get("connected_clients", 0),
            operations=StoreOperations(
                keyspace_hits=server.get("keyspace_hits", 0),
                keyspace_misses=server.get("keyspace_misses", 0),
                evicted_keys=server.get("evicted_keys", 0),
            ),
        )
