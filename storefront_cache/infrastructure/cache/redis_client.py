"""
Redis Client with Connection Pooling

Implements the KeyValueStore protocol over redis.asyncio. Every key passed in
is a logical key; the client applies REDIS_KEY_PREFIX on the way in and strips
it from SCAN results on the way out.

Architecture:
    RedisClient (Public API, KeyValueStore)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution with error translation)
        └── HealthMonitor (Health checks and pool metrics)

Error translation:
    redis ConnectionError / TimeoutError  → CacheConnectionError
    any other RedisError                  → CacheKeyError

Author: System Architect
Date: 2025-12-13
"""

from __future__ import annotations

import time
from typing import Any, NoReturn, Sequence

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from storefront_cache.core.config.constants import Stage
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import CacheConnectionError, CacheKeyError
from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

# Deletes KEYS[1] only while it still holds the caller's token
RELEASE_IF_EQUALS_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""

# Number of leading key arguments per batchable command (None = every argument)
BATCH_KEY_ARGS: dict[str, int | None] = {
    "get": 1,
    "set": 1,
    "expire": 1,
    "ttl": 1,
    "sadd": 1,
    "smembers": 1,
    "delete": None,
    "unlink": None,
    "exists": None,
}


def _raise_store_error(error: RedisError, operation: str, **details) -> NoReturn:
    """Log and translate a redis-py error into the cache exception hierarchy."""
    logger.error(
        f"Redis {operation} failed",
        stage=Stage.STORE_OPERATION.value,
        operation=operation,
        error=str(error),
        **details,
    )
    if isinstance(error, (ConnectionError, TimeoutError)):
        raise CacheConnectionError(
            message=f"Redis {operation} failed: {error}", details=details
        ) from error
    raise CacheKeyError(message=f"Redis {operation} failed: {error}", details=details) from error


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration (from settings.redis):
    - Max connections: REDIS_MAX_CONNECTIONS
    - Socket / connect timeouts
    - Health check interval
    - Decoded (str) responses
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-R.1: Connection establishment

        Raises:
            CacheConnectionError: If the server cannot be reached
        """
        if self._is_connected and self._client:
            return self._client

        redis_settings = self._settings.redis
        self._pool = ConnectionPool(
            host=redis_settings.REDIS_HOST,
            port=redis_settings.REDIS_PORT,
            db=redis_settings.REDIS_DB,
            password=redis_settings.REDIS_PASSWORD,
            max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
            retry_on_timeout=True,
            health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
            decode_responses=True,
        )
        self._client = redis.Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage=Stage.STORE_CONNECT.value, error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"host": redis_settings.REDIS_HOST, "port": redis_settings.REDIS_PORT},
            ) from e

        self._is_connected = True
        logger.info(
            "Redis connected successfully",
            stage=Stage.STORE_CONNECT.value,
            host=redis_settings.REDIS_HOST,
            port=redis_settings.REDIS_PORT,
            db=redis_settings.REDIS_DB,
        )
        return self._client

    async def disconnect(self) -> None:
        """STAGE-R.1: Connection cleanup"""
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()

        self._client = None
        self._pool = None
        self._is_connected = False
        logger.info("Redis disconnected", stage=Stage.STORE_CONNECT.value)

    async def ping(self) -> bool:
        try:
            if self._client and self._is_connected:
                return bool(await self._client.ping())
        except RedisError:
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Executes Redis commands against physical (prefixed) keys
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error translation and logging.

    Works on physical keys only; prefixing is the public API's concern.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client
        self._release_script = redis_client.register_script(RELEASE_IF_EQUALS_SCRIPT)

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            _raise_store_error(e, "GET", key=key)

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        """
        SET with optional expiry and create-if-absent.

        Returns:
            True if written, False if nx was requested and the key existed
        """
        try:
            result = await self._redis.set(key, value, ex=ttl, nx=nx)
            return bool(result)
        except RedisError as e:
            _raise_store_error(e, "SET", key=key)

    async def delete(self, *keys: str) -> int:
        try:
            return int(await self._redis.delete(*keys))
        except RedisError as e:
            _raise_store_error(e, "DEL", keys=list(keys))

    async def exists(self, *keys: str) -> int:
        try:
            return int(await self._redis.exists(*keys))
        except RedisError as e:
            _raise_store_error(e, "EXISTS", keys=list(keys))

    async def expire(self, key: str, ttl: int) -> bool:
        try:
            return bool(await self._redis.expire(key, ttl))
        except RedisError as e:
            _raise_store_error(e, "EXPIRE", key=key)

    async def sadd(self, key: str, *members: str) -> int:
        try:
            return int(await self._redis.sadd(key, *members))
        except RedisError as e:
            _raise_store_error(e, "SADD", key=key)

    async def smembers(self, key: str) -> set[str]:
        try:
            return set(await self._redis.smembers(key))
        except RedisError as e:
            _raise_store_error(e, "SMEMBERS", key=key)

    async def scan(self, pattern: str, count: int) -> list[str]:
        """SCAN-based key listing; never issues KEYS."""
        try:
            return [key async for key in self._redis.scan_iter(match=pattern, count=count)]
        except RedisError as e:
            _raise_store_error(e, "SCAN", pattern=pattern)

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        try:
            return bool(await self._release_script(keys=[key], args=[expected]))
        except RedisError as e:
            _raise_store_error(e, "EVALSHA", key=key)

    async def flushdb(self) -> bool:
        try:
            return bool(await self._redis.flushdb())
        except RedisError as e:
            _raise_store_error(e, "FLUSHDB")

    async def dbsize(self) -> int:
        try:
            return int(await self._redis.dbsize())
        except RedisError as e:
            _raise_store_error(e, "DBSIZE")

    async def info(self, section: str | None = None) -> dict[str, Any]:
        try:
            if section:
                return await self._redis.info(section)
            return await self._redis.info()
        except RedisError as e:
            _raise_store_error(e, "INFO", section=section)

    async def pipeline(self, commands: Sequence[tuple[str, tuple, dict]]) -> list[Any]:
        """
        Run commands in a single non-transactional pipeline.

        Per-command errors are returned inline as CacheKeyError instead of
        aborting the batch.
        """
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                for command, args, kwargs in commands:
                    getattr(pipe, command)(*args, **kwargs)
                results = await pipe.execute(raise_on_error=False)
        except RedisError as e:
            _raise_store_error(e, "PIPELINE", size=len(commands))

        return [
            CacheKeyError(f"Redis pipeline command failed: {result}") if isinstance(result, RedisError) else result
            for result in results
        ]


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Health checks with ping latency and pool utilization.

    Pool exhaustion warning when more than 80% of connections are in use.
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "host": self._settings.redis.REDIS_HOST,
            "port": self._settings.redis.REDIS_PORT,
            "pool_size": 0,
            "pool_utilization_pct": 0.0,
            "pool_warning": False,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)
            return health

        pool = self._conn_mgr.get_pool()
        if pool:
            health["pool_size"] = pool.max_connections
            in_use = len(getattr(pool, "_in_use_connections", ()))
            utilization = 100.0 * in_use / pool.max_connections if pool.max_connections else 0.0
            health["pool_utilization_pct"] = round(utilization, 1)
            if utilization > 80:
                health["pool_warning"] = True
                logger.warning(
                    "Redis pool utilization high",
                    pool_utilization=utilization,
                    max_connections=pool.max_connections,
                )

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client implementing the KeyValueStore protocol.

    Usage:
        client = RedisClient(settings)
        await client.connect()

        await client.set("cache:product:1", "{...}", ttl=3600)
        value = await client.get("cache:product:1")

        await client.disconnect()
    """

    def __init__(self, settings: Settings | None = None):
        """STAGE-R.1: Client initialization"""
        self._settings = settings or get_settings()
        self._prefix = self._settings.redis.REDIS_KEY_PREFIX

        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)

    @property
    def key_prefix(self) -> str:
        return self._prefix

    async def connect(self) -> None:
        """
        Raises:
            CacheConnectionError: If connection fails
        """
        client = await self._conn_mgr.connect()
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()
        self._executor = None

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    # -------------------------------------------------------------------------
    # Key prefixing
    # -------------------------------------------------------------------------

    def _physical(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _logical(self, key: str) -> str:
        if self._prefix and key.startswith(self._prefix):
            return key[len(self._prefix):]
        return key

    def _require_executor(self) -> OperationExecutor:
        if self._executor is None:
            raise CacheConnectionError(
                "Redis client is not connected",
                details={"host": self._settings.redis.REDIS_HOST},
            ).with_suggestion("Call connect() during application startup")
        return self._executor

    # -------------------------------------------------------------------------
    # KeyValueStore operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._require_executor().get(self._physical(key))

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        return await self._require_executor().set(self._physical(key), value, ttl=ttl, nx=nx)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._require_executor().delete(*(self._physical(k) for k in keys))

    async def exists(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._require_executor().exists(*(self._physical(k) for k in keys))

    async def expire(self, key: str, ttl: int) -> bool:
        return await self._require_executor().expire(self._physical(key), ttl)

    async def sadd(self, key: str, *members: str) -> int:
        return await self._require_executor().sadd(self._physical(key), *members)

    async def smembers(self, key: str) -> set[str]:
        return await self._require_executor().smembers(self._physical(key))

    async def scan_keys(self, pattern: str, count: int = 100) -> list[str]:
        """Return logical keys matching the glob pattern."""
        keys = await self._require_executor().scan(self._physical(pattern), count)
        return [self._logical(k) for k in keys]

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        return await self._require_executor().delete_if_equals(self._physical(key), expected)

    async def flush(self) -> bool:
        """FLUSHDB on the configured database."""
        return await self._require_executor().flushdb()

    async def dbsize(self) -> int:
        return await self._require_executor().dbsize()

    async def info(self, section: str | None = None) -> dict[str, Any]:
        return await self._require_executor().info(section)

    async def execute_batch(self, commands: Sequence[tuple]) -> list[Any]:
        """
        Execute (command, args[, kwargs]) tuples in one round-trip.

        Only commands listed in BATCH_KEY_ARGS are accepted, so every key
        argument can be prefixed.
        """
        prepared: list[tuple[str, tuple, dict]] = []
        for entry in commands:
            command, args = entry[0], tuple(entry[1])
            kwargs = dict(entry[2]) if len(entry) > 2 else {}
            if command not in BATCH_KEY_ARGS:
                raise CacheKeyError(
                    f"Unsupported batch command: {command}",
                    details={"command": command, "supported": sorted(BATCH_KEY_ARGS)},
                )
            key_count = BATCH_KEY_ARGS[command]
            if key_count is None:
                key_count = len(args)
            args = tuple(self._physical(a) for a in args[:key_count]) + args[key_count:]
            prepared.append((command, args, kwargs))

        if not prepared:
            return []
        return await self._require_executor().pipeline(prepared)

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()
