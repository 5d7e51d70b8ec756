"""
Unit Tests for the Redis KeyValueStore Adapter

redis.asyncio is replaced by mocks; these tests cover key prefixing, error
translation and batch preparation, not Redis itself.
"""

from typing import get_type_hints
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from storefront_cache.core.exceptions import CacheConnectionError, CacheKeyError
from storefront_cache.core.interfaces.cache import KeyValueStore
from storefront_cache.infrastructure.cache.redis_client import OperationExecutor, RedisClient
from tests.test_fixtures import CacheTestFactory, InMemoryKeyValueStore


def make_redis_mock() -> MagicMock:
    mock_redis = MagicMock()
    mock_redis.register_script.return_value = AsyncMock(return_value=1)
    for command in ("get", "set", "delete", "exists", "expire", "sadd", "smembers", "flushdb", "dbsize", "info"):
        setattr(mock_redis, command, AsyncMock())
    return mock_redis


@pytest.fixture
def redis_mock():
    return make_redis_mock()


@pytest.fixture
def executor(redis_mock):
    return OperationExecutor(redis_mock)


@pytest.fixture
def redis_client():
    client = RedisClient(CacheTestFactory.settings(REDIS_KEY_PREFIX="shop:"))
    client._executor = AsyncMock(spec=OperationExecutor)
    return client


@pytest.mark.unit
class TestOperationExecutor:
    @pytest.mark.asyncio
    async def test_set_passes_ttl_and_nx(self, executor, redis_mock):
        redis_mock.set.return_value = None

        assert await executor.set("lock:k", "token", ttl=30, nx=True) is False
        redis_mock.set.assert_awaited_once_with("lock:k", "token", ex=30, nx=True)

    @pytest.mark.asyncio
    async def test_connection_errors_translate(self, executor, redis_mock):
        redis_mock.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(CacheConnectionError):
            await executor.get("k")

    @pytest.mark.asyncio
    async def test_command_errors_translate(self, executor, redis_mock):
        redis_mock.smembers.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(CacheKeyError):
            await executor.smembers("k")

    @pytest.mark.asyncio
    async def test_scan_uses_scan_iter(self, executor, redis_mock):
        async def scan_iter(match, count):
            for key in ("shop:cache:a", "shop:cache:b"):
                yield key

        redis_mock.scan_iter = scan_iter

        assert await executor.scan("shop:cache:*", 100) == ["shop:cache:a", "shop:cache:b"]

    @pytest.mark.asyncio
    async def test_delete_if_equals_runs_release_script(self, executor, redis_mock):
        assert await executor.delete_if_equals("lock:k", "token") is True

        redis_mock.register_script.return_value.assert_awaited_once_with(keys=["lock:k"], args=["token"])

    @pytest.mark.asyncio
    async def test_pipeline_returns_errors_inline(self, executor, redis_mock):
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[1, ResponseError("WRONGTYPE")])
        redis_mock.pipeline.return_value.__aenter__.return_value = pipe

        results = await executor.pipeline([("delete", ("a",), {}), ("delete", ("b",), {})])

        redis_mock.pipeline.assert_called_once_with(transaction=False)
        pipe.execute.assert_awaited_once_with(raise_on_error=False)
        assert results[0] == 1
        assert isinstance(results[1], CacheKeyError)


@pytest.mark.unit
class TestRedisClient:
    def test_satisfies_protocol(self):
        assert isinstance(RedisClient(CacheTestFactory.settings()), KeyValueStore)

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        client = RedisClient(CacheTestFactory.settings())

        with pytest.raises(CacheConnectionError):
            await client.get("k")

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, redis_client):
        await redis_client.get("cache:k")
        await redis_client.set("lock:cache:k", "t", ttl=30, nx=True)
        await redis_client.delete("a", "b")
        await redis_client.sadd("tag:products", "cache:k")

        executor = redis_client._executor
        executor.get.assert_awaited_once_with("shop:cache:k")
        executor.set.assert_awaited_once_with("shop:lock:cache:k", "t", ttl=30, nx=True)
        executor.delete.assert_awaited_once_with("shop:a", "shop:b")
        executor.sadd.assert_awaited_once_with("shop:tag:products", "cache:k")

    @pytest.mark.asyncio
    async def test_empty_delete_skips_round_trip(self, redis_client):
        assert await redis_client.delete() == 0
        redis_client._executor.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scan_strips_prefix(self, redis_client):
        redis_client._executor.scan.return_value = ["shop:cache:a", "shop:cache:b"]

        keys = await redis_client.scan_keys("cache:*", count=50)

        redis_client._executor.scan.assert_awaited_once_with("shop:cache:*", 50)
        assert keys == ["cache:a", "cache:b"]

    @pytest.mark.asyncio
    async def test_batch_prefixes_key_arguments_only(self, redis_client):
        redis_client._executor.pipeline.return_value = [1, 1, 2]

        await redis_client.execute_batch(
            [
                ("sadd", ("tag:t", "cache:k")),
                ("set", ("cache:k", "v"), {"ex": 10}),
                ("delete", ("cache:a", "cache:b")),
            ]
        )

        redis_client._executor.pipeline.assert_awaited_once_with(
            [
                ("sadd", ("shop:tag:t", "cache:k"), {}),
                ("set", ("shop:cache:k", "v"), {"ex": 10}),
                ("delete", ("shop:cache:a", "shop:cache:b"), {}),
            ]
        )

    @pytest.mark.asyncio
    async def test_batch_rejects_unknown_commands(self, redis_client):
        with pytest.raises(CacheKeyError, match="Unsupported batch command"):
            await redis_client.execute_batch([("flushall", ())])

    @pytest.mark.asyncio
    async def test_empty_batch(self, redis_client):
        assert await redis_client.execute_batch([]) == []

    @pytest.mark.asyncio
    async def test_health_check_without_connection(self):
        health = await RedisClient(CacheTestFactory.settings()).health_check()

        assert health["status"] == "unhealthy"
        assert health["connected"] is False


@pytest.mark.unit
class TestStoreSignatures:
    """Store classes define a `set` method; `set[str]` annotations must still mean the builtin."""

    @pytest.mark.parametrize(
        "store_type", [KeyValueStore, OperationExecutor, RedisClient, InMemoryKeyValueStore]
    )
    def test_smembers_returns_builtin_set(self, store_type):
        assert get_type_hints(store_type.smembers)["return"] == set[str]

    def test_in_memory_store_satisfies_protocol(self):
        assert isinstance(CacheTestFactory.in_memory_store(), KeyValueStore)
