"""
Unit Tests for CacheManager

Tests key generation, tag indexing, populate-on-miss with and without the
stampede lock, statistics and degradation when the store is unavailable.
"""

import asyncio

import pytest

from storefront_cache.infrastructure.cache.cache_manager import CacheManager, KeyBuilder
from storefront_cache.infrastructure.cache.serializers import ModelSerializer
from tests.test_fixtures import CacheTestFactory


@pytest.mark.unit
class TestKeyBuilder:
    def test_cache_key_without_tags(self):
        assert KeyBuilder().cache_key("product:1") == "cache:product:1"

    def test_cache_key_with_sorted_tags(self):
        keys = KeyBuilder(sort_tags=True)

        assert keys.cache_key("p", ["b", "a", "b"]) == "cache:p:a:b"
        assert keys.cache_key("p", ["a", "b"]) == keys.cache_key("p", ["b", "a"])

    def test_cache_key_preserves_order_when_not_sorting(self):
        keys = KeyBuilder(sort_tags=False)

        assert keys.cache_key("p", ["b", "a"]) == "cache:p:b:a"

    def test_tag_and_lock_keys(self):
        assert KeyBuilder.tag_key("products") == "tag:products"
        assert KeyBuilder.lock_key("cache:p:products") == "lock:cache:p:products"


@pytest.mark.unit
class TestSetAndGet:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value",
        [{"name": "Robe", "price": 129.5}, [1, 2, 3], "plain text", 42, True],
    )
    async def test_round_trip(self, cache_manager, value):
        assert await cache_manager.set("k", value) is True

        assert await cache_manager.get("k") == value

    @pytest.mark.asyncio
    async def test_round_trip_raw_and_compressed(self, cache_manager, memory_store):
        html = "<html>" + "x" * 5000 + "</html>"

        await cache_manager.set("page:/", html, serialize=False, compress=True)

        stored = memory_store.data["cache:page:/"]
        assert stored.startswith("z1:")
        assert len(stored) < len(html)
        assert await cache_manager.get("page:/", serialize=False, compress=True) == html

    @pytest.mark.asyncio
    async def test_small_payload_is_not_compressed(self, cache_manager, memory_store):
        await cache_manager.set("k", {"a": 1}, compress=True)

        assert memory_store.data["cache:k"] == '{"a":1}'
        assert await cache_manager.get("k", compress=True) == {"a": 1}

    @pytest.mark.asyncio
    async def test_typed_serializer(self, cache_manager):
        serializer = ModelSerializer(dict[str, int])

        await cache_manager.set("counts", {"a": 1}, serializer=serializer)

        assert await cache_manager.get("counts", serializer=serializer) == {"a": 1}

    @pytest.mark.asyncio
    async def test_default_ttl_applied(self, cache_manager, memory_store):
        await cache_manager.set("k", "v")

        assert memory_store.ttl("cache:k") == 3600

    @pytest.mark.asyncio
    async def test_miss_after_expiry(self, cache_manager, clock):
        await cache_manager.set("k", "v", ttl=1)

        clock.advance(2)

        assert await cache_manager.get("k") is None

    @pytest.mark.asyncio
    async def test_tags_are_part_of_identity(self, cache_manager):
        await cache_manager.set("k", "v", tags=["A"])

        assert await cache_manager.get("k") is None
        assert await cache_manager.get("k", tags=["A"]) == "v"

    @pytest.mark.asyncio
    async def test_tag_index_outlives_entry(self, cache_manager, memory_store):
        await cache_manager.set("k", "v", ttl=100, tags=["products"])

        assert memory_store.data["tag:products"] == {"cache:k:products"}
        assert memory_store.ttl("tag:products") == 100 + 3600

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_a_miss(self, cache_manager, memory_store):
        memory_store.data["cache:k"] = "{not json"

        assert await cache_manager.get("k") is None

        stats = await cache_manager.get_stats()
        assert stats.misses == 1
        assert stats.errors == 1


@pytest.mark.unit
class TestDeleteTouchExists:
    @pytest.mark.asyncio
    async def test_delete_reports_removal(self, cache_manager):
        await cache_manager.set("k", "v", tags=["t"])

        assert await cache_manager.delete("k", ["t"]) is True
        assert await cache_manager.delete("k", ["t"]) is False

    @pytest.mark.asyncio
    async def test_touch_updates_ttl_only(self, cache_manager, memory_store):
        await cache_manager.set("k", "v", ttl=10)

        assert await cache_manager.touch("k", 500) is True
        assert memory_store.ttl("cache:k") == 500
        assert await cache_manager.get("k") == "v"
        assert await cache_manager.touch("missing", 500) is False

    @pytest.mark.asyncio
    async def test_exists_does_not_count(self, cache_manager):
        await cache_manager.set("k", "v")

        assert await cache_manager.exists("k") is True
        assert await cache_manager.exists("other") is False

        stats = await cache_manager.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0


@pytest.mark.unit
class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_tag_removes_members(self, cache_manager, memory_store):
        await cache_manager.set("k1", "v1", tags=["T"])
        await cache_manager.set("k2", "v2", tags=["T"])

        removed = await cache_manager.invalidate_tag("T")

        assert removed == 2
        assert await cache_manager.get("k1", tags=["T"]) is None
        assert await cache_manager.get("k2", tags=["T"]) is None
        assert "tag:T" not in memory_store.data

    @pytest.mark.asyncio
    async def test_invalidate_missing_tag_returns_zero(self, cache_manager):
        assert await cache_manager.invalidate_tag("nothing") == 0

    @pytest.mark.asyncio
    async def test_dangling_members_are_not_counted(self, cache_manager):
        await cache_manager.set("k1", "v1", tags=["T"])
        await cache_manager.set("k2", "v2", tags=["T"])
        await cache_manager.delete("k1", ["T"])

        assert await cache_manager.invalidate_tag("T") == 1

    @pytest.mark.asyncio
    async def test_partial_failure_still_drops_index(self, cache_manager, memory_store):
        await cache_manager.set("k1", "v1", tags=["T"])
        await cache_manager.set("k2", "v2", tags=["T"])
        memory_store.failing_delete_keys.add("cache:k1:T")

        removed = await cache_manager.invalidate_tag("T")

        assert removed == 1
        assert "tag:T" not in memory_store.data
        assert "cache:k1:T" in memory_store.data
        assert (await cache_manager.get_stats()).errors == 1

    @pytest.mark.asyncio
    async def test_product_invalidated_by_tag(self, cache_manager):
        await cache_manager.set("product:1", {"name": "Robe"}, ttl=3600, tags=["products"])

        await cache_manager.invalidate_tag("products")

        assert await cache_manager.get("product:1", tags=["products"]) is None

    @pytest.mark.asyncio
    async def test_delete_matching_chunks_deletes(self, cache_manager, memory_store):
        for i in range(7):
            await cache_manager.set(f"product:{i}", i)
        await cache_manager.set("user:1", 1)

        removed = await cache_manager.delete_matching("cache:product:*", batch_size=3)

        assert removed == 7
        assert memory_store.calls.count("delete") == 3
        assert await cache_manager.get("user:1") == 1

    @pytest.mark.asyncio
    async def test_flush_clears_store_and_counters(self, cache_manager, memory_store):
        await cache_manager.set("k", "v")
        await cache_manager.get("k")
        await cache_manager.get("missing")

        assert await cache_manager.flush() is True

        stats = await cache_manager.get_stats()
        assert memory_store.data == {}
        assert (stats.hits, stats.misses, stats.errors) == (0, 0, 0)


@pytest.mark.unit
class TestGetOrSet:
    @pytest.mark.asyncio
    async def test_fetches_once_then_serves_cache(self, cache_manager):
        calls = []

        def fetcher():
            calls.append(1)
            return {"id": 1}

        assert await cache_manager.get_or_set("k", fetcher) == {"id": 1}
        assert await cache_manager.get_or_set("k", fetcher) == {"id": 1}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fetcher_error_propagates_and_nothing_cached(self, cache_manager, memory_store):
        async def fetcher():
            raise RuntimeError("source down")

        with pytest.raises(RuntimeError, match="source down"):
            await cache_manager.get_or_set("k", fetcher)

        assert "cache:k" not in memory_store.data


@pytest.mark.unit
class TestGetOrSetWithLock:
    @pytest.mark.asyncio
    async def test_concurrent_callers_fetch_once(self, cache_manager):
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return {"id": 1}

        results = await asyncio.gather(
            *(cache_manager.get_or_set_with_lock("k", fetcher) for _ in range(10))
        )

        assert calls == 1
        assert all(result == {"id": 1} for result in results)

    @pytest.mark.asyncio
    async def test_lock_released_after_success(self, cache_manager, memory_store):
        await cache_manager.get_or_set_with_lock("k", lambda: "v", tags=["t"])

        assert "lock:cache:k:t" not in memory_store.data

    @pytest.mark.asyncio
    async def test_lock_released_after_fetch_failure(self, cache_manager, memory_store):
        async def fetcher():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache_manager.get_or_set_with_lock("k", fetcher)

        assert "lock:cache:k" not in memory_store.data

    @pytest.mark.asyncio
    async def test_foreign_lock_is_not_released(self, cache_manager, memory_store):
        memory_store.data["lock:cache:k"] = "someone-else"

        value = await cache_manager.get_or_set_with_lock("k", lambda: "v", max_attempts=2)

        assert value == "v"
        assert memory_store.data["lock:cache:k"] == "someone-else"

    @pytest.mark.asyncio
    async def test_exhausted_retries_fall_back_to_unprotected_fetch(self, cache_manager, memory_store):
        memory_store.data["lock:cache:k"] = "held"
        calls = []

        value = await cache_manager.get_or_set_with_lock(
            "k", lambda: calls.append(1) or "fresh", max_attempts=3
        )

        assert value == "fresh"
        assert len(calls) == 1
        assert await cache_manager.get("k") == "fresh"

    @pytest.mark.asyncio
    async def test_lock_store_failure_fetches_directly(self, cache_manager, memory_store):
        memory_store.failing_commands.add("set")

        value = await cache_manager.get_or_set_with_lock("k", lambda: "direct")

        assert value == "direct"

    @pytest.mark.asyncio
    async def test_populated_while_waiting_is_reused(self, cache_manager, memory_store):
        memory_store.data["lock:cache:k"] = "held"
        calls = []

        async def release_with_value():
            await asyncio.sleep(0.01)
            await cache_manager.set("k", "from-holder")
            del memory_store.data["lock:cache:k"]

        releaser = asyncio.create_task(release_with_value())
        value = await cache_manager.get_or_set_with_lock("k", lambda: calls.append(1) or "mine")
        await releaser

        assert value == "from-holder"
        assert calls == []


@pytest.mark.unit
class TestDegradation:
    @pytest.mark.asyncio
    async def test_get_returns_none_when_store_down(self, degraded_cache_manager):
        assert await degraded_cache_manager.get("k") is None

        stats = await degraded_cache_manager.get_stats()
        assert stats.misses == 1
        assert stats.errors == 1

    @pytest.mark.asyncio
    async def test_set_returns_false_when_store_down(self, degraded_cache_manager):
        assert await degraded_cache_manager.set("k", "v") is False
        assert (await degraded_cache_manager.get_stats()).errors == 1

    @pytest.mark.asyncio
    async def test_other_operations_degrade(self, degraded_cache_manager):
        assert await degraded_cache_manager.delete("k") is False
        assert await degraded_cache_manager.exists("k") is False
        assert await degraded_cache_manager.touch("k", 10) is False
        assert await degraded_cache_manager.invalidate_tag("t") == 0
        assert await degraded_cache_manager.delete_matching("cache:*") == 0
        assert await degraded_cache_manager.flush() is False
        assert await degraded_cache_manager.batch([("get", ("k",))]) == []
        assert await degraded_cache_manager.get_server_info() == {}

    @pytest.mark.asyncio
    async def test_get_or_set_still_serves_source(self, degraded_cache_manager):
        assert await degraded_cache_manager.get_or_set_with_lock("k", lambda: "v") == "v"

    @pytest.mark.asyncio
    async def test_stats_best_effort(self, degraded_cache_manager):
        stats = await degraded_cache_manager.get_stats()

        assert stats.keys == 0
        assert stats.memory == "0B"
        assert stats.hit_rate == 0.0


@pytest.mark.unit
class TestStatsAndHealth:
    @pytest.mark.asyncio
    async def test_hit_rate(self, cache_manager):
        await cache_manager.set("k", "v")
        await cache_manager.get("k")
        await cache_manager.get("k")
        await cache_manager.get("k")
        await cache_manager.get("missing")

        stats = await cache_manager.get_stats()

        assert stats.hits == 3
        assert stats.misses == 1
        assert stats.hit_rate == 0.75
        assert stats.total_requests == 4
        assert stats.keys == 1
        assert stats.memory == "1.50M"

    @pytest.mark.asyncio
    async def test_server_info(self, cache_manager):
        info = await cache_manager.get_server_info()

        assert info["uptime_in_seconds"] == 93784
        assert info["connected_clients"] == 3
        assert info["keyspace_hits"] == 120

    @pytest.mark.asyncio
    async def test_batch_passthrough(self, cache_manager, memory_store):
        await memory_store.set("a", "1")

        results = await cache_manager.batch([("get", ("a",)), ("exists", ("a", "b"))])

        assert results == ["1", 1]

    @pytest.mark.asyncio
    async def test_health_check(self, cache_manager):
        health = await cache_manager.health_check()

        assert health["status"] == "healthy"
        assert health["store"]["connected"] is True

    def test_uses_injected_settings(self, memory_store):
        manager = CacheManager(memory_store, CacheTestFactory.settings(CACHE_DEFAULT_TTL=42))

        assert manager.default_ttl == 42
        assert manager.store is memory_store
