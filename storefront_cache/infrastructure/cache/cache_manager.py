#!/usr/bin/env python3
"""
Cache Manager

Central cache API in front of the key-value store: namespaced key generation,
tag indexing, get/set/delete, stampede-protected populate-on-miss and
process-local hit/miss/error statistics.

Architecture:
    CacheManager (Public API)
        ├── KeyBuilder (physical cache, tag and lock keys)
        ├── PayloadCodec (serialization + optional compression)
        ├── CacheObserver (hit/miss/error counters and logging)
        └── KeyValueStore (RedisClient in production)

Failure contract:
    A CacheError from the store never reaches the caller. Reads degrade to a
    miss, writes to False, counts to 0. Errors raised by caller-supplied
    fetchers always propagate.

Author: System Architect
Date: 2025-12-13
"""

import asyncio
import inspect
import random
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from storefront_cache.core.config.constants import (
    CACHE_KEY_PREFIX,
    LOCK_KEY_PREFIX,
    TAG_KEY_PREFIX,
    Stage,
)
from storefront_cache.core.config.settings import CacheSettings, Settings, get_settings
from storefront_cache.core.exceptions import CacheError
from storefront_cache.core.interfaces.cache import KeyValueStore
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.infrastructure.cache.serializers import (
    JSON_SERIALIZER,
    RAW_SERIALIZER,
    CacheSerializer,
    compress_text,
    decompress_text,
)

logger = get_logger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], "Awaitable[T] | T"]


async def resolve(fn: Callable[..., Any], *args: Any) -> Any:
    """Call fn and await the result when it is awaitable (sync and async callables)."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


# =============================================================================
# LAYER 1: KEYS
# =============================================================================


class KeyBuilder:
    """
    Builds physical keys from logical keys and tags.

    cache:<key>[:<tag1>:<tag2>...]   data entry
    tag:<tag>                        tag index (set of physical keys)
    lock:<physical key>              stampede lock
    """

    def __init__(self, sort_tags: bool = True):
        self._sort_tags = sort_tags

    def normalize_tags(self, tags: Iterable[str] | None) -> list[str]:
        if not tags:
            return []
        if self._sort_tags:
            return sorted(set(tags))
        return list(tags)

    def cache_key(self, key: str, tags: Iterable[str] | None = None) -> str:
        normalized = self.normalize_tags(tags)
        if normalized:
            return f"{CACHE_KEY_PREFIX}{key}:{':'.join(normalized)}"
        return f"{CACHE_KEY_PREFIX}{key}"

    @staticmethod
    def tag_key(tag: str) -> str:
        return f"{TAG_KEY_PREFIX}{tag}"

    @staticmethod
    def lock_key(cache_key: str) -> str:
        return f"{LOCK_KEY_PREFIX}{cache_key}"


# =============================================================================
# LAYER 2: PAYLOAD CODEC
# =============================================================================


class PayloadCodec:
    """Applies serializer then compression on write, and the reverse on read."""

    def __init__(self, compression_threshold: int):
        self._threshold = compression_threshold

    @staticmethod
    def _pick(serialize: bool, serializer: CacheSerializer | None) -> CacheSerializer:
        if serializer is not None:
            return serializer
        return JSON_SERIALIZER if serialize else RAW_SERIALIZER

    def encode(
        self, value: Any, compress: bool, serialize: bool, serializer: CacheSerializer | None
    ) -> str:
        text = self._pick(serialize, serializer).dumps(value)
        if compress:
            text = compress_text(text, self._threshold)
        return text

    def decode(
        self, text: str, compress: bool, serialize: bool, serializer: CacheSerializer | None
    ) -> Any:
        if compress:
            text = decompress_text(text)
        return self._pick(serialize, serializer).loads(text)


# =============================================================================
# LAYER 3: OBSERVABILITY
# =============================================================================


@dataclass(frozen=True)
class CacheStats:
    """Snapshot returned by CacheManager.get_stats()."""

    hits: int
    misses: int
    errors: int
    keys: int
    memory: str
    hit_rate: float

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses


class CacheObserver:
    """
    Process-local counters and operation logging.

    Counters are not shared between workers and only reset on flush().
    """

    def __init__(self, logger_instance=None):
        self._logger = logger_instance or logger
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def record_hit(self, cache_key: str) -> None:
        self.hits += 1
        log_stage(self._logger, Stage.CACHE_LOOKUP, "Cache hit", level="debug", cache_key=cache_key)

    def record_miss(self, cache_key: str) -> None:
        self.misses += 1
        log_stage(self._logger, Stage.CACHE_LOOKUP, "Cache miss", level="debug", cache_key=cache_key)

    def record_error(self, stage: Stage, message: str, error: Exception, **fields) -> None:
        self.errors += 1
        log_stage(
            self._logger,
            stage,
            message,
            level="error",
            error=str(error),
            error_type=type(error).__name__,
            **fields,
        )

    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total > 0 else 0.0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.errors = 0


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class CacheManager:
    """
    Tag-aware cache over a KeyValueStore.

    Constructed once at startup with an injected store and shared by every
    consumer (strategies, middleware, admin routes).

    Usage:
        cache = CacheManager(redis_client, settings)

        await cache.set("product:1", product, ttl=3600, tags=["products"])
        product = await cache.get("product:1", tags=["products"])

        await cache.invalidate_tag("products")

        product = await cache.get_or_set_with_lock(
            "product:1", lambda: repository.load(1), tags=["products"]
        )
    """

    def __init__(self, store: KeyValueStore, settings: Settings | None = None):
        self._store = store
        self._config = (settings or get_settings()).cache

        self._keys = KeyBuilder(sort_tags=self._config.CACHE_SORT_TAGS)
        self._codec = PayloadCodec(self._config.CACHE_COMPRESSION_THRESHOLD)
        self._observer = CacheObserver()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def config(self) -> CacheSettings:
        """Cache settings; strategies, warmup and response caching take their defaults from here."""
        return self._config

    @property
    def default_ttl(self) -> int:
        return self._config.CACHE_DEFAULT_TTL

    def build_key(self, key: str, tags: Iterable[str] | None = None) -> str:
        """Physical key for (key, tags); stable for the same pair."""
        return self._keys.cache_key(key, tags)

    # -------------------------------------------------------------------------
    # Basic Operations
    # -------------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        tags: Sequence[str] | None = None,
        compress: bool = False,
        serialize: bool = True,
        serializer: CacheSerializer | None = None,
    ) -> bool:
        """
        Store a value and register it in every tag index.

        STAGE-C.2: Cache write

        Each tag index gets TTL = ttl + CACHE_TAG_TTL_EXTENSION so it outlives
        the entries it indexes.

        Returns:
            bool: True when the entry (and tag indexes) were written
        """
        ttl = self.default_ttl if ttl is None else ttl
        cache_key = self._keys.cache_key(key, tags)

        try:
            payload = self._codec.encode(value, compress, serialize, serializer)
            await self._store.set(cache_key, payload, ttl=ttl)

            tag_ttl = ttl + self._config.CACHE_TAG_TTL_EXTENSION
            for tag in self._keys.normalize_tags(tags):
                tag_key = self._keys.tag_key(tag)
                await self._store.sadd(tag_key, cache_key)
                await self._store.expire(tag_key, tag_ttl)
        except CacheError as e:
            self._observer.record_error(Stage.CACHE_WRITE, "Cache set failed", e, cache_key=cache_key)
            return False

        log_stage(logger, Stage.CACHE_WRITE, "Cache set", level="debug", cache_key=cache_key, ttl=ttl)
        return True

    async def get(
        self,
        key: str,
        tags: Sequence[str] | None = None,
        compress: bool = False,
        serialize: bool = True,
        serializer: CacheSerializer | None = None,
    ) -> Any | None:
        """
        Read a value; None means miss.

        STAGE-C.1: Cache lookup

        Tags are part of the key, so they must match the ones used at set time.
        Store errors and undecodable payloads are reported as misses.
        """
        cache_key = self._keys.cache_key(key, tags)
        value = await self._lookup(cache_key, compress, serialize, serializer)
        if value is None:
            self._observer.record_miss(cache_key)
        else:
            self._observer.record_hit(cache_key)
        return value

    async def _lookup(
        self,
        cache_key: str,
        compress: bool,
        serialize: bool,
        serializer: CacheSerializer | None,
    ) -> Any | None:
        """Read and decode without touching hit/miss counters."""
        try:
            payload = await self._store.get(cache_key)
            if payload is None:
                return None
            return self._codec.decode(payload, compress, serialize, serializer)
        except CacheError as e:
            self._observer.record_error(Stage.CACHE_LOOKUP, "Cache get failed", e, cache_key=cache_key)
            return None

    async def delete(self, key: str, tags: Sequence[str] | None = None) -> bool:
        """
        Delete one entry. Tag indexes are not cleaned; a dangling index member
        is treated as already gone by every consumer.

        STAGE-C.3: Cache delete
        """
        cache_key = self._keys.cache_key(key, tags)
        try:
            removed = await self._store.delete(cache_key)
        except CacheError as e:
            self._observer.record_error(Stage.CACHE_DELETE, "Cache delete failed", e, cache_key=cache_key)
            return False
        return removed > 0

    async def touch(self, key: str, ttl: int, tags: Sequence[str] | None = None) -> bool:
        """Refresh the TTL of an existing entry without rewriting it."""
        cache_key = self._keys.cache_key(key, tags)
        try:
            return await self._store.expire(cache_key, ttl)
        except CacheError as e:
            self._observer.record_error(Stage.CACHE_WRITE, "Cache touch failed", e, cache_key=cache_key)
            return False

    async def exists(self, key: str, tags: Sequence[str] | None = None) -> bool:
        """Existence check; does not count as a hit or miss."""
        cache_key = self._keys.cache_key(key, tags)
        try:
            return await self._store.exists(cache_key) > 0
        except CacheError as e:
            self._observer.record_error(Stage.CACHE_LOOKUP, "Cache exists failed", e, cache_key=cache_key)
            return False

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def invalidate_tag(self, tag: str) -> int:
        """
        Delete every entry indexed under tag, then the index itself.

        STAGE-C.4: Tag invalidation

        Member deletes run in one pipeline. A member that fails to delete is
        not counted and stays reachable only through its own TTL; the index is
        removed regardless.

        Returns:
            int: Number of entries actually removed (0 when the index is absent)
        """
        tag_key = self._keys.tag_key(tag)
        try:
            members = await self._store.smembers(tag_key)
            if not members:
                return 0

            commands = [("delete", (member,)) for member in sorted(members)]
            commands.append(("delete", (tag_key,)))
            results = await self._store.execute_batch(commands)
        except CacheError as e:
            self._observer.record_error(Stage.TAG_INVALIDATION, "Tag invalidation failed", e, tag=tag)
            return 0

        member_results = results[:-1]
        failures = [r for r in member_results if isinstance(r, Exception)]
        removed = sum(int(r) for r in member_results if isinstance(r, int))

        if failures:
            self._observer.errors += 1
            log_stage(
                logger,
                Stage.TAG_INVALIDATION,
                "Tag invalidation partially failed",
                level="warning",
                tag=tag,
                failed=len(failures),
            )

        log_stage(logger, Stage.TAG_INVALIDATION, "Tag invalidated", tag=tag, removed=removed)
        return removed

    async def delete_matching(self, pattern: str, batch_size: int | None = None) -> int:
        """
        SCAN for raw store keys matching a glob pattern and delete them in chunks.

        Expensive on large keyspaces; intended for administrative use.

        Returns:
            int: Number of keys removed before completion or the first store error
        """
        batch_size = batch_size or self._config.CACHE_PATTERN_DELETE_BATCH
        removed = 0
        try:
            keys = await self._store.scan_keys(pattern, count=batch_size)
            for start in range(0, len(keys), batch_size):
                removed += await self._store.delete(*keys[start:start + batch_size])
        except CacheError as e:
            self._observer.record_error(
                Stage.CACHE_DELETE, "Pattern delete failed", e, pattern=pattern, removed=removed
            )
            return removed

        log_stage(logger, Stage.CACHE_DELETE, "Pattern deleted", pattern=pattern, removed=removed)
        return removed

    async def flush(self) -> bool:
        """
        Clear the whole store database and reset local statistics.

        STAGE-C.7: Destructive, administrative use only.
        """
        try:
            await self._store.flush()
        except CacheError as e:
            self._observer.record_error(Stage.CACHE_FLUSH, "Cache flush failed", e)
            return False

        self._observer.reset()
        log_stage(logger, Stage.CACHE_FLUSH, "Cache flushed", level="warning")
        return True

    # -------------------------------------------------------------------------
    # Populate-on-miss
    # -------------------------------------------------------------------------

    async def get_or_set(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: int | None = None,
        tags: Sequence[str] | None = None,
        compress: bool = False,
        serialize: bool = True,
        serializer: CacheSerializer | None = None,
    ) -> Any:
        """
        Lazy-load without stampede protection.

        Fetcher errors propagate and nothing is cached.
        """
        cached = await self.get(key, tags, compress, serialize, serializer)
        if cached is not None:
            return cached
        return await self._fetch_and_store(key, fetcher, ttl, tags, compress, serialize, serializer)

    async def get_or_set_with_lock(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: int | None = None,
        tags: Sequence[str] | None = None,
        compress: bool = False,
        serialize: bool = True,
        serializer: CacheSerializer | None = None,
        lock_ttl: int | None = None,
        max_attempts: int | None = None,
    ) -> Any:
        """
        Lazy-load with a store lock so one caller fetches per lock window.

        STAGE-C.5: Stampede protection

        Flow per attempt:
        1. Cache hit → return
        2. SET lock NX with a random token
        3. Winner: double-check, fetch, store, release (always)
        4. Loser: sleep 100-300ms of jitter and start over

        After max_attempts the caller fetches without the lock. When the store
        cannot take the lock at all, the value is fetched directly.
        """
        lock_ttl = lock_ttl or self._config.CACHE_LOCK_TTL
        max_attempts = max_attempts or self._config.CACHE_LOCK_MAX_ATTEMPTS
        cache_key = self._keys.cache_key(key, tags)
        lock_key = self._keys.lock_key(cache_key)

        for attempt in range(1, max_attempts + 1):
            cached = await self.get(key, tags, compress, serialize, serializer)
            if cached is not None:
                return cached

            token = uuid.uuid4().hex
            try:
                acquired = await self._store.set(lock_key, token, ttl=lock_ttl, nx=True)
            except CacheError as e:
                self._observer.record_error(
                    Stage.LOCK_ACQUIRE, "Lock acquisition failed, fetching directly", e, lock_key=lock_key
                )
                return await self._fetch_and_store(
                    key, fetcher, ttl, tags, compress, serialize, serializer
                )

            if acquired:
                try:
                    cached = await self._lookup(cache_key, compress, serialize, serializer)
                    if cached is not None:
                        return cached
                    return await self._fetch_and_store(
                        key, fetcher, ttl, tags, compress, serialize, serializer
                    )
                finally:
                    await self._release_lock(lock_key, token)

            log_stage(
                logger, Stage.LOCK_ACQUIRE, "Lock busy, backing off", level="debug",
                lock_key=lock_key, attempt=attempt,
            )
            await asyncio.sleep(
                random.uniform(self._config.CACHE_LOCK_RETRY_MIN_DELAY, self._config.CACHE_LOCK_RETRY_MAX_DELAY)
            )

        log_stage(
            logger,
            Stage.LOCK_ACQUIRE,
            "Lock retries exhausted, fetching without lock",
            level="warning",
            lock_key=lock_key,
            attempts=max_attempts,
        )
        return await self.get_or_set(key, fetcher, ttl, tags, compress, serialize, serializer)

    async def _fetch_and_store(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: int | None,
        tags: Sequence[str] | None,
        compress: bool,
        serialize: bool,
        serializer: CacheSerializer | None,
    ) -> Any:
        value = await resolve(fetcher)
        await self.set(key, value, ttl, tags, compress, serialize, serializer)
        return value

    async def _release_lock(self, lock_key: str, token: str) -> None:
        try:
            await self._store.delete_if_equals(lock_key, token)
        except CacheError as e:
            # Lease expiry releases it eventually
            self._observer.record_error(Stage.LOCK_ACQUIRE, "Lock release failed", e, lock_key=lock_key)

    # -------------------------------------------------------------------------
    # Batch passthrough
    # -------------------------------------------------------------------------

    async def batch(self, commands: Sequence[tuple]) -> list[Any]:
        """
        Run raw (command, args[, kwargs]) store commands in one round-trip.

        Returns an empty list when the store is unavailable.
        """
        try:
            return await self._store.execute_batch(commands)
        except CacheError as e:
            self._observer.record_error(Stage.STORE_OPERATION, "Cache batch failed", e, size=len(commands))
            return []

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    async def get_stats(self) -> CacheStats:
        """
        Counters plus best-effort key count and memory usage from the store.

        STAGE-C.6: Cache statistics
        """
        keys = 0
        memory = "0B"
        try:
            keys = await self._store.dbsize()
            memory_info = await self._store.info("memory")
            memory = str(memory_info.get("used_memory_human", "0B"))
        except CacheError as e:
            log_stage(logger, Stage.CACHE_STATS, "Store stats unavailable", level="warning", error=str(e))

        return CacheStats(
            hits=self._observer.hits,
            misses=self._observer.misses,
            errors=self._observer.errors,
            keys=keys,
            memory=memory,
            hit_rate=self._observer.hit_rate(),
        )

    async def get_server_info(self) -> dict[str, int]:
        """Store uptime, clients and keyspace counters; empty when unavailable."""
        try:
            info = await self._store.info()
        except CacheError as e:
            log_stage(logger, Stage.CACHE_STATS, "Store info unavailable", level="warning", error=str(e))
            return {}

        fields = (
            "uptime_in_seconds",
            "connected_clients",
            "keyspace_hits",
            "keyspace_misses",
            "evicted_keys",
            "total_commands_processed",
        )
        return {name: int(info[name]) for name in fields if name in info}

    async def health_check(self) -> dict[str, Any]:
        store_health = await self._store.health_check()
        return {
            "status": store_health.get("status", "unhealthy"),
            "store": store_health,
            "hits": self._observer.hits,
            "misses": self._observer.misses,
            "errors": self._observer.errors,
        }
