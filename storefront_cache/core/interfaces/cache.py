"""
Cache Protocols

Abstract contracts for the key-value store adapter and for the access-pattern
strategies built on top of CacheManager.

Architectural Decision: Protocol-based abstraction
- CacheManager depends on KeyValueStore, never on redis-py directly
- Tests inject an in-memory store implementing the same protocol
- Strategies share a call-site-compatible shape without an inheritance tree

Author: System Architect
Date: 2025-12-08
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol for the remote key-value store.

    All keys are logical keys; the implementation owns any physical prefixing.
    Implementations raise CacheConnectionError when the store is unreachable
    and CacheKeyError when a command fails.

    Implementations:
    - RedisClient: redis.asyncio backed store
    - InMemoryKeyValueStore (tests): dict backed store with a controllable clock
    """

    async def connect(self) -> None:
        """
        Establish connection to the store.

        Raises:
            CacheConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        ...

    async def ping(self) -> bool:
        """Return True when the store answers, False otherwise."""
        ...

    async def get(self, key: str) -> str | None:
        """Return the value at key or None when absent."""
        ...

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False) -> bool:
        """
        Store value at key.

        Args:
            key: Key
            value: Serialized value
            ttl: Expiry in seconds (None keeps the key forever)
            nx: Only set when the key does not exist (atomic create-if-absent)

        Returns:
            bool: True if written, False when nx was set and the key existed
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        ...

    async def exists(self, *keys: str) -> int:
        """Return how many of the keys exist."""
        ...

    async def expire(self, key: str, ttl: int) -> bool:
        """Set a TTL on an existing key. False when the key does not exist."""
        ...

    async def sadd(self, key: str, *members: str) -> int:
        ...

    async def smembers(self, key: str) -> set[str]:
        ...

    async def scan_keys(self, pattern: str, count: int = 100) -> list[str]:
        """Incrementally scan for keys matching a glob pattern."""
        ...

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        """Atomically delete key only when its value equals expected."""
        ...

    async def flush(self) -> bool:
        """Remove every key of the configured database."""
        ...

    async def dbsize(self) -> int:
        ...

    async def info(self, section: str | None = None) -> dict[str, Any]:
        ...

    async def execute_batch(self, commands: Sequence[tuple[str, tuple]]) -> list[Any]:
        """
        Execute (command, args) pairs in one round-trip.

        Per-command failures are returned inline as exception instances.
        """
        ...

    async def health_check(self) -> dict[str, Any]:
        ...


@runtime_checkable
class CacheStrategy(Protocol):
    """
    Shape shared by every access-pattern strategy.

    Implementations: CacheAsideStrategy, WriteThroughCache, WriteBehindCache,
    MultiLevelCache, TimeBasedCache.
    """

    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any) -> Any:
        ...

    async def invalidate(self, key: str | None = None) -> Any:
        ...
