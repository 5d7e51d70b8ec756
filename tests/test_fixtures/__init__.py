"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .cache_factory import (
    TEST_ADMIN_TOKEN,
    CacheTestFactory,
    FakeClock,
    InMemoryKeyValueStore,
)

__all__ = ["CacheTestFactory", "FakeClock", "InMemoryKeyValueStore", "TEST_ADMIN_TOKEN"]
