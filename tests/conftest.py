"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures import TEST_ADMIN_TOKEN, CacheTestFactory, FakeClock  # noqa: E402


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """Settings for tests: fast lock backoff, known admin token, test environment."""
    return CacheTestFactory.settings()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {TEST_ADMIN_TOKEN}"}


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    """Connected in-memory KeyValueStore driven by the `clock` fixture."""
    return CacheTestFactory.in_memory_store(clock)


@pytest.fixture
def failing_store():
    """Store that raises CacheConnectionError on every command."""
    return CacheTestFactory.failing_store()


# ============================================================================
# CacheManager Fixtures
# ============================================================================


@pytest.fixture
def cache_manager(memory_store, test_settings):
    from storefront_cache.infrastructure.cache.cache_manager import CacheManager

    return CacheManager(memory_store, test_settings)


@pytest.fixture
def degraded_cache_manager(failing_store, test_settings):
    from storefront_cache.infrastructure.cache.cache_manager import CacheManager

    return CacheManager(failing_store, test_settings)


# ============================================================================
# Storefront Fixtures
# ============================================================================


def storefront_handler(request: httpx.Request) -> httpx.Response:
    """Minimal storefront API: products, users, featured listing and pages."""
    path = request.url.path
    if path == "/api/products":
        return httpx.Response(200, json={"products": [{"id": 10}, {"id": 11}, {"id": 12}]})
    if path.startswith("/api/products/"):
        product_id = path.rsplit("/", 1)[-1]
        if product_id == "missing":
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json={"id": product_id, "name": f"Product {product_id}"})
    if path.startswith("/api/users/"):
        return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1]})
    return httpx.Response(200, text=f"<html>{path}</html>")


@pytest.fixture
def storefront_transport():
    return httpx.MockTransport(storefront_handler)


@pytest.fixture
def storefront_client(storefront_transport):
    from storefront_cache.infrastructure.storefront.client import StorefrontClient

    return StorefrontClient("http://storefront.test", transport=storefront_transport)


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def app(test_settings, memory_store, storefront_client):
    from storefront_cache.application.app import create_app

    return create_app(settings=test_settings, store=memory_store, storefront=storefront_client)


@pytest.fixture
def client(app):
    """TestClient with the lifespan running (store connected, storefront opened)."""
    with TestClient(app) as test_client:
        yield test_client
