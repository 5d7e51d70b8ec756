"""
Unit Tests for HTTP Response Caching

Covers with_cache, with_cache_invalidation and PageCacheMiddleware on small
FastAPI apps backed by the in-memory store.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.testclient import TestClient
from starlette.requests import Request as StarletteRequest

from storefront_cache.application.api.middleware import (
    PageCacheMiddleware,
    build_response_cache_key,
    with_cache,
    with_cache_invalidation,
)
from tests.test_fixtures import CacheTestFactory


def make_request(method="GET", path="/api/products", query=b"", headers=()):
    return StarletteRequest(
        {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query,
            "headers": [(name.encode(), value.encode()) for name, value in headers],
        }
    )


class ProductsEndpoint:
    """Route handler that counts invocations."""

    def __init__(self, status_code=200):
        self.calls = 0
        self.status_code = status_code

    async def __call__(self, request: Request):
        self.calls += 1
        return JSONResponse({"items": [1, 2], "call": self.calls}, status_code=self.status_code)


@pytest.mark.unit
class TestResponseCacheKey:
    def test_sorted_query_headers_and_method(self):
        request = make_request(
            query=b"sort=price&page=2&utm_source=mail",
            headers=[("accept-language", "fr")],
        )

        key = build_response_cache_key(
            request, vary_by=["accept-language"], exclude_params=["utm_source"]
        )

        assert key == "route:/api/products?page=2&sort=price|headers:accept-language:fr|GET"

    def test_query_order_does_not_matter(self):
        first = build_response_cache_key(make_request(query=b"a=1&b=2"))
        second = build_response_cache_key(make_request(query=b"b=2&a=1"))

        assert first == second

    def test_query_can_be_ignored(self):
        key = build_response_cache_key(make_request(query=b"page=2"), include_query=False)

        assert key == "route:/api/products|GET"


@pytest.mark.unit
class TestWithCache:
    def make_client(self, cache, endpoint, **options):
        app = FastAPI()
        app.add_api_route(
            "/api/products",
            with_cache(endpoint, cache=cache, tags=["products"], **options),
            methods=["GET", "POST"],
        )
        return TestClient(app)

    def test_miss_then_hit(self, cache_manager):
        endpoint = ProductsEndpoint()
        client = self.make_client(cache_manager, endpoint)

        first = client.get("/api/products")
        second = client.get("/api/products")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.headers["X-Cache-Key"] == "route:/api/products|GET"
        assert second.json() == {"items": [1, 2], "call": 1}
        assert second.headers["content-type"] == "application/json"
        assert endpoint.calls == 1

    def test_hit_and_miss_callbacks(self, cache_manager):
        events = []
        client = self.make_client(
            cache_manager,
            ProductsEndpoint(),
            on_hit=lambda key: events.append(("hit", key)),
            on_miss=lambda key: events.append(("miss", key)),
        )

        client.get("/api/products")
        client.get("/api/products")

        assert events == [("miss", "route:/api/products|GET"), ("hit", "route:/api/products|GET")]

    def test_non_get_bypasses_cache(self, cache_manager):
        endpoint = ProductsEndpoint()
        client = self.make_client(cache_manager, endpoint)

        response = client.post("/api/products")

        assert "X-Cache" not in response.headers
        assert client.get("/api/products").headers["X-Cache"] == "MISS"
        assert endpoint.calls == 2

    def test_error_responses_are_not_stored(self, cache_manager):
        endpoint = ProductsEndpoint(status_code=503)
        client = self.make_client(cache_manager, endpoint)

        client.get("/api/products")
        response = client.get("/api/products")

        assert response.status_code == 503
        assert endpoint.calls == 2

    def test_skip_cache_predicate(self, cache_manager):
        endpoint = ProductsEndpoint()
        client = self.make_client(
            cache_manager, endpoint, skip_cache=lambda request: "preview" in request.query_params
        )

        client.get("/api/products?preview=1")
        response = client.get("/api/products?preview=1")

        assert "X-Cache" not in response.headers
        assert endpoint.calls == 2

    def test_excluded_params_share_an_entry(self, cache_manager):
        endpoint = ProductsEndpoint()
        client = self.make_client(cache_manager, endpoint, exclude_params=["utm_source"])

        client.get("/api/products?utm_source=mail")
        response = client.get("/api/products?utm_source=ads")

        assert response.headers["X-Cache"] == "HIT"
        assert endpoint.calls == 1

    def test_cache_failures_fall_through(self):
        broken = MagicMock()
        broken.get = AsyncMock(side_effect=RuntimeError("store down"))
        broken.set = AsyncMock(side_effect=RuntimeError("store down"))
        errors = []
        endpoint = ProductsEndpoint()
        client = self.make_client(broken, endpoint, on_error=errors.append)

        response = client.get("/api/products")

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "MISS"
        assert endpoint.calls == 1
        assert [str(e) for e in errors] == ["store down", "store down"]

    def test_default_ttl_comes_from_settings(self, memory_store):
        cache = CacheTestFactory.cache_manager(memory_store, CACHE_API_TTL=120)
        client = self.make_client(cache, ProductsEndpoint())

        client.get("/api/products")

        assert memory_store.ttl(cache.build_key("route:/api/products|GET", ["products"])) == 120

    def test_degraded_store_serves_uncached(self, degraded_cache_manager):
        endpoint = ProductsEndpoint()
        client = self.make_client(degraded_cache_manager, endpoint)

        assert client.get("/api/products").status_code == 200
        assert client.get("/api/products").headers["X-Cache"] == "MISS"
        assert endpoint.calls == 2

    def test_defaults_to_app_state_cache_manager(self, cache_manager):
        app = FastAPI()
        app.state.cache_manager = cache_manager
        app.add_api_route("/api/products", with_cache(ProductsEndpoint()), methods=["GET"])
        client = TestClient(app)

        client.get("/api/products")

        assert client.get("/api/products").headers["X-Cache"] == "HIT"


@pytest.mark.unit
class TestWithCacheInvalidation:
    def make_client(self, cache_manager, update_status=200):
        async def update_product(request: Request):
            return JSONResponse({"updated": True}, status_code=update_status)

        app = FastAPI()
        app.add_api_route(
            "/api/products",
            with_cache(ProductsEndpoint(), cache=cache_manager, tags=["products"]),
            methods=["GET"],
        )
        app.add_api_route(
            "/api/products",
            with_cache_invalidation(update_product, tags=["products"], cache=cache_manager),
            methods=["PUT"],
        )
        return TestClient(app)

    def test_successful_mutation_invalidates(self, cache_manager):
        client = self.make_client(cache_manager)
        client.get("/api/products")

        assert client.put("/api/products").json() == {"updated": True}
        assert client.get("/api/products").headers["X-Cache"] == "MISS"

    def test_failed_mutation_keeps_cache(self, cache_manager):
        client = self.make_client(cache_manager, update_status=400)
        client.get("/api/products")

        assert client.put("/api/products").status_code == 400
        assert client.get("/api/products").headers["X-Cache"] == "HIT"

    def test_invalidation_errors_are_not_raised(self):
        broken = MagicMock()
        broken.invalidate_tag = AsyncMock(side_effect=RuntimeError("store down"))

        async def update_product(request: Request):
            return JSONResponse({"updated": True})

        app = FastAPI()
        app.add_api_route(
            "/api/products",
            with_cache_invalidation(update_product, tags=["products"], cache=broken),
            methods=["POST"],
        )

        assert TestClient(app).post("/api/products").status_code == 200


@pytest.mark.unit
class TestPageCacheMiddleware:
    @pytest.fixture
    def page_client(self):
        app = FastAPI()
        app.add_middleware(PageCacheMiddleware, ttl=120, paths=["/boutique"])

        @app.get("/boutique")
        async def boutique():
            return HTMLResponse("<html>boutique</html>")

        @app.get("/boutique/missing")
        async def missing():
            return HTMLResponse("not found", status_code=404)

        @app.get("/account")
        async def account():
            return HTMLResponse("<html>account</html>")

        return TestClient(app)

    def test_anonymous_page_gets_cache_headers(self, page_client):
        response = page_client.get("/boutique")

        assert response.headers["Cache-Control"] == "public, max-age=120, s-maxage=120"
        assert response.headers["CDN-Cache-Control"] == "public, max-age=120"

    @pytest.mark.parametrize(
        "headers",
        [{"Authorization": "Bearer user-token"}, {"Cookie": "session=abc"}],
    )
    def test_personalized_requests_are_skipped(self, page_client, headers):
        response = page_client.get("/boutique", headers=headers)

        assert "CDN-Cache-Control" not in response.headers

    def test_other_paths_and_errors_are_skipped(self, page_client):
        assert "CDN-Cache-Control" not in page_client.get("/account").headers
        assert "CDN-Cache-Control" not in page_client.get("/boutique/missing").headers
