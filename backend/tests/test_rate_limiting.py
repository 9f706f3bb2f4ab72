"""Tests for rate limiting and API security configuration.

Covers:
- In-memory token bucket fallback
- Client identification behind proxies
- Route methods and role guards on write endpoints
"""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from sgmi.core import rate_limit
from sgmi.core import redis as redis_module
from sgmi.core.config import settings
from sgmi.core.rate_limit import InMemoryLimiter, client_key, rate_limit_default


def _request(host: str = "10.0.0.5", forwarded: str | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = {"X-Forwarded-For": forwarded} if forwarded else {}
    request.client.host = host
    return request


# ---------------------------------------------------------------------------
# Configuration Security Tests
# ---------------------------------------------------------------------------


class TestSecurityConfig:
    """Test that security-related configuration is correct."""

    def test_cors_origins_configured(self):
        origins = settings.CORS_ORIGINS.split(",")
        assert len(origins) >= 1
        assert any(o.startswith("http") for o in origins)

    def test_debug_disabled_in_production(self):
        if settings.ENVIRONMENT == "production":
            assert settings.DEBUG is False

    def test_production_not_use_wildcard_cors(self):
        if settings.is_production:
            assert "*" not in settings.CORS_ORIGINS.split(",")


# ---------------------------------------------------------------------------
# Limiter
# ---------------------------------------------------------------------------


class TestInMemoryLimiter:
    def test_allows_up_to_limit(self):
        limiter = InMemoryLimiter()
        results = [limiter.check("k", limit=3, window=60, now=100.0) for _ in range(4)]
        assert [allowed for allowed, _ in results] == [True, True, True, False]
        assert results[-1][1] >= 1

    def test_refills_over_time(self):
        limiter = InMemoryLimiter()
        for _ in range(2):
            limiter.check("k", limit=2, window=60, now=0.0)
        assert limiter.check("k", limit=2, window=60, now=1.0)[0] is False
        assert limiter.check("k", limit=2, window=60, now=31.0)[0] is True

    def test_keys_are_independent(self):
        limiter = InMemoryLimiter()
        limiter.check("a", limit=1, window=60, now=0.0)
        assert limiter.check("b", limit=1, window=60, now=0.0)[0] is True


class TestClientKey:
    def test_uses_peer_address(self):
        assert client_key(_request()) == "10.0.0.5"

    def test_prefers_first_forwarded_address(self):
        assert client_key(_request(forwarded="203.0.113.9, 10.0.0.1")) == "203.0.113.9"


class TestRateLimitDependency:
    @pytest.mark.asyncio
    async def test_falls_back_to_memory_without_redis(self, monkeypatch):
        monkeypatch.setattr(redis_module, "_client", None)
        monkeypatch.setattr(rate_limit, "_memory_limiter", InMemoryLimiter())
        monkeypatch.setattr(settings, "RATE_LIMIT_MAX_REQUESTS", 2)

        request = _request(host="192.0.2.10")
        await rate_limit_default(request)
        await rate_limit_default(request)

        with pytest.raises(HTTPException) as exc_info:
            await rate_limit_default(request)
        assert exc_info.value.status_code == 429
        assert "Retry-After" in exc_info.value.headers


# ---------------------------------------------------------------------------
# API Endpoint Method Tests
# ---------------------------------------------------------------------------


def _routes(router) -> dict[tuple[str, str], object]:
    return {
        (method, route.path): route
        for route in router.routes
        if hasattr(route, "methods")
        for method in route.methods
    }


class TestAPIEndpointMethods:
    def test_batch_routes(self):
        from sgmi.api.v1.batches import router

        routes = _routes(router)
        assert ("POST", "/production/batches") in routes
        assert ("POST", "/production/batches/{batch_id}/actions") in routes
        assert ("GET", "/production/batches/{batch_id}/status") in routes
        assert ("GET", "/production/plans/{plan_id}/batches") in routes
        assert ("POST", "/production/batches/completed-runs") in routes

    def test_plan_routes(self):
        from sgmi.api.v1.production_plans import router

        routes = _routes(router)
        assert ("GET", "/director/production-plans") in routes
        assert ("POST", "/director/production-plans") in routes
        assert ("PATCH", "/director/production-plans/{plan_id}/status") in routes

    def test_write_routes_check_roles(self):
        from sgmi.api.v1.batches import router

        routes = _routes(router)
        action_route = routes[("POST", "/production/batches/{batch_id}/actions")]
        status_route = routes[("GET", "/production/batches/{batch_id}/status")]
        assert len(action_route.dependencies) == 1
        assert status_route.dependencies == []
