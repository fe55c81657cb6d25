"""
Tests for the sliding window rate limiter (rate_limiter.py) and the
rate limiting middleware (rate_limit.py).
"""

import pytest
from unittest.mock import Mock
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from src.middleware.rate_limit import RateLimitMiddleware
from src.services.rate_limiter import RATE_LIMITS, RateLimitConfig, RateLimiter


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


class TestRateLimiter:
    """Test sliding window accounting."""

    def test_allows_up_to_limit(self, limiter):
        config = RateLimitConfig(max_requests=3, window_seconds=60)

        results = [limiter.check_rate_limit("k", config) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].limit == 3

    def test_window_slides(self, limiter, clock):
        config = RateLimitConfig(max_requests=2, window_seconds=60)
        limiter.check_rate_limit("k", config)
        clock.now += 30
        limiter.check_rate_limit("k", config)

        assert not limiter.check_rate_limit("k", config).allowed

        clock.now += 31
        result = limiter.check_rate_limit("k", config)
        assert result.allowed
        assert result.reset_time == 1_030.0 + 60

    def test_blocked_reset_time(self, limiter):
        config = RateLimitConfig(max_requests=1, window_seconds=60)
        limiter.check_rate_limit("k", config)

        assert limiter.check_rate_limit("k", config).reset_time == 1_060.0

    def test_identifiers_are_independent(self, limiter):
        config = RateLimitConfig(max_requests=1, window_seconds=60)
        limiter.check_rate_limit("a", config)

        assert limiter.check_rate_limit("b", config).allowed

    def test_check_without_consuming(self, limiter):
        config = RateLimitConfig(max_requests=1, window_seconds=60)

        assert limiter.check_rate_limit("k", config, consume=False).allowed
        assert limiter.check_rate_limit("k", config).allowed
        assert not limiter.check_rate_limit("k", config).allowed

    def test_cleanup_expired(self, limiter, clock):
        config = RateLimitConfig(max_requests=5, window_seconds=60)
        limiter.check_rate_limit("old", config)
        clock.now += 16 * 60
        limiter.check_rate_limit("new", config)

        assert limiter.cleanup_expired() == 1
        assert limiter.get_stats() == {"active_keys": 1, "total_tracked_requests": 1}

    def test_reset(self, limiter):
        config = RateLimitConfig(max_requests=1, window_seconds=60)
        limiter.check_rate_limit("k", config)
        limiter.reset("k")

        assert limiter.check_rate_limit("k", config).allowed

    def test_presets(self):
        assert RATE_LIMITS["WEBHOOK"] == RateLimitConfig(100, 60)
        assert RATE_LIMITS["AUTH"] == RateLimitConfig(5, 900)
        assert RATE_LIMITS["NOTION_WEBHOOK"].max_requests == 60


class TestRateLimitMiddleware:
    """Test rate limiting middleware."""

    def test_limit_groups(self):
        middleware = RateLimitMiddleware(None, limiter=RateLimiter())

        assert middleware._get_limit_group("/api/webhooks/slack", "POST") == "WEBHOOK"
        assert middleware._get_limit_group("/api/oauth/slack/install", "GET") == "AUTH"
        assert middleware._get_limit_group("/api/teams/t/discussion-collections-tasks", "GET") == "READ"
        assert middleware._get_limit_group("/api/discussions/process", "POST") == "WRITE"

    def test_unlimited_paths(self):
        middleware = RateLimitMiddleware(None, limiter=RateLimiter())

        assert middleware._get_limit_group("/api/health", "GET") is None
        assert middleware._get_limit_group("/metrics", "GET") is None
        assert middleware._get_limit_group("/", "GET") is None

    def test_get_client_ip_forwarded(self):
        middleware = RateLimitMiddleware(None, limiter=RateLimiter())
        request = Mock(spec=Request)
        request.headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}

        assert middleware._get_client_ip(request) == "203.0.113.9"

    def test_get_client_ip_direct(self):
        middleware = RateLimitMiddleware(None, limiter=RateLimiter())
        request = Mock(spec=Request)
        request.headers = {}
        request.client = Mock(host="198.51.100.4")

        assert middleware._get_client_ip(request) == "198.51.100.4"

    def test_returns_429_with_headers(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, limiter=RateLimiter())

        @app.get("/api/oauth/ping")
        async def ping():
            return {"ok": True}

        client = TestClient(app)
        responses = [client.get("/api/oauth/ping") for _ in range(RATE_LIMITS["AUTH"].max_requests + 1)]

        assert responses[0].status_code == 200
        assert responses[0].headers["X-RateLimit-Limit"] == "5"
        assert responses[-1].status_code == 429
        assert responses[-1].json()["error"] == "Rate limit exceeded"
        assert "Retry-After" in responses[-1].headers
