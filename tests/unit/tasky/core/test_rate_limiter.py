"""Unit tests for the fixed-window rate limiter and its middleware."""

import asyncio

import httpx
import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from tasky.core.rate_limiter import AUTH_LIMIT_MESSAGE, RateLimiter, RateLimitMiddleware


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    def test_counts_hits_per_key(self):
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())

        limiter.hit("a")
        status = limiter.hit("a")

        assert status.count == 2
        assert status.remaining == 1
        assert limiter.peek("b").count == 0

    def test_window_resets_after_expiry(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)
        limiter.hit("a")
        limiter.hit("a")

        clock.now += 61

        assert limiter.hit("a").count == 1

    def test_peek_does_not_count(self):
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=FakeClock())

        limiter.peek("a")
        limiter.peek("a")

        assert limiter.peek("a").count == 0

    def test_headers(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=5, window_seconds=900, clock=clock)
        limiter.hit("a")
        clock.now += 100.5

        headers = limiter.peek("a").headers()

        assert headers == {"RateLimit-Limit": "5", "RateLimit-Remaining": "4", "RateLimit-Reset": "800"}

    def test_cleanup_and_reset(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=5, window_seconds=10, clock=clock)
        limiter.hit("a")
        limiter.hit("b")

        limiter.reset("a")
        assert limiter.peek("a").count == 0

        clock.now += 11
        assert limiter.cleanup_expired() == 2

    def test_undo_takes_back_one_hit(self):
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=FakeClock())
        limiter.hit("a")
        limiter.hit("a")

        limiter.undo("a")
        limiter.undo("missing")

        assert limiter.peek("a").count == 1

    def test_expired_windows_are_swept_on_hit(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=5, window_seconds=10, clock=clock)
        for i in range(20):
            limiter.hit(f"10.0.0.{i}")
        assert len(limiter) == 20

        clock.now += 11
        limiter.hit("fresh")

        assert len(limiter) == 1


def _app(limiter: RateLimiter, auth_limiter: RateLimiter, enabled: bool = True) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.post("/auth/login")
    async def login(ok: bool = False):
        if ok:
            return {"token": "t"}
        return JSONResponse(status_code=401, content={"error": "Invalid password"})

    app.add_middleware(RateLimitMiddleware, limiter=limiter, auth_limiter=auth_limiter, enabled=enabled)
    return app


class TestRateLimitMiddleware:
    def test_global_limit_returns_429(self):
        client = TestClient(_app(RateLimiter(3, 900), RateLimiter(10, 900)))

        for _ in range(3):
            assert client.get("/ping").status_code == 200
        response = client.get("/ping")

        assert response.status_code == 429
        assert response.json() == {
            "error": "Too many requests from this IP, please try again later.",
            "status": 429,
            "code": "rate_limited",
        }
        assert response.headers["RateLimit-Limit"] == "3"
        assert response.headers["RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) >= 1

    def test_success_responses_carry_rate_limit_headers(self):
        client = TestClient(_app(RateLimiter(3, 900), RateLimiter(10, 900)))

        response = client.get("/ping")

        assert response.headers["RateLimit-Limit"] == "3"
        assert response.headers["RateLimit-Remaining"] == "2"

    def test_auth_limiter_counts_only_failures(self):
        client = TestClient(_app(RateLimiter(100, 900), RateLimiter(2, 900)))

        for _ in range(5):
            assert client.post("/auth/login?ok=true").status_code == 200
        assert client.post("/auth/login").status_code == 401
        assert client.post("/auth/login").status_code == 401

        response = client.post("/auth/login?ok=true")

        assert response.status_code == 429
        assert response.json()["error"] == AUTH_LIMIT_MESSAGE

    def test_limits_are_per_client_address(self):
        client = TestClient(_app(RateLimiter(1, 900), RateLimiter(10, 900)))

        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.2"}).status_code == 200

    def test_client_supplied_forwarded_entries_do_not_change_the_key(self):
        auth_limiter = RateLimiter(2, 900)
        client = TestClient(_app(RateLimiter(100, 900), auth_limiter))

        statuses = [
            client.post("/auth/login", headers={"X-Forwarded-For": f"10.0.0.{i}, 203.0.113.7"}).status_code
            for i in range(6)
        ]

        assert statuses == [401, 401, 429, 429, 429, 429]
        assert len(auth_limiter) == 1

    def test_disabled_middleware_never_limits(self):
        client = TestClient(_app(RateLimiter(1, 900), RateLimiter(1, 900), enabled=False))

        assert all(client.get("/ping").status_code == 200 for _ in range(3))

    @pytest.mark.asyncio
    async def test_concurrent_auth_failures_are_limited(self):
        app = FastAPI()

        @app.post("/auth/login")
        async def slow_login():
            await asyncio.sleep(0.05)
            return JSONResponse(status_code=401, content={"error": "Invalid password"})

        app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(100, 900), auth_limiter=RateLimiter(3, 900))

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            responses = await asyncio.gather(*(client.post("/auth/login") for _ in range(12)))

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [401] * 3 + [429] * 9
