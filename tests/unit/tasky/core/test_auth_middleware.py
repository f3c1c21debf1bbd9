"""Unit tests for auth middleware."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tasky.core.auth_middleware import AuthMiddleware
from tasky.core.security import AuthenticatedUser, create_access_token


def _request(path: str, method: str = "GET", headers=None):
    request = MagicMock()
    request.url.path = path
    request.method = method
    request.headers = headers or {}
    return request


def _body(response) -> dict:
    return json.loads(response.body)


class TestAuthMiddlewarePassThrough:
    """Requests that never need a token."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/auth/login", "/auth/register", "/health", "/api", "/does-not-exist"])
    async def test_unprotected_paths_pass(self, path, settings):
        resolve_user = AsyncMock()
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=resolve_user, settings=settings)
        request = _request(path, "POST")
        call_next = AsyncMock(return_value=MagicMock())

        await middleware.dispatch(request, call_next)

        call_next.assert_called_once_with(request)
        resolve_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_options_request_bypasses_auth(self, settings):
        """OPTIONS requests should bypass authentication (CORS preflight)."""
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=AsyncMock(), settings=settings)
        request = _request("/tasks", "OPTIONS")
        call_next = AsyncMock(return_value=MagicMock())

        await middleware.dispatch(request, call_next)

        call_next.assert_called_once_with(request)

    @pytest.mark.asyncio
    async def test_prefix_match_is_segment_based(self, settings):
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=AsyncMock(), settings=settings)
        request = _request("/tasksfoo")
        call_next = AsyncMock(return_value=MagicMock())

        await middleware.dispatch(request, call_next)

        call_next.assert_called_once_with(request)


class TestAuthMiddlewareAuthentication:
    @pytest.mark.asyncio
    async def test_missing_auth_header_returns_401(self, settings):
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=AsyncMock(), settings=settings)
        call_next = AsyncMock()

        response = await middleware.dispatch(_request("/tasks"), call_next)

        assert response.status_code == 401
        assert _body(response) == {"error": "Not authenticated", "status": 401, "code": "unauthenticated"}
        call_next.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_auth_format_returns_401(self, settings):
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=AsyncMock(), settings=settings)

        response = await middleware.dispatch(
            _request("/users/profile", headers={"Authorization": "Basic dXNlcjpwYXNz"}),
            AsyncMock(),
        )

        assert response.status_code == 401
        assert "Bearer <token>" in _body(response)["error"]

    @pytest.mark.asyncio
    async def test_invalid_token_returns_401(self, settings):
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=AsyncMock(), settings=settings)

        response = await middleware.dispatch(
            _request("/tasks", headers={"Authorization": "Bearer not-a-jwt"}),
            AsyncMock(),
        )

        assert response.status_code == 401
        assert _body(response)["error"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_unknown_user_returns_401(self, settings):
        resolve_user = AsyncMock(return_value=None)
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=resolve_user, settings=settings)
        token = create_access_token("deleted-user", settings)

        response = await middleware.dispatch(
            _request("/tasks", headers={"Authorization": f"Bearer {token}"}),
            AsyncMock(),
        )

        assert response.status_code == 401
        assert _body(response)["error"] == "User not found"
        resolve_user.assert_awaited_once_with("deleted-user")

    @pytest.mark.asyncio
    async def test_valid_token_attaches_user(self, settings):
        user = AuthenticatedUser(user_id="u1", email="ann@x.com", name="Ann")
        middleware = AuthMiddleware(app=MagicMock(), resolve_user=AsyncMock(return_value=user), settings=settings)
        token = create_access_token("u1", settings)
        request = _request("/tasks/abc", headers={"Authorization": f"Bearer {token}"})
        downstream = MagicMock()
        call_next = AsyncMock(return_value=downstream)

        response = await middleware.dispatch(request, call_next)

        assert response is downstream
        assert request.state.user == user
        call_next.assert_called_once_with(request)
