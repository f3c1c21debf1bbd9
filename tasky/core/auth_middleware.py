"""Authentication middleware for Tasky."""

from typing import Awaitable, Callable, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from tasky.core.constants import PROTECTED_PREFIXES, matches_prefix
from tasky.core.exceptions import UnauthenticatedError
from tasky.core.logging import get_logger
from tasky.core.security import AuthenticatedUser, decode_token, parse_bearer
from tasky.core.settings import TaskySettings

logger = get_logger("core.auth_middleware")

UserResolver = Callable[[str], Awaitable[Optional[AuthenticatedUser]]]


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware that validates the bearer JWT and attaches the user to request state.

    Only paths under ``protected_prefixes`` are checked, so unknown routes still
    fall through to the 404 handler. The token subject is resolved against the
    user store on every request; a token whose user no longer exists is refused.
    Failures short-circuit with a 401 JSON error body.
    """

    def __init__(
        self,
        app,
        resolve_user: UserResolver,
        protected_prefixes: Optional[Iterable[str]] = None,
        settings: Optional[TaskySettings] = None,
    ):
        super().__init__(app)
        self.settings = settings
        self.resolve_user = resolve_user
        self.protected_prefixes = tuple(protected_prefixes or PROTECTED_PREFIXES)

    async def _authenticate(self, request: Request) -> AuthenticatedUser:
        token = parse_bearer(request.headers.get("Authorization"))
        token_data = decode_token(token, self.settings)
        user = await self.resolve_user(token_data.sub)
        if user is None:
            raise UnauthenticatedError("User not found")
        return user

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS" or not matches_prefix(request.url.path, self.protected_prefixes):
            return await call_next(request)

        try:
            request.state.user = await self._authenticate(request)
        except UnauthenticatedError as e:
            logger.info("auth_rejected", path=request.url.path, reason=e.message)
            return JSONResponse(status_code=e.status_code, content=e.to_dict())

        return await call_next(request)
