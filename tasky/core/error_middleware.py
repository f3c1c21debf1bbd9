from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

ErrorRenderer = Callable[[Request, Exception], Awaitable[Response]]


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """
    Turns exceptions that escaped the routes into a regular error response.

    Installed inside the header/logging middleware so that 500 responses pass
    back through them like any other response.
    """

    def __init__(self, app, render_error: ErrorRenderer):
        super().__init__(app)
        self.render_error = render_error

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return await self.render_error(request, exc)
