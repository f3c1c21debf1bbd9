"""Request logging middleware.

Assigns every request an id (reusing an incoming ``X-Request-ID`` when present),
binds it into the structlog context so service logs carry it, and writes one
``request_completed`` event per request.
"""

import time
import uuid
from typing import Iterable, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tasky.core.constants import IGNORED_LOG_PATHS, REQUEST_ID_HEADER
from tasky.core.logging import get_logger
from tasky.core.rate_limiter import client_address


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        ignored_paths: Optional[Iterable[str]] = None,
        add_request_id_header: bool = True,
        trust_proxy: bool = True,
        logger=None,
    ):
        super().__init__(app)
        self.ignored_paths = set(IGNORED_LOG_PATHS if ignored_paths is None else ignored_paths)
        self.add_request_id_header = add_request_id_header
        self.trust_proxy = trust_proxy
        self.logger = logger or get_logger("http")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            structlog.contextvars.clear_contextvars()

        if request.url.path not in self.ignored_paths:
            self.logger.info(
                "request_completed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                client=client_address(request, self.trust_proxy),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
        if self.add_request_id_header:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response
