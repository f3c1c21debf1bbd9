"""Per-client fixed-window rate limiting."""

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from tasky.core.constants import AUTH_ROUTE_PREFIX, matches_prefix
from tasky.core.exceptions import RateLimitedError
from tasky.core.logging import get_logger

logger = get_logger("core.rate_limiter")

AUTH_LIMIT_MESSAGE = "Too many authentication attempts, please try again later."


@dataclass
class WindowRecord:
    """Hits counted for one client in the current window."""

    count: int
    reset_at: float


@dataclass
class RateLimitStatus:
    limit: int
    count: int
    reset_after: float

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def headers(self) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(math.ceil(self.reset_after)),
        }


class RateLimiter:
    """
    Counts hits per key in fixed windows.

    Thread-safe in-memory limiter. Counters are process-local and are lost on
    restart.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._records: Dict[str, WindowRecord] = {}
        self._lock = Lock()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._next_sweep = clock() + window_seconds

    def __len__(self) -> int:
        return len(self._records)

    def _drop_expired(self, now: float) -> int:
        expired = [k for k, v in self._records.items() if now >= v.reset_at]
        for k in expired:
            del self._records[k]
        self._next_sweep = now + self.window_seconds
        return len(expired)

    def _current(self, key: str, now: float) -> WindowRecord:
        record = self._records.get(key)
        if record is None or now >= record.reset_at:
            record = WindowRecord(count=0, reset_at=now + self.window_seconds)
            self._records[key] = record
        return record

    def _status(self, record: WindowRecord, now: float) -> RateLimitStatus:
        return RateLimitStatus(limit=self.max_requests, count=record.count, reset_after=record.reset_at - now)

    def hit(self, key: str) -> RateLimitStatus:
        """Count one hit for ``key`` and return the updated window."""
        with self._lock:
            now = self._clock()
            # Keys that never come back would otherwise stay forever
            if now >= self._next_sweep:
                self._drop_expired(now)
            record = self._current(key, now)
            record.count += 1
            return self._status(record, now)

    def undo(self, key: str) -> None:
        """Take back one hit counted in the current window for ``key``."""
        with self._lock:
            record = self._records.get(key)
            if record is not None and record.count > 0 and self._clock() < record.reset_at:
                record.count -= 1

    def peek(self, key: str) -> RateLimitStatus:
        """Return the current window for ``key`` without counting a hit."""
        with self._lock:
            now = self._clock()
            return self._status(self._current(key, now), now)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._records.clear()
            else:
                self._records.pop(key, None)

    def cleanup_expired(self) -> int:
        """Drop finished windows. Returns how many were removed."""
        with self._lock:
            return self._drop_expired(self._clock())


def client_address(request: Request, trust_proxy: bool = True) -> str:
    """Address of the caller as seen by the nearest (single trusted) proxy.

    Only the rightmost ``X-Forwarded-For`` entry is used: it is the one the
    proxy appended, everything left of it is supplied by the client.
    """
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            hop = forwarded.split(",")[-1].strip()
            if hop:
                return hop
    return request.client.host if request.client else "unknown"


def _limited_response(error: RateLimitedError, status: RateLimitStatus) -> JSONResponse:
    headers = status.headers()
    headers["Retry-After"] = str(max(1, math.ceil(status.reset_after)))
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the global limiter to every request, plus a stricter limiter to the
    auth routes that counts only failed (status >= 400) attempts.

    Auth attempts are counted before the handler runs and handed back once the
    response turns out successful, so concurrent guesses cannot all slip
    through before the first failure is recorded.
    """

    def __init__(
        self,
        app,
        limiter: RateLimiter,
        auth_limiter: Optional[RateLimiter] = None,
        trust_proxy: bool = True,
        enabled: bool = True,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.auth_limiter = auth_limiter
        self.trust_proxy = trust_proxy
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        key = client_address(request, self.trust_proxy)
        status = self.limiter.hit(key)
        if status.count > status.limit:
            logger.warning("rate_limited", client=key, path=request.url.path)
            return _limited_response(RateLimitedError(), status)

        is_auth_route = self.auth_limiter is not None and matches_prefix(request.url.path, (AUTH_ROUTE_PREFIX,))
        if is_auth_route:
            auth_status = self.auth_limiter.hit(key)
            if auth_status.count > auth_status.limit:
                logger.warning("auth_rate_limited", client=key, path=request.url.path)
                return _limited_response(RateLimitedError(AUTH_LIMIT_MESSAGE), auth_status)

        response = await call_next(request)

        if is_auth_route and response.status_code < 400:
            self.auth_limiter.undo(key)
        response.headers.update(status.headers())
        return response
