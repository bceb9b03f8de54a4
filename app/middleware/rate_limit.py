"""
Rate limiting middleware with in-process storage.

Implements a sliding window limiter keyed by client IP. State lives in this
process only; each instance limits independently.
"""

import math
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response


class RateLimitExceeded(Exception):
    """Rate limit has been exceeded."""
    def __init__(self, limit: int, window_seconds: int, retry_after: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded: {limit} requests per {window_seconds}s")


class RateLimiter:
    """
    Sliding window rate limiter.

    Each key keeps the timestamps of its requests inside the current window.
    """

    def __init__(
        self,
        limit: int = 20,
        window_seconds: int = 60,
        time_fn: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._time = time_fn
        self._hits: Dict[str, Deque[float]] = {}

    def check_limit(self, key: str) -> int:
        """
        Record a request for ``key``.

        Returns:
            Remaining requests in the window; raises RateLimitExceeded when
            the limit is already used up.
        """
        now = self._time()
        window_start = now - self.window_seconds
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = max(1, math.ceil(hits[0] + self.window_seconds - now))
            raise RateLimitExceeded(self.limit, self.window_seconds, retry_after)

        hits.append(now)
        self._prune(window_start)
        return self.limit - len(hits)

    def check_request(self, request: Request, identifier: Optional[str] = None) -> int:
        """Check rate limit for an HTTP request, keyed by client IP by default."""
        if identifier is None:
            identifier = request.client.host if request.client else "unknown"
        return self.check_limit(identifier)

    def _prune(self, window_start: float) -> None:
        # Drop idle keys so the table does not grow with every client ever seen
        if len(self._hits) < 1024:
            return
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= window_start]:
            del self._hits[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for rate limiting.
    """

    def __init__(
        self,
        app,
        rate_limiter: Optional[RateLimiter] = None,
        exclude_paths: Optional[list] = None,
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.exclude_paths = exclude_paths or ["/health", "/healthz"]

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        if path in self.exclude_paths:
            return await call_next(request)

        try:
            remaining = self.rate_limiter.check_request(request)
        except RateLimitExceeded as e:
            return JSONResponse(
                {"error": "Rate limit exceeded", "retry_after": e.retry_after},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={
                    "Retry-After": str(e.retry_after),
                    "RateLimit-Limit": str(e.limit),
                    "RateLimit-Remaining": "0",
                    "RateLimit-Reset": str(e.retry_after),
                },
            )

        response = await call_next(request)
        response.headers["RateLimit-Limit"] = str(self.rate_limiter.limit)
        response.headers["RateLimit-Remaining"] = str(remaining)
        return response
