"""
Snapcheck Backend — Rate Limiting Middleware
==============================================

What:  Per-client sliding window limit on API requests.
How:   Keeps the timestamps of each client's requests over the last
       `rate_limit_window` seconds; once `rate_limit_requests` is reached the
       request is answered with 429 and a Retry-After header.

Every request counts against its remote address. A request carrying a
bearer token also counts against a bucket for that token, so one token
cannot exceed the limit from several addresses. Token buckets are keyed by
a SHA-256 digest; raw tokens are never held in memory.

State is per process. Running several uvicorn workers multiplies the
effective limit by the worker count.
"""

import hashlib
import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.auth import parse_bearer_token
from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

CLEANUP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window rate limiter."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    @staticmethod
    def client_keys(request: Request) -> List[str]:
        """Buckets charged for this request: the address, then the token digest."""
        host = request.client.host if request.client else "unknown"
        keys = ["ip:" + host]
        token = parse_bearer_token(request.headers.get("Authorization"))
        if token:
            keys.append("token:" + hashlib.sha256(token.encode()).hexdigest())
        return keys

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        now = time.time()
        window_start = now - settings.rate_limit_window

        buckets = []
        for key in self.client_keys(request):
            timestamps = [ts for ts in self._requests.get(key, ()) if ts > window_start]
            if len(timestamps) >= settings.rate_limit_requests:
                return self._reject(key, timestamps, now)
            buckets.append((key, timestamps))

        # Charged only once every bucket accepted the request
        for key, timestamps in buckets:
            timestamps.append(now)
            self._requests[key] = timestamps

        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive_clients(window_start)

        return await call_next(request)

    def _reject(self, key: str, timestamps: List[float], now: float) -> JSONResponse:
        retry_after = int(timestamps[0] + settings.rate_limit_window - now) + 1
        exc = RateLimitExceededError(retry_after=retry_after)
        logger.warning(
            "Rate limit exceeded for %s: %d requests in %ds window",
            key.split(":", 1)[0],
            len(timestamps),
            settings.rate_limit_window,
        )
        # Middleware runs outside the app's exception handlers
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "request_id": request_id_var.get(""),
                "details": exc.context,
            },
            headers={"Retry-After": str(retry_after)},
        )

    def _cleanup_inactive_clients(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in inactive:
            del self._requests[key]

        if inactive:
            logger.debug("Dropped rate limit state of %d inactive clients", len(inactive))
