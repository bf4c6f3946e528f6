"""
HTTP Middleware

- RequestLoggingMiddleware: request id in every log line of a request
- RateLimitMiddleware: sliding window per client address
- SecurityHeadersMiddleware: static hardening headers
"""

import asyncio
import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

# Probe traffic is logged at debug so it does not drown kiosk requests
_QUIET_PREFIXES = ("/api/v1/health",)


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds request_id into the structlog context and logs one line per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        log = logger.debug if request.url.path.startswith(_QUIET_PREFIXES) else logger.info

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                client=_client_address(request),
                error_type=type(e).__name__,
                error=str(e),
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        log(
            "Request handled",
            client=_client_address(request),
            status_code=response.status_code,
            elapsed_ms=round(elapsed_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    At most max_requests per client within the trailing window_seconds.

    Counts live in the worker process, so each gunicorn worker limits on
    its own.
    """

    def __init__(self, app, max_requests: int = 300, window_seconds: int = 60):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def _admit(self, client: str) -> int:
        """Record a hit; returns the remaining allowance, or -1 when over the limit."""
        now = time.monotonic()
        async with self._lock:
            hits = self._hits[client]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return -1
            hits.append(now)
            return self.max_requests - len(hits)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client = _client_address(request)
        remaining = await self._admit(client)
        limit_headers = {"X-RateLimit-Limit": str(self.max_requests)}

        if remaining < 0:
            logger.warning("Rate limit exceeded", client=client, window_seconds=self.window_seconds)
            return JSONResponse(
                {"detail": "Rate limit exceeded"},
                status_code=429,
                headers={**limit_headers, "X-RateLimit-Remaining": "0", "Retry-After": str(self.window_seconds)},
            )

        response = await call_next(request)
        response.headers.update({**limit_headers, "X-RateLimit-Remaining": str(remaining)})
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(self.HEADERS)
        return response
