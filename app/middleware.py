"""Cross-cutting HTTP middleware: security headers, rate limiting, access log."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

access_logger = logging.getLogger("citydash.access")

_DEFAULT_CSP = (
    "default-src 'self'; "
    "base-uri 'self'; "
    "font-src 'self' https: data:; "
    "form-action 'self'; "
    "frame-ancestors 'self'; "
    "img-src 'self' data:; "
    "object-src 'none'; "
    "script-src 'self'; "
    "script-src-attr 'none'; "
    "style-src 'self' https: 'unsafe-inline'; "
    "upgrade-insecure-requests"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds a conservative set of security headers to every response."""

    def __init__(
        self,
        app,
        *,
        hsts_max_age: int = 15552000,  # 180 days
        content_security_policy: str | None = None,
        referrer_policy: str = "no-referrer",
    ):
        super().__init__(app)
        self.hsts_max_age = hsts_max_age
        self.content_security_policy = content_security_policy or _DEFAULT_CSP
        self.referrer_policy = referrer_policy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        headers = response.headers
        headers["Content-Security-Policy"] = self.content_security_policy
        headers["Cross-Origin-Opener-Policy"] = "same-origin"
        headers["Cross-Origin-Resource-Policy"] = "same-origin"
        headers["Origin-Agent-Cluster"] = "?1"
        headers["Referrer-Policy"] = self.referrer_policy
        headers["Strict-Transport-Security"] = (
            f"max-age={self.hsts_max_age}; includeSubDomains"
        )
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-DNS-Prefetch-Control"] = "off"
        headers["X-Download-Options"] = "noopen"
        headers["X-Frame-Options"] = "SAMEORIGIN"
        headers["X-Permitted-Cross-Domain-Policies"] = "none"
        headers["X-XSS-Protection"] = "0"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window limiter keyed by client IP.

    Only paths under ``path_prefix`` are counted.
    """

    def __init__(
        self,
        app,
        *,
        requests: int = 100,
        window_seconds: int = 15 * 60,
        path_prefix: str = "/api/",
        key_func: Callable[[Request], str] | None = None,
        cleanup_interval: int | None = None,
    ):
        super().__init__(app)
        self.requests = max(1, requests)
        self.window = max(1, window_seconds)
        self.path_prefix = path_prefix
        self.key_func = key_func or self._default_key
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._state_lock = asyncio.Lock()
        self._cleanup_interval = max(1, cleanup_interval or self.window)
        self._expiration_window = self.window * 2
        self._last_cleanup = time.monotonic()

    @staticmethod
    def _default_key(request: Request) -> str:
        client = request.client
        return client.host if client else "unknown"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        identifier = self.key_func(request)
        now = time.monotonic()
        earliest = now - self.window

        async with self._state_lock:
            self._maybe_cleanup(now)
            timestamps = self._hits[identifier]
            per_key_lock = self._locks[identifier]

        async with per_key_lock:
            while timestamps and timestamps[0] <= earliest:
                timestamps.popleft()

            if len(timestamps) >= self.requests:
                retry_after = max(1, math.ceil(timestamps[0] + self.window - now))
                return JSONResponse(
                    {
                        "success": False,
                        "error": "Too many requests, please try again later.",
                    },
                    status_code=429,
                    headers={
                        "Retry-After": str(retry_after),
                        "X-RateLimit-Limit": str(self.requests),
                        "X-RateLimit-Remaining": "0",
                    },
                )

            timestamps.append(now)
            remaining = self.requests - len(timestamps)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    def _maybe_cleanup(self, now: float) -> None:
        """Remove stale client entries to keep in-memory usage bounded."""
        if now - self._last_cleanup < self._cleanup_interval:
            return

        expiration_cutoff = now - self._expiration_window
        stale_keys = [
            key
            for key, timestamps in list(self._hits.items())
            if not timestamps or timestamps[-1] < expiration_cutoff
        ]

        for key in stale_keys:
            self._hits.pop(key, None)
            self._locks.pop(key, None)

        self._last_cleanup = now


def format_combined(
    request: Request, status_code: int, content_length: str | None, when: datetime
) -> str:
    """Render an Apache combined log line."""
    client = request.client.host if request.client else "-"
    http_version = request.scope.get("http_version", "1.1")
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    referer = request.headers.get("referer", "-")
    agent = request.headers.get("user-agent", "-")
    stamp = when.strftime("%d/%b/%Y:%H:%M:%S %z")
    return (
        f'{client} - - [{stamp}] "{request.method} {target} HTTP/{http_version}" '
        f'{status_code} {content_length or "-"} "{referer}" "{agent}"'
    )


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Emits one combined-format access log line per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        access_logger.info(
            format_combined(
                request,
                response.status_code,
                response.headers.get("content-length"),
                datetime.now(timezone.utc),
            ),
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
