from __future__ import annotations

import logging
import time

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import Settings

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        # Signed system-to-system responses carry staff data and must not be cached by proxies.
        if request.url.path.startswith(f"{self._settings.api_prefix}/xr"):
            response.headers.setdefault("Cache-Control", "no-store")
        if self._settings.security_enable_hsts:
            max_age = max(1, self._settings.security_hsts_max_age_seconds)
            response.headers.setdefault("Strict-Transport-Security", f"max-age={max_age}; includeSubDomains")
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max(1, max_bytes)

    async def dispatch(self, request: Request, call_next) -> Response:
        raw_length = request.headers.get("content-length")
        if raw_length and raw_length.isdigit() and int(raw_length) > self._max_bytes:
            logger.warning("Rejected %s %s: body of %s bytes", request.method, request.url.path, raw_length)
            return JSONResponse(
                status_code=413,
                content={
                    "message": "Request body too large",
                    "details": {"contentLength": int(raw_length), "maxBytes": self._max_bytes},
                },
            )
        return await call_next(request)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, slow_request_ms: int) -> None:
        super().__init__(app)
        self._slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.1f}"
        if elapsed_ms >= self._slow_request_ms:
            logger.warning(
                "Slow request %s %s -> %s in %.1f ms",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
            )
        return response
