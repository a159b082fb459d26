"""
E-Waste Marketplace - HTTP Middleware
Request logging and timing, security headers, body size limits
"""

import time
from typing import Callable, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.config import settings
from app.core.exceptions import error_response
from app.core.logging_config import (
    logger,
    set_request_id,
    set_user_context,
    generate_request_id,
)


# Paths that should skip detailed logging
SKIP_LOGGING_PATHS: Set[str] = {
    "/health",
    "/",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}

SLOW_REQUEST_MS = 1000


def should_skip_logging(path: str) -> bool:
    return path in SKIP_LOGGING_PATHS


def get_client_ip(request: Request) -> str:
    """
    Client address of the request.

    X-Forwarded-For is only read when the connecting peer is one of
    TRUSTED_PROXIES. The hops are then walked from the right and the first
    address that is not a trusted proxy is returned.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = settings.TRUSTED_PROXIES
    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded or peer not in trusted:
        return peer

    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with a correlation id.

    - Reuses an incoming X-Request-ID or generates one
    - Logs method, path, status and duration (warning on 4xx, error on 5xx)
    - Adds X-Request-ID and X-Response-Time headers to the response
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        skip_logging = should_skip_logging(path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            if not skip_logging:
                logger.log_request(
                    request.method,
                    path,
                    response.status_code,
                    duration_ms,
                    client_ip=get_client_ip(request),
                )

                if duration_ms > SLOW_REQUEST_MS:
                    logger.warning(
                        f"Slow request: {request.method} {path} took {duration_ms:.2f}ms",
                        extra={"event_type": "slow_request", "duration_ms": duration_ms}
                    )

            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.method} {path} - {type(exc).__name__} ({duration_ms:.2f}ms)",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "http_method": request.method,
                    "http_path": path,
                    "duration_ms": duration_ms,
                }
            )
            raise

        finally:
            set_request_id("")
            set_user_context("")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds baseline security headers to every response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Tokens and profile data must not be cached by intermediaries
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared body is larger than max_size"""

    def __init__(self, app: ASGIApp, max_size: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")

        if content_length and content_length.isdigit() and int(content_length) > self.max_size:
            logger.warning(
                f"Request body too large: {content_length} bytes (max: {self.max_size})",
                extra={"event_type": "request_too_large", "http_path": request.url.path}
            )
            return JSONResponse(
                status_code=413,
                content=error_response(
                    "PAYLOAD_TOO_LARGE",
                    f"Request body too large. Maximum size is {self.max_size // 1024 // 1024}MB",
                ),
            )

        return await call_next(request)


__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "RequestSizeLimitMiddleware",
    "get_client_ip",
    "should_skip_logging",
]
