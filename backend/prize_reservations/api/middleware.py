"""
Request middleware: logging with request ID tracking, and global rate limits.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from prize_reservations.core.exceptions import StoreUnavailableError
from prize_reservations.core.logging import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Assigns a unique request ID to each request
    2. Logs request method, path, status code, and duration
    3. Binds request context (including the caller) to structlog for correlation
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            caller=request.headers.get("x-user-id") or "anonymous",
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error("request_failed", error=str(e), duration_ms=duration_ms)
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response


class GlobalRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-caller ceiling on all API traffic.

    Authenticated callers use the global-auth bucket keyed by user id,
    anonymous callers the global-unauth bucket keyed by IP. Health and
    metrics endpoints are not limited.
    """

    def __init__(self, app, path_prefix: str = "/api/"):
        super().__init__(app)
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        limiter = request.app.state.rate_limiter
        user_id = request.headers.get("x-user-id")
        if user_id:
            bucket, identifier = "global-auth", user_id
        else:
            forwarded = request.headers.get("x-forwarded-for", "")
            ip = forwarded.split(",")[0].strip() or (request.client.host if request.client else "unknown")
            bucket, identifier = "global-unauth", ip

        try:
            result = await limiter.limit(bucket, identifier)
        except StoreUnavailableError as e:
            return JSONResponse(status_code=503, content={"error": e.message})

        if not result.allowed:
            retry_after = max(0, result.reset_at - int(time.time()))
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests. Please wait a moment.", "resetAt": result.reset_at},
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response
