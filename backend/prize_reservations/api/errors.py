"""
Maps the reservation error taxonomy onto HTTP responses.
"""

import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from prize_reservations.core.exceptions import RateLimitedError, ReservationError, StoreUnavailableError
from prize_reservations.core.logging import get_logger

logger = get_logger(__name__)


async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(max(0, exc.reset_at - int(time.time())))
    if isinstance(exc, StoreUnavailableError):
        logger.error("store_unavailable", operation=exc.operation, error=str(exc.cause))
    else:
        logger.info("request_rejected", error_type=type(exc).__name__, error=exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, **exc.details()},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Validation details stay server-side
    logger.info("request_validation_failed", errors=exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request data"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReservationError, reservation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
