"""
Mapping from booking errors to HTTP responses.

Routes let BookingError propagate; the handler registered in main turns it into a
JSON error with the status below.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from bookingbot.services.errors import (
    BookingError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[BookingError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: BookingError) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    code = status_code_for(exc)
    if code == status.HTTP_503_SERVICE_UNAVAILABLE:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {code} ({exc.code}: {exc.message})")
    return JSONResponse(
        status_code=code,
        content={"error": exc.code, "detail": exc.message},
    )
