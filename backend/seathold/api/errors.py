"""
Maps domain errors to HTTP responses.

Body shape for every domain failure: {"code", "message", "details"}.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from seathold.core.logging import get_logger
from seathold.domain.errors import DomainError, ErrorCode

logger = get_logger(__name__)

STATUS_BY_CODE = {
    ErrorCode.SCHEDULE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SEAT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SEAT_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_NO_LONGER_HELD: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_MAP_IN_USE: status.HTTP_409_CONFLICT,
    ErrorCode.SESSION_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.PAYMENT_DECLINED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.BOOKING_WINDOW_CLOSED: status.HTTP_403_FORBIDDEN,
    ErrorCode.PROMOTION_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_SEAT_SELECTION: status.HTTP_400_BAD_REQUEST,
}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.info(
        "domain_error",
        code=exc.code.value,
        status_code=status_code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code.value, "message": exc.message, "details": exc.details},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
