"""Map booking errors and request problems onto the JSON error envelope."""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from clinicbook.domain.exceptions import (
    BookingError,
    BookingValidationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SlotConflictError,
    StorageUnavailableError,
)

_STATUS_BY_ERROR: dict[type[BookingError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_400_BAD_REQUEST,
    SlotConflictError: status.HTTP_400_BAD_REQUEST,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    BookingValidationError: status.HTTP_400_BAD_REQUEST,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _envelope(status_code: int, message: str, code: str, **extra: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code, **extra},
    )


async def booking_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, BookingError):
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error", "error")

    status_code = next(
        (code for kind, code in _STATUS_BY_ERROR.items() if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    logger.info(
        "{} {} rejected with {}: {}", request.method, request.url.path, status_code, exc.code
    )
    extra: dict[str, object] = {}
    if isinstance(exc, BookingValidationError):
        extra["details"] = exc.errors
    return _envelope(status_code, str(exc), exc.code, **extra)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        return _envelope(status.HTTP_400_BAD_REQUEST, str(exc), "validation_error")

    details = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.info("Validation error on {}: {}", request.url.path, details)
    return _envelope(
        status.HTTP_400_BAD_REQUEST, "Validation failed", "validation_error", details=details
    )


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, HTTPException):
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error", "error")
    code = "unauthorized" if exc.status_code == status.HTTP_401_UNAUTHORIZED else "http_error"
    return _envelope(exc.status_code, str(exc.detail), code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
