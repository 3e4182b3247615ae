"""Exception handlers shared by every service."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .booking import BookingError
from .google_calendar import GoogleCalendarError

logger = logging.getLogger(__name__)


def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def google_calendar_error_handler(_: Request, exc: GoogleCalendarError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Missing or invalid fields", "errors": jsonable_encoder(exc.errors())},
    )


def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    """Map domain and unexpected errors to JSON responses."""

    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(GoogleCalendarError, google_calendar_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
