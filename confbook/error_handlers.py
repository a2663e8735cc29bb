"""Maps booking-core errors onto JSON HTTP responses."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import BookingError, ValidationError


def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    content = {"detail": exc.detail}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


def apply_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
