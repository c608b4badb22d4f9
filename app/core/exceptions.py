# app/core/exceptions.py
"""
Booking engine error taxonomy.

Services raise these; the HTTP layer maps them to status codes through
the handlers registered in register_exception_handlers().
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for every error the booking engine surfaces"""

    status_code = 400
    error_code = "booking_error"
    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "detail": self.message,
            "retryable": self.retryable,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(BookingError):
    """Resource, service, rule or appointment does not exist"""

    status_code = 404
    error_code = "not_found"


class ValidationError(BookingError):
    """Malformed input: bad time format, start >= end, weekday out of range, non-ISO date"""

    status_code = 400
    error_code = "validation_error"


class InvalidRuleError(BookingError):
    """Stored weekly rule, break or special date data is malformed"""

    status_code = 422
    error_code = "invalid_rule"


class PolicyRejectedError(BookingError):
    """Requested date/time falls outside the notice or advance-booking window"""

    status_code = 422
    error_code = "policy_rejected"


class ConflictError(BookingError):
    """Slot is no longer available at commit time"""

    status_code = 409
    error_code = "conflict"


class InvalidTransitionError(BookingError):
    """Lifecycle move not allowed from the appointment's current status"""

    status_code = 409
    error_code = "invalid_transition"


class BookingTimeoutError(BookingError):
    """Lock or statement timeout inside a booking unit of work; safe to retry"""

    status_code = 503
    error_code = "booking_timeout"
    retryable = True


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.__class__.__name__}: {exc.message}",
        extra={"correlation_id": correlation_id, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the taxonomy handler to a FastAPI app"""
    app.add_exception_handler(BookingError, booking_error_handler)
