"""Typed failures raised by the signup, achievement and survey engines."""

from __future__ import annotations

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class PortalError(Exception):
    status_code = 500
    code = "INTERNAL"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PortalError):
    status_code = 404
    code = "NOT_FOUND"


class ShiftNotFound(NotFound):
    code = "SHIFT_NOT_FOUND"


class Conflict(PortalError):
    status_code = 409
    code = "CONFLICT"


class DuplicateSignup(Conflict):
    code = "DUPLICATE_SIGNUP"


class DailyDoubleBooking(Conflict):
    """The user already holds a CONFIRMED shift on the same civil day."""

    code = "DAILY_DOUBLE_BOOKING"

    def __init__(self, message: str, conflicting_shift_id: Optional[int] = None):
        super().__init__(message)
        self.conflicting_shift_id = conflicting_shift_id


class CapacityExceeded(Conflict):
    code = "CAPACITY_EXCEEDED"


class AlreadyCompleted(Conflict):
    code = "ALREADY_COMPLETED"


class ValidationFailed(PortalError):
    status_code = 400
    code = "VALIDATION_FAILED"


class Expired(PortalError):
    status_code = 410
    code = "EXPIRED"


class Forbidden(PortalError):
    status_code = 403
    code = "FORBIDDEN"


def error_response(request: Request, exc: PortalError) -> JSONResponse:
    payload = {"error": {"code": exc.code, "message": exc.message}}
    if isinstance(exc, DailyDoubleBooking) and exc.conflicting_shift_id is not None:
        payload["error"]["conflicting_shift_id"] = exc.conflicting_shift_id
    return JSONResponse(status_code=exc.status_code, content=payload)
