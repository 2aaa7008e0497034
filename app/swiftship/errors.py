"""
Error taxonomy shared by services and HTTP handlers.

Every error knows its HTTP status, a short machine-oriented tag and a
human-readable message; `to_envelope` renders the standard JSON body
`{success: false, message, error, ...}`.
"""
from __future__ import annotations

from typing import Any


class SwiftShipError(Exception):
    status_code = 500
    error = "Internal server error"
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str | None = None, *, error: str | None = None, **payload: Any) -> None:
        self.message = message or self.default_message
        if error:
            self.error = error
        self.payload = payload
        super().__init__(self.message)

    def to_envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message, "error": self.error}
        body.update(self.payload)
        return body


class ValidationError(SwiftShipError):
    status_code = 400
    error = "Validation failed"
    default_message = "Please check your input and try again."

    def __init__(self, message: str | None = None, *, errors: list[str] | None = None, error: str | None = None) -> None:
        self.errors = list(errors or [])
        if message is None and self.errors:
            message = ", ".join(self.errors)
        if self.errors:
            super().__init__(message, error=error, errors=self.errors)
        else:
            super().__init__(message, error=error)


class Unauthorized(SwiftShipError):
    status_code = 401
    error = "Unauthorized"
    default_message = "Authentication required"


class Forbidden(SwiftShipError):
    status_code = 403
    error = "Forbidden"
    default_message = "Admin access required"


class NotFound(SwiftShipError):
    status_code = 404
    error = "Not found"
    default_message = "Resource not found"


class DuplicateTrackingNumber(SwiftShipError):
    status_code = 409
    error = "Duplicate tracking number"
    default_message = "A package with this tracking number already exists"


class StorageUnavailable(SwiftShipError):
    status_code = 500
    error = "Internal server error"
    default_message = "Data service unavailable. Please try again later."
