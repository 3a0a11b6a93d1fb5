"""Error taxonomy for the calendar engine.

Errors are raised synchronously by the component that detects them. The
HTTP layer maps them to responses via ``status_code`` and ``to_dict()``.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for deterministic input errors raised by the engine."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        """Render the error body the API layer sends back to clients."""
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "details": list(self.details),
            },
        }


class ValidationError(EngineError):
    """Malformed id, bad filter, empty resource list, bad recurrence."""

    status_code = 400
    code = "VALIDATION_ERROR"


class UnsupportedRecurrence(ValidationError):
    """A recurrence pattern uses a frequency the generator cannot expand."""


class NotFoundError(EngineError):
    """A referenced event id does not exist."""

    status_code = 404
    code = "NOT_FOUND"
