from __future__ import annotations

from typing import Any


class HabitTrackerError(Exception):
    """Base class for failures surfaced to the HTTP layer."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None, *, errors: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ValidationError(HabitTrackerError):
    """Missing, malformed or out-of-range input."""

    status_code = 400
    default_message = "Validation error"


class InvalidDateFormat(ValidationError):
    default_message = "Invalid date format"


class InvalidDuration(ValidationError):
    default_message = "Duration must be between 1 and 365 days"


class ScheduleMismatch(ValidationError):
    default_message = "Number of day titles does not match duration"


class DateOutOfRange(ValidationError):
    default_message = "Date is outside habit duration"


class DateNotScheduled(ValidationError):
    default_message = "Date not found in habit schedule"


class NotFound(HabitTrackerError):
    status_code = 404
    default_message = "Not found"


class Unauthorized(HabitTrackerError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidToken(Unauthorized):
    default_message = "Invalid token"


class TooManyRequests(HabitTrackerError):
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: str | None = None, *, retry_after: int = 1):
        super().__init__(message)
        self.retry_after = max(int(retry_after), 1)


class ExternalServiceError(HabitTrackerError):
    status_code = 503
    default_message = "AI service temporarily unavailable"


class InternalError(HabitTrackerError):
    status_code = 500
    default_message = "Server error"
