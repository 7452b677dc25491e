"""
Scheduling error taxonomy.

Every failure the scheduling core can surface is a SchedulingError subclass
with a stable `error_code`, so callers (tools, API layers) can branch on the
code and phrase their own follow-up question.

- ParseError: date/time text could not be resolved without guessing
- UnavailableError family: the calendar or the booking set rejects a slot
- NotFoundError / AlreadyCancelledError / InvalidStatusTransitionError:
  lifecycle violations on an existing booking
- NoAvailabilityError: the search horizon was exhausted
- BookingPersistenceError: the store failed; safe to retry
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    error_code = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }


class ParseError(SchedulingError):
    """
    Ambiguous or unparseable date/time expression.

    Attributes:
        fragment: The text that could not be resolved
        kind: "date", "time" or "ambiguous"
    """

    error_code = "PARSE_ERROR"

    def __init__(self, message: str, fragment: str, kind: str = "date"):
        self.fragment = fragment
        self.kind = kind
        super().__init__(message, {"fragment": fragment, "kind": kind})


class UnknownAppointmentTypeError(SchedulingError):
    error_code = "UNKNOWN_APPOINTMENT_TYPE"


class UnavailableError(SchedulingError):
    """A specific interval cannot be booked."""

    error_code = "UNAVAILABLE"


class OutsideHoursError(UnavailableError):
    error_code = "OUTSIDE_HOURS"


class TooSoonError(UnavailableError):
    error_code = "TOO_SOON"


class ConflictError(UnavailableError):
    """Interval collides with existing bookings (buffer included)."""

    error_code = "CONFLICT"

    def __init__(self, message: str, conflicts: Optional[list[Any]] = None):
        self.conflicts = conflicts or []
        super().__init__(message, {"conflicts": self.conflicts})


class RestRequiredError(UnavailableError):
    error_code = "REST_REQUIRED"


class NotFoundError(SchedulingError):
    error_code = "NOT_FOUND"


class AlreadyCancelledError(SchedulingError):
    error_code = "ALREADY_CANCELLED"


class InvalidStatusTransitionError(SchedulingError):
    error_code = "INVALID_STATUS_TRANSITION"


class NoAvailabilityError(SchedulingError):
    error_code = "NO_AVAILABILITY"


class BookingPersistenceError(SchedulingError):
    """
    The booking store failed to read or write.

    The write was not applied; callers may retry (using the confirmation
    code to check the final state first).
    """

    error_code = "PERSISTENCE_ERROR"
    retryable = True


class DuplicateConfirmationCodeError(BookingPersistenceError):
    error_code = "DUPLICATE_CONFIRMATION_CODE"


class InvalidContactError(SchedulingError):
    """Neither a valid phone number nor an email identifies the subject."""

    error_code = "INVALID_CONTACT"
