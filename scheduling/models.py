"""
Domain models for the scheduling core.

Pydantic models shared by the availability engine, the slot finder and the
booking transaction manager. `Booking.start` is the one canonical instant of
a booking; anything else (display dates, "HH:MM" strings) is derived.
"""

from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from scheduling.errors import (
    ConflictError,
    OutsideHoursError,
    RestRequiredError,
    TooSoonError,
)


class BookingStatus(str, PyEnum):
    """Booking lifecycle status."""

    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"  # Moved in place, still active
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"

    def __str__(self):
        return self.value


# Statuses that occupy the resource's calendar
ACTIVE_STATUSES = frozenset({BookingStatus.SCHEDULED, BookingStatus.RESCHEDULED})


def normalize_confirmation_code(code: str) -> str:
    """Confirmation codes are stored and looked up upper case."""
    return code.strip().upper()


class UnavailableReason(str, PyEnum):
    OUTSIDE_HOURS = "OUTSIDE_HOURS"
    TOO_SOON = "TOO_SOON"
    CONFLICT = "CONFLICT"
    REST_REQUIRED = "REST_REQUIRED"

    def __str__(self):
        return self.value


class TimeSlot(BaseModel):
    """Half-open interval [start, end) with timezone-aware bounds."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeSlot":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeSlot bounds must be timezone-aware")
        if self.end <= self.start:
            raise ValueError("TimeSlot end must be after start")
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class SlotCandidate(TimeSlot):
    """Alternative slot proposed by the search (never persisted)."""

    score: int
    reason: str


class Booking(BaseModel):
    """
    Booking record - one appointment of a subject with a resource.

    Created only by BookingTransactionManager.book(); changed only through
    cancel(), reschedule(), complete() and mark_no_show().
    """

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    confirmation_code: str
    resource_id: str
    subject_id: str
    start: datetime
    end: datetime
    appointment_type: str
    status: BookingStatus = BookingStatus.SCHEDULED
    created_at: datetime
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    reschedule_count: int = 0
    rescheduled_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("confirmation_code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return normalize_confirmation_code(value)

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def overlaps(self, start: datetime, end: datetime, buffer_minutes: int = 0) -> bool:
        """True if [start, end) hits this booking widened by the buffer."""
        buffer = timedelta(minutes=buffer_minutes)
        return (self.start - buffer) < end and (self.end + buffer) > start


class ConflictRef(BaseModel):
    """Diagnostic reference to a booking that blocks a slot."""

    booking_id: UUID
    confirmation_code: str
    start: datetime
    end: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "ConflictRef":
        return cls(
            booking_id=booking.id,
            confirmation_code=booking.confirmation_code,
            start=booking.start,
            end=booking.end,
        )


class AvailabilityResult(BaseModel):
    """Outcome of an availability check."""

    available: bool
    reason: Optional[UnavailableReason] = None
    message: Optional[str] = None
    conflicts: list[ConflictRef] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "AvailabilityResult":
        return cls(available=True)

    def raise_for_status(self) -> None:
        """Raise the matching UnavailableError when the slot is not available."""
        if self.available:
            return
        message = self.message or str(self.reason)
        if self.reason == UnavailableReason.OUTSIDE_HOURS:
            raise OutsideHoursError(message)
        if self.reason == UnavailableReason.TOO_SOON:
            raise TooSoonError(message)
        if self.reason == UnavailableReason.CONFLICT:
            raise ConflictError(message, conflicts=[c.model_dump(mode="json") for c in self.conflicts])
        raise RestRequiredError(message)


class SubjectInfo(BaseModel):
    """Contact details used to find or create the booked subject."""

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class SubjectMatch(BaseModel):
    subject_id: str
    created: bool = False


class BookingRequest(BaseModel):
    """
    Input of BookingTransactionManager.book().

    Either `subject_id` or a `subject` with a phone or email is required.
    `confirmation_code` may be minted by the caller up front so that a retry
    after a timeout replays instead of double booking.
    """

    resource_id: Optional[str] = None
    start: datetime
    appointment_type: str = "general"
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    subject_id: Optional[str] = None
    subject: Optional[SubjectInfo] = None
    notes: Optional[str] = None
    confirmation_code: Optional[str] = None

    @field_validator("confirmation_code")
    @classmethod
    def _normalize_code(cls, value: Optional[str]) -> Optional[str]:
        return normalize_confirmation_code(value) if value else value

    @model_validator(mode="after")
    def _check_subject(self) -> "BookingRequest":
        if self.subject_id:
            return self
        if self.subject is None or not (self.subject.phone or self.subject.email):
            raise ValueError("A subject_id or a subject phone/email is required")
        return self


class BookingResult(BaseModel):
    """
    Outcome of book() and reschedule().

    Success carries the booking; failure carries the reason code, the
    conflicting bookings (if any) and ranked alternatives.
    """

    success: bool
    booking: Optional[Booking] = None
    alternatives: list[SlotCandidate] = Field(default_factory=list)
    error_reason: Optional[str] = None
    message: Optional[str] = None
    conflicts: list[ConflictRef] = Field(default_factory=list)
    replayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
