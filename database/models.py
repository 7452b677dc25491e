"""
SQLAlchemy ORM models for the scheduling database.

This module defines the tables:
- subjects: Patients with contact info (phone in E.164, email)
- bookings: Appointments with lifecycle status and confirmation code
- appointment_types: Type catalog (name -> default duration)
- business_hours: Opening hours by day of week
- break_windows: Daily breaks (lunch) optionally limited to one weekday
- holidays: Practice-wide closure dates

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- Proper indexes and constraints
"""

from datetime import UTC, date, datetime, time
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DATE,
    TIME,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from scheduling.models import BookingStatus

# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Core Tables
# ============================================================================


class Subject(Base):
    """
    Subject model - the patient a booking belongs to.

    Found or created by phone (E.164) or email; the name is informative only.
    """

    __tablename__ = "subjects"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    phone: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("phone IS NOT NULL OR email IS NOT NULL", name="subject_has_contact"),
    )

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, phone='{self.phone}', email='{self.email}')>"


class BookingRecord(Base):
    """
    Booking model - one appointment of a subject with a resource (provider).

    Rows are never deleted; cancellation is a status change.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    confirmation_code: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True
    )

    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Scheduling (start is the canonical instant)
    start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    end: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    appointment_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Note: values_callable stores enum .value ("no-show") instead of .name
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BookingStatus.SCHEDULED,
        nullable=False,
        index=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reschedule_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rescheduled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=True
    )

    __table_args__ = (
        CheckConstraint('"end" > start', name="check_booking_end_after_start"),
        CheckConstraint("reschedule_count >= 0", name="check_reschedule_count_positive"),
        # Range queries of one provider's calendar
        Index("idx_bookings_resource_start", "resource_id", "start"),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingRecord(code='{self.confirmation_code}', resource='{self.resource_id}', "
            f"start={self.start}, status='{self.status.value}')>"
        )


class AppointmentTypeRecord(Base):
    """Appointment type catalog entry (name -> default duration)."""

    __tablename__ = "appointment_types"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_appointment_type_duration_positive"),
    )

    def __repr__(self) -> str:
        return f"<AppointmentTypeRecord(name='{self.name}', duration={self.duration_minutes})>"


# ============================================================================
# Calendar Configuration Tables
# ============================================================================


class BusinessHours(Base):
    """
    Practice business hours configuration.

    Day of week: 0=Monday, 1=Tuesday, ..., 6=Sunday
    """

    __tablename__ = "business_hours"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    day_of_week: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="valid_day_of_week"),
        nullable=False,
        unique=True,  # One row per day
    )

    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Opening time (null if closed)
    start_hour: Mapped[Optional[int]] = mapped_column(
        Integer,
        CheckConstraint("start_hour IS NULL OR (start_hour >= 0 AND start_hour <= 23)", name="valid_start_hour"),
        nullable=True,
    )
    start_minute: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint("start_minute >= 0 AND start_minute <= 59", name="valid_start_minute"),
        default=0,
        nullable=False,
    )

    # Closing time (null if closed)
    end_hour: Mapped[Optional[int]] = mapped_column(
        Integer,
        CheckConstraint("end_hour IS NULL OR (end_hour >= 0 AND end_hour <= 23)", name="valid_end_hour"),
        nullable=True,
    )
    end_minute: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint("end_minute >= 0 AND end_minute <= 59", name="valid_end_minute"),
        default=0,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        if self.is_closed:
            return f"<BusinessHours(day={self.day_of_week}, CLOSED)>"
        return f"<BusinessHours(day={self.day_of_week}, {self.start_hour}:{self.start_minute:02d}-{self.end_hour}:{self.end_minute:02d})>"


class BreakWindowRecord(Base):
    """Daily break; day_of_week NULL means every open day."""

    __tablename__ = "break_windows"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(String(100), default="Break", nullable=False)
    start_time: Mapped[time] = mapped_column(TIME, nullable=False)
    end_time: Mapped[time] = mapped_column(TIME, nullable=False)
    day_of_week: Mapped[Optional[int]] = mapped_column(
        Integer,
        CheckConstraint("day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)", name="valid_break_day"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_break_end_after_start"),
    )

    def __repr__(self) -> str:
        return f"<BreakWindowRecord(name='{self.name}', {self.start_time}-{self.end_time})>"


class Holiday(Base):
    """
    Holiday model - Practice-wide closure dates.

    No bookings are accepted on these dates.
    """

    __tablename__ = "holidays"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    date: Mapped[date] = mapped_column(DATE, unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Holiday(id={self.id}, date={self.date}, name='{self.name}')>"
