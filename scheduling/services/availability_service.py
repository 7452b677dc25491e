"""
Availability Calculator - decides whether one interval can be booked.

Checks run in a fixed order and short-circuit on the first failure:
1. Business hours (open window, closed days, holidays, breaks) -> OUTSIDE_HOURS
2. Minimum advance notice                                         -> TOO_SOON
3. Overlap with active bookings, buffer applied                   -> CONFLICT
4. Provider fatigue (too many back-to-back bookings)              -> REST_REQUIRED

The booking store is the single source of truth for existing bookings. The
pure `evaluate()` works on a snapshot so the slot finder can test a whole day
against one query; `is_available()` fetches the snapshot itself.

Usage:
    from scheduling.services.availability_service import AvailabilityCalculator

    calculator = AvailabilityCalculator(calendar, store)
    result = await calculator.is_available("provider-1", start, duration_minutes=30)
    if not result.available:
        print(result.reason, result.message)
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional
from uuid import UUID

from scheduling.models import (
    ACTIVE_STATUSES,
    AvailabilityResult,
    Booking,
    ConflictRef,
    UnavailableReason,
)
from scheduling.ports import BookingStore
from shared.business_hours import BusinessCalendar
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


class AvailabilityCalculator:
    """
    Availability rules for one practice calendar.

    Args:
        calendar: Business calendar (hours, breaks, holidays)
        store: Booking store queried by is_available()
        buffer_minutes: Symmetric gap kept around every active booking
        min_advance_minutes: Earliest bookable start relative to now
        max_consecutive: Chain length that requires a rest
        fatigue_window_minutes: Lookback/lookahead for the fatigue rule
        rest_gap_minutes: Gaps shorter than this keep a chain going
        clock: Returns "now" (injectable for tests)
    """

    def __init__(
        self,
        calendar: BusinessCalendar,
        store: BookingStore,
        buffer_minutes: int = 5,
        min_advance_minutes: int = 30,
        max_consecutive: int = 4,
        fatigue_window_minutes: int = 90,
        rest_gap_minutes: int = 15,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.calendar = calendar
        self.store = store
        self.buffer_minutes = buffer_minutes
        self.min_advance_minutes = min_advance_minutes
        self.max_consecutive = max_consecutive
        self.fatigue_window_minutes = fatigue_window_minutes
        self.rest_gap_minutes = rest_gap_minutes
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        calendar: BusinessCalendar,
        store: BookingStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "AvailabilityCalculator":
        settings = settings or get_settings()
        return cls(
            calendar,
            store,
            buffer_minutes=settings.BUFFER_MINUTES,
            min_advance_minutes=settings.MIN_ADVANCE_MINUTES,
            max_consecutive=settings.MAX_CONSECUTIVE_BOOKINGS,
            fatigue_window_minutes=settings.FATIGUE_WINDOW_MINUTES,
            rest_gap_minutes=settings.REST_GAP_MINUTES,
            clock=clock,
        )

    def now(self) -> datetime:
        if self._clock is not None:
            return self.calendar.localize(self._clock())
        return datetime.now(self.calendar.tz)

    def snapshot_bounds(self, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        """Range of bookings that can influence any interval inside [start, end)."""
        margin = timedelta(minutes=max(self.buffer_minutes, self.fatigue_window_minutes))
        return start - margin, end + margin

    async def fetch_snapshot(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Booking]:
        """Active bookings of a resource relevant to [start, end)."""
        lower, upper = self.snapshot_bounds(self.calendar.localize(start), self.calendar.localize(end))
        return await self.store.query_by_resource(resource_id, lower, upper, ACTIVE_STATUSES)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def evaluate(
        self,
        start: datetime,
        duration_minutes: int,
        bookings: Iterable[Booking],
        exclude_booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> AvailabilityResult:
        """
        Apply all availability rules to [start, start + duration) against a
        snapshot of bookings. Pure: no I/O.

        Args:
            start: Proposed start (naive values are read as calendar local time)
            duration_minutes: Appointment length
            bookings: Existing bookings of the resource; inactive ones are ignored
            exclude_booking_id: Booking being rescheduled (never conflicts with itself)
            now: Reference instant for the advance-notice rule

        Returns:
            AvailabilityResult with the first failing reason, or available=True
        """
        start = self.calendar.localize(start)
        end = start + timedelta(minutes=duration_minutes)
        now = self.calendar.localize(now) if now is not None else self.now()

        # 1. Business hours
        outside = self.calendar.check_interval(start, end)
        if outside:
            return AvailabilityResult(
                available=False,
                reason=UnavailableReason.OUTSIDE_HOURS,
                message=outside,
            )

        # 2. Advance notice
        earliest = now + timedelta(minutes=self.min_advance_minutes)
        if start < earliest:
            return AvailabilityResult(
                available=False,
                reason=UnavailableReason.TOO_SOON,
                message=(
                    f"Appointments must be booked at least {self.min_advance_minutes} "
                    f"minutes in advance"
                ),
            )

        active = [
            booking
            for booking in bookings
            if booking.is_active and booking.id != exclude_booking_id
        ]

        # 3. Conflicts (buffer applied around existing bookings)
        conflicts = [
            booking for booking in active if booking.overlaps(start, end, self.buffer_minutes)
        ]
        if conflicts:
            return AvailabilityResult(
                available=False,
                reason=UnavailableReason.CONFLICT,
                message=f"The requested time conflicts with {len(conflicts)} existing booking(s)",
                conflicts=[ConflictRef.from_booking(booking) for booking in sorted(conflicts, key=lambda b: b.start)],
            )

        # 4. Fatigue
        chain_length = self._chain_length(start, end, active)
        if chain_length >= self.max_consecutive:
            return AvailabilityResult(
                available=False,
                reason=UnavailableReason.REST_REQUIRED,
                message=(
                    f"This would be {chain_length} back-to-back appointments; "
                    f"the provider needs a break"
                ),
            )

        return AvailabilityResult.ok()

    def _chain_length(self, start: datetime, end: datetime, active: list[Booking]) -> int:
        """
        Length of the back-to-back chain the candidate would join.

        Only bookings inside the fatigue window are considered; neighbours
        separated by less than the rest gap belong to the same chain.
        """
        window = timedelta(minutes=self.fatigue_window_minutes)
        rest_gap = timedelta(minutes=self.rest_gap_minutes)

        intervals = sorted(
            [(b.start, b.end) for b in active if b.end > start - window and b.start < end + window]
            + [(start, end)]
        )

        position = intervals.index((start, end))
        first = position
        while first > 0 and intervals[first][0] - intervals[first - 1][1] < rest_gap:
            first -= 1
        last = position
        while last < len(intervals) - 1 and intervals[last + 1][0] - intervals[last][1] < rest_gap:
            last += 1
        return last - first + 1

    # ------------------------------------------------------------------
    # Store-backed check
    # ------------------------------------------------------------------

    async def is_available(
        self,
        resource_id: str,
        start: datetime,
        duration_minutes: int,
        exclude_booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> AvailabilityResult:
        """
        Check one interval against the calendar and the stored bookings.

        Example:
            >>> result = await calculator.is_available(
            ...     "provider-1",
            ...     datetime(2024, 3, 18, 10, 0, tzinfo=ZoneInfo("America/New_York")),
            ...     30,
            ... )
            >>> result.available
            True
        """
        start = self.calendar.localize(start)
        end = start + timedelta(minutes=duration_minutes)

        bookings: list[Booking] = []
        # Calendar-level rejections need no store round trip
        if self.calendar.is_within_hours(start, end):
            bookings = await self.fetch_snapshot(resource_id, start, end)

        result = self.evaluate(
            start,
            duration_minutes,
            bookings,
            exclude_booking_id=exclude_booking_id,
            now=now,
        )

        logger.debug(
            f"Availability {resource_id} {start.isoformat()} +{duration_minutes}min: "
            f"{'available' if result.available else result.reason}",
            extra={"resource_id": resource_id, "reason": str(result.reason) if result.reason else None},
        )
        return result
