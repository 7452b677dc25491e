"""
Slot Finder - enumerates free slots and ranks alternatives.

When a requested time cannot be booked, the practice offers alternatives
instead of a bare "no". The search is staged; each stage only runs while
fewer than `count` alternatives were found:

1. nearby_time              same day, within +/- 60 minutes of the request
2. same_time_different_day  same clock time on the next 3 days
3. same_part_of_day         same morning/afternoon/evening on the next 3 days
4. next_available           first free slot of each of the next 14 days

Score = day_offset * 10000 + |minute offset|, lower is better. Candidates
closer than 30 minutes to an already selected one are duplicates.

Every slot is validated by AvailabilityCalculator.evaluate() over one
booking snapshot per day; the days of a stage are fetched concurrently.
"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional
from uuid import UUID

from scheduling.errors import NoAvailabilityError
from scheduling.models import SlotCandidate, TimeSlot
from scheduling.services.availability_service import AvailabilityCalculator
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

DAY_OFFSET_WEIGHT = 10000

MORNING_END = time(12, 0)
AFTERNOON_END = time(17, 0)


def part_of_day(moment: datetime | time) -> str:
    """'morning' (< 12:00), 'afternoon' (< 17:00) or 'evening'."""
    clock = moment.time() if isinstance(moment, datetime) else moment
    if clock < MORNING_END:
        return "morning"
    if clock < AFTERNOON_END:
        return "afternoon"
    return "evening"


def _minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


class SlotFinder:
    """Free slot enumeration and alternative search for one calendar."""

    def __init__(
        self,
        calculator: AvailabilityCalculator,
        granularity_minutes: int = 15,
        nearby_window_minutes: int = 60,
        same_time_search_days: int = 3,
        period_search_days: int = 3,
        max_search_days: int = 14,
        duplicate_window_minutes: int = 30,
    ):
        self.calculator = calculator
        self.granularity_minutes = granularity_minutes
        self.nearby_window_minutes = nearby_window_minutes
        self.same_time_search_days = same_time_search_days
        self.period_search_days = period_search_days
        self.max_search_days = max_search_days
        self.duplicate_window_minutes = duplicate_window_minutes

    @classmethod
    def from_settings(
        cls,
        calculator: AvailabilityCalculator,
        settings: Optional[Settings] = None,
    ) -> "SlotFinder":
        settings = settings or get_settings()
        return cls(
            calculator,
            granularity_minutes=settings.SLOT_GRANULARITY_MINUTES,
            nearby_window_minutes=settings.NEARBY_WINDOW_MINUTES,
            same_time_search_days=settings.SAME_TIME_SEARCH_DAYS,
            period_search_days=settings.PERIOD_SEARCH_DAYS,
            max_search_days=settings.MAX_SEARCH_DAYS,
            duplicate_window_minutes=settings.DUPLICATE_WINDOW_MINUTES,
        )

    @property
    def calendar(self):
        return self.calculator.calendar

    # ------------------------------------------------------------------
    # Day enumeration
    # ------------------------------------------------------------------

    def candidate_starts(self, day: date, duration_minutes: int) -> list[datetime]:
        """Slot-aligned starts from opening while start + duration <= close."""
        window = self.calendar.window_for(day)
        if window is None:
            return []
        open_at, close_at = window

        step = timedelta(minutes=self.granularity_minutes)
        duration = timedelta(minutes=duration_minutes)
        starts = []
        current = open_at
        while current + duration <= close_at:
            starts.append(current)
            current += step
        return starts

    async def find_day_slots(
        self,
        resource_id: str,
        day: date,
        duration_minutes: int,
        exclude_booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> list[TimeSlot]:
        """
        All bookable slots of a day for a given duration.

        Args:
            resource_id: Provider whose bookings are checked
            day: Local calendar date
            duration_minutes: Appointment length
            exclude_booking_id: Booking being moved (ignored for conflicts)
            now: Reference instant for the advance-notice rule

        Returns:
            Chronological list of TimeSlot (empty on closed days)
        """
        starts = self.candidate_starts(day, duration_minutes)
        if not starts:
            return []

        duration = timedelta(minutes=duration_minutes)
        bookings = await self.calculator.fetch_snapshot(resource_id, starts[0], starts[-1] + duration)
        now = now if now is not None else self.calculator.now()

        return [
            TimeSlot(start=start, end=start + duration)
            for start in starts
            if self.calculator.evaluate(
                start,
                duration_minutes,
                bookings,
                exclude_booking_id=exclude_booking_id,
                now=now,
            ).available
        ]

    async def _slots_for_days(
        self,
        resource_id: str,
        days: list[date],
        duration_minutes: int,
        exclude_booking_id: Optional[UUID],
        now: datetime,
    ) -> list[list[TimeSlot]]:
        return await asyncio.gather(
            *(
                self.find_day_slots(resource_id, day, duration_minutes, exclude_booking_id, now)
                for day in days
            )
        )

    # ------------------------------------------------------------------
    # Alternatives
    # ------------------------------------------------------------------

    def _merge(
        self,
        selected: list[SlotCandidate],
        candidates: Iterable[SlotCandidate],
        count: int,
    ) -> None:
        window = timedelta(minutes=self.duplicate_window_minutes)
        for candidate in sorted(candidates, key=lambda c: (c.score, c.start)):
            if len(selected) >= count:
                return
            if any(abs(candidate.start - kept.start) < window for kept in selected):
                continue
            selected.append(candidate)

    async def find_alternatives(
        self,
        resource_id: str,
        preferred: datetime,
        duration_minutes: int,
        count: int = 3,
        exclude_booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> list[SlotCandidate]:
        """
        Ranked alternatives to an unavailable preferred start.

        Args:
            resource_id: Provider whose calendar is searched
            preferred: Requested start (naive values are calendar local time)
            duration_minutes: Appointment length
            count: Maximum number of alternatives
            exclude_booking_id: Booking being rescheduled
            now: Reference instant for the advance-notice rule

        Returns:
            Up to `count` SlotCandidates in stage order; empty if none found

        Example:
            >>> alternatives = await finder.find_alternatives("provider-1", monday_14h, 30, count=2)
            >>> [(a.start.strftime("%a %H:%M"), a.reason) for a in alternatives]
            [('Mon 14:30', 'nearby_time'), ('Tue 14:00', 'same_time_different_day')]
        """
        if count <= 0:
            return []

        preferred = self.calendar.localize(preferred)
        now = self.calendar.localize(now) if now is not None else self.calculator.now()
        base_day = preferred.date()
        preferred_minute = _minutes_of_day(preferred)
        duration = timedelta(minutes=duration_minutes)
        selected: list[SlotCandidate] = []

        def candidate(slot_start: datetime, score: int, reason: str) -> SlotCandidate:
            return SlotCandidate(start=slot_start, end=slot_start + duration, score=score, reason=reason)

        # Stage 1: same day, nearby time
        day_slots = await self.find_day_slots(
            resource_id, base_day, duration_minutes, exclude_booking_id, now
        )
        nearby = []
        for slot in day_slots:
            offset = abs(int((slot.start - preferred).total_seconds() // 60))
            if 0 < offset <= self.nearby_window_minutes:
                nearby.append(candidate(slot.start, offset, "nearby_time"))
        self._merge(selected, nearby, count)

        # Stage 2: same clock time, following days
        if len(selected) < count:
            offsets = range(1, self.same_time_search_days + 1)
            starts = [
                datetime.combine(base_day + timedelta(days=offset), preferred.time(), tzinfo=self.calendar.tz)
                for offset in offsets
            ]
            results = await asyncio.gather(
                *(
                    self.calculator.is_available(
                        resource_id, start, duration_minutes, exclude_booking_id, now
                    )
                    for start in starts
                )
            )
            same_time = [
                candidate(start, offset * DAY_OFFSET_WEIGHT, "same_time_different_day")
                for offset, start, result in zip(offsets, starts, results)
                if result.available
            ]
            self._merge(selected, same_time, count)

        # Stage 3: same part of day, following days
        if len(selected) < count:
            period = part_of_day(preferred)
            days = [base_day + timedelta(days=offset) for offset in range(1, self.period_search_days + 1)]
            per_day = await self._slots_for_days(
                resource_id, days, duration_minutes, exclude_booking_id, now
            )
            same_period = [
                candidate(
                    slot.start,
                    offset * DAY_OFFSET_WEIGHT + abs(_minutes_of_day(slot.start) - preferred_minute),
                    "same_part_of_day",
                )
                for offset, slots in enumerate(per_day, start=1)
                for slot in slots
                if part_of_day(slot.start) == period
            ]
            self._merge(selected, same_period, count)

        # Stage 4: first available slot per day
        if len(selected) < count:
            days = [base_day + timedelta(days=offset) for offset in range(1, self.max_search_days + 1)]
            per_day = await self._slots_for_days(
                resource_id, days, duration_minutes, exclude_booking_id, now
            )
            first_slots = [
                candidate(
                    slots[0].start,
                    offset * DAY_OFFSET_WEIGHT + abs(_minutes_of_day(slots[0].start) - preferred_minute),
                    "next_available",
                )
                for offset, slots in enumerate(per_day, start=1)
                if slots
            ]
            self._merge(selected, first_slots, count)

        logger.info(
            f"Found {len(selected)}/{count} alternatives for {resource_id} "
            f"around {preferred.isoformat()}",
            extra={"resource_id": resource_id},
        )
        return selected

    async def find_first_available(
        self,
        resource_id: str,
        after: datetime,
        duration_minutes: int,
        now: Optional[datetime] = None,
    ) -> TimeSlot:
        """
        Earliest bookable slot at or after `after` within the search horizon.

        Raises:
            NoAvailabilityError: If every day of the horizon is full or closed
        """
        after = self.calendar.localize(after)
        now = self.calendar.localize(now) if now is not None else self.calculator.now()
        days = [after.date() + timedelta(days=offset) for offset in range(self.max_search_days)]

        per_day = await self._slots_for_days(resource_id, days, duration_minutes, None, now)
        for slots in per_day:
            for slot in slots:
                if slot.start >= after:
                    return slot

        raise NoAvailabilityError(
            f"No availability within {self.max_search_days} days of {after.date().isoformat()}",
            {
                "resource_id": resource_id,
                "after": after.isoformat(),
                "duration_minutes": duration_minutes,
                "max_search_days": self.max_search_days,
            },
        )
