"""
Business Calendar - Single Source of Truth for opening hours.

This module models the practice's weekly opening hours, break windows and
holiday exceptions. ALL code checking whether an instant or interval is
bookable from a calendar point of view MUST go through BusinessCalendar so
that the availability engine, the slot finder and the date parser agree.

Design Principles:
- The calendar is configuration: consumed, never computed, by the scheduler
- Immutable (frozen pydantic models), safe to share between tasks
- Loadable from defaults, a JSON file, or the database tables
- Accepts both camelCase ("isOpen", "breakStart") and snake_case keys

Usage:
    from shared.business_hours import BusinessCalendar

    calendar = BusinessCalendar.default()
    if calendar.is_closed(date(2025, 12, 7)):  # Sunday
        print("Closed")

    window = calendar.window_for(date(2025, 12, 8))  # (09:00, 17:00) Monday
"""

import json
import logging
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

_DAY_LOOKUP = {name.lower(): index for index, name in enumerate(DAY_NAMES)}
_DAY_LOOKUP.update({name[:3].lower(): index for index, name in enumerate(DAY_NAMES)})


def align_up(moment: datetime, step_minutes: int) -> datetime:
    """
    Round a datetime up to the next slot boundary.

    Boundaries are counted from local midnight, so with a 15 minute step
    10:01 becomes 10:15 and 10:15 stays 10:15.
    """
    aligned = moment.replace(second=0, microsecond=0)
    if aligned < moment:
        aligned += timedelta(minutes=1)

    remainder = (aligned.hour * 60 + aligned.minute) % step_minutes
    if remainder:
        aligned += timedelta(minutes=step_minutes - remainder)
    return aligned


class DayHours(BaseModel):
    """Opening window for one weekday."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_open: bool = Field(default=True, alias="isOpen")
    open_time: Optional[time] = Field(default=None, alias="openTime")
    close_time: Optional[time] = Field(default=None, alias="closeTime")

    @model_validator(mode="after")
    def _check_window(self) -> "DayHours":
        if not self.is_open:
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("An open day needs both openTime and closeTime")
        if self.close_time <= self.open_time:
            raise ValueError(
                f"closeTime {self.close_time} must be after openTime {self.open_time}"
            )
        return self

    @classmethod
    def closed(cls) -> "DayHours":
        return cls(is_open=False)


class BreakWindow(BaseModel):
    """
    Daily break (e.g. lunch) during which nothing can be booked.

    `days` restricts the break to some weekdays (0=Monday); None means every day.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    start: time = Field(alias="breakStart")
    end: time = Field(alias="breakEnd")
    name: str = "Break"
    days: Optional[frozenset[int]] = None

    @field_validator("days", mode="before")
    @classmethod
    def _normalize_days(cls, value: Any) -> Any:
        if value is None:
            return None
        return frozenset(_parse_weekday(day) for day in value)

    @model_validator(mode="after")
    def _check_order(self) -> "BreakWindow":
        if self.end <= self.start:
            raise ValueError(f"breakEnd {self.end} must be after breakStart {self.start}")
        return self

    def applies_to(self, day: date) -> bool:
        return self.days is None or day.weekday() in self.days


def _parse_weekday(value: Any) -> int:
    """Accept 0-6, "monday", "Mon" or "0" as a weekday key."""
    if isinstance(value, int):
        day = value
    elif isinstance(value, str) and value.strip().isdigit():
        day = int(value.strip())
    elif isinstance(value, str) and value.strip().lower() in _DAY_LOOKUP:
        return _DAY_LOOKUP[value.strip().lower()]
    else:
        raise ValueError(f"Unknown weekday: {value!r}")

    if not 0 <= day <= 6:
        raise ValueError(f"Invalid day_of_week: {day}. Must be 0-6.")
    return day


class BusinessCalendar(BaseModel):
    """
    Weekly hours, breaks and holiday exceptions of the practice.

    Weekdays missing from `weekly_hours` are treated as closed (fail closed).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timezone: str = "America/New_York"
    weekly_hours: dict[int, DayHours] = Field(default_factory=dict, alias="weeklyHours")
    breaks: tuple[BreakWindow, ...] = ()
    holidays: dict[date, str] = Field(default_factory=dict)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("weekly_hours", mode="before")
    @classmethod
    def _normalize_week(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {_parse_weekday(day): hours for day, hours in value.items()}

    @field_validator("holidays", mode="before")
    @classmethod
    def _normalize_holidays(cls, value: Any) -> Any:
        # A bare list of dates is accepted as unnamed holidays
        if isinstance(value, (list, tuple, set)):
            return {day: "Holiday" for day in value}
        return value

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def default(cls, timezone: str = "America/New_York") -> "BusinessCalendar":
        """
        Standard practice calendar.

        Monday-Friday 09:00-17:00, Saturday 09:00-13:00, Sunday closed,
        lunch break 12:00-13:00.
        """
        weekday = DayHours(open_time=time(9, 0), close_time=time(17, 0))
        return cls(
            timezone=timezone,
            weekly_hours={
                0: weekday,
                1: weekday,
                2: weekday,
                3: weekday,
                4: weekday,
                5: DayHours(open_time=time(9, 0), close_time=time(13, 0)),
                6: DayHours.closed(),
            },
            breaks=(BreakWindow(start=time(12, 0), end=time(13, 0), name="Lunch Break"),),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "BusinessCalendar":
        """Load a calendar from a JSON document."""
        raw = Path(path).read_text(encoding="utf-8")
        calendar = cls.model_validate(json.loads(raw))
        logger.info(f"Business calendar loaded from {path}")
        return calendar

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def localize(self, moment: datetime) -> datetime:
        """Return `moment` expressed in the calendar timezone (naive = local)."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    def holiday_name(self, day: date) -> Optional[str]:
        return self.holidays.get(day)

    def hours_for(self, day: date) -> Optional[DayHours]:
        """Opening hours for a date, or None when closed or a holiday."""
        if day in self.holidays:
            return None
        hours = self.weekly_hours.get(day.weekday())
        if hours is None or not hours.is_open:
            return None
        return hours

    def is_closed(self, day: date) -> bool:
        return self.hours_for(day) is None

    def window_for(self, day: date) -> Optional[tuple[datetime, datetime]]:
        """Timezone-aware (open, close) instants for a date, None if closed."""
        hours = self.hours_for(day)
        if hours is None:
            return None
        return (
            datetime.combine(day, hours.open_time, tzinfo=self.tz),
            datetime.combine(day, hours.close_time, tzinfo=self.tz),
        )

    def break_intervals(self, day: date) -> list[tuple[datetime, datetime]]:
        return sorted(
            (
                datetime.combine(day, window.start, tzinfo=self.tz),
                datetime.combine(day, window.end, tzinfo=self.tz),
            )
            for window in self.breaks
            if window.applies_to(day)
        )

    def check_interval(self, start: datetime, end: datetime) -> Optional[str]:
        """
        Explain why [start, end) is outside business hours.

        Returns:
            None when the interval is bookable from a calendar point of view,
            otherwise a human-readable reason.
        """
        start = self.localize(start)
        end = self.localize(end)
        day = start.date()

        holiday = self.holiday_name(day)
        if holiday:
            return f"The practice is closed on {day.isoformat()} ({holiday})"

        window = self.window_for(day)
        if window is None:
            return f"The practice is closed on {DAY_NAMES[day.weekday()]}s"

        open_at, close_at = window
        if start < open_at:
            return f"The practice opens at {open_at.strftime('%H:%M')}"
        if end > close_at:
            return f"The practice closes at {close_at.strftime('%H:%M')}"

        for break_start, break_end in self.break_intervals(day):
            if start < break_end and end > break_start:
                return (
                    f"The interval overlaps the break from "
                    f"{break_start.strftime('%H:%M')} to {break_end.strftime('%H:%M')}"
                )
        return None

    def is_within_hours(self, start: datetime, end: datetime) -> bool:
        return self.check_interval(start, end) is None

    def first_opening(
        self,
        day: date,
        step_minutes: int,
        not_before: Optional[datetime] = None,
    ) -> Optional[datetime]:
        """
        First slot-aligned start on `day` that is open and outside breaks.

        Args:
            day: Date to inspect
            step_minutes: Slot granularity
            not_before: Earliest acceptable instant (e.g. now)

        Returns:
            Timezone-aware datetime, or None if the day has nothing left.
        """
        window = self.window_for(day)
        if window is None:
            return None
        open_at, close_at = window

        candidate = open_at
        if not_before is not None:
            candidate = max(candidate, align_up(self.localize(not_before), step_minutes))

        for break_start, break_end in self.break_intervals(day):
            if break_start <= candidate < break_end:
                candidate = align_up(break_end, step_minutes)

        if candidate >= close_at:
            return None
        return candidate

    def next_opening(
        self,
        moment: datetime,
        step_minutes: int,
        max_search_days: int = 14,
    ) -> Optional[datetime]:
        """Next slot-aligned opening at or after `moment`, rolling over closed days."""
        moment = self.localize(moment)
        day = moment.date()
        for offset in range(max_search_days):
            current = day + timedelta(days=offset)
            opening = self.first_opening(
                current, step_minutes, not_before=moment if offset == 0 else None
            )
            if opening is not None:
                return opening
        return None


async def load_business_calendar(session=None) -> BusinessCalendar:
    """
    Build a BusinessCalendar from the business_hours, break_windows and
    holidays tables.

    Args:
        session: Optional existing AsyncSession; a new one is opened otherwise

    Returns:
        BusinessCalendar in the configured timezone
    """
    from sqlalchemy import select

    from database.connection import get_async_session
    from database.models import BreakWindowRecord, BusinessHours, Holiday
    from shared.config import get_settings

    async def _fetch(sess) -> BusinessCalendar:
        hours_rows = (await sess.execute(select(BusinessHours))).scalars().all()
        break_rows = (await sess.execute(select(BreakWindowRecord))).scalars().all()
        holiday_rows = (await sess.execute(select(Holiday))).scalars().all()

        weekly_hours: dict[int, DayHours] = {}
        for row in hours_rows:
            if row.is_closed or row.start_hour is None or row.end_hour is None:
                weekly_hours[row.day_of_week] = DayHours.closed()
                continue
            weekly_hours[row.day_of_week] = DayHours(
                open_time=time(row.start_hour, row.start_minute),
                close_time=time(row.end_hour, row.end_minute),
            )

        breaks = tuple(
            BreakWindow(
                start=row.start_time,
                end=row.end_time,
                name=row.name,
                days=[row.day_of_week] if row.day_of_week is not None else None,
            )
            for row in break_rows
        )

        return BusinessCalendar(
            timezone=get_settings().TIMEZONE,
            weekly_hours=weekly_hours,
            breaks=breaks,
            holidays={row.date: row.name for row in holiday_rows},
        )

    if session is not None:
        calendar = await _fetch(session)
    else:
        async with get_async_session() as sess:
            calendar = await _fetch(sess)

    logger.info(
        f"Business calendar loaded from database: "
        f"{len(calendar.weekly_hours)} days, {len(calendar.breaks)} breaks, "
        f"{len(calendar.holidays)} holidays"
    )
    return calendar
