"""
Unit tests for shared/business_hours.py.

Tests coverage:
- Default calendar (weekday hours, Saturday half day, Sunday closed, lunch)
- Interval checks against opening hours, breaks and holidays
- Slot alignment and next-opening search
- Loading from camelCase JSON and from database rows
"""

import json
from datetime import date, datetime, time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from shared.business_hours import (
    BreakWindow,
    BusinessCalendar,
    DayHours,
    align_up,
    load_business_calendar,
)

NY_TZ = ZoneInfo("America/New_York")
MONDAY = date(2024, 3, 18)
SATURDAY = date(2024, 3, 23)
SUNDAY = date(2024, 3, 24)


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=NY_TZ)


@pytest.fixture
def calendar():
    return BusinessCalendar.default()


# ============================================================================
# Model validation
# ============================================================================


class TestModels:

    def test_open_day_requires_times(self):
        with pytest.raises(ValidationError):
            DayHours(is_open=True, open_time=time(9, 0))

    def test_close_must_follow_open(self):
        with pytest.raises(ValidationError):
            DayHours(open_time=time(17, 0), close_time=time(9, 0))

    def test_closed_day(self):
        assert DayHours.closed().is_open is False

    def test_break_order(self):
        with pytest.raises(ValidationError):
            BreakWindow(start=time(13, 0), end=time(12, 0))

    def test_break_days_accept_names(self):
        window = BreakWindow(start=time(12, 0), end=time(13, 0), days=["monday", "Fri"])
        assert window.days == frozenset({0, 4})
        assert window.applies_to(MONDAY)
        assert not window.applies_to(date(2024, 3, 19))

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            BusinessCalendar(timezone="Mars/Olympus_Mons")

    def test_holiday_list_is_accepted(self):
        calendar = BusinessCalendar(holidays=[date(2024, 12, 25)])
        assert calendar.holiday_name(date(2024, 12, 25)) == "Holiday"


# ============================================================================
# Opening hours
# ============================================================================


class TestOpeningHours:

    def test_weekday_window(self, calendar):
        assert calendar.window_for(MONDAY) == (_at(MONDAY, 9), _at(MONDAY, 17))

    def test_saturday_half_day(self, calendar):
        assert calendar.window_for(SATURDAY) == (_at(SATURDAY, 9), _at(SATURDAY, 13))

    def test_sunday_closed(self, calendar):
        assert calendar.is_closed(SUNDAY)
        assert calendar.window_for(SUNDAY) is None

    def test_missing_weekday_fails_closed(self):
        calendar = BusinessCalendar(weekly_hours={0: DayHours(open_time=time(9, 0), close_time=time(17, 0))})
        assert calendar.is_closed(date(2024, 3, 19))

    def test_holiday_closes_day(self, calendar):
        calendar = calendar.model_copy(update={"holidays": {MONDAY: "Spring Day"}})
        assert calendar.is_closed(MONDAY)
        assert "Spring Day" in calendar.check_interval(_at(MONDAY, 10), _at(MONDAY, 10, 30))


class TestCheckInterval:

    def test_within_hours(self, calendar):
        assert calendar.check_interval(_at(MONDAY, 9), _at(MONDAY, 10)) is None
        assert calendar.is_within_hours(_at(MONDAY, 16, 30), _at(MONDAY, 17))

    def test_before_opening(self, calendar):
        reason = calendar.check_interval(_at(MONDAY, 8, 30), _at(MONDAY, 9, 30))
        assert reason == "The practice opens at 09:00"

    def test_past_closing(self, calendar):
        reason = calendar.check_interval(_at(MONDAY, 16, 45), _at(MONDAY, 17, 15))
        assert reason == "The practice closes at 17:00"

    def test_overlaps_lunch(self, calendar):
        reason = calendar.check_interval(_at(MONDAY, 12, 30), _at(MONDAY, 13, 0))
        assert "break" in reason

    def test_touching_lunch_is_fine(self, calendar):
        assert calendar.is_within_hours(_at(MONDAY, 11, 30), _at(MONDAY, 12, 0))
        assert calendar.is_within_hours(_at(MONDAY, 13, 0), _at(MONDAY, 13, 30))

    def test_closed_day(self, calendar):
        reason = calendar.check_interval(_at(SUNDAY, 10), _at(SUNDAY, 11))
        assert reason == "The practice is closed on Sundays"

    def test_other_timezone_is_converted(self, calendar):
        # 14:00 UTC is 10:00 in New York (EDT)
        start = datetime(2024, 3, 18, 14, 0, tzinfo=ZoneInfo("UTC"))
        end = datetime(2024, 3, 18, 14, 30, tzinfo=ZoneInfo("UTC"))
        assert calendar.is_within_hours(start, end)


# ============================================================================
# Slot alignment and opening search
# ============================================================================


class TestAlignment:

    def test_align_up(self):
        assert align_up(_at(MONDAY, 10, 1), 15) == _at(MONDAY, 10, 15)
        assert align_up(_at(MONDAY, 10, 15), 15) == _at(MONDAY, 10, 15)

    def test_align_up_seconds(self):
        moment = _at(MONDAY, 10, 0).replace(second=30)
        assert align_up(moment, 15) == _at(MONDAY, 10, 15)


class TestNextOpening:

    def test_first_opening_of_day(self, calendar):
        assert calendar.first_opening(MONDAY, 15) == _at(MONDAY, 9)

    def test_first_opening_after_now(self, calendar):
        assert calendar.first_opening(MONDAY, 15, not_before=_at(MONDAY, 10, 5)) == _at(MONDAY, 10, 15)

    def test_first_opening_skips_break(self, calendar):
        assert calendar.first_opening(MONDAY, 15, not_before=_at(MONDAY, 12, 10)) == _at(MONDAY, 13)

    def test_first_opening_after_closing(self, calendar):
        assert calendar.first_opening(MONDAY, 15, not_before=_at(MONDAY, 17)) is None

    def test_next_opening_rolls_over_weekend(self, calendar):
        assert calendar.next_opening(_at(SATURDAY, 13, 30), 15) == _at(date(2024, 3, 25), 9)

    def test_nothing_open(self):
        calendar = BusinessCalendar(weekly_hours={})
        assert calendar.next_opening(_at(MONDAY, 9), 15) is None


# ============================================================================
# Loading
# ============================================================================


class TestLoading:

    def test_from_file_camel_case(self, tmp_path):
        document = {
            "timezone": "America/Chicago",
            "weeklyHours": {
                "monday": {"isOpen": True, "openTime": "08:00", "closeTime": "16:00"},
                "sunday": {"isOpen": False},
            },
            "breaks": [{"breakStart": "12:30", "breakEnd": "13:00", "name": "Lunch"}],
            "holidays": {"2024-12-25": "Christmas Day"},
        }
        path = tmp_path / "calendar.json"
        path.write_text(json.dumps(document), encoding="utf-8")

        calendar = BusinessCalendar.from_file(path)

        assert calendar.timezone == "America/Chicago"
        assert calendar.weekly_hours[0].open_time == time(8, 0)
        assert calendar.is_closed(SUNDAY)
        assert calendar.breaks[0].start == time(12, 30)
        assert calendar.holiday_name(date(2024, 12, 25)) == "Christmas Day"

    @pytest.mark.asyncio
    async def test_load_from_database_rows(self):
        hours = [
            SimpleNamespace(day_of_week=0, is_closed=False, start_hour=9, start_minute=0, end_hour=17, end_minute=0),
            SimpleNamespace(day_of_week=6, is_closed=True, start_hour=None, start_minute=None, end_hour=None, end_minute=None),
        ]
        breaks = [SimpleNamespace(name="Lunch", start_time=time(12, 0), end_time=time(13, 0), day_of_week=None)]
        holidays = [SimpleNamespace(date=date(2024, 12, 25), name="Christmas Day")]

        def _result(rows):
            result = MagicMock()
            result.scalars.return_value.all.return_value = rows
            return result

        session = AsyncMock()
        session.execute.side_effect = [_result(hours), _result(breaks), _result(holidays)]

        calendar = await load_business_calendar(session=session)

        assert calendar.window_for(MONDAY) == (_at(MONDAY, 9), _at(MONDAY, 17))
        assert calendar.is_closed(SUNDAY)
        assert calendar.breaks[0].name == "Lunch"
        assert calendar.holiday_name(date(2024, 12, 25)) == "Christmas Day"
        assert session.execute.await_count == 3
