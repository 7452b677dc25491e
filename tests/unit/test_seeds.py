"""
Unit tests for the calendar seed rows.
"""

from datetime import time

from database.seeds.business_hours import break_window_rows, business_hours_rows
from database.seeds.holidays import ALL_HOLIDAYS
from shared.business_hours import BreakWindow, BusinessCalendar


class TestBusinessHoursRows:

    def test_default_calendar(self):
        rows = business_hours_rows(BusinessCalendar.default())

        assert [row["day_of_week"] for row in rows] == list(range(7))
        assert rows[0] == {
            "day_of_week": 0,
            "is_closed": False,
            "start_hour": 9,
            "start_minute": 0,
            "end_hour": 17,
            "end_minute": 0,
        }
        assert rows[5]["end_hour"] == 13
        assert rows[6]["is_closed"] is True
        assert rows[6]["start_hour"] is None

    def test_missing_day_is_closed(self):
        rows = business_hours_rows(BusinessCalendar(weekly_hours={}))
        assert all(row["is_closed"] for row in rows)


class TestBreakWindowRows:

    def test_every_day_break(self):
        assert break_window_rows(BusinessCalendar.default()) == [
            {"name": "Lunch Break", "start_time": time(12, 0), "end_time": time(13, 0), "day_of_week": None}
        ]

    def test_day_restricted_break_is_split_per_day(self):
        calendar = BusinessCalendar(
            weekly_hours={},
            breaks=(BreakWindow(start=time(15, 0), end=time(15, 30), name="Staff meeting", days={4, 0}),),
        )
        rows = break_window_rows(calendar)
        assert [row["day_of_week"] for row in rows] == [0, 4]


def test_holiday_dates_are_unique():
    dates = [holiday["date"] for holiday in ALL_HOLIDAYS]
    assert len(dates) == len(set(dates))
