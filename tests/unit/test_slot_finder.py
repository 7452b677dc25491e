"""
Unit tests for SlotFinder.

Tests coverage:
- Day slot enumeration (hours, lunch break, advance notice, closed days)
- Staged alternative search and its ranking
- First-available search and horizon exhaustion
"""

from datetime import date

import pytest

from scheduling.errors import NoAvailabilityError
from scheduling.services.availability_service import AvailabilityCalculator
from scheduling.services.slot_finder import SlotFinder, part_of_day
from shared.business_hours import BusinessCalendar

TUESDAY = date(2024, 3, 19)
SATURDAY = date(2024, 3, 23)
SUNDAY = date(2024, 3, 17)


async def _seed(store, *bookings):
    for booking in bookings:
        await store.create(booking)


def _describe(alternatives):
    return [(a.start.strftime("%a %H:%M"), a.reason) for a in alternatives]


@pytest.fixture
def unbuffered_finder(calendar, store, now):
    """Slot finder whose calculator keeps no buffer between bookings."""
    calculator = AvailabilityCalculator(calendar, store, buffer_minutes=0, clock=lambda: now)
    return SlotFinder(calculator)


# ============================================================================
# Helpers
# ============================================================================


class TestPartOfDay:

    @pytest.mark.parametrize(
        "hour,expected",
        [(9, "morning"), (11, "morning"), (12, "afternoon"), (16, "afternoon"), (17, "evening")],
    )
    def test_boundaries(self, at, monday, hour, expected):
        assert part_of_day(at(monday, hour)) == expected


# ============================================================================
# Day slots
# ============================================================================


class TestFindDaySlots:

    def test_candidate_starts(self, slot_finder, monday, at):
        starts = slot_finder.candidate_starts(monday, 30)
        assert starts[0] == at(monday, 9)
        assert starts[-1] == at(monday, 16, 30)
        assert len(starts) == 31

    def test_candidate_starts_closed_day(self, slot_finder):
        assert slot_finder.candidate_starts(SUNDAY, 30) == []

    @pytest.mark.asyncio
    async def test_empty_day_skips_lunch(self, slot_finder, monday, at):
        slots = await slot_finder.find_day_slots("provider-1", monday, 30)

        starts = [slot.start for slot in slots]
        assert len(slots) == 26
        assert at(monday, 11, 30) in starts
        assert at(monday, 11, 45) not in starts
        assert at(monday, 12, 45) not in starts
        assert at(monday, 13, 0) in starts
        assert all(slot.duration_minutes == 30 for slot in slots)

    @pytest.mark.asyncio
    async def test_slots_are_chronological(self, slot_finder, monday):
        slots = await slot_finder.find_day_slots("provider-1", monday, 45)
        assert [s.start for s in slots] == sorted(s.start for s in slots)

    @pytest.mark.asyncio
    async def test_today_respects_advance_notice(self, slot_finder, now, at):
        slots = await slot_finder.find_day_slots("provider-1", now.date(), 30)
        assert slots[0].start == at(now.date(), 10, 30)

    @pytest.mark.asyncio
    async def test_closed_day(self, slot_finder):
        assert await slot_finder.find_day_slots("provider-1", SUNDAY, 30) == []

    @pytest.mark.asyncio
    async def test_booked_slots_removed(self, slot_finder, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 9), 60))

        slots = await slot_finder.find_day_slots("provider-1", monday, 30)

        # 9:00-10:00 booked plus the 5 minute buffer
        assert slots[0].start == at(monday, 10, 15)

    @pytest.mark.asyncio
    async def test_excluded_booking_frees_its_slot(self, slot_finder, store, make_booking, monday, at):
        booking = make_booking(at(monday, 9), 60)
        await _seed(store, booking)

        slots = await slot_finder.find_day_slots("provider-1", monday, 30, exclude_booking_id=booking.id)

        assert slots[0].start == at(monday, 9)


# ============================================================================
# Alternatives
# ============================================================================


class TestFindAlternatives:

    @pytest.fixture
    async def busy_monday(self, store, make_booking, monday, at):
        await _seed(
            store,
            make_booking(at(monday, 13, 0), 45),
            make_booking(at(monday, 14, 0), 30),
            make_booking(at(monday, 15, 0), 120),
        )

    @pytest.mark.asyncio
    async def test_nearby_then_same_time_next_day(self, unbuffered_finder, busy_monday, monday, at):
        alternatives = await unbuffered_finder.find_alternatives("provider-1", at(monday, 14), 30, count=2)

        assert _describe(alternatives) == [
            ("Mon 14:30", "nearby_time"),
            ("Tue 14:00", "same_time_different_day"),
        ]
        assert alternatives[0].score == 30
        assert alternatives[1].score == 10000

    @pytest.mark.asyncio
    async def test_default_count_continues_same_time(self, unbuffered_finder, busy_monday, monday, at):
        alternatives = await unbuffered_finder.find_alternatives("provider-1", at(monday, 14), 30)

        assert _describe(alternatives) == [
            ("Mon 14:30", "nearby_time"),
            ("Tue 14:00", "same_time_different_day"),
            ("Wed 14:00", "same_time_different_day"),
        ]

    @pytest.mark.asyncio
    async def test_same_part_of_day_skips_near_duplicates(self, unbuffered_finder, busy_monday, monday, at):
        alternatives = await unbuffered_finder.find_alternatives("provider-1", at(monday, 14), 30, count=5)

        # Tue 13:45 and 14:15 are within 30 minutes of Tue 14:00
        assert _describe(alternatives)[4] == ("Tue 13:30", "same_part_of_day")

    @pytest.mark.asyncio
    async def test_same_part_of_day_when_same_time_is_taken(self, slot_finder, store, make_booking, monday, at):
        await _seed(
            store,
            make_booking(at(monday, 9), 150),
            make_booking(at(TUESDAY, 10), 30),
            make_booking(at(date(2024, 3, 20), 10), 30),
            make_booking(at(date(2024, 3, 21), 10), 30),
        )

        alternatives = await slot_finder.find_alternatives("provider-1", at(monday, 10), 30, count=2)

        assert _describe(alternatives) == [
            ("Tue 09:15", "same_part_of_day"),
            ("Tue 10:45", "same_part_of_day"),
        ]

    @pytest.mark.asyncio
    async def test_next_available_as_last_resort(self, slot_finder, at):
        # Sunday evening: nothing nearby, no same time, no evening slots
        alternatives = await slot_finder.find_alternatives("provider-1", at(SUNDAY, 18), 30, count=2)

        assert _describe(alternatives) == [
            ("Mon 09:00", "next_available"),
            ("Tue 09:00", "next_available"),
        ]

    @pytest.mark.asyncio
    async def test_alternatives_never_overlap_bookings(self, slot_finder, store, make_booking, monday, at):
        existing = [make_booking(at(monday, 10), 30), make_booking(at(monday, 11), 30)]
        await _seed(store, *existing)

        alternatives = await slot_finder.find_alternatives("provider-1", at(monday, 10), 30, count=5)

        assert alternatives
        for alternative in alternatives:
            for booking in existing:
                assert not booking.overlaps(alternative.start, alternative.end, buffer_minutes=5)

    @pytest.mark.asyncio
    async def test_zero_count(self, slot_finder, monday, at):
        assert await slot_finder.find_alternatives("provider-1", at(monday, 10), 30, count=0) == []

    @pytest.mark.asyncio
    async def test_nothing_open(self, store, now, at, monday):
        calculator = AvailabilityCalculator(BusinessCalendar(weekly_hours={}), store, clock=lambda: now)
        finder = SlotFinder(calculator)
        assert await finder.find_alternatives("provider-1", at(monday, 10), 30) == []


# ============================================================================
# First available
# ============================================================================


class TestFindFirstAvailable:

    @pytest.mark.asyncio
    async def test_rolls_over_weekend(self, slot_finder, monday, at):
        slot = await slot_finder.find_first_available("provider-1", at(SATURDAY, 13, 30), 30)
        assert slot.start == at(date(2024, 3, 25), 9)

    @pytest.mark.asyncio
    async def test_skips_booked_time(self, slot_finder, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 9), 30))
        slot = await slot_finder.find_first_available("provider-1", at(monday, 8), 30)
        assert slot.start == at(monday, 9, 45)

    @pytest.mark.asyncio
    async def test_respects_after(self, slot_finder, monday, at):
        slot = await slot_finder.find_first_available("provider-1", at(monday, 14, 5), 30)
        assert slot.start == at(monday, 14, 15)

    @pytest.mark.asyncio
    async def test_no_availability(self, store, now, monday, at):
        calculator = AvailabilityCalculator(BusinessCalendar(weekly_hours={}), store, clock=lambda: now)
        finder = SlotFinder(calculator, max_search_days=7)

        with pytest.raises(NoAvailabilityError) as exc_info:
            await finder.find_first_available("provider-1", at(monday, 9), 30)

        assert exc_info.value.details["max_search_days"] == 7
