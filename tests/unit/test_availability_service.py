"""
Unit tests for AvailabilityCalculator.

Tests coverage:
- Rule order: OUTSIDE_HOURS -> TOO_SOON -> CONFLICT -> REST_REQUIRED
- Buffer applied around existing bookings
- Back-to-back fatigue rule
- Inactive bookings and the excluded (rescheduled) booking never conflict
- Store round trips skipped for calendar-level rejections
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from scheduling.errors import ConflictError, OutsideHoursError, TooSoonError
from scheduling.models import BookingStatus, UnavailableReason
from scheduling.services.availability_service import AvailabilityCalculator


async def _seed(store, *bookings):
    for booking in bookings:
        await store.create(booking)


# ============================================================================
# Business hours and advance notice
# ============================================================================


class TestCalendarRules:
    """Calendar-level and advance-notice checks."""

    @pytest.mark.asyncio
    async def test_open_slot_is_available(self, calculator, monday, at):
        result = await calculator.is_available("provider-1", at(monday, 10), 30)
        assert result.available is True
        assert result.reason is None

    @pytest.mark.asyncio
    async def test_lunch_break_is_outside_hours(self, calculator, monday, at):
        result = await calculator.is_available("provider-1", at(monday, 12, 30), 30)
        assert result.available is False
        assert result.reason == UnavailableReason.OUTSIDE_HOURS

    @pytest.mark.asyncio
    async def test_appointment_running_past_closing(self, calculator, monday, at):
        result = await calculator.is_available("provider-1", at(monday, 16, 45), 30)
        assert result.reason == UnavailableReason.OUTSIDE_HOURS
        assert "closes" in result.message

    @pytest.mark.asyncio
    async def test_sunday_is_outside_hours(self, calculator, at):
        result = await calculator.is_available("provider-1", at(date(2024, 3, 17), 10), 30)
        assert result.reason == UnavailableReason.OUTSIDE_HOURS

    @pytest.mark.asyncio
    async def test_outside_hours_skips_store(self, calendar, monday, at):
        store = AsyncMock()
        calculator = AvailabilityCalculator(calendar, store)
        result = await calculator.is_available("provider-1", at(monday, 7), 30)
        assert result.reason == UnavailableReason.OUTSIDE_HOURS
        store.query_by_resource.assert_not_called()

    @pytest.mark.asyncio
    async def test_too_soon(self, calculator, now):
        # 10:15 today with "now" at 10:00 and 30 minutes notice
        result = await calculator.is_available("provider-1", now + timedelta(minutes=15), 30)
        assert result.reason == UnavailableReason.TOO_SOON

    @pytest.mark.asyncio
    async def test_exactly_minimum_notice_is_fine(self, calculator, now):
        result = await calculator.is_available("provider-1", now + timedelta(minutes=30), 30)
        assert result.available is True

    @pytest.mark.asyncio
    async def test_hours_checked_before_notice(self, calculator, now):
        # 08:30 today is both too soon and before opening; hours win
        result = await calculator.is_available("provider-1", now.replace(hour=8, minute=30), 30)
        assert result.reason == UnavailableReason.OUTSIDE_HOURS

    @pytest.mark.asyncio
    async def test_naive_start_is_local_time(self, calculator, monday, at):
        naive = at(monday, 10).replace(tzinfo=None)
        result = await calculator.is_available("provider-1", naive, 30)
        assert result.available is True


# ============================================================================
# Conflicts
# ============================================================================


class TestConflicts:
    """Overlap with active bookings, 5 minute buffer applied."""

    @pytest.mark.asyncio
    async def test_overlap_conflicts(self, calculator, store, make_booking, monday, at):
        existing = make_booking(at(monday, 10), 30)
        await _seed(store, existing)

        result = await calculator.is_available("provider-1", at(monday, 10, 15), 30)

        assert result.reason == UnavailableReason.CONFLICT
        assert [c.booking_id for c in result.conflicts] == [existing.id]
        assert result.conflicts[0].confirmation_code == existing.confirmation_code

    @pytest.mark.asyncio
    async def test_buffer_blocks_adjacent_start(self, calculator, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 10), 30))
        result = await calculator.is_available("provider-1", at(monday, 10, 30), 30)
        assert result.reason == UnavailableReason.CONFLICT

    @pytest.mark.asyncio
    async def test_buffer_gap_is_enough(self, calculator, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 10), 30))
        result = await calculator.is_available("provider-1", at(monday, 10, 35), 30)
        assert result.available is True

    @pytest.mark.asyncio
    async def test_buffer_before_existing(self, calculator, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 11), 30))
        blocked = await calculator.is_available("provider-1", at(monday, 10, 30), 30)
        assert blocked.reason == UnavailableReason.CONFLICT
        clear = await calculator.is_available("provider-1", at(monday, 10, 25), 30)
        assert clear.available is True

    @pytest.mark.asyncio
    async def test_zero_buffer_allows_touching(self, calendar, store, make_booking, monday, at, now):
        calculator = AvailabilityCalculator(calendar, store, buffer_minutes=0, clock=lambda: now)
        await _seed(store, make_booking(at(monday, 10), 30))
        result = await calculator.is_available("provider-1", at(monday, 10, 30), 30)
        assert result.available is True

    @pytest.mark.asyncio
    async def test_conflicts_sorted_by_start(self, calculator, store, make_booking, monday, at):
        later = make_booking(at(monday, 10, 30), 30)
        earlier = make_booking(at(monday, 9, 30), 30)
        await _seed(store, later, earlier)

        result = await calculator.is_available("provider-1", at(monday, 10), 30)

        assert [c.booking_id for c in result.conflicts] == [earlier.id, later.id]

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_conflict(self, calculator, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 10), 30, status=BookingStatus.CANCELLED))
        result = await calculator.is_available("provider-1", at(monday, 10), 30)
        assert result.available is True

    @pytest.mark.asyncio
    async def test_rescheduled_booking_still_conflicts(self, calculator, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 10), 30, status=BookingStatus.RESCHEDULED))
        result = await calculator.is_available("provider-1", at(monday, 10), 30)
        assert result.reason == UnavailableReason.CONFLICT

    @pytest.mark.asyncio
    async def test_other_resource_does_not_conflict(self, calculator, store, make_booking, monday, at):
        await _seed(store, make_booking(at(monday, 10), 30, resource_id="provider-2"))
        result = await calculator.is_available("provider-1", at(monday, 10), 30)
        assert result.available is True

    @pytest.mark.asyncio
    async def test_excluded_booking_ignored(self, calculator, store, make_booking, monday, at):
        existing = make_booking(at(monday, 10), 30)
        await _seed(store, existing)
        result = await calculator.is_available(
            "provider-1", at(monday, 10, 15), 30, exclude_booking_id=existing.id
        )
        assert result.available is True


# ============================================================================
# Fatigue
# ============================================================================


class TestFatigue:
    """Four back-to-back bookings require a rest."""

    @pytest.fixture
    def chain(self, make_booking, monday, at):
        # Three 30 minute bookings separated by the 5 minute buffer only
        return [
            make_booking(at(monday, 9, 0), 30),
            make_booking(at(monday, 9, 35), 30),
            make_booking(at(monday, 10, 10), 30),
        ]

    @pytest.mark.asyncio
    async def test_fourth_in_a_row_needs_rest(self, calculator, store, chain, monday, at):
        await _seed(store, *chain)
        result = await calculator.is_available("provider-1", at(monday, 10, 45), 30)
        assert result.reason == UnavailableReason.REST_REQUIRED

    @pytest.mark.asyncio
    async def test_rest_gap_breaks_chain(self, calculator, store, chain, monday, at):
        await _seed(store, *chain)
        result = await calculator.is_available("provider-1", at(monday, 11, 0), 30)
        assert result.available is True

    @pytest.mark.asyncio
    async def test_candidate_joining_two_chains(self, calculator, store, make_booking, monday, at):
        await _seed(
            store,
            make_booking(at(monday, 9, 0), 30),
            make_booking(at(monday, 9, 35), 30),
            make_booking(at(monday, 10, 45), 30),
        )
        # 10:10-10:40 bridges both sides: 9:00, 9:35, 10:10, 10:45
        result = await calculator.is_available("provider-1", at(monday, 10, 10), 30)
        assert result.reason == UnavailableReason.REST_REQUIRED

    @pytest.mark.asyncio
    async def test_higher_limit(self, calendar, store, chain, monday, at, now):
        calculator = AvailabilityCalculator(calendar, store, max_consecutive=5, clock=lambda: now)
        await _seed(store, *chain)
        result = await calculator.is_available("provider-1", at(monday, 10, 45), 30)
        assert result.available is True


# ============================================================================
# Pure evaluation and error mapping
# ============================================================================


class TestEvaluate:

    def test_evaluate_snapshot_without_store(self, calculator, make_booking, monday, at):
        snapshot = [make_booking(at(monday, 10), 30)]
        assert calculator.evaluate(at(monday, 10), 30, snapshot).reason == UnavailableReason.CONFLICT
        assert calculator.evaluate(at(monday, 11), 30, snapshot).available is True

    def test_explicit_now(self, calculator, monday, at):
        result = calculator.evaluate(at(monday, 10), 30, [], now=at(monday, 9, 45))
        assert result.reason == UnavailableReason.TOO_SOON

    def test_snapshot_bounds_cover_fatigue_window(self, calculator, monday, at):
        lower, upper = calculator.snapshot_bounds(at(monday, 10), at(monday, 10, 30))
        assert lower == at(monday, 8, 30)
        assert upper == at(monday, 12, 0)

    def test_raise_for_status(self, calculator, make_booking, monday, at, now):
        calculator.evaluate(at(monday, 10), 30, []).raise_for_status()

        with pytest.raises(OutsideHoursError):
            calculator.evaluate(at(monday, 12, 30), 30, []).raise_for_status()
        with pytest.raises(TooSoonError):
            calculator.evaluate(now, 30, []).raise_for_status()
        with pytest.raises(ConflictError) as exc_info:
            calculator.evaluate(at(monday, 10), 30, [make_booking(at(monday, 10), 30)]).raise_for_status()
        assert len(exc_info.value.conflicts) == 1

    def test_from_settings(self, calendar, store, settings):
        calculator = AvailabilityCalculator.from_settings(calendar, store, settings)
        assert calculator.buffer_minutes == settings.BUFFER_MINUTES
        assert calculator.max_consecutive == settings.MAX_CONSECUTIVE_BOOKINGS
