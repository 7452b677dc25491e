"""
Practice appointment scheduling core.

Components:
- utils.date_parser: informal date/time text -> timezone-aware instants
- services.availability_service: AvailabilityCalculator (hours, notice, conflicts, fatigue)
- services.slot_finder: SlotFinder (day slots, staged alternative search)
- transactions.booking_transaction: BookingTransactionManager (book/cancel/reschedule)
- scheduler: SchedulingService facade and build_scheduling_service()
"""

from scheduling.errors import SchedulingError
from scheduling.models import (
    AvailabilityResult,
    Booking,
    BookingRequest,
    BookingResult,
    BookingStatus,
    SlotCandidate,
    SubjectInfo,
    TimeSlot,
)
from scheduling.scheduler import SchedulingService, build_scheduling_service

__all__ = [
    "AvailabilityResult",
    "Booking",
    "BookingRequest",
    "BookingResult",
    "BookingStatus",
    "SchedulingError",
    "SchedulingService",
    "SlotCandidate",
    "SubjectInfo",
    "TimeSlot",
    "build_scheduling_service",
]
