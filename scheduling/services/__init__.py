"""
Scheduling services.

Services:
- availability_service: AvailabilityCalculator, one interval against calendar and bookings
- slot_finder: SlotFinder, free slots of a day and ranked alternatives
- confirmation_codes: human-readable confirmation code minting
- confirmation_service: confirmation messages with template fallback
"""

from scheduling.services.availability_service import AvailabilityCalculator
from scheduling.services.confirmation_codes import generate_confirmation_code
from scheduling.services.slot_finder import SlotFinder

__all__ = [
    "AvailabilityCalculator",
    "SlotFinder",
    "generate_confirmation_code",
]
