"""
Scheduling Service - the public surface of the scheduling core.

Wires the date parser, availability calculator, slot finder and booking
transaction manager behind one object. Datetime inputs may be `datetime`
instances, ISO-8601 strings or free text ("next friday at 2pm"); free text
goes through the date parser and a ParseError is raised instead of guessing.

Usage:
    from database.booking_store import InMemoryBookingStore
    from database.identity import InMemoryIdentityResolver
    from scheduling.scheduler import build_scheduling_service

    service = build_scheduling_service(InMemoryBookingStore(), InMemoryIdentityResolver())

    result = await service.check_availability("tomorrow at 10am", 30)
    booking = await service.book(BookingRequest(start=..., subject=SubjectInfo(phone=...)))
"""

import logging
from datetime import date, datetime
from typing import Callable, Optional, Union
from uuid import UUID

from scheduling.catalog import AppointmentTypeCatalog
from scheduling.models import (
    AvailabilityResult,
    Booking,
    BookingRequest,
    BookingResult,
    SlotCandidate,
    TimeSlot,
)
from scheduling.ports import BookingStore, IdentityResolver, TextGenerator
from scheduling.services.availability_service import AvailabilityCalculator
from scheduling.services.slot_finder import SlotFinder
from scheduling.transactions.booking_transaction import BookingTransactionManager
from scheduling.transactions.resource_locks import ResourceLockRegistry
from scheduling.utils.date_parser import parse_date, resolve_datetime
from shared.business_hours import BusinessCalendar
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

DateTimeInput = Union[datetime, str]
DateInput = Union[date, datetime, str]


class SchedulingService:
    """Facade over the scheduling components of one practice."""

    def __init__(
        self,
        calendar: BusinessCalendar,
        calculator: AvailabilityCalculator,
        slot_finder: SlotFinder,
        transactions: BookingTransactionManager,
        default_resource_id: str = "provider-1",
        granularity_minutes: int = 15,
        pm_threshold: int = 7,
        default_alternatives: int = 3,
    ):
        self.calendar = calendar
        self.calculator = calculator
        self.slot_finder = slot_finder
        self.transactions = transactions
        self.default_resource_id = default_resource_id
        self.granularity_minutes = granularity_minutes
        self.pm_threshold = pm_threshold
        self.default_alternatives = default_alternatives

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    def resolve(self, text: str, reference: Optional[datetime] = None) -> datetime:
        """Free text ("tomorrow at 2pm") to a timezone-aware instant."""
        return resolve_datetime(
            text,
            self.calendar,
            reference=reference or self.calculator.now(),
            granularity_minutes=self.granularity_minutes,
            pm_threshold=self.pm_threshold,
            max_search_days=self.slot_finder.max_search_days,
        )

    def to_datetime(self, value: DateTimeInput) -> datetime:
        if isinstance(value, datetime):
            return self.calendar.localize(value)
        # ISO dates without a time go through the parser (first opening)
        if ":" in value:
            try:
                return self.calendar.localize(datetime.fromisoformat(value.strip()))
            except ValueError:
                pass
        return self.resolve(value)

    def to_date(self, value: DateInput) -> date:
        if isinstance(value, datetime):
            return self.calendar.localize(value).date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return parse_date(value, reference=self.calculator.now())

    def _resource(self, resource_id: Optional[str]) -> str:
        return resource_id or self.default_resource_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def check_availability(
        self,
        date_time: DateTimeInput,
        duration_minutes: int,
        resource_id: Optional[str] = None,
    ) -> AvailabilityResult:
        return await self.calculator.is_available(
            self._resource(resource_id), self.to_datetime(date_time), duration_minutes
        )

    async def find_available_slots(
        self,
        day: DateInput,
        duration_minutes: int,
        resource_id: Optional[str] = None,
    ) -> list[TimeSlot]:
        return await self.slot_finder.find_day_slots(
            self._resource(resource_id), self.to_date(day), duration_minutes
        )

    async def find_alternatives(
        self,
        preferred: DateTimeInput,
        duration_minutes: int,
        count: Optional[int] = None,
        resource_id: Optional[str] = None,
    ) -> list[SlotCandidate]:
        return await self.slot_finder.find_alternatives(
            self._resource(resource_id),
            self.to_datetime(preferred),
            duration_minutes,
            count=count if count is not None else self.default_alternatives,
        )

    async def find_first_available(
        self,
        after: DateTimeInput,
        duration_minutes: int,
        resource_id: Optional[str] = None,
    ) -> TimeSlot:
        return await self.slot_finder.find_first_available(
            self._resource(resource_id), self.to_datetime(after), duration_minutes
        )

    async def get_booking(self, identifier: Union[str, UUID]) -> Booking:
        return await self.transactions.get(str(identifier))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def book(self, request: BookingRequest) -> BookingResult:
        return await self.transactions.book(request)

    async def cancel(self, identifier: Union[str, UUID], reason: Optional[str] = None) -> BookingResult:
        return await self.transactions.cancel(str(identifier), reason)

    async def reschedule(self, identifier: Union[str, UUID], new_date_time: DateTimeInput) -> BookingResult:
        return await self.transactions.reschedule(str(identifier), self.to_datetime(new_date_time))

    async def complete(self, identifier: Union[str, UUID]) -> Booking:
        return await self.transactions.complete(str(identifier))

    async def mark_no_show(self, identifier: Union[str, UUID]) -> Booking:
        return await self.transactions.mark_no_show(str(identifier))


def build_scheduling_service(
    store: BookingStore,
    identity: IdentityResolver,
    settings: Optional[Settings] = None,
    calendar: Optional[BusinessCalendar] = None,
    catalog: Optional[AppointmentTypeCatalog] = None,
    text_generator: Optional[TextGenerator] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> SchedulingService:
    """
    Build a SchedulingService from settings.

    Args:
        store: Booking persistence
        identity: Subject find-or-create collaborator
        settings: Settings (default: get_settings())
        calendar: Business calendar; default BUSINESS_CALENDAR_FILE if set,
            else the standard calendar in TIMEZONE
        catalog: Appointment types (default durations when omitted)
        text_generator: Optional generator for confirmation messages
        clock: "now" provider (tests)
    """
    settings = settings or get_settings()

    if calendar is None:
        if settings.BUSINESS_CALENDAR_FILE:
            calendar = BusinessCalendar.from_file(settings.BUSINESS_CALENDAR_FILE)
        else:
            calendar = BusinessCalendar.default(timezone=settings.TIMEZONE)

    calculator = AvailabilityCalculator.from_settings(calendar, store, settings, clock=clock)
    slot_finder = SlotFinder.from_settings(calculator, settings)
    transactions = BookingTransactionManager(
        store,
        identity,
        calculator,
        slot_finder,
        catalog=catalog,
        locks=ResourceLockRegistry(),
        default_resource_id=settings.DEFAULT_RESOURCE_ID,
        code_prefix=settings.CONFIRMATION_CODE_PREFIX,
        alternatives_count=settings.DEFAULT_ALTERNATIVES,
        text_generator=text_generator,
        text_timeout=settings.TEXT_GENERATION_TIMEOUT_SECONDS,
    )

    logger.info(
        f"Scheduling service ready | timezone={calendar.timezone} | "
        f"resource={settings.DEFAULT_RESOURCE_ID} | buffer={settings.BUFFER_MINUTES}min"
    )
    return SchedulingService(
        calendar,
        calculator,
        slot_finder,
        transactions,
        default_resource_id=settings.DEFAULT_RESOURCE_ID,
        granularity_minutes=settings.SLOT_GRANULARITY_MINUTES,
        pm_threshold=settings.PM_HOUR_THRESHOLD,
        default_alternatives=settings.DEFAULT_ALTERNATIVES,
    )
