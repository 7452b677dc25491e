"""
Booking Transaction Manager - owns the booking lifecycle.

This module implements every write the scheduling core performs:
- book(): identity resolution, duration from the catalog, availability
  re-check and persistence with a freshly minted confirmation code
- cancel(), reschedule(), complete(), mark_no_show(): status transitions
  (bookings are never physically deleted)

Concurrency:
The "re-check availability, then write" sequence always runs while holding
the per-(resource, day) locks AND inside store.transaction(). The SQL store
makes that transaction SERIALIZABLE with row locks, so the guarantee holds
across processes too. Alternative searches run after the lock is released.

Idempotency:
A caller may mint the confirmation code up front (BookingRequest.
confirmation_code). A retried book() with the same code returns the stored
booking with replayed=True instead of booking twice.

Lifecycle:
    requested -> scheduled -> cancelled | rescheduled | completed | no-show
    rescheduled -> rescheduled | cancelled | completed | no-show
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from scheduling.catalog import AppointmentTypeCatalog
from scheduling.errors import (
    AlreadyCancelledError,
    DuplicateConfirmationCodeError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from scheduling.models import (
    AvailabilityResult,
    Booking,
    BookingRequest,
    BookingResult,
    BookingStatus,
)
from scheduling.ports import BookingStore, IdentityResolver, TextGenerator
from scheduling.services.availability_service import AvailabilityCalculator
from scheduling.services.confirmation_codes import generate_confirmation_code
from scheduling.services.confirmation_service import compose_confirmation
from scheduling.services.slot_finder import SlotFinder
from scheduling.transactions.resource_locks import ResourceLockRegistry

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 3


class BookingTransactionManager:
    """
    Atomic booking operations for one practice.

    All collaborators are injected; the manager keeps no state besides the
    lock registry, whose lifetime is the manager's.
    """

    def __init__(
        self,
        store: BookingStore,
        identity: IdentityResolver,
        calculator: AvailabilityCalculator,
        slot_finder: SlotFinder,
        catalog: Optional[AppointmentTypeCatalog] = None,
        locks: Optional[ResourceLockRegistry] = None,
        default_resource_id: str = "provider-1",
        code_prefix: str = "APT",
        alternatives_count: int = 3,
        text_generator: Optional[TextGenerator] = None,
        text_timeout: float = 5.0,
    ):
        self.store = store
        self.identity = identity
        self.calculator = calculator
        self.slot_finder = slot_finder
        self.catalog = catalog or AppointmentTypeCatalog()
        self.locks = locks or ResourceLockRegistry()
        self.default_resource_id = default_resource_id
        self.code_prefix = code_prefix
        self.alternatives_count = alternatives_count
        self.text_generator = text_generator
        self.text_timeout = text_timeout

    @property
    def calendar(self):
        return self.calculator.calendar

    async def _require(self, identifier: str) -> Booking:
        booking = await self.store.get(str(identifier))
        if booking is None:
            logger.warning(f"Booking not found: {identifier}")
            raise NotFoundError(
                f"No booking found for '{identifier}'",
                {"identifier": str(identifier)},
            )
        return booking

    def _lock_window(self, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        return self.calculator.snapshot_bounds(start, end)

    async def _alternatives_result(
        self,
        resource_id: str,
        start: datetime,
        duration_minutes: int,
        availability: AvailabilityResult,
        booking: Optional[Booking] = None,
    ) -> BookingResult:
        """Turn an unavailability into a failed result with alternatives."""
        alternatives = await self.slot_finder.find_alternatives(
            resource_id,
            start,
            duration_minutes,
            count=self.alternatives_count,
            exclude_booking_id=booking.id if booking else None,
        )
        return BookingResult(
            success=False,
            booking=booking,
            alternatives=alternatives,
            error_reason=str(availability.reason),
            message=availability.message,
            conflicts=availability.conflicts,
        )

    # ------------------------------------------------------------------
    # book
    # ------------------------------------------------------------------

    async def _create_with_unique_code(self, booking_fields: dict, supplied_code: Optional[str]) -> Booking:
        """Persist the booking, re-minting the code on a collision."""
        attempts = 1 if supplied_code else MAX_CODE_ATTEMPTS
        last_error: Optional[DuplicateConfirmationCodeError] = None

        for attempt in range(1, attempts + 1):
            code = supplied_code or generate_confirmation_code(self.code_prefix)
            try:
                return await self.store.create(Booking(confirmation_code=code, **booking_fields))
            except DuplicateConfirmationCodeError as e:
                last_error = e
                logger.warning(
                    f"Confirmation code collision (attempt {attempt}/{attempts})",
                    extra={"confirmation_code": code},
                )

        raise last_error

    async def book(self, request: BookingRequest) -> BookingResult:
        """
        Create a booking.

        Steps:
        1. Replay if request.confirmation_code is already stored
        2. Resolve duration (catalog default unless explicit)
        3. Resolve subject via the identity collaborator
        4. Under lock + transaction: re-check availability, create booking
        5. Compose the confirmation message (never affects the outcome)

        Returns:
            BookingResult; on unavailability success=False with error_reason,
            conflicts and alternatives

        Raises:
            UnknownAppointmentTypeError: Appointment type not in the catalog
            BookingPersistenceError: The store failed (safe to retry with the
                same confirmation code)

        Example:
            >>> result = await manager.book(BookingRequest(
            ...     start=datetime(2024, 3, 18, 10, 0, tzinfo=tz),
            ...     appointment_type="cleaning",
            ...     subject=SubjectInfo(name="Ana", phone="+1 212 555 0100"),
            ... ))
            >>> result.booking.confirmation_code
            'APT-LTQ4F2K0-9XA'
        """
        resource_id = request.resource_id or self.default_resource_id
        start = self.calendar.localize(request.start)
        trace_id = request.confirmation_code or f"{resource_id}_{start.isoformat()}"

        logger.info(
            f"[{trace_id}] Starting booking transaction",
            extra={"trace_id": trace_id, "resource_id": resource_id},
        )

        if request.confirmation_code:
            existing = await self.store.get(request.confirmation_code)
            if existing is not None:
                logger.info(
                    f"[{trace_id}] Replaying existing booking",
                    extra={"trace_id": trace_id, "booking_id": str(existing.id)},
                )
                return BookingResult(success=True, booking=existing, replayed=True)

        appointment_type, duration_minutes = self.catalog.resolve(
            request.appointment_type, request.duration_minutes
        )
        end = start + timedelta(minutes=duration_minutes)

        if request.subject_id:
            subject_id = request.subject_id
        else:
            match = await self.identity.find_or_create(request.subject)
            subject_id = match.subject_id
            if match.created:
                logger.info(
                    f"[{trace_id}] New subject created",
                    extra={"trace_id": trace_id, "subject_id": subject_id},
                )

        booking: Optional[Booking] = None
        async with self.locks.hold(resource_id, self._lock_window(start, end)):
            async with self.store.transaction():
                if request.confirmation_code:
                    existing = await self.store.get(request.confirmation_code)
                    if existing is not None:
                        return BookingResult(success=True, booking=existing, replayed=True)

                availability = await self.calculator.is_available(resource_id, start, duration_minutes)
                if availability.available:
                    now = self.calculator.now()
                    booking = await self._create_with_unique_code(
                        {
                            "resource_id": resource_id,
                            "subject_id": subject_id,
                            "start": start,
                            "end": end,
                            "appointment_type": appointment_type,
                            "status": BookingStatus.SCHEDULED,
                            "created_at": now,
                            "updated_at": now,
                            "notes": request.notes,
                        },
                        request.confirmation_code,
                    )

        if booking is None:
            logger.warning(
                f"[{trace_id}] Slot unavailable: {availability.reason}",
                extra={"trace_id": trace_id, "resource_id": resource_id, "reason": str(availability.reason)},
            )
            return await self._alternatives_result(resource_id, start, duration_minutes, availability)

        logger.info(
            f"[{trace_id}] Booking committed",
            extra={
                "trace_id": trace_id,
                "booking_id": str(booking.id),
                "confirmation_code": booking.confirmation_code,
                "resource_id": resource_id,
            },
        )

        message = await compose_confirmation(booking, self.text_generator, self.text_timeout)
        return BookingResult(success=True, booking=booking, message=message)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def cancel(self, identifier: str, reason: Optional[str] = None) -> BookingResult:
        """
        Cancel a booking by id or confirmation code.

        Raises:
            NotFoundError: No such booking
            AlreadyCancelledError: Already cancelled (nothing is changed)
            InvalidStatusTransitionError: Booking is completed or no-show
        """
        booking = await self._require(identifier)

        async with self.locks.hold(booking.resource_id, (booking.start, booking.end)):
            async with self.store.transaction():
                booking = await self._require(identifier)
                if booking.status == BookingStatus.CANCELLED:
                    raise AlreadyCancelledError(
                        f"Booking {booking.confirmation_code} is already cancelled",
                        {
                            "confirmation_code": booking.confirmation_code,
                            "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
                        },
                    )
                if not booking.is_active:
                    raise InvalidStatusTransitionError(
                        f"Cannot cancel a booking with status '{booking.status}'",
                        {"confirmation_code": booking.confirmation_code, "status": str(booking.status)},
                    )

                now = self.calculator.now()
                cancelled = await self.store.update(
                    booking.model_copy(
                        update={
                            "status": BookingStatus.CANCELLED,
                            "cancelled_at": now,
                            "cancellation_reason": reason,
                            "updated_at": now,
                        }
                    )
                )

        logger.info(
            f"Booking cancelled: {cancelled.confirmation_code}",
            extra={"booking_id": str(cancelled.id), "confirmation_code": cancelled.confirmation_code},
        )
        message = await compose_confirmation(cancelled, self.text_generator, self.text_timeout)
        return BookingResult(success=True, booking=cancelled, message=message)

    async def reschedule(self, identifier: str, new_start: datetime) -> BookingResult:
        """
        Move a booking to a new start, keeping its identity and duration.

        On failure the stored record is left untouched and the result carries
        alternatives around the requested start.

        Raises:
            NotFoundError: No such booking
            InvalidStatusTransitionError: Booking is cancelled, completed or no-show
        """
        booking = await self._require(identifier)
        new_start = self.calendar.localize(new_start)
        duration_minutes = booking.duration_minutes
        new_end = new_start + timedelta(minutes=duration_minutes)

        updated: Optional[Booking] = None
        async with self.locks.hold(
            booking.resource_id,
            (booking.start, booking.end),
            self._lock_window(new_start, new_end),
        ):
            async with self.store.transaction():
                booking = await self._require(identifier)
                if not booking.is_active:
                    raise InvalidStatusTransitionError(
                        f"Cannot reschedule a booking with status '{booking.status}'",
                        {"confirmation_code": booking.confirmation_code, "status": str(booking.status)},
                    )

                availability = await self.calculator.is_available(
                    booking.resource_id,
                    new_start,
                    duration_minutes,
                    exclude_booking_id=booking.id,
                )
                if availability.available:
                    now = self.calculator.now()
                    updated = await self.store.update(
                        booking.model_copy(
                            update={
                                "start": new_start,
                                "end": new_end,
                                "status": BookingStatus.RESCHEDULED,
                                "reschedule_count": booking.reschedule_count + 1,
                                "rescheduled_at": now,
                                "updated_at": now,
                            }
                        )
                    )

        if updated is None:
            logger.warning(
                f"Reschedule rejected for {booking.confirmation_code}: {availability.reason}",
                extra={"booking_id": str(booking.id), "reason": str(availability.reason)},
            )
            return await self._alternatives_result(
                booking.resource_id, new_start, duration_minutes, availability, booking=booking
            )

        logger.info(
            f"Booking rescheduled: {updated.confirmation_code} -> {new_start.isoformat()}",
            extra={"booking_id": str(updated.id), "confirmation_code": updated.confirmation_code},
        )
        message = await compose_confirmation(updated, self.text_generator, self.text_timeout)
        return BookingResult(success=True, booking=updated, message=message)

    async def _close(self, identifier: str, status: BookingStatus) -> Booking:
        booking = await self._require(identifier)
        async with self.locks.hold(booking.resource_id, (booking.start, booking.end)):
            async with self.store.transaction():
                booking = await self._require(identifier)
                if not booking.is_active:
                    raise InvalidStatusTransitionError(
                        f"Cannot mark a '{booking.status}' booking as '{status}'",
                        {"confirmation_code": booking.confirmation_code, "status": str(booking.status)},
                    )
                closed = await self.store.update(
                    booking.model_copy(update={"status": status, "updated_at": self.calculator.now()})
                )

        logger.info(
            f"Booking {closed.confirmation_code} marked {status}",
            extra={"booking_id": str(closed.id), "confirmation_code": closed.confirmation_code},
        )
        return closed

    async def complete(self, identifier: str) -> Booking:
        """Mark an active booking as completed."""
        return await self._close(identifier, BookingStatus.COMPLETED)

    async def mark_no_show(self, identifier: str) -> Booking:
        """Mark an active booking as no-show."""
        return await self._close(identifier, BookingStatus.NO_SHOW)

    async def get(self, identifier: str) -> Booking:
        """Booking by internal id or confirmation code (NotFoundError if absent)."""
        return await self._require(identifier)
