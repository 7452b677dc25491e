"""
Booking store implementations.

- InMemoryBookingStore: process-local store for tests and single-process use.
  Copies models on every read and write so callers never share state with
  the store; transaction() undoes its writes when the block raises.
- SqlAlchemyBookingStore: PostgreSQL via async SQLAlchemy. transaction()
  opens a SERIALIZABLE transaction and reads inside it use SELECT ... FOR
  UPDATE, so the "re-check then write" sequence is safe across processes.

Both implement scheduling.ports.BookingStore. Store failures surface as
BookingPersistenceError (retryable), never as silent drops.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional, TypeVar
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import AsyncSessionLocal
from database.models import BookingRecord
from scheduling.errors import BookingPersistenceError, DuplicateConfirmationCodeError
from scheduling.models import Booking, BookingStatus, normalize_confirmation_code

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_uuid(identifier: str) -> Optional[UUID]:
    try:
        return UUID(str(identifier))
    except ValueError:
        return None


# ============================================================================
# In-memory store
# ============================================================================


class InMemoryBookingStore:
    """
    Dict-backed BookingStore.

    Example:
        >>> store = InMemoryBookingStore()
        >>> saved = await store.create(booking)
        >>> (await store.get(saved.confirmation_code)).id == saved.id
        True
    """

    def __init__(self, bookings: Optional[Iterable[Booking]] = None):
        self._bookings: dict[UUID, Booking] = {}
        self._by_code: dict[str, UUID] = {}
        # Undo log of the transaction running in the current task
        self._journal: ContextVar[Optional[list[tuple[UUID, Optional[Booking]]]]] = ContextVar(
            f"in_memory_journal_{id(self)}", default=None
        )
        for booking in bookings or ():
            self._put(booking.model_copy(deep=True))

    def __len__(self) -> int:
        return len(self._bookings)

    def _put(self, booking: Booking) -> None:
        previous = self._bookings.get(booking.id)
        if previous is not None and previous.confirmation_code != booking.confirmation_code:
            self._by_code.pop(previous.confirmation_code, None)
        self._bookings[booking.id] = booking
        self._by_code[booking.confirmation_code] = booking.id

    def _record(self, booking_id: UUID) -> None:
        journal = self._journal.get()
        if journal is not None:
            previous = self._bookings.get(booking_id)
            journal.append((booking_id, previous.model_copy(deep=True) if previous else None))

    def _undo(self, journal: list[tuple[UUID, Optional[Booking]]]) -> None:
        for booking_id, previous in reversed(journal):
            current = self._bookings.pop(booking_id, None)
            if current is not None:
                self._by_code.pop(current.confirmation_code, None)
            if previous is not None:
                self._put(previous)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._journal.get() is not None:
            yield
            return

        journal: list[tuple[UUID, Optional[Booking]]] = []
        token = self._journal.set(journal)
        try:
            yield
        except BaseException:
            self._undo(journal)
            raise
        finally:
            self._journal.reset(token)

    async def create(self, booking: Booking) -> Booking:
        code = booking.confirmation_code
        if code in self._by_code:
            raise DuplicateConfirmationCodeError(
                f"Confirmation code {booking.confirmation_code} already exists",
                {"confirmation_code": booking.confirmation_code},
            )
        if booking.id in self._bookings:
            raise BookingPersistenceError(
                f"Booking {booking.id} already exists",
                {"booking_id": str(booking.id)},
            )

        self._record(booking.id)
        self._put(booking.model_copy(deep=True))
        return booking.model_copy(deep=True)

    async def get(self, identifier: str) -> Optional[Booking]:
        booking_id = _parse_uuid(identifier)
        if booking_id is None:
            booking_id = self._by_code.get(normalize_confirmation_code(str(identifier)))
        booking = self._bookings.get(booking_id) if booking_id else None
        return booking.model_copy(deep=True) if booking else None

    async def update(self, booking: Booking) -> Booking:
        if booking.id not in self._bookings:
            raise BookingPersistenceError(
                f"Cannot update unknown booking {booking.id}",
                {"booking_id": str(booking.id)},
            )
        owner = self._by_code.get(booking.confirmation_code)
        if owner is not None and owner != booking.id:
            raise DuplicateConfirmationCodeError(
                f"Confirmation code {booking.confirmation_code} already exists",
                {"confirmation_code": booking.confirmation_code},
            )

        self._record(booking.id)
        self._put(booking.model_copy(deep=True))
        return booking.model_copy(deep=True)

    async def query_by_resource(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> list[Booking]:
        allowed = set(statuses) if statuses is not None else None
        matches = [
            booking
            for booking in self._bookings.values()
            if booking.resource_id == resource_id
            and booking.start < end
            and booking.end > start
            and (allowed is None or booking.status in allowed)
        ]
        return [booking.model_copy(deep=True) for booking in sorted(matches, key=lambda b: b.start)]


# ============================================================================
# SQLAlchemy store
# ============================================================================


def record_to_booking(record: BookingRecord) -> Booking:
    return Booking(
        id=record.id,
        confirmation_code=record.confirmation_code,
        resource_id=record.resource_id,
        subject_id=record.subject_id,
        start=record.start,
        end=record.end,
        appointment_type=record.appointment_type,
        status=record.status,
        created_at=record.created_at,
        updated_at=record.updated_at,
        cancelled_at=record.cancelled_at,
        cancellation_reason=record.cancellation_reason,
        reschedule_count=record.reschedule_count,
        rescheduled_at=record.rescheduled_at,
        notes=record.notes,
    )


def apply_booking(record: BookingRecord, booking: Booking) -> BookingRecord:
    """Copy every mutable Booking field onto the ORM record."""
    record.confirmation_code = booking.confirmation_code
    record.resource_id = booking.resource_id
    record.subject_id = booking.subject_id
    record.start = booking.start
    record.end = booking.end
    record.appointment_type = booking.appointment_type
    record.status = booking.status
    record.created_at = booking.created_at
    record.updated_at = booking.updated_at
    record.cancelled_at = booking.cancelled_at
    record.cancellation_reason = booking.cancellation_reason
    record.reschedule_count = booking.reschedule_count
    record.rescheduled_at = booking.rescheduled_at
    record.notes = booking.notes
    return record


class SqlAlchemyBookingStore:
    """
    PostgreSQL-backed BookingStore.

    Args:
        session_factory: Callable returning a new AsyncSession
            (default: database.connection.AsyncSessionLocal)
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
        self._session_factory = session_factory
        self._session: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"booking_store_session_{id(self)}", default=None
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """SERIALIZABLE transaction shared by every store call inside the block."""
        if self._session.get() is not None:
            yield
            return

        session = self._session_factory()
        token = self._session.set(session)
        try:
            await session.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))
            yield
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Booking transaction failed: {e}", exc_info=True)
            raise BookingPersistenceError(
                "The booking transaction could not be committed",
                {"error": str(e)},
            ) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            self._session.reset(token)
            await session.close()

    @property
    def in_transaction(self) -> bool:
        return self._session.get() is not None

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]], write: bool = False) -> T:
        """Run in the current transaction, or in a short-lived session."""
        session = self._session.get()
        try:
            if session is not None:
                return await operation(session)

            async with self._session_factory() as own_session:
                result = await operation(own_session)
                if write:
                    await own_session.commit()
                return result
        except BookingPersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Booking store error: {e}", exc_info=True)
            raise BookingPersistenceError("Booking store operation failed", {"error": str(e)}) from e

    async def _find(self, session: AsyncSession, identifier: str) -> Optional[BookingRecord]:
        booking_id = _parse_uuid(identifier)
        if booking_id is not None:
            stmt = select(BookingRecord).where(BookingRecord.id == booking_id)
        else:
            stmt = select(BookingRecord).where(
                BookingRecord.confirmation_code == normalize_confirmation_code(str(identifier))
            )
        if self.in_transaction:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, booking: Booking) -> Booking:
        async def _create(session: AsyncSession) -> Booking:
            record = apply_booking(BookingRecord(id=booking.id), booking)
            try:
                # Savepoint keeps the outer transaction usable after a collision
                async with session.begin_nested():
                    session.add(record)
                    await session.flush()
            except IntegrityError as e:
                if "confirmation_code" in str(e.orig):
                    raise DuplicateConfirmationCodeError(
                        f"Confirmation code {booking.confirmation_code} already exists",
                        {"confirmation_code": booking.confirmation_code},
                    ) from e
                raise BookingPersistenceError(
                    f"Booking {booking.id} violates a constraint",
                    {"booking_id": str(booking.id), "error": str(e.orig)},
                ) from e
            return record_to_booking(record)

        created = await self._run(_create, write=True)
        logger.debug(
            f"Booking record created: {created.confirmation_code}",
            extra={"booking_id": str(created.id), "confirmation_code": created.confirmation_code},
        )
        return created

    async def get(self, identifier: str) -> Optional[Booking]:
        async def _get(session: AsyncSession) -> Optional[Booking]:
            record = await self._find(session, identifier)
            return record_to_booking(record) if record else None

        return await self._run(_get)

    async def update(self, booking: Booking) -> Booking:
        async def _update(session: AsyncSession) -> Booking:
            record = await self._find(session, str(booking.id))
            if record is None:
                raise BookingPersistenceError(
                    f"Cannot update unknown booking {booking.id}",
                    {"booking_id": str(booking.id)},
                )
            apply_booking(record, booking)
            await session.flush()
            return record_to_booking(record)

        return await self._run(_update, write=True)

    async def query_by_resource(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> list[Booking]:
        async def _query(session: AsyncSession) -> list[Booking]:
            stmt = select(BookingRecord).where(
                BookingRecord.resource_id == resource_id,
                BookingRecord.start < end,
                BookingRecord.end > start,
            )
            if statuses is not None:
                stmt = stmt.where(BookingRecord.status.in_(list(statuses)))
            stmt = stmt.order_by(BookingRecord.start)
            if self.in_transaction:
                stmt = stmt.with_for_update()
            result = await session.execute(stmt)
            return [record_to_booking(record) for record in result.scalars().all()]

        return await self._run(_query)
