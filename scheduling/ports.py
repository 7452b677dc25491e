"""
Collaborator interfaces consumed by the scheduling core.

The core never reaches for module-level state: the booking store, the
identity resolver and the optional text generator are injected, and their
lifetime is owned by whoever builds the SchedulingService.
"""

from datetime import datetime
from typing import AsyncContextManager, Iterable, Optional, Protocol, runtime_checkable

from scheduling.models import Booking, BookingStatus, SubjectInfo, SubjectMatch


@runtime_checkable
class BookingStore(Protocol):
    """Persistence of Booking records."""

    def transaction(self) -> AsyncContextManager[None]:
        """
        Scope in which reads are taken for update and writes commit together.

        The booking transaction manager wraps every "re-check then write"
        sequence in one of these.
        """
        ...

    async def create(self, booking: Booking) -> Booking:
        """Persist a new booking. Raises DuplicateConfirmationCodeError on code reuse."""
        ...

    async def get(self, identifier: str) -> Optional[Booking]:
        """Find a booking by internal id or confirmation code."""
        ...

    async def update(self, booking: Booking) -> Booking:
        """Replace the stored record with `booking` (same id)."""
        ...

    async def query_by_resource(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> list[Booking]:
        """Bookings of a resource intersecting [start, end), ordered by start."""
        ...


@runtime_checkable
class IdentityResolver(Protocol):
    """Finds or creates the subject (patient) a booking belongs to."""

    async def find_or_create(self, info: SubjectInfo) -> SubjectMatch:
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """External text generation capability (e.g. an LLM)."""

    async def generate(self, prompt: str) -> str:
        ...
