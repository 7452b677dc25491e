"""
Per-resource, per-day locks for the "re-check then write" sequence.

Two tasks booking the same provider on the same day must not both pass the
availability re-check before either writes. Within one process this registry
serialises them; across processes the SQL store's SERIALIZABLE transaction
and SELECT ... FOR UPDATE do the same job.

Locks are keyed by (resource_id, local date). A window that touches several
days (buffer or fatigue lookaround across midnight, or a reschedule moving a
booking between days) takes every day's lock in sorted order, so two holders
can never wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Iterable

logger = logging.getLogger(__name__)


class ResourceLockRegistry:
    """
    asyncio.Lock per (resource_id, day), created on first use.

    A lock is dropped once its last holder or waiter leaves, so the registry
    only holds keys that are in use.
    """

    def __init__(self):
        self.locks: dict[tuple[str, date], asyncio.Lock] = {}
        self._users: dict[tuple[str, date], int] = {}

    @staticmethod
    def days_between(start: datetime, end: datetime) -> list[date]:
        """Local dates touched by [start, end] (both ends included)."""
        first, last = start.date(), end.date()
        return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]

    def keys_for(
        self,
        resource_id: str,
        windows: Iterable[tuple[datetime, datetime]],
    ) -> list[tuple[str, date]]:
        keys = {
            (resource_id, day)
            for start, end in windows
            for day in self.days_between(start, end)
        }
        return sorted(keys)

    def _checkout(self, key: tuple[str, date]) -> asyncio.Lock:
        self._users[key] = self._users.get(key, 0) + 1
        return self.locks.setdefault(key, asyncio.Lock())

    def _checkin(self, key: tuple[str, date]) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self.locks[key]

    @asynccontextmanager
    async def hold(
        self,
        resource_id: str,
        *windows: tuple[datetime, datetime],
    ) -> AsyncIterator[None]:
        """
        Hold the locks of every day touched by the given windows.

        Usage:
            async with registry.hold("provider-1", (start, end)):
                ...  # re-check availability and write
        """
        keys = self.keys_for(resource_id, windows)
        locks = [self._checkout(key) for key in keys]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            logger.debug(f"Locks held | resource_id={resource_id} | days={[k[1].isoformat() for k in keys]}")
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in keys:
                self._checkin(key)

    def is_locked(self, resource_id: str, day: date) -> bool:
        lock = self.locks.get((resource_id, day))
        return lock is not None and lock.locked()
