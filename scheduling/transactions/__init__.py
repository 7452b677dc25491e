"""
Atomic booking transactions.

Key design principles:
1. Per-(resource, day) asyncio locks around every "re-check then write"
2. SERIALIZABLE isolation and SELECT FOR UPDATE in the SQL store
3. Unavailability becomes ranked alternatives, not an exception
4. Logging with trace_id for debugging

Transaction handlers:
- BookingTransactionManager: book, cancel, reschedule, complete, mark_no_show
- ResourceLockRegistry: in-process lock registry
"""

from scheduling.transactions.booking_transaction import BookingTransactionManager
from scheduling.transactions.resource_locks import ResourceLockRegistry

__all__ = ["BookingTransactionManager", "ResourceLockRegistry"]
