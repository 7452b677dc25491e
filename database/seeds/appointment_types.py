"""
Seed script for appointment_types table.

Populates the catalog with the default appointment types and durations.
"""

import asyncio

from sqlalchemy import select

from database.connection import AsyncSessionLocal
from database.models import AppointmentTypeRecord
from scheduling.catalog import DEFAULT_APPOINTMENT_TYPES


async def seed_appointment_types() -> None:
    """Insert missing types and refresh durations of existing ones."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            for name, duration in DEFAULT_APPOINTMENT_TYPES.items():
                result = await session.execute(
                    select(AppointmentTypeRecord).where(AppointmentTypeRecord.name == name)
                )
                existing = result.scalar_one_or_none()

                if existing is None:
                    session.add(AppointmentTypeRecord(name=name, duration_minutes=duration))
                    print(f"✓ Created: {name} ({duration} min)")
                elif existing.duration_minutes != duration:
                    existing.duration_minutes = duration
                    print(f"⊙ Updated: {name} ({duration} min)")

    print(f"\n✓ {len(DEFAULT_APPOINTMENT_TYPES)} appointment types configured")


if __name__ == "__main__":
    asyncio.run(seed_appointment_types())
