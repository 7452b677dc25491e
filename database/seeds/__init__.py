"""
Seed data orchestration module.

Provides seed_all() function to execute all seed scripts.
Can be run standalone: python -m database.seeds
(after `alembic upgrade head` has created the tables)
"""

import asyncio

from database.seeds.appointment_types import seed_appointment_types
from database.seeds.business_hours import seed_business_hours
from database.seeds.holidays import seed_holidays


async def seed_all() -> None:
    """
    Execute all seed scripts.

    Order:
    1. business_hours + break_windows
    2. holidays
    3. appointment_types
    """
    print("Starting database seeding...")
    print("-" * 50)

    await seed_business_hours()
    await seed_holidays()
    await seed_appointment_types()

    print("-" * 50)
    print(" Database seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed_all())
