"""
Seed script for holidays table.

Populates the database with US federal holidays for 2025 and 2026.
These dates represent practice-wide closures where no bookings are allowed.
"""

import asyncio
from datetime import date
from typing import Any

from sqlalchemy import select

from database.connection import AsyncSessionLocal
from database.models import Holiday

HOLIDAYS_2025: list[dict[str, Any]] = [
    {"date": date(2025, 1, 1), "name": "New Year's Day"},
    {"date": date(2025, 1, 20), "name": "Martin Luther King Jr. Day"},
    {"date": date(2025, 5, 26), "name": "Memorial Day"},
    {"date": date(2025, 7, 4), "name": "Independence Day"},
    {"date": date(2025, 9, 1), "name": "Labor Day"},
    {"date": date(2025, 11, 27), "name": "Thanksgiving Day"},
    {"date": date(2025, 12, 25), "name": "Christmas Day"},
]

HOLIDAYS_2026: list[dict[str, Any]] = [
    {"date": date(2026, 1, 1), "name": "New Year's Day"},
    {"date": date(2026, 1, 19), "name": "Martin Luther King Jr. Day"},
    {"date": date(2026, 5, 25), "name": "Memorial Day"},
    {"date": date(2026, 7, 3), "name": "Independence Day (observed)"},  # July 4 is a Saturday
    {"date": date(2026, 9, 7), "name": "Labor Day"},
    {"date": date(2026, 11, 26), "name": "Thanksgiving Day"},
    {"date": date(2026, 12, 25), "name": "Christmas Day"},
]

ALL_HOLIDAYS = HOLIDAYS_2025 + HOLIDAYS_2026


async def seed_holidays() -> None:
    """
    Seed the holidays table.

    Checks if each holiday already exists before inserting; renames existing
    entries whose name changed.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            created_count = 0
            updated_count = 0
            skipped_count = 0

            for holiday_data in ALL_HOLIDAYS:
                result = await session.execute(
                    select(Holiday).where(Holiday.date == holiday_data["date"])
                )
                existing_holiday = result.scalar_one_or_none()

                if existing_holiday is None:
                    session.add(Holiday(date=holiday_data["date"], name=holiday_data["name"]))
                    created_count += 1
                    print(f"✓ Created: {holiday_data['date']} - {holiday_data['name']}")
                elif existing_holiday.name != holiday_data["name"]:
                    existing_holiday.name = holiday_data["name"]
                    updated_count += 1
                    print(f"⊙ Updated: {holiday_data['date']} - {holiday_data['name']}")
                else:
                    skipped_count += 1

    print("\n✓ Seeding complete!")
    print(f"  Created: {created_count} holidays")
    print(f"  Updated: {updated_count} holidays")
    print(f"  Skipped: {skipped_count} holidays (already exist)")


if __name__ == "__main__":
    print("Seeding holidays table...")
    print("=" * 60)
    asyncio.run(seed_holidays())
