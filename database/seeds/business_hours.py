"""
Seed script for business_hours and break_windows tables.

Populates the database with the practice's standard calendar:
- Monday-Friday: 09:00 - 17:00
- Saturday: 09:00 - 13:00
- Sunday: CLOSED
- Lunch break: 12:00 - 13:00 every day
"""

import asyncio
from typing import Any

from sqlalchemy import select

from database.connection import AsyncSessionLocal
from database.models import BreakWindowRecord, BusinessHours
from shared.business_hours import DAY_NAMES, BusinessCalendar


def business_hours_rows(calendar: BusinessCalendar) -> list[dict[str, Any]]:
    """business_hours rows (day 0=Monday) for a calendar."""
    rows = []
    for day in range(7):
        hours = calendar.weekly_hours.get(day)
        if hours is None or not hours.is_open:
            rows.append({
                "day_of_week": day,
                "is_closed": True,
                "start_hour": None,
                "start_minute": 0,
                "end_hour": None,
                "end_minute": 0,
            })
            continue
        rows.append({
            "day_of_week": day,
            "is_closed": False,
            "start_hour": hours.open_time.hour,
            "start_minute": hours.open_time.minute,
            "end_hour": hours.close_time.hour,
            "end_minute": hours.close_time.minute,
        })
    return rows


def break_window_rows(calendar: BusinessCalendar) -> list[dict[str, Any]]:
    """break_windows rows; one row per weekday for day-restricted breaks."""
    rows = []
    for window in calendar.breaks:
        days = sorted(window.days) if window.days is not None else [None]
        for day in days:
            rows.append({
                "name": window.name,
                "start_time": window.start,
                "end_time": window.end,
                "day_of_week": day,
            })
    return rows


async def seed_business_hours(calendar: BusinessCalendar | None = None) -> None:
    """
    Seed the business_hours and break_windows tables.

    Uses UPSERT logic for hours (one row per weekday); break windows are
    replaced as a whole.
    """
    calendar = calendar or BusinessCalendar.default()

    async with AsyncSessionLocal() as session:
        async with session.begin():
            created_count = 0
            updated_count = 0

            for hours_data in business_hours_rows(calendar):
                result = await session.execute(
                    select(BusinessHours).where(
                        BusinessHours.day_of_week == hours_data["day_of_week"]
                    )
                )
                existing_hours = result.scalar_one_or_none()
                day_name = DAY_NAMES[hours_data["day_of_week"]]

                if existing_hours is None:
                    session.add(BusinessHours(**hours_data))
                    created_count += 1
                    action = "Created"
                else:
                    for key, value in hours_data.items():
                        setattr(existing_hours, key, value)
                    updated_count += 1
                    action = "Updated"

                if hours_data["is_closed"]:
                    print(f"✓ {action}: {day_name} - CLOSED")
                else:
                    print(
                        f"✓ {action}: {day_name} - "
                        f"{hours_data['start_hour']:02d}:{hours_data['start_minute']:02d} to "
                        f"{hours_data['end_hour']:02d}:{hours_data['end_minute']:02d}"
                    )

            existing_breaks = (await session.execute(select(BreakWindowRecord))).scalars().all()
            for window in existing_breaks:
                await session.delete(window)
            for break_data in break_window_rows(calendar):
                session.add(BreakWindowRecord(**break_data))
                print(f"✓ Break: {break_data['name']} {break_data['start_time']}-{break_data['end_time']}")

    print("\n✓ Seeding complete!")
    print(f"  Created: {created_count} days")
    print(f"  Updated: {updated_count} days")
    print(f"  Breaks: {len(calendar.breaks)}")


if __name__ == "__main__":
    print("Seeding business_hours table...")
    print("=" * 60)
    asyncio.run(seed_business_hours())
