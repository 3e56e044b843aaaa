"""
Seed script for the schedule_settings table.

Creates the single schedule row from the environment defaults:
- Working days: WORK_DAYS (0=Monday ... 6=Sunday)
- Working hours: WORK_START_TIME - WORK_END_TIME
- Session length: SESSION_DURATION_MINUTES
- Optional break, price and office address

An existing row is left untouched so changes made by an administrator
survive re-seeding.
"""

import asyncio

from sqlalchemy import select

from booking.schedule import ScheduleConfig
from database.connection import AsyncSessionLocal
from database.models import ScheduleSettings


def build_default_schedule_settings() -> ScheduleSettings:
    """Build a ScheduleSettings row from the environment defaults."""
    config = ScheduleConfig.from_settings()
    config.validate()

    return ScheduleSettings(
        work_days=sorted(config.work_days),
        work_start_time=config.start_time,
        work_end_time=config.end_time,
        session_duration=config.session_duration,
        break_start_time=config.break_start,
        break_end_time=config.break_end,
        session_price=config.session_price,
        office_address=config.office_address,
    )


async def seed_schedule_settings() -> None:
    """
    Seed the schedule_settings table.

    Inserts the default row only when the table is empty.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            result = await session.execute(select(ScheduleSettings).limit(1))
            existing = result.scalar_one_or_none()

            if existing is not None:
                print(f"⊙ Schedule settings already present: {existing!r}")
                return

            settings_row = build_default_schedule_settings()
            session.add(settings_row)
            print(f"✓ Created schedule settings: {settings_row!r}")


if __name__ == "__main__":
    asyncio.run(seed_schedule_settings())
