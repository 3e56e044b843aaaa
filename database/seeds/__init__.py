"""
Seed data orchestration module.

Provides seed_all() function to execute all seed scripts in dependency order.
Can be run standalone: python -m database.seeds
"""

import asyncio

from database.seeds.schedule_settings import seed_schedule_settings


async def seed_all() -> None:
    """
    Execute all seed scripts.

    Order:
    1. schedule_settings - independent
    """
    print("Starting database seeding...")
    print("-" * 50)

    await seed_schedule_settings()

    print("-" * 50)
    print(" Database seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed_all())
