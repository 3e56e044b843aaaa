"""
System initialization for the booking service.

This script prepares a fresh deployment:
- Database connectivity check
- Table creation (idempotent)
- Seed data loading
- Verification of the schedule configuration

Can be run from within Docker containers or standalone.
Designed to be idempotent and safe to run multiple times.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import inspect, text  # noqa: E402

from booking.schedule import load_schedule_config  # noqa: E402
from booking.slots import slots_for_schedule  # noqa: E402
from database.connection import create_tables, engine, get_async_session  # noqa: E402
from database.models import Base  # noqa: E402
from database.seeds import seed_all  # noqa: E402
from database.store import SqlAlchemyStore  # noqa: E402
from shared.errors import ConfigError  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def check_database_connection() -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        logger.info("Checking database connection...")
        async with get_async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        logger.info("✓ Database connection successful")
        return True
    except Exception as e:
        logger.error(f"✗ Database connection failed: {e}")
        return False


async def check_tables_exist() -> dict[str, bool]:
    """
    Check which tables exist in the database.

    Returns:
        dict: Mapping of table names to existence status
    """
    async with engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

    table_status = {name: name in existing for name in Base.metadata.tables}
    for name, exists in table_status.items():
        logger.info(f"{'✓' if exists else '✗'} Table '{name}'")
    return table_status


async def verify_schedule() -> bool:
    """Check that the stored schedule produces at least one slot."""
    try:
        config = await load_schedule_config(SqlAlchemyStore())
        config.validate()
        slots = slots_for_schedule(config)
    except ConfigError as e:
        logger.error(f"✗ Schedule configuration is invalid: {e}")
        return False

    if not config.work_days:
        logger.warning("⚠ No working days configured: no date will be bookable")
    logger.info(f"✓ Schedule produces {len(slots)} slots per working day")
    return bool(slots)


async def run_system_initialization() -> bool:
    """
    Run the initialization steps in order.

    Returns:
        bool: True if every step passed
    """
    logger.info("=" * 60)
    logger.info("Booking system initialization")
    logger.info("=" * 60)

    if not await check_database_connection():
        return False

    await create_tables()
    table_status = await check_tables_exist()
    if not all(table_status.values()):
        logger.error("✗ Some tables are missing after create_tables()")
        return False

    await seed_all()

    schedule_ok = await verify_schedule()

    logger.info("=" * 60)
    logger.info("✓ Initialization complete" if schedule_ok else "✗ Initialization finished with errors")
    logger.info("=" * 60)

    return schedule_ok


async def main():
    """Main entry point for system initialization."""
    try:
        success = await run_system_initialization()
        sys.exit(0 if success else 1)
    except Exception as e:
        logger.exception(f"Fatal error during system initialization: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
