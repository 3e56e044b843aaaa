"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

# Point the app at SQLite and disable outbound WhatsApp for tests.
# Must be set BEFORE any imports of database.connection or shared.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["WHATSAPP_ENABLED"] = "false"
os.environ["TIMEZONE"] = "Asia/Almaty"
os.environ["PHONE_COUNTRY_CODE"] = "7"
os.environ["CRON_SECRET"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from booking.schedule import ScheduleConfig  # noqa: E402
from tests.fakes import FakeGateway, InMemoryStore  # noqa: E402

TZ = ZoneInfo("Asia/Almaty")

# Monday 2026-03-02 10:00 local time
NOW = datetime(2026, 3, 2, 10, 0, tzinfo=TZ)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def schedule_config() -> ScheduleConfig:
    """Mon-Fri 09:00-19:00, 30 minute sessions, lunch 13:00-14:00."""
    return ScheduleConfig(
        work_days=frozenset({0, 1, 2, 3, 4}),
        start_time="09:00",
        end_time="19:00",
        session_duration=30,
        break_start="13:00",
        break_end="14:00",
        session_price=15000,
        office_address="ул. Абая 10, офис 5",
        timezone="Asia/Almaty",
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture(autouse=True)
async def cleanup_engine():
    """
    Dispose the database engine after each test.

    This ensures connection pools don't interfere between tests.
    """
    yield
    from database.connection import engine

    await engine.dispose()
