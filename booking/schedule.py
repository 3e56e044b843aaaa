"""
Working schedule configuration passed explicitly into the booking core.

ScheduleConfig is read-only for the core. It is built either from the stored
schedule_settings row or, when none exists, from the environment defaults.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from database.models import ScheduleSettings
from shared.config import Settings, get_settings
from shared.errors import ConfigError

logger = logging.getLogger(__name__)

MIN_SESSION_DURATION = 15
MAX_SESSION_DURATION = 120


def parse_time_of_day(value: str) -> int:
    """
    Parse an "HH:MM" string into minutes since midnight.

    Raises:
        ConfigError: If the value is not a valid time of day
    """
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError) as e:
        raise ConfigError(f"Invalid time of day: {value!r}") from e

    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ConfigError(f"Invalid time of day: {value!r}")

    return hours * 60 + minutes


def format_time_of_day(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def booking_instant(day: date, time_of_day: str, tz: ZoneInfo) -> datetime:
    """Combine a booking's calendar date and "HH:MM" time into an aware datetime."""
    minutes = parse_time_of_day(time_of_day)
    return datetime.combine(day, time(minutes // 60, minutes % 60), tzinfo=tz)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    return value.strip()


@dataclass(frozen=True)
class ScheduleConfig:
    """
    Working schedule and message context.

    Attributes:
        work_days: Working weekdays (0=Monday ... 6=Sunday). Empty means misconfigured.
        start_time / end_time: Working hours as "HH:MM"
        session_duration: Session length in minutes
        break_start / break_end: Optional break interval as "HH:MM"
        session_price: Optional display price (non-positive means "not shown")
        office_address: Optional address shown in messages
        confirmation_template / reminder_template: Optional custom templates
        timezone: IANA timezone of the business
    """
    work_days: frozenset[int]
    start_time: str
    end_time: str
    session_duration: int
    break_start: Optional[str] = None
    break_end: Optional[str] = None
    session_price: Optional[int] = None
    office_address: Optional[str] = None
    confirmation_template: Optional[str] = None
    reminder_template: Optional[str] = None
    timezone: str = field(default="Asia/Almaty")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def validate(self) -> None:
        """
        Check the duration bounds used by the settings editor.

        Raises:
            ConfigError: If session_duration is outside 15-120 minutes
        """
        if not (MIN_SESSION_DURATION <= self.session_duration <= MAX_SESSION_DURATION):
            raise ConfigError(
                f"Session duration must be between {MIN_SESSION_DURATION} and "
                f"{MAX_SESSION_DURATION} minutes, got {self.session_duration}"
            )

    @classmethod
    def from_model(cls, row: ScheduleSettings, timezone: str | None = None) -> "ScheduleConfig":
        """Build from a stored schedule_settings row."""
        return cls(
            work_days=frozenset(int(d) for d in (row.work_days or [])),
            start_time=row.work_start_time,
            end_time=row.work_end_time,
            session_duration=row.session_duration,
            break_start=_blank_to_none(row.break_start_time),
            break_end=_blank_to_none(row.break_end_time),
            session_price=row.session_price,
            office_address=_blank_to_none(row.office_address),
            confirmation_template=_blank_to_none(row.confirmation_message_template),
            reminder_template=_blank_to_none(row.reminder_message_template),
            timezone=timezone or get_settings().TIMEZONE,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ScheduleConfig":
        """Build from the environment defaults."""
        settings = settings or get_settings()
        return cls(
            work_days=parse_work_days(settings.WORK_DAYS),
            start_time=settings.WORK_START_TIME,
            end_time=settings.WORK_END_TIME,
            session_duration=settings.SESSION_DURATION_MINUTES,
            break_start=_blank_to_none(settings.BREAK_START_TIME),
            break_end=_blank_to_none(settings.BREAK_END_TIME),
            session_price=settings.SESSION_PRICE,
            office_address=_blank_to_none(settings.OFFICE_ADDRESS),
            timezone=settings.TIMEZONE,
        )


def parse_work_days(value: str | Iterable[int]) -> frozenset[int]:
    """
    Parse working weekdays from "0,1,2" or an iterable of ints.

    Raises:
        ConfigError: If any entry is not a weekday number 0-6
    """
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",") if item.strip()]
    else:
        items = list(value)

    try:
        days = frozenset(int(item) for item in items)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid working days: {value!r}") from e

    if any(not (0 <= d <= 6) for d in days):
        raise ConfigError(f"Working days must be between 0 and 6: {value!r}")

    return days


async def load_schedule_config(store) -> ScheduleConfig:
    """
    Load the schedule from the store, falling back to environment defaults.

    Args:
        store: BookingStore implementation

    Returns:
        ScheduleConfig for the current settings
    """
    row = await store.get_schedule_settings()
    if row is None:
        logger.debug("No stored schedule settings, using environment defaults")
        return ScheduleConfig.from_settings()
    return ScheduleConfig.from_model(row)
