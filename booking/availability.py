"""
Date and slot availability.

Pure filtering over already-loaded data: the caller supplies the generated
slots, the blocked dates and the times booked by non-cancelled bookings.
"""

import logging
from datetime import date, datetime
from typing import Iterable

from booking.schedule import ScheduleConfig

logger = logging.getLogger(__name__)


def _as_date(value: date | datetime) -> date:
    """Reduce a date or datetime to day resolution."""
    if isinstance(value, datetime):
        return value.date()
    return value


def is_working_day(day: date, config: ScheduleConfig) -> bool:
    """
    Check if the weekday of a date is a configured working day.

    An empty working-day set is treated as misconfiguration: no day is open.
    """
    if not config.work_days:
        logger.warning("No working days configured, treating every day as closed")
        return False
    return day.weekday() in config.work_days


def is_date_available(
    day: date,
    config: ScheduleConfig,
    blocked_dates: Iterable[date | datetime],
    today: date,
) -> bool:
    """
    Check if a date can take bookings.

    A date is available when it is a working day, is not blocked (compared at
    day resolution) and is not before today.
    """
    if day < today:
        return False

    if not is_working_day(day, config):
        return False

    blocked = {_as_date(d) for d in blocked_dates}
    if day in blocked:
        logger.debug(f"Date {day} is blocked")
        return False

    return True


def available_slots(
    day: date,
    slots: Iterable[str],
    config: ScheduleConfig,
    blocked_dates: Iterable[date | datetime],
    booked_times: Iterable[str],
    today: date,
) -> list[str]:
    """
    Filter generated slots down to the bookable ones for a date.

    Args:
        day: Date to check
        slots: Slot sequence from generate_time_slots()
        config: Working schedule
        blocked_dates: Blocked calendar dates
        booked_times: Times of non-cancelled bookings on that date
        today: Current date in the business timezone

    Returns:
        Bookable slots in generation order (possibly empty)
    """
    if not is_date_available(day, config, blocked_dates, today):
        return []

    taken = set(booked_times)
    return [slot for slot in slots if slot not in taken]
