"""
Time slot generation from working hours.

Slots are "HH:MM" strings, earliest first. A slot [start, start + duration)
must fit entirely inside the working hours and must not touch the break.
"""

from typing import Optional

from booking.schedule import ScheduleConfig, format_time_of_day, parse_time_of_day
from shared.errors import ConfigError


def _overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    """Half-open interval overlap: [start, end) and [other_start, other_end)."""
    return start < other_end and other_start < end


def generate_time_slots(
    start_time: str,
    end_time: str,
    duration: int,
    break_start: Optional[str] = None,
    break_end: Optional[str] = None,
) -> list[str]:
    """
    Generate bookable times of day from working hours.

    Args:
        start_time: Start of working hours ("HH:MM")
        end_time: End of working hours ("HH:MM"), exclusive
        duration: Session length in minutes
        break_start: Optional break start ("HH:MM")
        break_end: Optional break end ("HH:MM"), exclusive

    Returns:
        Ordered list of slot start times. A trailing slot that would run past
        end_time is dropped.

    Raises:
        ConfigError: If times are unparseable, start >= end, duration <= 0,
            or the break is half-specified or inverted

    Example:
        >>> generate_time_slots("09:00", "11:00", 30, "09:30", "10:00")
        ['09:00', '10:00', '10:30']
    """
    start = parse_time_of_day(start_time)
    end = parse_time_of_day(end_time)

    if start >= end:
        raise ConfigError(
            f"Working hours start ({start_time}) must be before end ({end_time})"
        )

    if not isinstance(duration, int) or duration <= 0:
        raise ConfigError(f"Session duration must be a positive number of minutes: {duration!r}")

    break_interval: tuple[int, int] | None = None
    if break_start or break_end:
        if not (break_start and break_end):
            raise ConfigError("Break needs both a start and an end time")
        break_interval = (parse_time_of_day(break_start), parse_time_of_day(break_end))
        if break_interval[0] >= break_interval[1]:
            raise ConfigError(
                f"Break start ({break_start}) must be before break end ({break_end})"
            )

    slots: list[str] = []
    minutes = start
    while minutes + duration <= end:
        slot_end = minutes + duration
        if break_interval is None or not _overlaps(minutes, slot_end, *break_interval):
            slots.append(format_time_of_day(minutes))
        minutes += duration

    return slots


def slots_for_schedule(config: ScheduleConfig) -> list[str]:
    """Generate the slot sequence for a ScheduleConfig."""
    return generate_time_slots(
        config.start_time,
        config.end_time,
        config.session_duration,
        config.break_start,
        config.break_end,
    )
