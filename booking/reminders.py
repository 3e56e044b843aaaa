"""
Reminder sweep - time-windowed, exactly-once booking reminders.

Each sweep looks at every upcoming non-cancelled booking and, for each
reminder window whose flag is still false, sends a reminder when the booking
is within the window's tolerance:

    24h window: 22 <= hours_until <= 26  (reminder_24h_sent)
    3h window:   2 <= hours_until <= 4   (reminder_3h_sent)

Ordering per booking and window: render, send, then set the flag through the
store's conditional update. A failed send leaves the flag false so the next
sweep retries. Two overlapping sweeps can both send, but only one of them
wins the flag update; the loser logs it and does not count it as sent.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from booking.schedule import ScheduleConfig, booking_instant
from booking.store import BookingFilter, BookingStore, MessageGateway, ReminderFlag
from booking.templates import MessageContext, MessageKind, render_message
from database.models import Booking
from shared.config import get_settings
from shared.errors import ConfigError, GatewayError
from shared.logging_config import mask_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderWindow:
    """
    A reminder window centred on hours_before.

    Attributes:
        name: Short identifier used in logs ("24h", "3h")
        hours_before: Window centre in hours before the booking
        tolerance: Half-width of the window in hours
        flag: Booking flag recording that this reminder went out
        label: Human-readable value for {hoursBefore}
    """
    name: str
    hours_before: int
    tolerance: int
    flag: ReminderFlag
    label: str

    @property
    def lower_bound(self) -> int:
        return self.hours_before - self.tolerance

    @property
    def upper_bound(self) -> int:
        return self.hours_before + self.tolerance

    def contains(self, hours_until: float) -> bool:
        """True if hours_until falls inside the closed window."""
        return self.lower_bound <= hours_until <= self.upper_bound

    def is_due(self, booking: Booking, hours_until: float) -> bool:
        """True if the window's flag is unset and the booking is inside the window."""
        return not getattr(booking, self.flag.value) and self.contains(hours_until)


REMINDER_24H = ReminderWindow(
    name="24h", hours_before=24, tolerance=2, flag=ReminderFlag.REMINDER_24H, label="24 часа"
)
REMINDER_3H = ReminderWindow(
    name="3h", hours_before=3, tolerance=1, flag=ReminderFlag.REMINDER_3H, label="3 часа"
)

REMINDER_WINDOWS: tuple[ReminderWindow, ...] = (REMINDER_24H, REMINDER_3H)


@dataclass
class SweepResult:
    """Counters reported by a sweep."""

    scanned: int = 0
    sent_24h: int = 0
    sent_3h: int = 0
    errors: int = 0

    def record_sent(self, window: ReminderWindow) -> None:
        if window is REMINDER_24H:
            self.sent_24h += 1
        else:
            self.sent_3h += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "scanned": self.scanned,
            "sent24h": self.sent_24h,
            "sent3h": self.sent_3h,
            "errors": self.errors,
        }


def hours_until(booking: Booking, now: datetime, config: ScheduleConfig) -> float:
    """Hours from now until the booking's instant (negative if in the past)."""
    instant = booking_instant(booking.date, booking.time, config.tz)
    return (instant - now).total_seconds() / 3600


async def send_reminder(
    booking: Booking,
    window: ReminderWindow,
    store: BookingStore,
    gateway: MessageGateway,
    config: ScheduleConfig,
) -> bool:
    """
    Send one reminder and record it.

    Returns:
        True if the message was sent and this call set the flag

    Raises:
        GatewayError: If the gateway reports a failed send
    """
    context = MessageContext(
        client_name=booking.client_name,
        date=booking.date,
        time=booking.time,
        price=config.session_price,
        address=config.office_address,
        hours_before=window.label,
    )
    message = render_message(MessageKind.REMINDER, context, config.reminder_template)

    result = await gateway.send_message(booking.phone, message)
    if not result.success:
        raise GatewayError(f"{window.name} reminder not delivered", detail=result.error)

    won = await store.mark_reminder_sent(booking.id, window.flag)
    if not won:
        logger.warning(
            f"{window.name} reminder flag already set by a concurrent sweep",
            extra={"booking_id": str(booking.id), "window": window.name},
        )
        return False

    logger.info(
        f"{window.name} reminder sent",
        extra={
            "booking_id": str(booking.id),
            "window": window.name,
            "customer_phone": mask_phone(booking.phone),
        },
    )
    return True


async def _process_booking(
    booking: Booking,
    result: SweepResult,
    store: BookingStore,
    gateway: MessageGateway,
    config: ScheduleConfig,
    now: datetime,
) -> None:
    hours = hours_until(booking, now, config)

    for window in REMINDER_WINDOWS:
        if not window.is_due(booking, hours):
            continue

        try:
            if await send_reminder(booking, window, store, gateway, config):
                result.record_sent(window)
        except GatewayError as e:
            result.errors += 1
            logger.error(
                f"Failed to send {window.name} reminder: {e}",
                extra={"booking_id": str(booking.id), "window": window.name},
            )
        except Exception as e:
            result.errors += 1
            logger.error(
                f"Error processing {window.name} reminder: {e}",
                extra={"booking_id": str(booking.id), "window": window.name},
                exc_info=True,
            )


async def sweep(
    store: BookingStore,
    gateway: MessageGateway,
    config: ScheduleConfig,
    now: datetime,
    concurrency: Optional[int] = None,
) -> SweepResult:
    """
    Run one reminder sweep.

    Args:
        store: Booking store
        gateway: Outbound messaging gateway
        config: Working schedule (timezone, price, address, template)
        now: Current instant (timezone-aware)
        concurrency: Max bookings processed at once
            (default: REMINDER_SWEEP_CONCURRENCY)

    Returns:
        SweepResult with scanned/sent/error counters

    Example:
        >>> result = await sweep(store, gateway, config, datetime.now(config.tz))
        >>> result.to_dict()
        {'scanned': 3, 'sent24h': 1, 'sent3h': 0, 'errors': 0}
    """
    if now.tzinfo is None:
        raise ValueError("sweep() needs a timezone-aware 'now'")

    limit = concurrency or get_settings().REMINDER_SWEEP_CONCURRENCY
    today = now.astimezone(config.tz).date()

    bookings = await store.list_bookings(BookingFilter.active(date_from=today))

    result = SweepResult()
    upcoming: list[Booking] = []
    for booking in bookings:
        try:
            if hours_until(booking, now, config) >= 0:
                upcoming.append(booking)
        except ConfigError as e:
            result.errors += 1
            logger.error(f"Skipping booking with bad time: {e}", extra={"booking_id": str(booking.id)})

    result.scanned = len(upcoming)
    if not upcoming:
        logger.debug("No upcoming bookings to remind")
        return result

    semaphore = asyncio.Semaphore(max(1, limit))

    async def bounded(booking: Booking) -> None:
        async with semaphore:
            await _process_booking(booking, result, store, gateway, config, now)

    await asyncio.gather(*(bounded(b) for b in upcoming))

    logger.info(
        f"Reminder sweep finished: scanned={result.scanned}, sent24h={result.sent_24h}, "
        f"sent3h={result.sent_3h}, errors={result.errors}"
    )
    return result
