"""
Inbound WhatsApp command processing - client-initiated cancellations.

A client replies to a reminder with "2" (or "отмена", "cancel", ...). The
processor:

1. Classifies the text as a cancellation command or not (non-commands are
   ignored without a reply)
2. Resolves the sender to their soonest upcoming non-cancelled booking by
   canonical phone key
3. Cancels it through the store, then sends the cancellation notice

Cancellation commits before the notice is sent; a failed notice never undoes
the cancellation. A redelivered webhook finds no active booking and gets the
"no active booking" notice.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from booking.schedule import ScheduleConfig, booking_instant, load_schedule_config
from booking.store import BookingFilter, BookingStore, MessageGateway
from booking.templates import MessageContext, MessageKind, render_message
from database.models import Booking
from shared.errors import ConfigError, GatewayError
from shared.logging_config import mask_phone
from shared.phone import canonical_phone_key

logger = logging.getLogger(__name__)

# Cancellation vocabulary (compared after normalize_command_text)
CANCEL_COMMANDS: tuple[str, ...] = (
    "2",
    "отмена",
    "отменить",
    "cancel",
    "отменить запись",
    "отменить сеанс",
    "отмена записи",
)

# Punctuation and symbols stripped from both ends of a message
_SURROUNDING_NOISE = " \t\r\n.,!?;:\"'«»()[]-–—…"

_WHITESPACE = re.compile(r"\s+")


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)")


# Numeric shortcuts only match the whole message
_PHRASE_PATTERNS = tuple(
    _phrase_pattern(command) for command in CANCEL_COMMANDS if not command.isdigit()
)


class InboundAction(str, Enum):
    """What the processor did with an inbound message."""

    IGNORED = "ignored"
    NO_ACTIVE_BOOKING = "no_active_booking"
    CANCELLED = "cancelled"


@dataclass
class InboundResult:
    """
    Result of processing an inbound message.

    Attributes:
        action: Outcome of the processing
        booking_id: Cancelled booking (CANCELLED only)
        notice_sent: Whether the reply reached the gateway successfully
        error_message: Parse/processing failure detail for IGNORED results
    """
    action: InboundAction
    booking_id: Optional[UUID] = None
    notice_sent: bool = False
    error_message: Optional[str] = None


def normalize_command_text(text: str) -> str:
    """
    Normalize message text for command matching.

    Lowercases, collapses whitespace and strips surrounding punctuation.

    Example:
        >>> normalize_command_text("  Отмена! ")
        'отмена'
    """
    collapsed = _WHITESPACE.sub(" ", (text or "").lower())
    return collapsed.strip(_SURROUNDING_NOISE)


def is_cancel_command(text: str) -> bool:
    """
    Check if a message is a cancellation command.

    Exact match against the vocabulary, or a word-phrase command appearing
    on word boundaries ("хочу отменить запись"). "2" only matches alone, so
    "приду в 12" or "2 человека" are not commands.
    """
    normalized = normalize_command_text(text)
    if not normalized:
        return False

    if normalized in CANCEL_COMMANDS:
        return True

    return any(pattern.search(normalized) for pattern in _PHRASE_PATTERNS)


def _safe_instant(booking: Booking, config: ScheduleConfig) -> Optional[datetime]:
    try:
        return booking_instant(booking.date, booking.time, config.tz)
    except ConfigError:
        logger.warning(
            f"Booking has unparseable time {booking.time!r}",
            extra={"booking_id": str(booking.id)},
        )
        return None


async def find_active_booking(
    store: BookingStore,
    sender: str,
    now: datetime,
    config: ScheduleConfig,
) -> Optional[Booking]:
    """
    Find the sender's soonest upcoming non-cancelled booking.

    Args:
        store: Booking store
        sender: Sender phone or chat ID ("77017777777@c.us")
        now: Current instant (timezone-aware)
        config: Schedule (for the business timezone)

    Returns:
        The booking with the earliest instant >= now, or None
    """
    sender_key = canonical_phone_key(sender)
    if not sender_key:
        return None

    today = now.astimezone(config.tz).date()
    candidates = await store.list_bookings(BookingFilter.active(date_from=today))

    matches: list[tuple[datetime, Booking]] = []
    for booking in candidates:
        if canonical_phone_key(booking.phone) != sender_key:
            continue
        instant = _safe_instant(booking, config)
        if instant is not None and instant >= now:
            matches.append((instant, booking))

    if not matches:
        return None

    if len(matches) > 1:
        logger.info(
            f"Sender has {len(matches)} active bookings, cancelling the soonest",
            extra={"customer_phone": mask_phone(sender)},
        )

    matches.sort(key=lambda item: item[0])
    return matches[0][1]


async def _send_notice(
    gateway: MessageGateway, phone: str, message: str, booking_id: Optional[UUID] = None
) -> bool:
    """Send a reply; failures are logged, never raised."""
    extra = {"customer_phone": mask_phone(phone)}
    if booking_id is not None:
        extra["booking_id"] = str(booking_id)

    try:
        result = await gateway.send_message(phone, message)
        if not result.success:
            raise GatewayError("Reply not delivered", detail=result.error)
    except GatewayError as e:
        logger.error(f"Failed to send inbound reply: {e}", extra=extra)
        return False
    except Exception as e:
        logger.error(f"Unexpected error sending inbound reply: {e}", extra=extra, exc_info=True)
        return False

    return True


async def process_message(
    store: BookingStore,
    gateway: MessageGateway,
    sender: str,
    text: str,
    now: datetime,
    config: ScheduleConfig,
) -> InboundResult:
    """
    Process one inbound message.

    Args:
        store: Booking store
        gateway: Outbound messaging gateway
        sender: Sender phone or chat ID
        text: Message text
        now: Current instant (timezone-aware)
        config: Schedule (timezone)

    Returns:
        InboundResult describing the action taken
    """
    if not is_cancel_command(text):
        logger.debug("Inbound message is not a command", extra={"customer_phone": mask_phone(sender)})
        return InboundResult(action=InboundAction.IGNORED)

    booking = await find_active_booking(store, sender, now, config)

    if booking is None:
        logger.info(
            "Cancellation requested but no active booking found",
            extra={"customer_phone": mask_phone(sender)},
        )
        message = render_message(
            MessageKind.NO_ACTIVE_BOOKING,
            MessageContext(client_name="", date=now.astimezone(config.tz).date(), time=""),
        )
        sent = await _send_notice(gateway, sender, message)
        return InboundResult(action=InboundAction.NO_ACTIVE_BOOKING, notice_sent=sent)

    cancelled = await store.cancel_booking(booking.id)
    if not cancelled:
        # Cancelled by a concurrent request between lookup and update
        logger.info(
            "Booking was already cancelled",
            extra={"booking_id": str(booking.id), "customer_phone": mask_phone(sender)},
        )
        message = render_message(
            MessageKind.NO_ACTIVE_BOOKING,
            MessageContext(client_name=booking.client_name, date=booking.date, time=booking.time),
        )
        sent = await _send_notice(gateway, sender, message)
        return InboundResult(action=InboundAction.NO_ACTIVE_BOOKING, notice_sent=sent)

    logger.info(
        f"Booking cancelled by client for {booking.date} {booking.time}",
        extra={"booking_id": str(booking.id), "customer_phone": mask_phone(sender)},
    )

    message = render_message(
        MessageKind.CANCELLATION,
        MessageContext(client_name=booking.client_name, date=booking.date, time=booking.time),
    )
    # Reply goes to the sender, who is the person asking
    sent = await _send_notice(gateway, sender, message, booking.id)

    return InboundResult(action=InboundAction.CANCELLED, booking_id=booking.id, notice_sent=sent)


async def handle_message(
    store: BookingStore,
    gateway: MessageGateway,
    sender: str,
    text: str,
    now: datetime,
    config: Optional[ScheduleConfig] = None,
) -> InboundResult:
    """
    Process an inbound message, loading the schedule when not given.

    Never raises: every failure is logged and reported as IGNORED so the
    webhook can always acknowledge the delivery.
    """
    try:
        if config is None:
            config = await load_schedule_config(store)
        return await process_message(store, gateway, sender, text, now, config)
    except Exception as e:
        logger.error(
            f"Error processing inbound message: {e}",
            extra={"customer_phone": mask_phone(sender)},
            exc_info=True,
        )
        return InboundResult(action=InboundAction.IGNORED, error_message=str(e))
