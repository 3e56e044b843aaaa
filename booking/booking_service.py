"""
Booking operations - create, status changes and blocked dates.

create_booking() is the only way a booking enters the system:

1. Validate the request (BookingRequest)
2. Load the schedule and generate the day's slots
3. Check the date and slot against blocked dates and existing bookings
4. Insert through the store's conditional insert; a concurrent request that
   lost the race gets ConflictError from the store
5. Send a best-effort WhatsApp confirmation (never fails the booking)

The pre-insert availability check exists to give a precise error message;
the store's conditional insert is what prevents double booking.
"""

import logging
import re
from datetime import date, datetime
from datetime import date as calendar_date
from typing import Any, Optional
from uuid import UUID

import pydantic
from pydantic import BaseModel, Field, field_validator

from booking.availability import available_slots, is_date_available
from booking.schedule import (
    ScheduleConfig,
    format_time_of_day,
    load_schedule_config,
    parse_time_of_day,
)
from booking.slots import slots_for_schedule
from booking.store import BookingFilter, BookingStore, MessageGateway
from booking.templates import MessageContext, MessageKind, render_message
from database.models import BlockedDate, Booking, BookingStatus
from shared.errors import ConfigError, ConflictError, NotFoundError, ValidationError
from shared.logging_config import mask_phone
from shared.phone import normalize_phone_e164

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ============================================================================
# Request model
# ============================================================================


class BookingRequest(BaseModel):
    """Client booking request."""

    client_name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    date: calendar_date
    time: str
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("client_name")
    @classmethod
    def validate_client_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Client name must not be blank")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Validate a domestic phone number and normalize it to E.164."""
        return normalize_phone_e164(v.strip())

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        # Normalize "9:00" to "09:00" so it compares equal to generated slots
        try:
            return format_time_of_day(parse_time_of_day(v))
        except ConfigError as e:
            raise ValueError(str(e)) from e

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_PATTERN.match(v.strip()):
            raise ValueError("Invalid email address")
        return v.strip() if v else v


def parse_booking_request(data: BookingRequest | dict[str, Any]) -> BookingRequest:
    """
    Validate raw booking input.

    Raises:
        ValidationError: If any field is missing or malformed
    """
    if isinstance(data, BookingRequest):
        return data
    try:
        return BookingRequest.model_validate(data)
    except pydantic.ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"Invalid booking request: {fields}") from e


# ============================================================================
# Availability
# ============================================================================


def _today(now: datetime, config: ScheduleConfig) -> date:
    return now.astimezone(config.tz).date() if now.tzinfo else now.date()


async def get_available_slots(
    store: BookingStore,
    day: date,
    now: datetime,
    config: Optional[ScheduleConfig] = None,
) -> list[str]:
    """
    Bookable slots for a date.

    Raises:
        ConfigError: If the schedule cannot produce slots
    """
    config = config or await load_schedule_config(store)
    slots = slots_for_schedule(config)

    blocked = await store.list_blocked_dates(date_from=day, date_to=day)
    booked = await store.list_bookings(BookingFilter.active(date_from=day, date_to=day))

    return available_slots(
        day,
        slots,
        config,
        blocked_dates=[b.date for b in blocked],
        booked_times=[b.time for b in booked],
        today=_today(now, config),
    )


# ============================================================================
# Booking lifecycle
# ============================================================================


async def send_booking_confirmation(
    booking: Booking, gateway: MessageGateway, config: ScheduleConfig
) -> bool:
    """
    Send the booking confirmation message.

    Best effort: failures are logged and reported as False.
    """
    context = MessageContext(
        client_name=booking.client_name,
        date=booking.date,
        time=booking.time,
        price=config.session_price,
        address=config.office_address,
    )
    try:
        message = render_message(
            MessageKind.CONFIRMATION, context, config.confirmation_template
        )
        result = await gateway.send_message(booking.phone, message)
    except Exception as e:
        logger.error(
            f"Error sending booking confirmation: {e}",
            extra={"booking_id": str(booking.id)},
            exc_info=True,
        )
        return False

    if not result.success:
        logger.error(
            f"Booking confirmation not delivered: {result.error}",
            extra={"booking_id": str(booking.id), "customer_phone": mask_phone(booking.phone)},
        )
        return False

    logger.info("Booking confirmation sent", extra={"booking_id": str(booking.id)})
    return True


async def create_booking(
    store: BookingStore,
    data: BookingRequest | dict[str, Any],
    now: datetime,
    gateway: Optional[MessageGateway] = None,
    config: Optional[ScheduleConfig] = None,
) -> Booking:
    """
    Create a booking for a free slot.

    Args:
        store: Booking store
        data: BookingRequest or raw dict
        now: Current instant
        gateway: Messaging gateway for the confirmation (None = no confirmation)
        config: Schedule (default: loaded from the store)

    Returns:
        The persisted booking (status pending)

    Raises:
        ValidationError: Malformed request, closed date, or time not on the slot grid
        ConflictError: Slot already taken
        ConfigError: Unusable schedule
    """
    request = parse_booking_request(data)
    config = config or await load_schedule_config(store)
    slots = slots_for_schedule(config)

    if request.time not in slots:
        raise ValidationError(f"{request.time} is not a bookable time")

    blocked = await store.list_blocked_dates(date_from=request.date, date_to=request.date)
    blocked_dates = [b.date for b in blocked]
    today = _today(now, config)

    if not is_date_available(request.date, config, blocked_dates, today):
        raise ValidationError(f"Date {request.date} is not available for booking")

    booked = await store.list_bookings(
        BookingFilter.active(date_from=request.date, date_to=request.date)
    )
    free = available_slots(
        request.date,
        slots,
        config,
        blocked_dates=blocked_dates,
        booked_times=[b.time for b in booked],
        today=today,
    )
    if request.time not in free:
        raise ConflictError(f"Slot {request.date} {request.time} is already booked")

    booking = await store.create_booking(
        Booking(
            client_name=request.client_name,
            phone=request.phone,
            email=str(request.email) if request.email else None,
            date=request.date,
            time=request.time,
            notes=request.notes or None,
            status=BookingStatus.PENDING,
            reminder_24h_sent=False,
            reminder_3h_sent=False,
            review_request_sent=False,
        )
    )

    if gateway is not None:
        await send_booking_confirmation(booking, gateway, config)

    return booking


async def get_booking(store: BookingStore, booking_id: UUID) -> Booking:
    """
    Raises:
        NotFoundError: If the booking does not exist
    """
    booking = await store.get_booking(booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


async def update_booking_status(
    store: BookingStore, booking_id: UUID, status: BookingStatus | str
) -> Booking:
    """
    Change a booking's status (administrator action).

    Cancelled is terminal: a cancelled booking cannot move to any other
    status. Cancelling goes through the store's conditional cancel, and other
    changes through its conditional update, so a cancellation that lands
    after the read below still wins.

    Raises:
        NotFoundError: Unknown booking
        ValidationError: Unknown status, or a transition out of cancelled
    """
    try:
        new_status = BookingStatus(status)
    except ValueError as e:
        raise ValidationError(f"Unknown booking status: {status!r}") from e

    booking = await get_booking(store, booking_id)

    if booking.status == BookingStatus.CANCELLED:
        if new_status == BookingStatus.CANCELLED:
            return booking
        raise ValidationError("Cancelled bookings cannot change status")

    if new_status == BookingStatus.CANCELLED:
        await store.cancel_booking(booking_id)
        logger.info("Booking cancelled by administrator", extra={"booking_id": str(booking_id)})
        return await get_booking(store, booking_id)

    updated = await store.update_booking(booking_id, {"status": new_status})
    logger.info(
        f"Booking status changed to {new_status}", extra={"booking_id": str(booking_id)}
    )
    return updated


async def list_bookings(
    store: BookingStore,
    status: Optional[BookingStatus | str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[Booking]:
    """
    Raises:
        ValidationError: Unknown status
    """
    statuses = None
    if status is not None:
        try:
            statuses = frozenset({BookingStatus(status)})
        except ValueError as e:
            raise ValidationError(f"Unknown booking status: {status!r}") from e
    return await store.list_bookings(
        BookingFilter(statuses=statuses, date_from=date_from, date_to=date_to)
    )


async def delete_booking(store: BookingStore, booking_id: UUID) -> None:
    await store.delete_booking(booking_id)


# ============================================================================
# Blocked dates
# ============================================================================


async def block_date(
    store: BookingStore, day: date | datetime, reason: Optional[str] = None
) -> BlockedDate:
    """
    Close a calendar date for booking.

    A datetime is truncated to its calendar date.

    Raises:
        ConflictError: If the date is already blocked
    """
    if isinstance(day, datetime):
        day = day.date()

    blocked = await store.create_blocked_date(
        BlockedDate(date=day, reason=(reason or "").strip() or None)
    )
    logger.info(f"Date {day} blocked")
    return blocked


async def unblock_date(store: BookingStore, blocked_date_id: UUID) -> None:
    """
    Raises:
        NotFoundError: If no such blocked date exists
    """
    await store.delete_blocked_date(blocked_date_id)
    logger.info(f"Blocked date {blocked_date_id} removed")
