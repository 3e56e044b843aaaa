"""
Collaborator interfaces used by the booking core.

The core never talks to a database or a messaging provider directly. It is
handed a BookingStore and a MessageGateway; database.store.SqlAlchemyStore and
shared.whatsapp_client.WhatsAppClient are the production implementations.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional, Protocol
from uuid import UUID

from database.models import BlockedDate, Booking, BookingStatus, ScheduleSettings
from shared.whatsapp_client import SendResult


class ReminderFlag(str, Enum):
    """Persisted reminder flags, one per reminder window."""

    REMINDER_24H = "reminder_24h_sent"
    REMINDER_3H = "reminder_3h_sent"


@dataclass(frozen=True)
class BookingFilter:
    """
    Filter for BookingStore.list_bookings().

    Attributes:
        statuses: Only these statuses (None = any)
        exclude_statuses: Never these statuses
        date_from / date_to: Inclusive calendar date range
        phone: Exact stored phone value
    """
    statuses: Optional[frozenset[BookingStatus]] = None
    exclude_statuses: frozenset[BookingStatus] = field(default_factory=frozenset)
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    phone: Optional[str] = None

    @classmethod
    def active(cls, date_from: Optional[date] = None, date_to: Optional[date] = None) -> "BookingFilter":
        """Non-cancelled bookings within an optional date range."""
        return cls(
            exclude_statuses=frozenset({BookingStatus.CANCELLED}),
            date_from=date_from,
            date_to=date_to,
        )

    def matches(self, booking: Booking) -> bool:
        """Evaluate the filter against a booking in memory."""
        if self.statuses is not None and booking.status not in self.statuses:
            return False
        if booking.status in self.exclude_statuses:
            return False
        if self.date_from is not None and booking.date < self.date_from:
            return False
        if self.date_to is not None and booking.date > self.date_to:
            return False
        if self.phone is not None and booking.phone != self.phone:
            return False
        return True


class BookingStore(Protocol):
    """
    Persistence operations required by the booking core.

    Atomic primitives:
    - create_booking: conditional insert, at most one non-cancelled booking
      per (date, time); raises ConflictError for the loser
    - mark_reminder_sent: sets a flag only if it is currently false
    - cancel_booking: moves a non-cancelled booking to cancelled
    """

    async def create_booking(self, booking: Booking) -> Booking: ...

    async def get_booking(self, booking_id: UUID) -> Optional[Booking]: ...

    async def list_bookings(self, booking_filter: BookingFilter) -> list[Booking]: ...

    async def update_booking(self, booking_id: UUID, changes: dict[str, Any]) -> Booking: ...

    async def delete_booking(self, booking_id: UUID) -> None: ...

    async def mark_reminder_sent(self, booking_id: UUID, flag: ReminderFlag) -> bool: ...

    async def cancel_booking(self, booking_id: UUID) -> bool: ...

    async def create_blocked_date(self, blocked_date: BlockedDate) -> BlockedDate: ...

    async def list_blocked_dates(
        self, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[BlockedDate]: ...

    async def delete_blocked_date(self, blocked_date_id: UUID) -> None: ...

    async def get_schedule_settings(self) -> Optional[ScheduleSettings]: ...

    async def save_schedule_settings(self, settings: ScheduleSettings) -> ScheduleSettings: ...


class MessageGateway(Protocol):
    """Outbound messaging transport."""

    async def send_message(self, phone: str, message: str) -> SendResult: ...
