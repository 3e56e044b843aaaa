"""
SQLAlchemy implementation of the BookingStore interface.

The atomic primitives map onto single statements:
- create_booking: INSERT guarded by the uq_bookings_active_slot partial index
- mark_reminder_sent: UPDATE ... WHERE id = :id AND <flag> = false
- cancel_booking, update_booking: UPDATE ... WHERE id = :id AND status <> 'cancelled'

Each method runs in its own session scope, so a message send never happens
inside an open transaction.
"""

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.store import BookingFilter, ReminderFlag
from database.connection import get_async_session
from database.models import BlockedDate, Booking, BookingStatus, ScheduleSettings
from shared.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Columns an administrator may change through update_booking()
UPDATABLE_BOOKING_FIELDS = frozenset(
    {"client_name", "phone", "email", "notes", "date", "time", "status"}
)


class SqlAlchemyStore:
    """BookingStore backed by the async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory

    def _session(self):
        return get_async_session(self._session_factory)

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    async def create_booking(self, booking: Booking) -> Booking:
        """
        Insert a booking if its slot is free.

        Raises:
            ConflictError: If a non-cancelled booking already holds (date, time)
        """
        try:
            async with self._session() as session:
                session.add(booking)
                await session.flush()
        except IntegrityError as e:
            logger.info(
                f"Slot {booking.date} {booking.time} already booked",
                extra={"booking_id": str(booking.id) if booking.id else None},
            )
            raise ConflictError(
                f"Slot {booking.date} {booking.time} is already booked"
            ) from e

        logger.info(
            f"Booking created for {booking.date} {booking.time}",
            extra={"booking_id": str(booking.id)},
        )
        return booking

    async def get_booking(self, booking_id: UUID) -> Optional[Booking]:
        async with self._session() as session:
            return await session.get(Booking, booking_id)

    async def list_bookings(self, booking_filter: BookingFilter) -> list[Booking]:
        """List bookings matching a filter, earliest slot first."""
        stmt = select(Booking)

        if booking_filter.statuses is not None:
            stmt = stmt.where(Booking.status.in_(list(booking_filter.statuses)))
        if booking_filter.exclude_statuses:
            stmt = stmt.where(Booking.status.not_in(list(booking_filter.exclude_statuses)))
        if booking_filter.date_from is not None:
            stmt = stmt.where(Booking.date >= booking_filter.date_from)
        if booking_filter.date_to is not None:
            stmt = stmt.where(Booking.date <= booking_filter.date_to)
        if booking_filter.phone is not None:
            stmt = stmt.where(Booking.phone == booking_filter.phone)

        stmt = stmt.order_by(Booking.date, Booking.time)

        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_booking(self, booking_id: UUID, changes: dict[str, Any]) -> Booking:
        """
        Apply field changes to a non-cancelled booking.

        Runs as UPDATE ... WHERE id = :id AND status <> 'cancelled', so a
        concurrent cancellation can never be overwritten.

        Raises:
            NotFoundError: If the booking does not exist
            ValidationError: If the booking is cancelled
            ConflictError: If a date/time change collides with another booking
            ValueError: If changes contain a field that cannot be updated
        """
        unknown = set(changes) - UPDATABLE_BOOKING_FIELDS
        if unknown:
            raise ValueError(f"Cannot update booking fields: {sorted(unknown)}")

        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status != BookingStatus.CANCELLED)
            .values(changes)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    if await session.get(Booking, booking_id) is None:
                        raise NotFoundError(f"Booking {booking_id} not found")
                    raise ValidationError(f"Booking {booking_id} is cancelled and cannot be changed")

                booking = await session.get(Booking, booking_id, populate_existing=True)
        except IntegrityError as e:
            raise ConflictError(f"Booking {booking_id} conflicts with an existing booking") from e

        return booking

    async def delete_booking(self, booking_id: UUID) -> None:
        async with self._session() as session:
            result = await session.execute(delete(Booking).where(Booking.id == booking_id))
            if result.rowcount == 0:
                raise NotFoundError(f"Booking {booking_id} not found")

        logger.info("Booking deleted", extra={"booking_id": str(booking_id)})

    async def mark_reminder_sent(self, booking_id: UUID, flag: ReminderFlag) -> bool:
        """
        Set a reminder flag only if it is still false.

        Returns:
            True if this call changed the flag, False if it was already set
        """
        column = getattr(Booking, ReminderFlag(flag).value)
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, column.is_(False))
            .values({column: True})
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def cancel_booking(self, booking_id: UUID) -> bool:
        """
        Move a booking to cancelled unless it is already cancelled.

        Returns:
            True if this call cancelled the booking
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status != BookingStatus.CANCELLED)
            .values(status=BookingStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Blocked dates
    # ------------------------------------------------------------------

    async def create_blocked_date(self, blocked_date: BlockedDate) -> BlockedDate:
        """
        Raises:
            ConflictError: If the date is already blocked
        """
        try:
            async with self._session() as session:
                session.add(blocked_date)
                await session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Date {blocked_date.date} is already blocked") from e
        return blocked_date

    async def list_blocked_dates(
        self, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[BlockedDate]:
        stmt = select(BlockedDate)
        if date_from is not None:
            stmt = stmt.where(BlockedDate.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(BlockedDate.date <= date_to)
        stmt = stmt.order_by(BlockedDate.date)

        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_blocked_date(self, blocked_date_id: UUID) -> None:
        async with self._session() as session:
            result = await session.execute(
                delete(BlockedDate).where(BlockedDate.id == blocked_date_id)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Blocked date {blocked_date_id} not found")

    # ------------------------------------------------------------------
    # Schedule settings
    # ------------------------------------------------------------------

    async def get_schedule_settings(self) -> Optional[ScheduleSettings]:
        async with self._session() as session:
            result = await session.execute(
                select(ScheduleSettings).order_by(ScheduleSettings.id).limit(1)
            )
            return result.scalar_one_or_none()

    async def save_schedule_settings(self, settings: ScheduleSettings) -> ScheduleSettings:
        async with self._session() as session:
            merged = await session.merge(settings)
            await session.flush()
        return merged
