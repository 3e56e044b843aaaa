"""
SQLAlchemy ORM models for the booking tables.

This module defines the tables:
- bookings: Client appointments with status and reminder tracking
- blocked_dates: Calendar dates closed for booking by an administrator
- schedule_settings: Working schedule and message templates (single row)

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- Proper indexes and constraints
"""

from datetime import date as calendar_date
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DATE,
    JSON,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class BookingStatus(str, PyEnum):
    """Booking lifecycle status. CANCELLED is terminal."""

    PENDING = "pending"        # Created by a booking request
    CONFIRMED = "confirmed"    # Confirmed by the administrator
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self):
        return self.value


# Partial-index predicate shared by PostgreSQL and SQLite
ACTIVE_BOOKING_PREDICATE = text("status <> 'cancelled'")


# ============================================================================
# Core Models
# ============================================================================


class Booking(Base):
    """
    Booking model - Client appointments.

    The partial unique index on (date, time) for non-cancelled rows is what
    makes concurrent booking requests for the same slot resolve to exactly
    one winner.
    """

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Client data
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Scheduling
    date: Mapped[calendar_date] = mapped_column(DATE, nullable=False, index=True)
    time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM"

    # Status tracking
    # Note: values_callable stores enum .value ("pending") instead of .name
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Notification tracking (monotonic false -> true)
    reminder_24h_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    reminder_3h_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    review_request_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Constraints and indexes
    __table_args__ = (
        # At most one non-cancelled booking per slot
        Index(
            "uq_bookings_active_slot",
            "date",
            "time",
            unique=True,
            postgresql_where=ACTIVE_BOOKING_PREDICATE,
            sqlite_where=ACTIVE_BOOKING_PREDICATE,
        ),
        # Reminder sweep scans upcoming non-cancelled bookings
        Index("idx_bookings_status_date", "status", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, date={self.date}, time='{self.time}', "
            f"status='{self.status}')>"
        )


# ============================================================================
# Calendar Management Models
# ============================================================================


class BlockedDate(Base):
    """
    BlockedDate model - Dates closed for booking regardless of weekday.

    One row per calendar date. Never auto-expired.
    """

    __tablename__ = "blocked_dates"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    date: Mapped[calendar_date] = mapped_column(DATE, unique=True, nullable=False, index=True)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<BlockedDate(id={self.id}, date={self.date}, reason='{self.reason}')>"


class ScheduleSettings(Base):
    """
    Working schedule configuration and message templates.

    Weekdays use Python numbering: 0=Monday, 1=Tuesday, ..., 6=Sunday.
    """

    __tablename__ = "schedule_settings"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    work_days: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    work_start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    work_end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    session_duration: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint(
            "session_duration >= 15 AND session_duration <= 120",
            name="valid_session_duration",
        ),
        nullable=False,
    )
    break_start_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    break_end_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)

    # Message context
    session_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    office_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    confirmation_message_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_message_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleSettings(days={self.work_days}, "
            f"{self.work_start_time}-{self.work_end_time}, {self.session_duration}min)>"
        )
