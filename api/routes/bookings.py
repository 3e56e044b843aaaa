"""Booking and availability routes."""

import logging
from datetime import date as calendar_date
from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel

from api.dependencies import get_gateway, get_now, get_store
from booking import booking_service
from booking.store import BookingStore, MessageGateway
from database.models import Booking, BookingStatus

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================


class BookingResponse(BaseModel):
    id: UUID
    client_name: str
    phone: str
    email: str | None
    date: calendar_date
    time: str
    notes: str | None
    status: BookingStatus
    reminder_24h_sent: bool
    reminder_3h_sent: bool
    review_request_sent: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls.model_validate(booking)


class AvailabilityResponse(BaseModel):
    date: calendar_date
    slots: list[str]


class StatusUpdateRequest(BaseModel):
    status: str


# =============================================================================
# Routes
# =============================================================================


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    day: Annotated[calendar_date, Query(alias="date")],
    store: Annotated[BookingStore, Depends(get_store)],
    now: Annotated[datetime, Depends(get_now)],
) -> AvailabilityResponse:
    """Bookable slots for a date (empty when the date is closed or full)."""
    slots = await booking_service.get_available_slots(store, day, now)
    return AvailabilityResponse(date=day, slots=slots)


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: Annotated[dict[str, Any], Body()],
    store: Annotated[BookingStore, Depends(get_store)],
    gateway: Annotated[MessageGateway, Depends(get_gateway)],
    now: Annotated[datetime, Depends(get_now)],
) -> BookingResponse:
    """
    Create a booking.

    Errors:
        400 malformed request or closed date, 409 slot taken, 500 bad schedule
    """
    # Unconfigured WhatsApp means no confirmation attempt at all
    confirmation_gateway = gateway if getattr(gateway, "is_configured", True) else None

    booking = await booking_service.create_booking(
        store, payload, now, gateway=confirmation_gateway
    )
    return BookingResponse.from_booking(booking)


@router.get("/bookings", response_model=list[BookingResponse])
async def list_bookings(
    store: Annotated[BookingStore, Depends(get_store)],
    status_filter: Annotated[Optional[str], Query(alias="status")] = None,
    date_from: Optional[calendar_date] = None,
    date_to: Optional[calendar_date] = None,
) -> list[BookingResponse]:
    bookings = await booking_service.list_bookings(store, status_filter, date_from, date_to)
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    store: Annotated[BookingStore, Depends(get_store)],
) -> BookingResponse:
    booking = await booking_service.get_booking(store, booking_id)
    return BookingResponse.from_booking(booking)


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    request: StatusUpdateRequest,
    store: Annotated[BookingStore, Depends(get_store)],
) -> BookingResponse:
    """Administrator status change. Cancelled bookings cannot be reopened."""
    booking = await booking_service.update_booking_status(store, booking_id, request.status)
    return BookingResponse.from_booking(booking)


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: UUID,
    store: Annotated[BookingStore, Depends(get_store)],
) -> None:
    await booking_service.delete_booking(store, booking_id)
