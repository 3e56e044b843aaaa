"""Blocked date management routes."""

import logging
from datetime import date as calendar_date
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from api.dependencies import get_store
from booking import booking_service
from booking.store import BookingStore

logger = logging.getLogger(__name__)

router = APIRouter()


class BlockedDateRequest(BaseModel):
    # Accepts "2026-12-31" or a full timestamp; the time part is dropped
    date: calendar_date | datetime
    reason: Optional[str] = Field(default=None, max_length=255)


class BlockedDateResponse(BaseModel):
    id: UUID
    date: calendar_date
    reason: str | None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=list[BlockedDateResponse])
async def list_blocked_dates(
    store: Annotated[BookingStore, Depends(get_store)],
    date_from: Optional[calendar_date] = None,
    date_to: Optional[calendar_date] = None,
) -> list[BlockedDateResponse]:
    blocked = await store.list_blocked_dates(date_from=date_from, date_to=date_to)
    return [BlockedDateResponse.model_validate(b) for b in blocked]


@router.post("", response_model=BlockedDateResponse, status_code=status.HTTP_201_CREATED)
async def create_blocked_date(
    request: BlockedDateRequest,
    store: Annotated[BookingStore, Depends(get_store)],
) -> BlockedDateResponse:
    """Block a date. 409 if it is already blocked."""
    blocked = await booking_service.block_date(store, request.date, request.reason)
    return BlockedDateResponse.model_validate(blocked)


@router.delete("/{blocked_date_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blocked_date(
    blocked_date_id: UUID,
    store: Annotated[BookingStore, Depends(get_store)],
) -> None:
    await booking_service.unblock_date(store, blocked_date_id)
