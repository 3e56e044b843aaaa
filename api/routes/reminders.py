"""Reminder sweep trigger for external schedulers (cron)."""

import hmac
import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from api.dependencies import get_gateway, get_now, get_store
from booking.reminders import sweep
from booking.schedule import load_schedule_config
from booking.store import BookingStore, MessageGateway
from shared.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_cron_secret(authorization: Annotated[str | None, Header()] = None) -> None:
    """
    Check "Authorization: Bearer <CRON_SECRET>" when CRON_SECRET is set.

    Raises:
        HTTPException 401: Missing or wrong secret
    """
    secret = get_settings().CRON_SECRET
    if not secret:
        return

    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Reminder sweep called with invalid cron secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


@router.post("/sweep", dependencies=[Depends(verify_cron_secret)])
async def trigger_reminder_sweep(
    store: Annotated[BookingStore, Depends(get_store)],
    gateway: Annotated[MessageGateway, Depends(get_gateway)],
    now: Annotated[datetime, Depends(get_now)],
) -> dict[str, int]:
    """
    Run one reminder sweep.

    Returns:
        {"scanned": n, "sent24h": n, "sent3h": n, "errors": n}
    """
    config = await load_schedule_config(store)
    result = await sweep(store, gateway, config, now)
    return result.to_dict()
