"""Green API WhatsApp webhook route handler."""

import json
import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_gateway, get_now, get_store
from api.models.green_api_webhook import extract_inbound_message
from booking.inbound import InboundAction, InboundResult, handle_message
from booking.store import BookingStore, MessageGateway
from shared.errors import ParseError

logger = logging.getLogger(__name__)

router = APIRouter()


async def handle_event(
    payload: dict[str, Any],
    store: BookingStore,
    gateway: MessageGateway,
    now: datetime,
) -> InboundResult:
    """
    Parse a Green API notification and process the message it carries.

    Never raises: unparseable notifications are logged and reported as
    IGNORED, like every processing failure.
    """
    try:
        message = extract_inbound_message(payload)
    except ParseError as e:
        logger.warning(f"Ignoring unparseable inbound event: {e}")
        return InboundResult(action=InboundAction.IGNORED, error_message=str(e))

    if message is None:
        return InboundResult(action=InboundAction.IGNORED)

    return await handle_message(store, gateway, message.sender, message.text, now)


@router.post("/whatsapp")
async def receive_whatsapp_webhook(
    request: Request,
    store: Annotated[BookingStore, Depends(get_store)],
    gateway: Annotated[MessageGateway, Depends(get_gateway)],
    now: Annotated[datetime, Depends(get_now)],
) -> JSONResponse:
    """
    Receive Green API notifications.

    Configure in the Green API console as the incoming webhook URL:
    https://your-domain.com/webhook/whatsapp

    Always answers 200 {"received": true}: malformed bodies and processing
    failures are logged only, so the provider never redelivers.

    Args:
        request: FastAPI request object

    Returns:
        JSONResponse with 200 OK status
    """
    body = await request.body()

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Ignoring webhook with invalid JSON body: {e}")
        return JSONResponse(status_code=200, content={"received": True})

    if not isinstance(payload, dict):
        logger.warning(f"Ignoring webhook with non-object body: {type(payload).__name__}")
        return JSONResponse(status_code=200, content={"received": True})

    # Body carries the sender's phone: only identifiers are logged
    logger.debug(
        f"Green API webhook: type={payload.get('typeWebhook')}, id={payload.get('idMessage')}",
        extra={"request_path": request.url.path},
    )

    result = await handle_event(payload, store, gateway, now)
    logger.info(
        f"Webhook processed: action={result.action.value}",
        extra={"request_path": request.url.path},
    )

    return JSONResponse(status_code=200, content={"received": True})


@router.get("/whatsapp")
async def whatsapp_webhook_status() -> dict[str, str]:
    """Liveness check used when registering the webhook URL."""
    return {"status": "ok", "message": "WhatsApp webhook is active"}
