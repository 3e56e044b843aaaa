"""
WhatsApp client for sending messages through Green API.

This module provides the WhatsAppClient class, the outbound messaging gateway
used for booking confirmations, reminders and cancellation notices.

API reference: https://green-api.com/docs/api/sending/SendMessage/
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import get_settings
from shared.errors import GatewayError
from shared.logging_config import mask_phone
from shared.phone import to_chat_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """
    Outcome of an outbound message.

    Attributes:
        success: True only when the provider accepted the message
        error: Provider or transport error detail when success is False
        message_id: Provider message ID when available
    """
    success: bool
    error: str | None = None
    message_id: str | None = None


class WhatsAppClient:
    """
    Client for the Green API WhatsApp gateway.

    send_message() never raises: transport errors are retried, and whatever is
    left after retries is reported as SendResult(success=False).
    """

    def __init__(self):
        """Initialize WhatsApp client with credentials from settings."""
        settings = get_settings()
        # Remove trailing slash to avoid double slashes in URLs
        self.api_url = settings.GREEN_API_URL.rstrip("/")
        self.instance_id = settings.GREEN_API_INSTANCE_ID
        self.api_token = settings.GREEN_API_TOKEN
        self.enabled = settings.WHATSAPP_ENABLED
        self.country_code = settings.PHONE_COUNTRY_CODE

        logger.info(
            f"WhatsAppClient initialized: {self.api_url}, instance_id={self.instance_id}, "
            f"enabled={self.enabled}"
        )

    @property
    def is_configured(self) -> bool:
        """True when sending is enabled and credentials are present."""
        return bool(self.enabled and self.instance_id and self.api_token)

    @property
    def send_url(self) -> str:
        return f"{self.api_url}/waInstance{self.instance_id}/sendMessage/{self.api_token}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post_message(self, chat_id: str, message: str) -> dict[str, Any]:
        """
        POST a text message to Green API.

        Transport errors (timeouts, connection resets) are retried. HTTP error
        statuses are not retried: they mean bad credentials or a bad request.

        Returns:
            Parsed JSON response body (empty dict if the body is not JSON)

        Raises:
            httpx.TransportError: After the final failed attempt
            GatewayError: Non-2xx status or an error reported in the body
        """
        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.send_url,
                json={"chatId": chat_id, "message": message},
                timeout=15.0,
            )

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code == 401:
            raise GatewayError(
                "Green API authorization failed",
                detail="HTTP 401: check the instance ID and API token",
            )

        if response.is_error:
            detail = data.get("errorText") or data.get("error") or response.reason_phrase
            raise GatewayError(
                f"Green API returned HTTP {response.status_code}", detail=str(detail)
            )

        # Green API may answer 200 with an error payload
        if isinstance(data, dict) and data.get("error"):
            raise GatewayError(
                "Green API rejected the message",
                detail=str(data.get("errorText") or data.get("error")),
            )

        return data if isinstance(data, dict) else {}

    async def send_message(self, phone: str, message: str) -> SendResult:
        """
        Send a text message to a customer.

        Args:
            phone: Free-form customer phone number
            message: Message text to send

        Returns:
            SendResult with success flag and error detail
        """
        if not self.is_configured:
            logger.info(
                "WhatsApp disabled or not configured, message not sent",
                extra={"customer_phone": mask_phone(phone)},
            )
            return SendResult(success=False, error="WhatsApp is not configured")

        try:
            chat_id = to_chat_id(phone, self.country_code)
        except ValueError as e:
            logger.warning(f"Cannot address WhatsApp message: {e}")
            return SendResult(success=False, error=str(e))

        logger.debug(
            f"Sending WhatsApp message ({len(message)} chars)",
            extra={"customer_phone": mask_phone(phone)},
        )

        try:
            data = await self._post_message(chat_id, message)
        except GatewayError as e:
            logger.error(
                f"WhatsApp send failed: {e}",
                extra={"customer_phone": mask_phone(phone)},
            )
            return SendResult(success=False, error=e.detail or str(e))
        except httpx.HTTPError as e:
            logger.error(
                f"HTTP error sending WhatsApp message: {e}",
                extra={"customer_phone": mask_phone(phone)},
                exc_info=True,
            )
            return SendResult(success=False, error=str(e) or type(e).__name__)

        message_id = data.get("idMessage")
        logger.info(
            f"WhatsApp message sent: id={message_id}",
            extra={"customer_phone": mask_phone(phone)},
        )
        return SendResult(success=True, message_id=message_id)


# Global instance
_whatsapp_client: WhatsAppClient | None = None


def get_whatsapp_client() -> WhatsAppClient:
    """Get or create the shared WhatsAppClient instance."""
    global _whatsapp_client
    if _whatsapp_client is None:
        _whatsapp_client = WhatsAppClient()
    return _whatsapp_client
