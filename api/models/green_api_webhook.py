"""
Pydantic models for Green API webhook notifications.

Green API delivers incoming message text in several shapes depending on the
message type and client. Each known shape is a small model; they are tried in
order and the first one that validates wins.

Reference: https://green-api.com/docs/api/receiving/notifications-format/
"""

from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError

from shared.errors import ParseError

INCOMING_MESSAGE_WEBHOOK = "incomingMessageReceived"


class GreenApiSenderData(BaseModel):
    """Sender block of a notification."""
    model_config = ConfigDict(extra="allow")

    sender: str  # "77017777777@c.us"
    chatId: Optional[str] = None
    senderName: Optional[str] = None


class GreenApiWebhookPayload(BaseModel):
    """
    Green API notification envelope.

    Format: {
        "typeWebhook": "incomingMessageReceived",
        "idMessage": "...",
        "senderData": {"sender": "77017777777@c.us", ...},
        "messageData": {...} | "text",
        ...
    }
    """
    model_config = ConfigDict(extra="allow")

    typeWebhook: str
    idMessage: Optional[str] = None
    timestamp: Optional[int] = None
    senderData: Optional[GreenApiSenderData] = None
    messageData: Any = None


# ============================================================================
# Message text shapes (tried in declaration order)
# ============================================================================


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("empty text")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


class _Shape(BaseModel):
    model_config = ConfigDict(extra="allow")


class _TextMessageData(_Shape):
    textMessage: NonBlankStr


class TextMessageDataShape(BaseModel):
    """messageData.textMessageData.textMessage"""
    model_config = ConfigDict(extra="allow")

    textMessageData: _TextMessageData

    def text(self) -> str:
        return self.textMessageData.textMessage


class TextMessageShape(_Shape):
    """messageData.textMessage"""

    textMessage: NonBlankStr

    def text(self) -> str:
        return self.textMessage


class _ExtendedText(_Shape):
    text: NonBlankStr


class ExtendedTextShape(BaseModel):
    """messageData.extendedTextMessage.text"""
    model_config = ConfigDict(extra="allow")

    extendedTextMessage: _ExtendedText

    def text(self) -> str:
        return self.extendedTextMessage.text


class _NestedExtended(BaseModel):
    model_config = ConfigDict(extra="allow")

    extendedTextMessage: _ExtendedText


class NestedExtendedTextShape(BaseModel):
    """messageData.message.extendedTextMessage.text"""
    model_config = ConfigDict(extra="allow")

    message: _NestedExtended

    def text(self) -> str:
        return self.message.extendedTextMessage.text


class _Conversation(_Shape):
    conversation: NonBlankStr


class ConversationShape(BaseModel):
    """messageData.message.conversation"""
    model_config = ConfigDict(extra="allow")

    message: _Conversation

    def text(self) -> str:
        return self.message.conversation


MESSAGE_SHAPES: tuple[type[BaseModel], ...] = (
    TextMessageDataShape,
    TextMessageShape,
    ExtendedTextShape,
    NestedExtendedTextShape,
    ConversationShape,
)


class InboundMessage(BaseModel):
    """Inbound message extracted from a notification."""

    sender: str
    text: NonBlankStr
    message_id: Optional[str] = None


def extract_message_text(message_data: Any) -> str:
    """
    Extract message text from messageData.

    Raises:
        ParseError: If no known shape carries non-empty text
    """
    if isinstance(message_data, str):
        if message_data.strip():
            return message_data
        raise ParseError("Empty message text")

    if not isinstance(message_data, dict):
        raise ParseError(f"Unsupported messageData type: {type(message_data).__name__}")

    for shape in MESSAGE_SHAPES:
        try:
            return shape.model_validate(message_data).text()
        except ValidationError:
            continue

    raise ParseError(f"No message text in messageData keys: {sorted(message_data)}")


def extract_inbound_message(payload: dict[str, Any]) -> Optional[InboundMessage]:
    """
    Parse a raw webhook body into an InboundMessage.

    Returns:
        InboundMessage, or None for notifications that are not incoming
        messages (status updates, outgoing echoes)

    Raises:
        ParseError: If an incoming message lacks a sender or any text
    """
    try:
        envelope = GreenApiWebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise ParseError(f"Invalid webhook payload: {e.error_count()} errors") from e

    if envelope.typeWebhook != INCOMING_MESSAGE_WEBHOOK:
        return None

    if envelope.senderData is None or not envelope.senderData.sender:
        raise ParseError("Incoming message without sender")

    text = extract_message_text(envelope.messageData)

    return InboundMessage(
        sender=envelope.senderData.sender,
        text=text,
        message_id=envelope.idMessage,
    )
