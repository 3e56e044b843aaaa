"""
Tests for Green API webhook payload parsing.
"""

import pytest

from api.models.green_api_webhook import (
    InboundMessage,
    extract_inbound_message,
    extract_message_text,
)
from shared.errors import ParseError


class TestExtractMessageText:
    """Test extract_message_text() across the known messageData shapes."""

    def test_text_message_data(self):
        data = {"typeMessage": "textMessage", "textMessageData": {"textMessage": "Отмена"}}
        assert extract_message_text(data) == "Отмена"

    def test_plain_text_message(self):
        assert extract_message_text({"textMessage": "2"}) == "2"

    def test_extended_text(self):
        data = {"typeMessage": "extendedTextMessage", "extendedTextMessage": {"text": "cancel"}}
        assert extract_message_text(data) == "cancel"

    def test_nested_extended_text(self):
        data = {"message": {"extendedTextMessage": {"text": "отменить запись"}}}
        assert extract_message_text(data) == "отменить запись"

    def test_conversation(self):
        assert extract_message_text({"message": {"conversation": "2"}}) == "2"

    def test_raw_string(self):
        assert extract_message_text("2") == "2"

    def test_first_shape_wins(self):
        data = {"textMessageData": {"textMessage": "first"}, "textMessage": "second"}
        assert extract_message_text(data) == "first"

    def test_blank_text_falls_through_to_next_shape(self):
        data = {"textMessageData": {"textMessage": "   "}, "textMessage": "2"}
        assert extract_message_text(data) == "2"

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"textMessage": ""},
            {"textMessage": 42},
            {"message": {}},
            {"fileMessageData": {"downloadUrl": "https://example.com/file.jpg"}},
            "   ",
            None,
            ["2"],
        ],
    )
    def test_no_text_raises(self, data):
        with pytest.raises(ParseError):
            extract_message_text(data)


class TestExtractInboundMessage:
    """Test extract_inbound_message()."""

    def test_incoming_message(self):
        payload = {
            "typeWebhook": "incomingMessageReceived",
            "idMessage": "BAE5F4886F6F2D05",
            "senderData": {"chatId": "77017777777@c.us", "sender": "77017777777@c.us"},
            "messageData": {"textMessageData": {"textMessage": "2"}},
            "instanceData": {"idInstance": 1101000001},
        }

        message = extract_inbound_message(payload)

        assert message == InboundMessage(
            sender="77017777777@c.us", text="2", message_id="BAE5F4886F6F2D05"
        )

    @pytest.mark.parametrize(
        "webhook_type", ["outgoingMessageStatus", "stateInstanceChanged", "outgoingAPIMessageReceived"]
    )
    def test_other_notifications_return_none(self, webhook_type):
        payload = {"typeWebhook": webhook_type, "messageData": {"textMessage": "2"}}
        assert extract_inbound_message(payload) is None

    def test_missing_type_raises(self):
        with pytest.raises(ParseError):
            extract_inbound_message({"messageData": {"textMessage": "2"}})

    def test_missing_sender_raises(self):
        payload = {"typeWebhook": "incomingMessageReceived", "messageData": {"textMessage": "2"}}
        with pytest.raises(ParseError):
            extract_inbound_message(payload)

    def test_missing_text_raises(self):
        payload = {
            "typeWebhook": "incomingMessageReceived",
            "senderData": {"sender": "77017777777@c.us"},
            "messageData": {"typeMessage": "imageMessage"},
        }
        with pytest.raises(ParseError):
            extract_inbound_message(payload)
