"""
Tests for inbound WhatsApp command processing.

Coverage:
- Cancellation command classification
- Phone matching across formatting variants
- Soonest booking selected when several match
- No-match notice, redelivery, gateway failures
- handle_message() never raises
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from booking.inbound import (
    InboundAction,
    find_active_booking,
    handle_message,
    is_cancel_command,
    normalize_command_text,
    process_message,
)
from database.models import BookingStatus
from tests.fakes import FakeGateway, make_booking

TODAY = date(2026, 3, 2)
TOMORROW = date(2026, 3, 3)
NEXT_WEEK = date(2026, 3, 9)

SENDER = "77017777777@c.us"


class TestCommandClassification:
    """Test is_cancel_command()."""

    @pytest.mark.parametrize(
        "text",
        [
            "2",
            " 2 ",
            "2.",
            "Отмена",
            "ОТМЕНИТЬ!",
            "cancel",
            "Cancel.",
            "отменить запись",
            "Отменить  сеанс",
            "отмена записи",
            "Хочу отменить запись, пожалуйста",
            "извините, отмена",
        ],
    )
    def test_commands(self, text):
        assert is_cancel_command(text) is True

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "Спасибо, приду",
            "приду в 12",
            "2 человека",
            "буду в 14:20",
            "cancellation policy?",
            "отменено",
        ],
    )
    def test_non_commands(self, text):
        assert is_cancel_command(text) is False

    def test_normalize(self):
        assert normalize_command_text("  «Отмена»!!  ") == "отмена"


class TestFindActiveBooking:
    """Test find_active_booking()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored_phone", ["+7 (701) 777-77-77", "87017777777", "7017777777"])
    async def test_phone_formats_match(self, store, schedule_config, now, stored_phone):
        booking = make_booking(TOMORROW, "10:00", phone=stored_phone)
        store.add(booking)

        found = await find_active_booking(store, SENDER, now, schedule_config)

        assert found is booking

    @pytest.mark.asyncio
    async def test_soonest_booking_wins(self, store, schedule_config, now):
        later = make_booking(NEXT_WEEK, "09:00")
        sooner = make_booking(TOMORROW, "15:00")
        same_day_later = make_booking(TOMORROW, "16:00")
        store.add(later, same_day_later, sooner)

        found = await find_active_booking(store, SENDER, now, schedule_config)

        assert found is sooner

    @pytest.mark.asyncio
    async def test_past_and_cancelled_ignored(self, store, schedule_config, now):
        store.add(
            make_booking(TODAY, "09:00"),
            make_booking(TOMORROW, "10:00", status=BookingStatus.CANCELLED),
        )

        assert await find_active_booking(store, SENDER, now, schedule_config) is None

    @pytest.mark.asyncio
    async def test_other_phone_ignored(self, store, schedule_config, now):
        store.add(make_booking(TOMORROW, "10:00", phone="+7 702 111 22 33"))

        assert await find_active_booking(store, SENDER, now, schedule_config) is None

    @pytest.mark.asyncio
    async def test_later_today_matches(self, store, schedule_config, now):
        booking = make_booking(TODAY, "10:00")
        store.add(booking)

        # Starting exactly now still counts as upcoming
        assert await find_active_booking(store, SENDER, now, schedule_config) is booking


class TestProcessMessage:
    """Test process_message()."""

    @pytest.mark.asyncio
    async def test_cancels_and_confirms(self, store, gateway, schedule_config, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)

        result = await process_message(store, gateway, SENDER, "2", now, schedule_config)

        assert result.action == InboundAction.CANCELLED
        assert result.booking_id == booking.id
        assert result.notice_sent is True
        assert booking.status == BookingStatus.CANCELLED
        phone, message = gateway.sent[0]
        assert phone == SENDER
        assert "Запись отменена" in message
        assert "2026-03-03 в 10:00" in message

    @pytest.mark.asyncio
    async def test_non_command_ignored_silently(self, store, gateway, schedule_config, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)

        result = await process_message(store, gateway, SENDER, "Спасибо!", now, schedule_config)

        assert result.action == InboundAction.IGNORED
        assert gateway.sent == []
        assert booking.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_no_active_booking_notice(self, store, gateway, schedule_config, now):
        result = await process_message(store, gateway, SENDER, "отмена", now, schedule_config)

        assert result.action == InboundAction.NO_ACTIVE_BOOKING
        assert gateway.sent == [(SENDER, "❌ У вас нет активных записей для отмены.")]
        assert store.cancel_calls == []

    @pytest.mark.asyncio
    async def test_redelivery_hits_no_match(self, store, gateway, schedule_config, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)

        first = await process_message(store, gateway, SENDER, "2", now, schedule_config)
        second = await process_message(store, gateway, SENDER, "2", now, schedule_config)

        assert first.action == InboundAction.CANCELLED
        assert second.action == InboundAction.NO_ACTIVE_BOOKING
        assert store.cancel_calls == [booking.id]

    @pytest.mark.asyncio
    async def test_gateway_failure_keeps_cancellation(self, store, schedule_config, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)

        result = await process_message(
            store, FakeGateway(fail=True), SENDER, "отмена", now, schedule_config
        )

        assert result.action == InboundAction.CANCELLED
        assert result.notice_sent is False
        assert booking.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_gateway_exception_keeps_cancellation(self, store, schedule_config, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)
        gateway = AsyncMock()
        gateway.send_message.side_effect = RuntimeError("connection reset")

        result = await process_message(store, gateway, SENDER, "2", now, schedule_config)

        assert result.action == InboundAction.CANCELLED
        assert result.notice_sent is False
        assert booking.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_concurrent_cancel_reports_no_active_booking(
        self, store, gateway, schedule_config, now
    ):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)
        store.cancel_booking = AsyncMock(return_value=False)

        result = await process_message(store, gateway, SENDER, "2", now, schedule_config)

        assert result.action == InboundAction.NO_ACTIVE_BOOKING


class TestHandleMessage:
    """Test handle_message(), the entry point used by the webhook route."""

    @pytest.mark.asyncio
    async def test_cancels(self, store, gateway, schedule_config, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)

        result = await handle_message(store, gateway, SENDER, "2", now, schedule_config)

        assert result.action == InboundAction.CANCELLED
        assert booking.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_store_failure_does_not_raise(self, gateway, schedule_config, now):
        broken_store = AsyncMock()
        broken_store.list_bookings.side_effect = RuntimeError("database is down")

        result = await handle_message(broken_store, gateway, SENDER, "2", now, schedule_config)

        assert result.action == InboundAction.IGNORED
        assert "database is down" in result.error_message

    @pytest.mark.asyncio
    async def test_loads_schedule_from_store(self, store, gateway, now):
        booking = make_booking(TOMORROW, "10:00")
        store.add(booking)

        result = await handle_message(store, gateway, SENDER, "отмена", now)

        assert result.action == InboundAction.CANCELLED
