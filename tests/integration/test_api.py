"""
Integration tests for the HTTP API.

The store, gateway and clock are swapped through app.dependency_overrides so
every request runs against InMemoryStore and FakeGateway at a fixed instant.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_gateway, get_now, get_store
from api.main import app
from database.models import BookingStatus, ScheduleSettings
from tests.fakes import FakeGateway, InMemoryStore, make_booking

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=ZoneInfo("Asia/Almaty"))
TOMORROW = date(2026, 3, 3)
SENDER = "77017777777@c.us"


@pytest.fixture
def api_store() -> InMemoryStore:
    store = InMemoryStore()
    store.schedule_settings = ScheduleSettings(
        id=1,
        work_days=[0, 1, 2, 3, 4],
        work_start_time="09:00",
        work_end_time="19:00",
        session_duration=30,
        break_start_time="13:00",
        break_end_time="14:00",
    )
    return store


@pytest.fixture
def api_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(api_store, api_gateway):
    app.dependency_overrides[get_store] = lambda: api_store
    app.dependency_overrides[get_gateway] = lambda: api_gateway
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()


def booking_payload(**overrides) -> dict:
    payload = {
        "client_name": "Айгерим Садыкова",
        "phone": "+7 (701) 777-77-77",
        "date": "2026-03-03",
        "time": "10:00",
    }
    payload.update(overrides)
    return payload


class TestWhatsAppWebhook:
    """Test POST/GET /webhook/whatsapp."""

    def test_cancel_command_cancels_booking(self, client, api_store, api_gateway):
        booking = make_booking(TOMORROW, "10:00")
        api_store.add(booking)

        response = client.post(
            "/webhook/whatsapp",
            json={
                "typeWebhook": "incomingMessageReceived",
                "idMessage": "BAE5F4886F6F2D05",
                "senderData": {"chatId": SENDER, "sender": SENDER},
                "messageData": {
                    "typeMessage": "textMessage",
                    "textMessageData": {"textMessage": "2"},
                },
            },
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert booking.status == BookingStatus.CANCELLED
        assert api_gateway.sent[0][0] == SENDER

    @pytest.mark.parametrize(
        "body",
        [
            b"not json",
            b"[1, 2, 3]",
            b'{"typeWebhook": "outgoingMessageStatus", "status": "delivered"}',
            b'{"typeWebhook": "incomingMessageReceived", "messageData": {}}',
            b"",
        ],
    )
    def test_always_acknowledged(self, client, api_gateway, body):
        response = client.post(
            "/webhook/whatsapp", content=body, headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert api_gateway.sent == []

    def test_store_failure_still_acknowledged(self, client, api_store):
        api_store.list_bookings = AsyncMock(side_effect=RuntimeError("database is down"))

        response = client.post(
            "/webhook/whatsapp",
            json={
                "typeWebhook": "incomingMessageReceived",
                "senderData": {"sender": SENDER},
                "messageData": {"textMessage": "отмена"},
            },
        )

        assert response.status_code == 200

    def test_phone_not_logged(self, client, api_store, caplog):
        caplog.set_level(logging.DEBUG)
        api_store.add(make_booking(TOMORROW, "10:00"))

        client.post(
            "/webhook/whatsapp",
            json={
                "typeWebhook": "incomingMessageReceived",
                "idMessage": "BAE5F4886F6F2D05",
                "senderData": {"sender": SENDER},
                "messageData": {"textMessage": "отмена"},
            },
        )

        assert "BAE5F4886F6F2D05" in caplog.text
        assert "77017777777" not in caplog.text

    def test_liveness_check(self, client):
        response = client.get("/webhook/whatsapp")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestReminderSweepEndpoint:
    """Test POST /reminders/sweep."""

    def test_sweep_counts(self, client, api_store, api_gateway):
        api_store.add(
            make_booking(TOMORROW, "10:00"),
            make_booking(date(2026, 3, 2), "12:30", phone="+77021112233"),
        )

        response = client.post("/reminders/sweep")

        assert response.status_code == 200
        assert response.json() == {"scanned": 2, "sent24h": 1, "sent3h": 1, "errors": 0}
        assert len(api_gateway.sent) == 2

    def test_cron_secret_required_when_configured(self, client):
        settings = SimpleNamespace(CRON_SECRET="s3cret")

        with patch("api.routes.reminders.get_settings", return_value=settings):
            missing = client.post("/reminders/sweep")
            wrong = client.post("/reminders/sweep", headers={"Authorization": "Bearer nope"})
            right = client.post("/reminders/sweep", headers={"Authorization": "Bearer s3cret"})

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert right.status_code == 200


class TestBookingEndpoints:
    """Test booking and availability routes."""

    def test_availability(self, client, api_store):
        api_store.add(make_booking(TOMORROW, "09:00"))

        response = client.get("/availability", params={"date": "2026-03-03"})

        assert response.status_code == 200
        slots = response.json()["slots"]
        assert slots[0] == "09:30"
        assert "13:00" not in slots

    def test_availability_weekend_is_empty(self, client):
        response = client.get("/availability", params={"date": "2026-03-07"})

        assert response.json() == {"date": "2026-03-07", "slots": []}

    def test_create_booking(self, client, api_store, api_gateway):
        response = client.post("/bookings", json=booking_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["reminder_24h_sent"] is False
        assert len(api_store.bookings) == 1
        assert len(api_gateway.sent) == 1

    def test_unconfigured_gateway_skips_confirmation(self, client, api_gateway):
        api_gateway.is_configured = False

        response = client.post("/bookings", json=booking_payload())

        assert response.status_code == 201
        assert api_gateway.sent == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"phone": "123"},
            {"time": "13:00"},
            {"date": "2026-03-07"},
            {"date": "2026-03-01"},
        ],
    )
    def test_create_booking_rejected(self, client, overrides):
        response = client.post("/bookings", json=booking_payload(**overrides))

        assert response.status_code == 400
        assert "error" in response.json()

    def test_create_booking_taken_slot(self, client):
        assert client.post("/bookings", json=booking_payload()).status_code == 201

        response = client.post("/bookings", json=booking_payload(phone="+77021112233"))

        assert response.status_code == 409

    def test_get_list_update_delete(self, client, api_store):
        booking = make_booking(TOMORROW, "10:00")
        api_store.add(booking)

        assert client.get(f"/bookings/{booking.id}").json()["id"] == str(booking.id)
        assert len(client.get("/bookings", params={"status": "pending"}).json()) == 1

        confirmed = client.patch(f"/bookings/{booking.id}/status", json={"status": "confirmed"})
        assert confirmed.json()["status"] == "confirmed"

        cancelled = client.patch(f"/bookings/{booking.id}/status", json={"status": "cancelled"})
        assert cancelled.json()["status"] == "cancelled"

        reopened = client.patch(f"/bookings/{booking.id}/status", json={"status": "pending"})
        assert reopened.status_code == 400

        assert client.delete(f"/bookings/{booking.id}").status_code == 204
        assert client.get(f"/bookings/{booking.id}").status_code == 404

    def test_unknown_booking(self, client):
        assert client.get(f"/bookings/{uuid4()}").status_code == 404
        assert client.delete(f"/bookings/{uuid4()}").status_code == 404


class TestBlockedDateEndpoints:
    """Test /blocked-dates routes."""

    def test_block_and_unblock(self, client):
        created = client.post(
            "/blocked-dates", json={"date": "2026-03-03T15:00:00", "reason": "Праздник"}
        )
        assert created.status_code == 201
        assert created.json()["date"] == "2026-03-03"

        duplicate = client.post("/blocked-dates", json={"date": "2026-03-03"})
        assert duplicate.status_code == 409

        assert client.get("/availability", params={"date": "2026-03-03"}).json()["slots"] == []
        assert [b["date"] for b in client.get("/blocked-dates").json()] == ["2026-03-03"]

        blocked_id = created.json()["id"]
        assert client.delete(f"/blocked-dates/{blocked_id}").status_code == 204
        assert client.delete(f"/blocked-dates/{blocked_id}").status_code == 404


class TestHealth:
    """Test /health."""

    @staticmethod
    def _session_scope(execute: AsyncMock):
        @asynccontextmanager
        async def scope(session_factory=None):
            session = MagicMock()
            session.execute = execute
            yield session

        return scope

    def test_healthy(self, client):
        scope = self._session_scope(AsyncMock())

        with patch("database.connection.get_async_session", scope):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"
        assert response.json()["whatsapp"] == "disabled"

    def test_degraded_when_database_unreachable(self, client):
        scope = self._session_scope(AsyncMock(side_effect=ConnectionRefusedError()))

        with patch("database.connection.get_async_session", scope):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_root(self, client):
        assert "Booking Reminders API" in client.get("/").json()["message"]
