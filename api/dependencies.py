"""
FastAPI dependency providers.

Routes receive the store, the messaging gateway and the clock through
Depends() so tests can swap them via app.dependency_overrides.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from booking.store import BookingStore, MessageGateway
from database.store import SqlAlchemyStore
from shared.config import get_settings
from shared.whatsapp_client import get_whatsapp_client

_store: SqlAlchemyStore | None = None


def get_store() -> BookingStore:
    """Shared SqlAlchemyStore instance."""
    global _store
    if _store is None:
        _store = SqlAlchemyStore()
    return _store


def get_gateway() -> MessageGateway:
    """Green API WhatsApp client."""
    return get_whatsapp_client()


def get_now() -> datetime:
    """Current instant in the business timezone."""
    return datetime.now(ZoneInfo(get_settings().TIMEZONE))
