"""
Error taxonomy shared by the booking core, the API and the workers.

Booking-time errors (ConfigError, ValidationError, ConflictError) are raised to
the caller of booking operations. GatewayError and ParseError are logged by the
reminder sweep and the inbound processor and never escape to the gateway.
"""


class BookingError(Exception):
    """Base class for all booking errors."""

    pass


class ConfigError(BookingError):
    """Schedule configuration is unusable (inverted or unparseable times)."""

    pass


class ValidationError(BookingError):
    """Malformed booking request or command input."""

    pass


class NotFoundError(BookingError):
    """Referenced entity does not exist."""

    pass


class ConflictError(BookingError):
    """Slot already booked, or date already blocked."""

    pass


class GatewayError(BookingError):
    """Outbound message could not be delivered by the messaging gateway."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}: {self.detail}" if self.detail else base


class ParseError(BookingError):
    """Inbound event payload does not carry any recognised message text."""

    pass
