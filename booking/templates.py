"""
Outbound message rendering.

Templates use literal placeholders:

    {clientName}   full client name
    {firstName}    first whitespace-delimited token of the name
    {date}         booking date, always YYYY-MM-DD
    {time}         booking time of day
    {price}        session price, digits grouped, no currency symbol
    {address}      office address
    {hoursBefore}  reminder label ("24 часа" / "3 часа")

A template is compiled into line segments, each tagged with the placeholders
it references. Lines that reference an optional field ({price}, {address})
are dropped when the value is absent, together with one adjacent blank
separator so that removal never doubles a blank line.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Optional

from shared.errors import ValidationError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(
    r"\{(clientName|firstName|date|time|price|address|hoursBefore)\}"
)

OPTIONAL_FIELDS = frozenset({"price", "address"})

# ru-RU groups thousands with a no-break space
GROUP_SEPARATOR = "\u00a0"
DECIMAL_SEPARATOR = ","


class MessageKind(str, Enum):
    """Kinds of outbound messages."""

    CONFIRMATION = "confirmation"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"
    NO_ACTIVE_BOOKING = "no_active_booking"


DEFAULT_CONFIRMATION_TEMPLATE = """✅ *ПОДТВЕРЖДЕНИЕ ЗАПИСИ*

👤 *Уважаемый(ая) {firstName}!*

📅 *ДЕТАЛИ ЗАПИСИ*

━━━━━━━━━━━━━━━━

📅 Дата: {date}

⏰ Время: {time}

💰 Стоимость: {price} тенге

📍 {address}

❗️ *ВАЖНО*

━━━━━━━━━━━━━━━━

• Запись успешно создана

• За 3 часа до записи вы получите напоминание

• Если у вас изменились планы, сообщите нам заранее

Жду вас на приёме!"""

DEFAULT_REMINDER_TEMPLATE = """⏰ *Напоминание: до вашей записи осталось {hoursBefore}!*

👤 *Уважаемый(ая) {firstName}!*

📝 *ДЕТАЛИ ЗАПИСИ*

━━━━━━━━━━━━━━━━

📅 Дата: {date}

⏰ Время: {time}

💰 Стоимость: {price} тенге

📍 {address}

❗️ *ВАЖНО*

━━━━━━━━━━━━━━━━

• Пожалуйста, приходите вовремя

• Если у вас изменились планы, сообщите нам заранее

• Для отмены записи отправьте "2"

Жду вас на приёме!"""

DEFAULT_CANCELLATION_TEMPLATE = """❌ *Запись отменена*

👤 Уважаемый(ая) {firstName}!

Ваша запись на {date} в {time} была успешно отменена.

Если возникнут вопросы, свяжитесь с нами."""

DEFAULT_NO_ACTIVE_BOOKING_TEMPLATE = "❌ У вас нет активных записей для отмены."

DEFAULT_TEMPLATES: dict[MessageKind, str] = {
    MessageKind.CONFIRMATION: DEFAULT_CONFIRMATION_TEMPLATE,
    MessageKind.REMINDER: DEFAULT_REMINDER_TEMPLATE,
    MessageKind.CANCELLATION: DEFAULT_CANCELLATION_TEMPLATE,
    MessageKind.NO_ACTIVE_BOOKING: DEFAULT_NO_ACTIVE_BOOKING_TEMPLATE,
}


def format_price(price: int | Decimal | float | None) -> Optional[str]:
    """
    Format a price with grouped digits and no currency symbol.

    Returns:
        "15 000" style string (no-break space), or None when the price is
        absent or not positive

    Example:
        >>> format_price(15000)
        '15\\xa0000'
    """
    if price is None:
        return None

    amount = Decimal(str(price))
    if amount <= 0:
        return None

    if amount == amount.to_integral_value():
        return f"{int(amount):,}".replace(",", GROUP_SEPARATOR)

    grouped = f"{amount.quantize(Decimal('0.01')):,}"
    integer_part, fraction = grouped.split(".")
    return f"{integer_part.replace(',', GROUP_SEPARATOR)}{DECIMAL_SEPARATOR}{fraction}"


@dataclass(frozen=True)
class MessageContext:
    """
    Values available to templates.

    Attributes:
        client_name: Client full name
        date: Booking calendar date
        time: Booking time of day ("HH:MM")
        price: Optional session price
        address: Optional office address
        hours_before: Reminder label, required for reminders only
    """
    client_name: str
    date: date
    time: str
    price: int | Decimal | None = None
    address: Optional[str] = None
    hours_before: Optional[str] = None

    @property
    def first_name(self) -> str:
        parts = self.client_name.split()
        return parts[0] if parts else ""

    def values(self) -> dict[str, Optional[str]]:
        """Placeholder values; None marks an absent optional field."""
        address = self.address.strip() if self.address and self.address.strip() else None
        return {
            "clientName": self.client_name,
            "firstName": self.first_name,
            "date": self.date.strftime("%Y-%m-%d"),
            "time": self.time,
            "price": format_price(self.price),
            "address": address,
            "hoursBefore": self.hours_before,
        }


@dataclass(frozen=True)
class Segment:
    """One template line and the placeholders it references."""

    text: str
    fields: frozenset[str]

    @property
    def is_blank(self) -> bool:
        return not self.fields and self.text.strip() == ""

    @property
    def optional_fields(self) -> frozenset[str]:
        return self.fields & OPTIONAL_FIELDS

    def render(self, values: dict[str, Optional[str]]) -> str:
        text = self.text
        for name in self.fields:
            text = text.replace(f"{{{name}}}", values.get(name) or "")
        return text


@lru_cache(maxsize=64)
def compile_template(template: str) -> tuple[Segment, ...]:
    """Split a template into line segments tagged with their placeholders."""
    return tuple(
        Segment(text=line, fields=frozenset(PLACEHOLDER_PATTERN.findall(line)))
        for line in template.split("\n")
    )


def render_segments(segments: tuple[Segment, ...], values: dict[str, Optional[str]]) -> str:
    """
    Render compiled segments, eliding lines whose optional fields are absent.

    When a line is elided and both its neighbours are blank separators, the
    following separator is dropped too.
    """
    output: list[str] = []
    skip_next_blank = False
    elided_last = False

    for segment in segments:
        if skip_next_blank:
            skip_next_blank = False
            if segment.is_blank:
                continue

        missing = [name for name in segment.optional_fields if values.get(name) is None]
        if missing:
            elided_last = True
            if not output or output[-1].strip() == "":
                skip_next_blank = True
            continue

        elided_last = False
        output.append(segment.render(values))

    # A removed final line must not leave its separator dangling
    if elided_last:
        while output and output[-1].strip() == "":
            output.pop()

    return "\n".join(output)


def render_message(
    kind: MessageKind,
    context: MessageContext,
    template: Optional[str] = None,
) -> str:
    """
    Render an outbound message.

    Args:
        kind: Message kind (selects the built-in default)
        context: Placeholder values
        template: Optional custom template; blank means "use the default"

    Returns:
        Plain text ready to send

    Raises:
        ValidationError: If a reminder is rendered without an hours-before label
    """
    if kind == MessageKind.REMINDER and not context.hours_before:
        raise ValidationError("Reminder messages need an hours-before label")

    if template is None or template.strip() == "":
        template = DEFAULT_TEMPLATES[kind]

    return render_segments(compile_template(template), context.values())
