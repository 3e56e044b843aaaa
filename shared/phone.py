"""
Phone number normalization for matching and outbound addressing.

Inbound senders arrive as provider chat IDs ("77017777777@c.us") while booking
phones are typed by clients in any format ("+7 (701) 777-77-77", "8 701 ...").
Both sides are reduced to the same canonical key before comparison.
"""

import re

import phonenumbers

from shared.config import get_settings

CANONICAL_KEY_LENGTH = 10

_NON_DIGITS = re.compile(r"\D")


def strip_non_digits(phone: str) -> str:
    """Return only the digits of a phone string."""
    return _NON_DIGITS.sub("", phone or "")


def canonical_phone_key(phone: str, country_code: str | None = None) -> str:
    """
    Reduce a free-form phone number to its canonical matching key.

    Steps:
    1. Strip every non-digit character
    2. Prepend the country-code digit if the number does not start with it
    3. Keep the last 10 digits

    Args:
        phone: Free-form phone number or provider chat ID
        country_code: Country-code digits (default: PHONE_COUNTRY_CODE setting)

    Returns:
        Canonical key, or an empty string when the input carries no digits

    Example:
        >>> canonical_phone_key("+7 (701) 777-77-77")
        '7017777777'
        >>> canonical_phone_key("87017777777")
        '7017777777'
    """
    if country_code is None:
        country_code = get_settings().PHONE_COUNTRY_CODE

    digits = strip_non_digits(phone)
    if not digits:
        return ""

    if not digits.startswith(country_code):
        digits = f"{country_code}{digits}"

    return digits[-CANONICAL_KEY_LENGTH:]


def to_chat_id(phone: str, country_code: str | None = None) -> str:
    """
    Build the WhatsApp chat ID for a phone number ("<country><key>@c.us").

    Raises:
        ValueError: If the phone has fewer than 10 digits
    """
    if country_code is None:
        country_code = get_settings().PHONE_COUNTRY_CODE

    key = canonical_phone_key(phone, country_code)
    if len(key) < CANONICAL_KEY_LENGTH:
        raise ValueError(f"Phone number is too short: {phone!r}")

    return f"{country_code}{key}@c.us"


def normalize_phone_e164(phone: str, region: str | None = None) -> str:
    """
    Validate a client phone number and normalize it to E.164 format.

    Numbers without a country code are parsed in PHONE_REGION. The number
    must be valid and belong to PHONE_COUNTRY_CODE, since reminders and
    cancellation matching use the domestic canonical key.

    Args:
        phone: Phone number in any format
        region: Default region (default: PHONE_REGION setting)

    Returns:
        E.164 formatted phone number (e.g., "+77017777777")

    Raises:
        ValueError: If the number cannot be parsed, is invalid or is foreign

    Examples:
        "8 701 777 77 77" -> "+77017777777"
        "+44 20 7946 0958" -> ValueError
    """
    settings = get_settings()
    region = region or settings.PHONE_REGION

    try:
        parsed = phonenumbers.parse(phone, region)
    except phonenumbers.NumberParseException as e:
        raise ValueError(f"Cannot parse phone number {phone}: {e}") from e

    if not phonenumbers.is_valid_number(parsed):
        raise ValueError(f"Invalid phone number: {phone}")

    if str(parsed.country_code) != settings.PHONE_COUNTRY_CODE:
        raise ValueError(
            f"Phone number must have country code +{settings.PHONE_COUNTRY_CODE}: {phone}"
        )

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
