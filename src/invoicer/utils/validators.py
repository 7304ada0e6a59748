from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from invoicer.services.exceptions import InvalidAmountError

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[A-Za-z0-9-]{2,}")
_PHONE_RE = re.compile(r"[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}")

# Quantities and prices must stay below 10**MAX_AMOUNT_DIGITS
MAX_AMOUNT_DIGITS = 15


def validate_amount(value: object, field: str = "amount") -> Decimal:
    """Parse a quantity or monetary value into a finite Decimal.

    Accepts Decimal, int, float and numeric strings (a leading "$" is ignored).
    Raises InvalidAmountError for anything else, including NaN, infinity and
    magnitudes of 10**MAX_AMOUNT_DIGITS or more.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(field, value)
    if isinstance(value, Decimal):
        d = value
    else:
        text = str(value).strip().replace("$", "", 1)
        try:
            d = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(field, value) from None
    if not d.is_finite() or d.adjusted() >= MAX_AMOUNT_DIGITS:
        raise InvalidAmountError(field, value)
    return d


def validate_date(value: str) -> str:
    """Validate an ISO date string (YYYY-MM-DD).

    Returns the value unchanged if valid.
    Raises ValueError for invalid dates.
    """
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date: '{value}'. Use YYYY-MM-DD.") from None
    return value


def validate_currency_code(value: str) -> str:
    """Validate an ISO 4217 alphabetic currency code (3 uppercase letters)."""
    if not re.fullmatch(r"[A-Z]{3}", value):
        raise ValueError(f"Currency code must be 3 uppercase letters (ISO 4217): '{value}'")
    return value


def validate_country_code(value: str) -> str:
    """Validate an ISO 3166-1 alpha-2 country code."""
    if not re.fullmatch(r"[A-Z]{2}", value):
        raise ValueError(f"Country code must be 2 uppercase letters (ISO 3166-1): '{value}'")
    return value


def validate_email(value: str) -> str:
    if not _EMAIL_RE.fullmatch(value):
        raise ValueError(f"Invalid email address: '{value}'")
    return value


def validate_phone(value: str) -> str:
    if not _PHONE_RE.fullmatch(value):
        raise ValueError(f"Invalid phone number: '{value}'")
    return value


def classify_recipient(value: str) -> str:
    """Return "email" or "sms" depending on what the recipient looks like.

    Raises ValueError when the recipient is empty or neither form.
    """
    value = value.strip()
    if not value:
        raise ValueError("Recipient is required")
    if _EMAIL_RE.fullmatch(value):
        return "email"
    if _PHONE_RE.fullmatch(value):
        return "sms"
    raise ValueError("Invalid recipient, must be an email or phone number")
