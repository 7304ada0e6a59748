from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from invoicer.config import CURRENCY_SYMBOLS

_CENT = Decimal("0.01")

NOT_AVAILABLE = "N/A"


def round2dp(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Format a monetary amount for XML: two decimals, more only when present.

    Example: 100 -> "100.00", 0.125 -> "0.125"
    """
    if value.as_tuple().exponent >= -2:
        return f"{value:.2f}"
    return f"{value.normalize():f}"


def format_number(value: Decimal) -> str:
    """Format a quantity or percentage without exponent or trailing zeros."""
    text = f"{value.normalize():f}"
    return "0" if text == "-0" else text


def format_money(value: Decimal | None, currency: str | None) -> str:
    """Format an amount for display: "-$87.21", "10.10 XYZ", or "N/A".

    Known currencies get their symbol as a prefix; unknown codes are appended.
    Values too large to round to cents are shown as "N/A" as well.
    """
    if value is None or not value.is_finite():
        return NOT_AVAILABLE
    try:
        cents = round2dp(abs(value))
    except InvalidOperation:
        return NOT_AVAILABLE
    sign = "-" if value < 0 else ""
    digits = f"{cents:.2f}"
    symbol = CURRENCY_SYMBOLS.get(currency or "")
    if symbol:
        return f"{sign}{symbol}{digits}"
    if currency:
        return f"{sign}{digits} {currency}"
    return f"{sign}{digits}"
