"""Conversion between integer minor units and display amounts."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from treasury_kernel.exceptions import ValidationError

CENTS = Decimal("0.01")


def format_minor_units(amount: int, symbol: str = "$") -> str:
    """``12345`` -> ``"$123.45"``.  Negative amounts keep their sign in front."""
    value = (Decimal(amount) / 100).quantize(CENTS)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value)}"


def parse_major_units(text: str) -> int:
    """
    ``"$1,234.56"`` -> ``123456``.

    Currency symbol, thousands separators and surrounding whitespace are
    ignored.  Fractions of a cent round half up.

    Raises:
        ValidationError: Not a finite number.
    """
    cleaned = str(text).replace("$", "").replace(",", "").strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {text!r}", field="amount") from None
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {text!r}", field="amount")
    return int((value * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
