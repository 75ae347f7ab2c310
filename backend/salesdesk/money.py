# Overview: Conversions between integer cents (storage) and decimal amounts (wire).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")


def cents_to_str(cents: int | None) -> str | None:
    """1999 -> "19.99"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(CENT))


def parse_amount_to_cents(value, field: str = "amount") -> int:
    """
    Parse a decimal amount ("19.99", 19.99, 20) into integer cents.

    Raises ValueError with a field-specific message when the value is not a
    finite number or carries more than two decimal places.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValueError(f"{field} must be a number")
    if amount != amount.quantize(CENT):
        raise ValueError(f"{field} cannot have more than 2 decimal places")
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))
