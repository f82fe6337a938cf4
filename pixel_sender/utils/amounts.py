"""Pure amount helpers shared by classification, persistence and reporting."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from pixel_sender.config import RECORD_STORE_SETTINGS


def to_decimal(value: Any) -> Optional[Decimal]:
    """Exact numeric form of ``value``; None when it is not a number at all."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps 0.1 as Decimal('0.1') rather than its binary expansion
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return None if result.is_nan() else result


def to_stored_amount(value: Any, scale: Optional[int] = None) -> Optional[Decimal]:
    """``value`` rounded half-up to the record store's amount scale (what a DECIMAL column keeps)."""
    dec = to_decimal(value)
    if dec is None:
        return None
    places = RECORD_STORE_SETTINGS["amount_scale"] if scale is None else scale
    return dec.quantize(Decimal(1).scaleb(-int(places)), rounding=ROUND_HALF_UP)


def amounts_equal(left: Any, right: Any, scale: Optional[int] = None) -> bool:
    """Numeric equality at the stored scale: 100, 100.0, "100" and Decimal("100.00") are all equal,
    and so are 19.99999 and the 20.0000 the store keeps for it.

    Anything non-numeric never compares equal, not even to itself.
    """
    a, b = to_stored_amount(left, scale), to_stored_amount(right, scale)
    if a is None or b is None:
        return False
    return a == b


def as_number(value: Any) -> Any:
    """JSON-friendly number: integral values become int, others float. Non-numbers pass through."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    dec = to_decimal(value)
    if dec is None:
        return value
    if dec == dec.to_integral_value():
        return int(dec)
    return float(dec)


__all__ = ["to_decimal", "to_stored_amount", "amounts_equal", "as_number"]
