from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary value")
    try:
        # str() keeps floats like 0.1 from dragging binary noise along.
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise TypeError(f"not a monetary value: {value!r}") from exc
    if not result.is_finite():
        raise TypeError(f"not a monetary value: {value!r}")
    return result


def round_money(value) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_float(value) -> float:
    return float(round_money(value))
