"""
Currency helpers.

All amounts are Decimal and rounded to the minor unit (cents) with
ROUND_HALF_UP after every step of a computation.
"""
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() avoids binary float artifacts (0.1 -> 0.1000000000000000055...)
    return Decimal(str(value))


def to_cents(value) -> Decimal:
    """Quantize to 2 decimal places with HALF_UP"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_int(value) -> int:
    return int(to_decimal(value).to_integral_value(rounding=ROUND_FLOOR))
