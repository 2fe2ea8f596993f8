"""Decimal rounding for monetary output."""

from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")
EIGHT_PLACES = Decimal("0.00000001")


def round_price(value: Decimal) -> Decimal:
    """Round a reference price or average to 2 decimal places, half away from zero."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_amount(value: Decimal) -> Decimal:
    """Round a market price or balance to 8 decimal places, half away from zero."""
    return value.quantize(EIGHT_PLACES, rounding=ROUND_HALF_UP)
