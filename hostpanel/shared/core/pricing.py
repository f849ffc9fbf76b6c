"""
Credit pricing helpers.

Server prices are stored as a monthly amount; a billing month is 30 days of
24 hourly ticks. Everything here is a pure function of the stored price.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

__all__ = [
    "HOURS_PER_MONTH",
    "DAYS_PER_MONTH",
    "CREDIT_QUANTUM",
    "to_decimal",
    "hourly_price",
    "price_per_hour",
    "price_per_day",
]

DAYS_PER_MONTH = 30
HOURS_PER_MONTH = DAYS_PER_MONTH * 24  # 720

# Credits are persisted as Numeric(14, 4).
CREDIT_QUANTUM = Decimal("0.0001")
DISPLAY_QUANTUM = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def to_decimal(value: Amount) -> Decimal:
    """Coerce a stored or user-supplied amount to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def hourly_price(monthly_price: Amount) -> Decimal:
    """Amount charged per billing tick, at credit-column precision."""
    return (to_decimal(monthly_price) / HOURS_PER_MONTH).quantize(
        CREDIT_QUANTUM, rounding=ROUND_HALF_UP
    )


def price_per_hour(monthly_price: Amount) -> Decimal:
    """Display price per hour, rounded to cents."""
    return (to_decimal(monthly_price) / HOURS_PER_MONTH).quantize(
        DISPLAY_QUANTUM, rounding=ROUND_HALF_UP
    )


def price_per_day(monthly_price: Amount) -> Decimal:
    """Display price per day, rounded to cents."""
    return (to_decimal(monthly_price) / DAYS_PER_MONTH).quantize(
        DISPLAY_QUANTUM, rounding=ROUND_HALF_UP
    )
