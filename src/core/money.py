"""
Decimal Math Utilities for Settlement Amounts.

All monetary values are Decimal rounded to the cent with ROUND_HALF_UP.

Why Decimal?
- Float: 0.1 + 0.2 = 0.30000000000000004
- Decimal: 0.1 + 0.2 = 0.3
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

Numeric = Union[int, float, str, Decimal]

MONEY_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a numeric value to Decimal.

    Floats go through str() so 100.1 becomes Decimal('100.1') rather than its
    binary expansion.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a monetary amount")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a numeric value: {value!r}") from e


def money(value: Numeric) -> Decimal:
    """
    Convert value to money (rounded half-up to pennies).

    Examples:
        >>> money(100.995)
        Decimal('101.00')
        >>> money("0.005")
        Decimal('0.01')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def rate(value: Numeric) -> Decimal:
    """Convert value to a rate with 4 decimal places."""
    return to_decimal(value).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Numeric]) -> Decimal:
    """Sum values and round the total to pennies."""
    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return money(total)


def format_money(value: Numeric) -> str:
    """Format as a dollar string, e.g. $1,234.50."""
    return f"${money(value):,.2f}"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
