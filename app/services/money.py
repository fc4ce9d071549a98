"""Money / rounding helpers.

Centralized so the summary engine, API responses and templates use identical
rounding semantics.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    """Exact decimal for a stored float (via its shortest repr)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: float | Decimal) -> float:
    return float(to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def round1(value: float | Decimal) -> float:
    return float(to_decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_usd(value: float | Decimal) -> str:
    """Render like `$1,234.50` (negative values as `-$3.00`)."""
    amount = to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
