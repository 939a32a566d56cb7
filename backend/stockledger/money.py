# Overview: Decimal helpers for quantities, unit costs and currency values.

"""
Precision rules

- Quantities and unit costs (prices, WAC) are kept to 4 decimal places.
- Monetary values (line values, totals, reconciliation figures) are kept
  to 2 decimal places.
- Rounding is half-up everywhere.
- Floats never enter arithmetic: inputs are converted through str().
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0")
QTY_PLACES = Decimal("0.0001")
COST_PLACES = Decimal("0.0001")
MONEY_PLACES = Decimal("0.01")


def to_decimal(value, *, field: str = "value") -> Decimal:
    if value is None:
        raise ValueError(f"{field} is required")
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"{field} must be a number")
    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def quantize_qty(value) -> Decimal:
    return to_decimal(value).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def quantize_cost(value) -> Decimal:
    return to_decimal(value).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def decimal_to_json(value) -> str | None:
    """Serialize a Decimal column without float conversion."""
    if value is None:
        return None
    return str(to_decimal(value))
