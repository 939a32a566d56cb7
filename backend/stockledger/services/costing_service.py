# Overview: Weighted-average cost arithmetic. Pure functions, no database access.

from __future__ import annotations

from decimal import Decimal

from ..money import ZERO, quantize_cost, quantize_money, to_decimal


def apply_receipt(current_qty, current_wac, received_qty, unit_price) -> Decimal:
    """
    Blend a receipt into an existing WAC.

        new_wac = (current_qty * current_wac + received_qty * unit_price)
                  / (current_qty + received_qty)

    Returns 0 when the resulting quantity is zero. The result is rounded
    half-up to 4 decimal places.

    Used for deliveries and for the destination leg of a transfer, where
    unit_price is the source WAC captured at approval.
    """
    q = to_decimal(current_qty, field="current_qty")
    w = to_decimal(current_wac, field="current_wac")
    rq = to_decimal(received_qty, field="received_qty")
    p = to_decimal(unit_price, field="unit_price")

    new_qty = q + rq
    if new_qty == ZERO:
        return quantize_cost(ZERO)

    return quantize_cost((q * w + rq * p) / new_qty)


def line_value(quantity, unit_cost) -> Decimal:
    """quantity x unit cost, rounded to money precision."""
    return quantize_money(to_decimal(quantity, field="quantity") * to_decimal(unit_cost, field="unit_cost"))


def stock_value(on_hand, wac) -> Decimal:
    return quantize_money(to_decimal(on_hand, field="on_hand") * to_decimal(wac, field="wac"))
