# Overview: Authoritative per-(location, item) quantity and WAC with a non-negativity guard.

"""
Location stock invariants

- on_hand >= 0 after every committed change. A decrement that would go
  negative raises InsufficientStock and leaves the row untouched.
- WAC changes only on receipts. Decrements (issues, transfer-out) keep it.
- Every write locks the row (SELECT ... FOR UPDATE) and bumps version_id,
  so concurrent writers on the same key serialize or fail with
  StaleDataError, which run_with_retry turns into a retry.
- None of these functions commit. They run inside the caller's unit of work.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from ..extensions import db
from ..models import Item, Location, LocationStock
from ..errors import InsufficientStock, NotFoundError, ValidationError
from ..money import ZERO, quantize_money, quantize_qty, to_decimal
from . import costing_service
from .concurrency import lock_for_update


def get_stock(location_id: int, item_id: int, *, lock: bool = False) -> LocationStock | None:
    query = db.session.query(LocationStock).filter_by(location_id=location_id, item_id=item_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_on_hand(location_id: int, item_id: int) -> Decimal:
    stock = get_stock(location_id, item_id)
    return stock.on_hand if stock else ZERO


def aggregate_quantities(lines) -> "OrderedDict[int, Decimal]":
    """Sum quantities per item, keeping first-seen order. lines: iterable of (item_id, qty)."""
    totals: "OrderedDict[int, Decimal]" = OrderedDict()
    for item_id, quantity in lines:
        totals[item_id] = totals.get(item_id, ZERO) + to_decimal(quantity, field="quantity")
    return totals


def check_sufficiency(location_id: int, lines, *, lock: bool = False) -> dict[int, LocationStock | None]:
    """
    Validate that the location holds enough of every item before anything moves.

    Quantities for the same item on several lines are summed first. Every
    shortage is collected; the first one names the error and the full list
    goes into details["shortages"].

    Returns the (optionally locked) stock rows keyed by item_id so the
    caller can reuse the WAC it validated against.
    """
    totals = aggregate_quantities(lines)
    rows: dict[int, LocationStock | None] = {}
    shortages = []

    # Lock in item_id order so two multi-line postings cannot deadlock
    for item_id in sorted(totals):
        stock = get_stock(location_id, item_id, lock=lock)
        rows[item_id] = stock
        available = stock.on_hand if stock else ZERO
        if available < totals[item_id]:
            shortages.append({
                "item_id": item_id,
                "requested": str(quantize_qty(totals[item_id])),
                "available": str(quantize_qty(available)),
            })

    if shortages:
        first = shortages[0]
        raise InsufficientStock(
            item_id=first["item_id"],
            location_id=location_id,
            requested=first["requested"],
            available=first["available"],
            shortages=shortages if len(shortages) > 1 else None,
        )
    return rows


def apply_delta(location_id: int, item_id: int, delta_qty, new_wac=None) -> LocationStock:
    """
    Apply a signed quantity change to one stock row.

    - delta < 0: on_hand must stay >= 0, WAC unchanged.
    - delta > 0: caller supplies new_wac from costing_service.apply_receipt.

    The row is created on the first receipt of an item at a location.
    """
    delta = to_decimal(delta_qty, field="delta_qty")
    if delta == ZERO:
        raise ValidationError("Stock delta must be non-zero")

    stock = get_stock(location_id, item_id, lock=True)

    if delta < ZERO:
        available = stock.on_hand if stock else ZERO
        if available + delta < ZERO:
            raise InsufficientStock(
                item_id=item_id,
                location_id=location_id,
                requested=quantize_qty(-delta),
                available=quantize_qty(available),
            )
        stock.on_hand = quantize_qty(available + delta)
        db.session.flush()
        return stock

    if new_wac is None:
        raise ValidationError("new_wac is required for a receipt")
    wac = to_decimal(new_wac, field="new_wac")
    if wac < ZERO:
        raise ValidationError("new_wac must be non-negative")

    if stock is None:
        stock = LocationStock(location_id=location_id, item_id=item_id, on_hand=ZERO, wac=ZERO)
        db.session.add(stock)

    stock.on_hand = quantize_qty((stock.on_hand or ZERO) + delta)
    stock.wac = wac
    db.session.flush()
    return stock


def receive(location_id: int, item_id: int, quantity, unit_price) -> LocationStock:
    """Receipt leg used by deliveries and transfer-in: blend WAC, then add quantity."""
    qty = to_decimal(quantity, field="quantity")
    if qty <= ZERO:
        raise ValidationError("Received quantity must be positive")

    current = get_stock(location_id, item_id, lock=True)
    current_qty = current.on_hand if current else ZERO
    current_wac = current.wac if current else ZERO

    new_wac = costing_service.apply_receipt(current_qty, current_wac, qty, unit_price)
    return apply_delta(location_id, item_id, qty, new_wac)


def get_location_stock(location_id: int, *, include_zero: bool = False) -> list[dict]:
    """On-hand, WAC and value per item at a location."""
    location = db.session.query(Location).filter_by(id=location_id).first()
    if not location:
        raise NotFoundError("location", location_id)

    query = (
        db.session.query(LocationStock)
        .join(Item, Item.id == LocationStock.item_id)
        .filter(LocationStock.location_id == location_id)
    )
    if not include_zero:
        query = query.filter(LocationStock.on_hand > 0)

    rows = []
    for stock in query.order_by(Item.code.asc()).all():
        data = stock.to_dict()
        data["value"] = str(costing_service.stock_value(stock.on_hand, stock.wac))
        rows.append(data)
    return rows


def get_stock_value(location_id: int) -> Decimal:
    """Sum of on_hand x wac across all items at the location, rounded to 2dp."""
    total = ZERO
    for stock in db.session.query(LocationStock).filter_by(location_id=location_id).all():
        total += to_decimal(stock.on_hand) * to_decimal(stock.wac)
    return quantize_money(total)
