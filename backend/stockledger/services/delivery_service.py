# Overview: Delivery processor: receipts, WAC updates and automatic price-variance NCRs.

"""
Delivery posting

DRAFT:
  - Supplier, items and lines are validated, the delivery is stored.
  - No stock effect. invoice_no is optional.

POSTED (one transaction for the whole delivery):
  1. Location's PeriodLocation must be OPEN in the current OPEN period.
  2. invoice_no is required and unique across deliveries.
  3. Every item is active and has a period-locked price.
  4. Per line:
       - capture period_price, price_variance, variance_amount
       - if the unit price differs from the period price: PRICE_VARIANCE NCR
       - blend WAC and add quantity to LocationStock
  5. Header totals, posted_at and a ledger event.

Steps 1-3 run for every line before any row is written. A failure on any
line rolls back the whole delivery, NCRs included.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Delivery, DeliveryLine, Item, Location, Supplier
from ..models.enums import DeliveryStatus
from ..errors import (
    DuplicateEntry,
    MissingPeriodPrices,
    NotFoundError,
    PeriodClosed,
    ValidationError,
)
from ..money import ZERO, quantize_cost, quantize_money, quantize_qty
from ..time_utils import utcnow
from ..validation import coerce_date, coerce_int, optional_text, parse_item_lines
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .ledger_service import append_ledger_event
from .lifecycle_service import ensure_transition
from . import costing_service, ncr_service, period_service, stock_service


def _require_invoice_unique(invoice_no: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Delivery.id).filter(Delivery.invoice_no == invoice_no)
    if exclude_id is not None:
        query = query.filter(Delivery.id != exclude_id)
    if query.first():
        raise DuplicateEntry(
            f"Invoice {invoice_no} has already been recorded",
            {"field": "invoice_no", "invoice_no": invoice_no},
        )


def _run_posting(op, invoice_no: str | None):
    """run_with_retry, mapping a lost race on the invoice index to DuplicateEntry."""
    try:
        return run_with_retry(op)
    except IntegrityError as exc:
        message = str(exc.orig)
        if "uq_deliveries_invoice_no" not in message and "deliveries.invoice_no" not in message:
            raise
        raise DuplicateEntry(
            f"Invoice {invoice_no} has already been recorded" if invoice_no else "Invoice has already been recorded",
            {"field": "invoice_no", "invoice_no": invoice_no},
        ) from exc


def _load_items(lines: list[dict]) -> dict[int, Item]:
    items = {}
    for index, line in enumerate(lines, start=1):
        item_id = line["item_id"]
        if item_id in items:
            continue
        item = db.session.query(Item).filter_by(id=item_id).first()
        if not item:
            raise NotFoundError("item", item_id)
        if not item.is_active:
            raise ValidationError(f"Line {index}: item {item.code} is inactive", {"line": index, "item_id": item_id})
        items[item_id] = item
    return items


def _load_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise NotFoundError("supplier", supplier_id)
    if not supplier.is_active:
        raise ValidationError(f"Supplier {supplier.code} is inactive", {"supplier_id": supplier_id})
    return supplier


def _require_period_prices(period_id: int, items: dict[int, Item]) -> dict:
    prices = period_service.get_period_prices(period_id)
    missing = [
        {"item_id": item.id, "item_code": item.code, "item_name": item.name}
        for item_id, item in items.items()
        if item_id not in prices
    ]
    if missing:
        raise MissingPeriodPrices(
            f"{len(missing)} item(s) have no price for the current period",
            {"period_id": period_id, "items": missing},
        )
    return prices


def _post_lines(delivery: Delivery, items: dict[int, Item], prices: dict, user_id: int | None) -> list:
    """Apply every line of a validated delivery. Returns the NCRs raised."""
    ncrs = []
    total = ZERO
    has_variance = False

    for line in delivery.lines:
        variance = ncr_service.check_price_variance(
            line.unit_price,
            prices[line.item_id].price,
            line.quantity,
        )
        line.period_price = variance.period_price
        line.price_variance = variance.price_variance
        line.variance_amount = variance.variance_amount
        line.line_value = costing_service.line_value(line.quantity, line.unit_price)
        total += line.line_value
        db.session.flush()

        if variance.has_variance:
            has_variance = True
        if variance.exceeds_threshold:
            ncrs.append(
                ncr_service.create_price_variance_ncr_inner(
                    delivery=delivery,
                    line=line,
                    item=items[line.item_id],
                    variance=variance,
                    user_id=user_id,
                )
            )

        stock_service.receive(delivery.location_id, line.item_id, line.quantity, line.unit_price)

    delivery.total_amount = quantize_money(total)
    delivery.has_variance = has_variance
    return ncrs


def _finish_posting(delivery: Delivery, ncrs: list, user_id: int | None) -> None:
    delivery.status = ensure_transition("delivery", delivery.status, DeliveryStatus.POSTED)
    delivery.posted_by_user_id = user_id
    delivery.posted_at = utcnow()

    append_ledger_event(
        location_id=delivery.location_id,
        period_id=delivery.period_id,
        event_type="delivery.posted",
        event_category="deliveries",
        entity_type="delivery",
        entity_id=delivery.id,
        actor_user_id=user_id,
        occurred_at=delivery.posted_at,
        note=delivery.delivery_no,
        payload={
            "supplier_id": delivery.supplier_id,
            "invoice_no": delivery.invoice_no,
            "total_amount": str(delivery.total_amount),
            "lines": len(delivery.lines),
            "ncrs": [ncr.ncr_no for ncr in ncrs],
        },
    )


def post_delivery(
    *,
    location_id: int,
    supplier_id,
    lines,
    invoice_no: str | None = None,
    delivery_date=None,
    delivery_note: str | None = None,
    status: str = DeliveryStatus.POSTED.value,
    period_id: int | None = None,
    user_id: int | None = None,
) -> dict:
    """
    Record a delivery as DRAFT or POSTED.

    Returns {"delivery": Delivery, "ncrs_created": [NCR, ...]}. A price
    variance is not an error: it produces an NCR and the posting succeeds.
    """
    if status not in (DeliveryStatus.DRAFT.value, DeliveryStatus.POSTED.value):
        raise ValidationError("status must be DRAFT or POSTED", {"field": "status"})
    supplier_id = coerce_int(supplier_id, "supplier_id")
    if period_id is not None:
        period_id = coerce_int(period_id, "period_id")
    parsed = parse_item_lines(lines, price_field="unit_price")
    invoice_no = optional_text(invoice_no, max_length=100)
    delivery_note = optional_text(delivery_note)
    posting = status == DeliveryStatus.POSTED.value
    if posting and not invoice_no:
        raise ValidationError("invoice_no is required to post a delivery", {"field": "invoice_no"})
    delivered_on = coerce_date(delivery_date, "delivery_date") if delivery_date not in (None, "") else None

    def _op():
        location = db.session.query(Location).filter_by(id=location_id).first()
        if not location:
            raise NotFoundError("location", location_id)

        current = period_service.require_current_period()
        if period_id is not None and period_id != current.id:
            raise PeriodClosed(
                "Deliveries can only be recorded in the current open period",
                {"period_id": period_id, "current_period_id": current.id},
            )
        period, _ = period_service.require_open_period_location(location_id, current)

        _load_supplier(supplier_id)
        items = _load_items(parsed)
        prices = None
        if posting:
            _require_invoice_unique(invoice_no)
            prices = _require_period_prices(period.id, items)
        elif invoice_no:
            _require_invoice_unique(invoice_no)

        delivery = Delivery(
            delivery_no=next_document_number(document_type="DELIVERY"),
            location_id=location_id,
            period_id=period.id,
            supplier_id=supplier_id,
            invoice_no=invoice_no,
            delivery_note=delivery_note,
            delivery_date=delivered_on or utcnow().date(),
            status=DeliveryStatus.DRAFT.value,
            created_by_user_id=user_id,
        )
        for line in parsed:
            quantity = quantize_qty(line["quantity"])
            unit_price = quantize_cost(line["unit_price"])
            delivery.lines.append(
                DeliveryLine(
                    item_id=line["item_id"],
                    quantity=quantity,
                    unit_price=unit_price,
                    line_value=costing_service.line_value(quantity, unit_price),
                )
            )
        db.session.add(delivery)
        db.session.flush()

        ncrs = []
        if posting:
            ncrs = _post_lines(delivery, items, prices, user_id)
            _finish_posting(delivery, ncrs, user_id)
        else:
            delivery.total_amount = quantize_money(sum((l.line_value for l in delivery.lines), ZERO))
            append_ledger_event(
                location_id=location_id,
                period_id=period.id,
                event_type="delivery.drafted",
                event_category="deliveries",
                entity_type="delivery",
                entity_id=delivery.id,
                actor_user_id=user_id,
                note=delivery.delivery_no,
            )

        db.session.commit()
        if ncrs:
            current_app.logger.info(
                "Delivery %s posted with %s price variance NCR(s)", delivery.delivery_no, len(ncrs)
            )
        return {"delivery": delivery, "ncrs_created": ncrs}

    return _run_posting(_op, invoice_no)


def post_draft_delivery(
    delivery_id: int,
    *,
    invoice_no: str | None = None,
    user_id: int | None = None,
) -> dict:
    """DRAFT -> POSTED under exactly the rules of a direct post."""
    invoice_override = optional_text(invoice_no, max_length=100)

    def _op():
        delivery = lock_for_update(db.session.query(Delivery).filter_by(id=delivery_id)).first()
        if not delivery:
            raise NotFoundError("delivery", delivery_id)
        if delivery.status != DeliveryStatus.DRAFT.value:
            ensure_transition(
                "delivery", delivery.status, DeliveryStatus.POSTED,
                f"Delivery {delivery.delivery_no} is already {delivery.status}",
            )

        if invoice_override:
            delivery.invoice_no = invoice_override
        if not delivery.invoice_no:
            raise ValidationError("invoice_no is required to post a delivery", {"field": "invoice_no"})
        _require_invoice_unique(delivery.invoice_no, exclude_id=delivery.id)

        current = period_service.require_current_period()
        period_service.require_open_period_location(delivery.location_id, current)
        # A draft carried over from an earlier period posts into the current one
        delivery.period_id = current.id

        _load_supplier(delivery.supplier_id)
        items = _load_items([{"item_id": line.item_id} for line in delivery.lines])
        prices = _require_period_prices(current.id, items)

        ncrs = _post_lines(delivery, items, prices, user_id)
        _finish_posting(delivery, ncrs, user_id)
        db.session.commit()
        return {"delivery": delivery, "ncrs_created": ncrs}

    return _run_posting(_op, invoice_override)


def get_delivery(delivery_id: int) -> Delivery:
    delivery = db.session.query(Delivery).filter_by(id=delivery_id).first()
    if not delivery:
        raise NotFoundError("delivery", delivery_id)
    return delivery


def list_deliveries(*, location_id: int | None = None, period_id: int | None = None, status: str | None = None) -> list[Delivery]:
    query = db.session.query(Delivery)
    if location_id is not None:
        query = query.filter(Delivery.location_id == location_id)
    if period_id is not None:
        query = query.filter(Delivery.period_id == period_id)
    if status:
        query = query.filter(Delivery.status == status)
    return query.order_by(Delivery.id.desc()).all()
