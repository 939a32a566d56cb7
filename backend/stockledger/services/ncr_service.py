# Overview: Price-variance detection and non-conformance report (NCR) lifecycle.

"""
NCR rules

- PRICE_VARIANCE NCRs are created only by the delivery processor, inside the
  posting transaction, when a line's unit price differs from the
  period-locked price. A variance is a business event, never an error.
- Tolerance is configurable (PRICE_VARIANCE_THRESHOLD_PERCENT /
  PRICE_VARIANCE_THRESHOLD_AMOUNT). Both default to 0, meaning any nonzero
  difference raises an NCR. With a threshold set, exceeding either one is
  enough.
- NCR.value is always the absolute amount. The signed variance stays on the
  delivery line.
- Reconciliation buckets:
    credits: CREDITED, or RESOLVED with financial_impact CREDIT
    losses:  REJECTED, or RESOLVED with financial_impact LOSS
    pending: SENT (excluded from both totals)
    open:    OPEN (surfaced as a warning at close, never blocking)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import NCR, NCRLine, Delivery, DeliveryLine, Item, Location, Period
from ..models.enums import FinancialImpact, NCRStatus, NCRType, PeriodStatus
from ..errors import NotFoundError, ValidationError
from ..money import ZERO, quantize_cost, quantize_money, to_decimal
from ..time_utils import utcnow
from ..validation import coerce_int, parse_item_lines
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .ledger_service import append_ledger_event
from .lifecycle_service import ensure_transition


SETTLED_STATUSES = {NCRStatus.CREDITED.value, NCRStatus.REJECTED.value, NCRStatus.RESOLVED.value}


@dataclass(frozen=True)
class PriceVariance:
    period_price: Decimal
    unit_price: Decimal
    quantity: Decimal
    price_variance: Decimal  # unit_price - period_price, signed
    variance_amount: Decimal  # quantity * price_variance, signed
    variance_percent: Decimal
    exceeds_threshold: bool

    @property
    def has_variance(self) -> bool:
        return self.price_variance != ZERO


def check_price_variance(
    unit_price,
    period_price,
    quantity,
    *,
    threshold_percent=None,
    threshold_amount=None,
) -> PriceVariance:
    """
    Compare a delivered price with the period-locked price.

    variance_percent is relative to the period price; a zero period price
    with a positive delivered price counts as 100%.
    """
    actual = to_decimal(unit_price, field="unit_price")
    expected = to_decimal(period_price, field="period_price")
    qty = to_decimal(quantity, field="quantity")

    if threshold_percent is None:
        threshold_percent = current_app.config.get("PRICE_VARIANCE_THRESHOLD_PERCENT", 0)
    if threshold_amount is None:
        threshold_amount = current_app.config.get("PRICE_VARIANCE_THRESHOLD_AMOUNT", 0)
    pct_limit = to_decimal(threshold_percent, field="threshold_percent")
    amount_limit = to_decimal(threshold_amount, field="threshold_amount")

    variance = actual - expected
    amount = variance * qty
    if expected > ZERO:
        percent = variance / expected * Decimal("100")
    else:
        percent = Decimal("100") if actual > ZERO else ZERO

    has_pct = pct_limit > ZERO
    has_amount = amount_limit > ZERO
    if variance == ZERO:
        exceeds = False
    elif not has_pct and not has_amount:
        exceeds = True
    else:
        exceeds = (has_pct and abs(percent) > pct_limit) or (has_amount and abs(amount) > amount_limit)

    return PriceVariance(
        period_price=quantize_cost(expected),
        unit_price=quantize_cost(actual),
        quantity=qty,
        price_variance=quantize_cost(variance),
        variance_amount=quantize_money(amount),
        variance_percent=percent.quantize(Decimal("0.01")),
        exceeds_threshold=exceeds,
    )


def _variance_reason(item: Item, variance: PriceVariance, currency: str) -> str:
    direction = "increase" if variance.price_variance > ZERO else "decrease"
    return (
        "Automatic NCR for price variance detected on delivery.\n\n"
        f"Item: {item.name} ({item.code})\n"
        f"Quantity: {variance.quantity}\n"
        f"Expected Price (Period): {currency} {variance.period_price}\n"
        f"Actual Price (Delivery): {currency} {variance.unit_price}\n"
        f"Variance: {currency} {variance.price_variance} ({variance.variance_percent}% {direction})\n"
        f"Total Variance Amount: {currency} {variance.variance_amount}"
    )


def create_price_variance_ncr_inner(
    *,
    delivery: Delivery,
    line: DeliveryLine,
    item: Item,
    variance: PriceVariance,
    user_id: int | None = None,
) -> NCR:
    """Create the automatic NCR for one delivery line. Caller owns the transaction."""
    ncr = NCR(
        ncr_no=next_document_number(document_type="NCR"),
        location_id=delivery.location_id,
        period_id=delivery.period_id,
        ncr_type=NCRType.PRICE_VARIANCE.value,
        auto_generated=True,
        delivery_id=delivery.id,
        delivery_line_id=line.id,
        reason=_variance_reason(item, variance, current_app.config.get("CURRENCY", "SAR")),
        quantity=variance.quantity,
        value=abs(variance.variance_amount),
        status=NCRStatus.OPEN.value,
        created_by_user_id=user_id,
    )
    db.session.add(ncr)
    db.session.flush()

    line.ncr_id = ncr.id

    append_ledger_event(
        location_id=delivery.location_id,
        period_id=delivery.period_id,
        event_type="ncr.created",
        event_category="ncrs",
        entity_type="ncr",
        entity_id=ncr.id,
        actor_user_id=user_id,
        note=f"{ncr.ncr_no} price variance on {delivery.delivery_no}",
        payload={
            "item_id": item.id,
            "period_price": str(variance.period_price),
            "unit_price": str(variance.unit_price),
            "variance_amount": str(variance.variance_amount),
        },
    )
    current_app.logger.info(
        "Price variance NCR %s raised for delivery %s item %s (%s)",
        ncr.ncr_no, delivery.delivery_no, item.code, variance.variance_amount,
    )
    return ncr


def create_manual_ncr(
    *,
    location_id: int,
    reason: str,
    value=None,
    quantity=None,
    delivery_id: int | None = None,
    delivery_line_id: int | None = None,
    lines: list[dict] | None = None,
    user_id: int | None = None,
) -> NCR:
    """
    Raise a MANUAL NCR.

    value is either given explicitly or summed from lines
    [{item_id, quantity, unit_value}]. The NCR is attributed to the linked
    delivery's period, or to the current OPEN period.
    """
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required", {"field": "reason"})
    if delivery_id is not None:
        delivery_id = coerce_int(delivery_id, "delivery_id")
    if delivery_line_id is not None:
        delivery_line_id = coerce_int(delivery_line_id, "delivery_line_id")
    if lines is not None and not isinstance(lines, list):
        raise ValidationError("lines must be a list", {"field": "lines"})
    parsed_lines = parse_item_lines(lines, price_field="unit_value") if lines else []

    def _op():
        location = db.session.query(Location).filter_by(id=location_id).first()
        if not location:
            raise NotFoundError("location", location_id)

        period_id = None
        delivery = None
        if delivery_id is not None:
            delivery = db.session.query(Delivery).filter_by(id=delivery_id).first()
            if not delivery:
                raise NotFoundError("delivery", delivery_id)
            if delivery.location_id != location_id:
                raise ValidationError(
                    "Delivery does not belong to this location",
                    {"delivery_id": delivery_id, "location_id": location_id},
                )
            period_id = delivery.period_id

        if delivery_line_id is not None:
            if delivery is None:
                raise ValidationError("delivery_id is required when delivery_line_id is given")
            line = db.session.query(DeliveryLine).filter_by(id=delivery_line_id).first()
            if not line or line.delivery_id != delivery.id:
                raise ValidationError(
                    "Delivery line does not belong to this delivery",
                    {"delivery_line_id": delivery_line_id},
                )

        if period_id is None:
            current = (
                db.session.query(Period)
                .filter(Period.status == PeriodStatus.OPEN.value)
                .order_by(Period.start_date.desc())
                .first()
            )
            period_id = current.id if current else None

        ncr_lines = []
        lines_total = ZERO
        for raw in parsed_lines:
            item = db.session.query(Item).filter_by(id=raw["item_id"]).first()
            if not item:
                raise NotFoundError("item", raw["item_id"])
            qty = raw["quantity"]
            unit_value = raw["unit_value"]
            line_value = quantize_money(qty * unit_value)
            lines_total += line_value
            ncr_lines.append(NCRLine(item_id=item.id, quantity=qty, unit_value=unit_value, line_value=line_value))

        if value is not None:
            try:
                ncr_value = quantize_money(value)
            except ValueError as exc:
                raise ValidationError(str(exc), {"field": "value"})
        else:
            ncr_value = quantize_money(lines_total)
        if ncr_value <= ZERO:
            raise ValidationError("NCR value must be greater than 0", {"field": "value"})

        ncr_quantity = None
        if quantity is not None:
            try:
                ncr_quantity = to_decimal(quantity, field="quantity")
            except ValueError as exc:
                raise ValidationError(str(exc), {"field": "quantity"})

        ncr = NCR(
            ncr_no=next_document_number(document_type="NCR"),
            location_id=location_id,
            period_id=period_id,
            ncr_type=NCRType.MANUAL.value,
            auto_generated=False,
            delivery_id=delivery_id,
            delivery_line_id=delivery_line_id,
            reason=str(reason).strip(),
            quantity=ncr_quantity,
            value=ncr_value,
            status=NCRStatus.OPEN.value,
            created_by_user_id=user_id,
        )
        ncr.lines = ncr_lines
        db.session.add(ncr)
        db.session.flush()

        append_ledger_event(
            location_id=location_id,
            period_id=period_id,
            event_type="ncr.created",
            event_category="ncrs",
            entity_type="ncr",
            entity_id=ncr.id,
            actor_user_id=user_id,
            note=ncr.ncr_no,
            payload={"type": ncr.ncr_type, "value": str(ncr_value)},
        )

        db.session.commit()
        return ncr

    return run_with_retry(_op)


def update_ncr_status(
    ncr_id: int,
    *,
    status: str,
    resolution_type: str | None = None,
    financial_impact: str | None = None,
    resolution_notes: str | None = None,
    user_id: int | None = None,
) -> NCR:
    """
    Move an NCR along OPEN -> SENT -> CREDITED|REJECTED or OPEN -> RESOLVED.

    RESOLVED needs both resolution_type and financial_impact. Settled
    statuses stamp resolved_at.
    """
    def _op():
        ncr = lock_for_update(db.session.query(NCR).filter_by(id=ncr_id)).first()
        if not ncr:
            raise NotFoundError("ncr", ncr_id)

        previous = ncr.status
        new_status = ensure_transition("ncr", previous, status)

        if new_status == NCRStatus.RESOLVED.value:
            if not resolution_type or not str(resolution_type).strip():
                raise ValidationError("resolution_type is required to resolve an NCR", {"field": "resolution_type"})
            if financial_impact is None:
                raise ValidationError("financial_impact is required to resolve an NCR", {"field": "financial_impact"})
            try:
                impact = FinancialImpact(financial_impact)
            except ValueError:
                raise ValidationError(
                    "financial_impact must be one of NONE, CREDIT, LOSS",
                    {"field": "financial_impact"},
                )
            ncr.resolution_type = str(resolution_type).strip()
            ncr.financial_impact = impact.value

        if resolution_notes is not None:
            ncr.resolution_notes = resolution_notes

        ncr.status = new_status
        if new_status in SETTLED_STATUSES:
            ncr.resolved_at = utcnow()

        append_ledger_event(
            location_id=ncr.location_id,
            period_id=ncr.period_id,
            event_type="ncr.status_changed",
            event_category="ncrs",
            entity_type="ncr",
            entity_id=ncr.id,
            actor_user_id=user_id,
            note=f"{ncr.ncr_no} {previous} -> {new_status}",
            payload={"from": previous, "to": new_status, "financial_impact": ncr.financial_impact},
        )

        db.session.commit()
        return ncr

    return run_with_retry(_op)


def get_ncr(ncr_id: int) -> NCR:
    ncr = db.session.query(NCR).filter_by(id=ncr_id).first()
    if not ncr:
        raise NotFoundError("ncr", ncr_id)
    return ncr


def _credit_filter():
    return or_(
        NCR.status == NCRStatus.CREDITED.value,
        and_(NCR.status == NCRStatus.RESOLVED.value, NCR.financial_impact == FinancialImpact.CREDIT.value),
    )


def _loss_filter():
    return or_(
        NCR.status == NCRStatus.REJECTED.value,
        and_(NCR.status == NCRStatus.RESOLVED.value, NCR.financial_impact == FinancialImpact.LOSS.value),
    )


def _summary_row(ncr: NCR) -> dict:
    return {
        "id": ncr.id,
        "ncr_no": ncr.ncr_no,
        "type": ncr.ncr_type,
        "status": ncr.status,
        "value": str(ncr.value),
        "delivery_no": ncr.delivery.delivery_no if ncr.delivery else None,
        "reason": ncr.reason,
    }


def _bucket(ncrs: list[NCR], with_total: bool = True) -> dict:
    bucket = {"count": len(ncrs), "ncrs": [_summary_row(n) for n in ncrs]}
    if with_total:
        bucket["total"] = str(quantize_money(sum((to_decimal(n.value) for n in ncrs), ZERO)))
    return bucket


def ncr_totals(period_id: int, location_id: int) -> tuple[Decimal, Decimal]:
    """(credits, losses) for a location-period, rounded to 2dp."""
    base = db.session.query(db.func.coalesce(db.func.sum(NCR.value), 0)).filter(
        NCR.period_id == period_id,
        NCR.location_id == location_id,
    )
    credits = base.filter(_credit_filter()).scalar()
    losses = base.filter(_loss_filter()).scalar()
    return quantize_money(credits or 0), quantize_money(losses or 0)


def summarize_ncrs(period_id: int, location_id: int) -> dict:
    """Credited / losses / pending / open NCRs attributed to a location-period."""
    base = db.session.query(NCR).filter(
        NCR.period_id == period_id,
        NCR.location_id == location_id,
    )
    credited = base.filter(_credit_filter()).order_by(NCR.id).all()
    losses = base.filter(_loss_filter()).order_by(NCR.id).all()
    pending = base.filter(NCR.status == NCRStatus.SENT.value).order_by(NCR.id).all()
    open_ncrs = base.filter(NCR.status == NCRStatus.OPEN.value).order_by(NCR.id).all()

    return {
        "credited": _bucket(credited),
        "losses": _bucket(losses),
        "pending": _bucket(pending),
        "open": _bucket(open_ncrs, with_total=False),
    }


def count_open_ncrs(period_id: int, location_id: int) -> int:
    return (
        db.session.query(db.func.count(NCR.id))
        .filter(
            NCR.period_id == period_id,
            NCR.location_id == location_id,
            NCR.status == NCRStatus.OPEN.value,
        )
        .scalar()
        or 0
    )
