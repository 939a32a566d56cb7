# Overview: Consumption and manday cost per location-period, derived from the ledger.

"""
Reconciliation

    consumption = opening + receipts + transfers_in - transfers_out - closing
                  + back_charges - (credits + ncr_credits) + ncr_losses
                  - condemnations + adjustments

    manday_cost = consumption / total_mandays      (None when total_mandays == 0)

Issues are reported alongside but do not enter consumption: an issue
already lowers closing stock, so subtracting it again would count it twice.

Stored vs derived:
- opening, receipts, transfers in/out, issues, closing, ncr_credits and
  ncr_losses are refreshed from the ledger while the period is OPEN.
- back_charges, credits, condemnations and adjustments are manual.
- consumption and manday_cost are never stored.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import (
    Delivery,
    DeliveryLine,
    Issue,
    IssueLine,
    Location,
    Period,
    PeriodLocation,
    Reconciliation,
    Transfer,
    TransferLine,
)
from ..models.enums import DeliveryStatus, PeriodLocationStatus, PeriodStatus, TransferStatus
from ..errors import NotFoundError, PeriodClosed
from ..money import ZERO, quantize_money, to_decimal
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event
from . import manday_service, ncr_service, stock_service


MANUAL_FIELDS = ("back_charges", "credits", "condemnations", "adjustments")

ADJUSTMENT_POLICY = ModelValidationPolicy(
    writable_fields=set(MANUAL_FIELDS),
    non_negative_fields={"back_charges", "credits", "condemnations"},
)


def calculate_consumption(
    *,
    opening,
    receipts,
    transfers_in,
    transfers_out,
    closing,
    back_charges=0,
    credits=0,
    ncr_credits=0,
    ncr_losses=0,
    condemnations=0,
    adjustments=0,
) -> Decimal:
    values = {
        "opening": opening,
        "receipts": receipts,
        "transfers_in": transfers_in,
        "transfers_out": transfers_out,
        "closing": closing,
        "back_charges": back_charges,
        "credits": credits,
        "ncr_credits": ncr_credits,
        "ncr_losses": ncr_losses,
        "condemnations": condemnations,
        "adjustments": adjustments,
    }
    v = {name: to_decimal(value, field=name) for name, value in values.items()}

    consumption = (
        v["opening"]
        + v["receipts"]
        + v["transfers_in"]
        - v["transfers_out"]
        - v["closing"]
        + v["back_charges"]
        - (v["credits"] + v["ncr_credits"])
        + v["ncr_losses"]
        - v["condemnations"]
        + v["adjustments"]
    )
    return quantize_money(consumption)


def calculate_manday_cost(consumption, total_mandays) -> Decimal | None:
    """Consumption per manday, or None when there are no mandays."""
    mandays = to_decimal(total_mandays, field="total_mandays")
    if mandays <= ZERO:
        return None
    return quantize_money(to_decimal(consumption, field="consumption") / mandays)


def _sum(query) -> Decimal:
    return quantize_money(query.scalar() or 0)


def compute_ledger_figures(period: Period, location_id: int) -> dict:
    """Ledger-derived reconciliation inputs for a location within a period."""
    pl = (
        db.session.query(PeriodLocation)
        .filter_by(period_id=period.id, location_id=location_id)
        .first()
    )
    opening = quantize_money(pl.opening_value) if pl else ZERO

    receipts = _sum(
        db.session.query(db.func.coalesce(db.func.sum(DeliveryLine.line_value), 0))
        .join(Delivery, Delivery.id == DeliveryLine.delivery_id)
        .filter(
            Delivery.period_id == period.id,
            Delivery.location_id == location_id,
            Delivery.status == DeliveryStatus.POSTED.value,
        )
    )

    transfer_value = (
        db.session.query(db.func.coalesce(db.func.sum(TransferLine.line_value), 0))
        .join(Transfer, Transfer.id == TransferLine.transfer_id)
        .filter(
            Transfer.period_id == period.id,
            Transfer.status == TransferStatus.COMPLETED.value,
        )
    )
    transfers_in = _sum(transfer_value.filter(Transfer.to_location_id == location_id))
    transfers_out = _sum(transfer_value.filter(Transfer.from_location_id == location_id))

    issues = _sum(
        db.session.query(db.func.coalesce(db.func.sum(IssueLine.line_value), 0))
        .join(Issue, Issue.id == IssueLine.issue_id)
        .filter(Issue.period_id == period.id, Issue.location_id == location_id)
    )

    ncr_credits, ncr_losses = ncr_service.ncr_totals(period.id, location_id)

    return {
        "opening_stock": opening,
        "receipts": receipts,
        "transfers_in": transfers_in,
        "transfers_out": transfers_out,
        "issues": issues,
        "closing_stock": stock_service.get_stock_value(location_id),
        "ncr_credits": ncr_credits,
        "ncr_losses": ncr_losses,
    }


def refresh_reconciliation_inner(
    period: Period,
    location_id: int,
    *,
    user_id: int | None = None,
    create: bool = True,
) -> Reconciliation | None:
    """Rewrite the ledger-derived fields; manual fields are preserved. No commit."""
    rec = (
        db.session.query(Reconciliation)
        .filter_by(period_id=period.id, location_id=location_id)
        .first()
    )
    if rec is None:
        if not create:
            return None
        rec = Reconciliation(period_id=period.id, location_id=location_id)
        for field in MANUAL_FIELDS:
            setattr(rec, field, ZERO)
        db.session.add(rec)

    for field, value in compute_ledger_figures(period, location_id).items():
        setattr(rec, field, value)
    if user_id is not None:
        rec.updated_by_user_id = user_id
    db.session.flush()
    return rec


def _require_editable(period_id: int, location_id: int) -> Period:
    period = db.session.query(Period).filter_by(id=period_id).first()
    if not period:
        raise NotFoundError("period", period_id)
    if not db.session.query(Location).filter_by(id=location_id).first():
        raise NotFoundError("location", location_id)
    if period.status != PeriodStatus.OPEN.value:
        raise PeriodClosed(
            f"Reconciliation can only be edited while the period is OPEN (currently {period.status})",
            {"period_id": period_id, "status": period.status},
        )
    pl = db.session.query(PeriodLocation).filter_by(period_id=period_id, location_id=location_id).first()
    if pl is None or pl.status == PeriodLocationStatus.CLOSED.value:
        raise PeriodClosed(
            "Location is not open in this period",
            {"period_id": period_id, "location_id": location_id},
        )
    return period


def refresh_reconciliation(period_id: int, location_id: int, *, user_id: int | None = None) -> Reconciliation:
    def _op():
        period = _require_editable(period_id, location_id)
        rec = refresh_reconciliation_inner(period, location_id, user_id=user_id)
        db.session.commit()
        return rec

    return run_with_retry(_op)


def save_reconciliation_adjustments(
    period_id: int,
    location_id: int,
    adjustments: dict,
    *,
    user_id: int | None = None,
) -> Reconciliation:
    """
    Upsert the manual fields and refresh the derived figures.

    back_charges, credits and condemnations must be >= 0; adjustments is
    signed. Only while the period is OPEN and the location is not CLOSED.
    """
    patch = validate_payload(
        model=Reconciliation,
        payload=adjustments,
        policy=ADJUSTMENT_POLICY,
        partial=True,
    )

    def _op():
        period = _require_editable(period_id, location_id)
        rec = refresh_reconciliation_inner(period, location_id, user_id=user_id)
        for field, value in patch.items():
            setattr(rec, field, quantize_money(value if value is not None else 0))

        append_ledger_event(
            location_id=location_id,
            period_id=period_id,
            event_type="reconciliation.saved",
            event_category="reconciliations",
            entity_type="reconciliation",
            entity_id=rec.id,
            actor_user_id=user_id,
            payload={field: str(getattr(rec, field)) for field in MANUAL_FIELDS},
        )
        db.session.commit()
        return rec

    return run_with_retry(_op)


def build_breakdown(figures, *, total_mandays: int) -> dict:
    """
    Full reconciliation view from a Reconciliation row or an equivalent dict.

    expected_closing rolls opening forward through every movement and manual
    adjustment; variance is actual closing minus that expectation.
    """
    def get(name):
        value = figures.get(name) if isinstance(figures, dict) else getattr(figures, name)
        return to_decimal(value if value is not None else 0, field=name)

    opening = get("opening_stock")
    receipts = get("receipts")
    transfers_in = get("transfers_in")
    transfers_out = get("transfers_out")
    issues = get("issues")
    closing = get("closing_stock")
    back_charges = get("back_charges")
    credits = get("credits")
    condemnations = get("condemnations")
    adjustments = get("adjustments")
    ncr_credits = get("ncr_credits")
    ncr_losses = get("ncr_losses")

    consumption = calculate_consumption(
        opening=opening,
        receipts=receipts,
        transfers_in=transfers_in,
        transfers_out=transfers_out,
        closing=closing,
        back_charges=back_charges,
        credits=credits,
        ncr_credits=ncr_credits,
        ncr_losses=ncr_losses,
        condemnations=condemnations,
        adjustments=adjustments,
    )
    manday_cost = calculate_manday_cost(consumption, total_mandays)

    total_credits = credits + ncr_credits
    total_condemnations = condemnations + ncr_losses
    expected_closing = quantize_money(
        opening + receipts + transfers_in - transfers_out - issues
        + adjustments - back_charges + total_credits - total_condemnations
    )

    def s(value):
        return str(quantize_money(value))

    return {
        "opening_stock": s(opening),
        "receipts": s(receipts),
        "transfers_in": s(transfers_in),
        "transfers_out": s(transfers_out),
        "issues": s(issues),
        "closing_stock": s(closing),
        "adjustments": s(adjustments),
        "back_charges": s(back_charges),
        "credits": s(credits),
        "ncr_credits": s(ncr_credits),
        "total_credits": s(total_credits),
        "condemnations": s(condemnations),
        "ncr_losses": s(ncr_losses),
        "total_condemnations": s(total_condemnations),
        "consumption": str(consumption),
        "total_mandays": total_mandays,
        "manday_cost": str(manday_cost) if manday_cost is not None else None,
        "expected_closing": str(expected_closing),
        "variance": s(closing - expected_closing),
    }


def get_reconciliation(period_id: int, location_id: int) -> dict:
    """
    Stored figures plus consumption, manday cost, NCR summary and warnings.

    While the period is live and no row exists yet, figures are computed on
    the fly and nothing is written (exists=False).
    """
    period = db.session.query(Period).filter_by(id=period_id).first()
    if not period:
        raise NotFoundError("period", period_id)
    if not db.session.query(Location).filter_by(id=location_id).first():
        raise NotFoundError("location", location_id)

    rec = (
        db.session.query(Reconciliation)
        .filter_by(period_id=period_id, location_id=location_id)
        .first()
    )

    if rec is not None:
        figures = rec
        stored = rec.to_dict()
    else:
        figures = compute_ledger_figures(period, location_id)
        for field in MANUAL_FIELDS:
            figures[field] = ZERO
        stored = None

    total_mandays = manday_service.get_total_mandays(period_id, location_id)
    open_count = ncr_service.count_open_ncrs(period_id, location_id)

    warnings = []
    if open_count:
        warnings.append({
            "code": "OPEN_NCRS",
            "message": f"{open_count} NCR(s) are still OPEN for this location",
            "count": open_count,
        })
    if total_mandays == 0:
        warnings.append({"code": "NO_MANDAYS", "message": "No mandays recorded; manday cost is undefined"})

    return {
        "period_id": period_id,
        "location_id": location_id,
        "period_status": period.status,
        "exists": rec is not None,
        "reconciliation": stored,
        "breakdown": build_breakdown(figures, total_mandays=total_mandays),
        "ncr_summary": ncr_service.summarize_ncrs(period_id, location_id),
        "warnings": warnings,
    }
