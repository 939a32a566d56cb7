# Overview: Period lifecycle: prices, per-location readiness, atomic close and roll-forward.

"""
Period lifecycle

================================================================================
PERIOD:           DRAFT -> OPEN -> PENDING_CLOSE -> APPROVED -> CLOSED
PERIOD LOCATION:  OPEN -> READY -> CLOSED
================================================================================

RULES:
1. "Current period" is always a query for status OPEN. Only one period may
   be OPEN at a time.
2. Item prices are writable only while the period is DRAFT. set_period_prices
   is the only write path and it checks the status itself.
3. A location can be marked READY only once a Reconciliation row exists.
4. Close is requested only when every location is READY. The request creates
   a PERIOD_CLOSE approval and moves the period to PENDING_CLOSE.
5. Approving the close is one transaction over every location: refresh the
   reconciliation, snapshot stock, close the PeriodLocation. The period only
   becomes CLOSED after every location has been written. Any failure rolls
   the whole close back.
6. Rejecting the close returns the period to OPEN; locations stay READY.
7. Snapshots are written once, at close, and never touched again.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import and_

from ..extensions import db
from ..models import (
    Approval,
    Item,
    ItemPrice,
    Location,
    LocationStock,
    Period,
    PeriodLocation,
    Reconciliation,
)
from ..models.enums import (
    ApprovalEntityType,
    ApprovalStatus,
    PeriodLocationStatus,
    PeriodStatus,
)
from ..errors import (
    BusinessRuleViolation,
    DuplicateEntry,
    InvalidStateTransition,
    LocationsNotReady,
    NoOpenPeriod,
    NotFoundError,
    PeriodClosed,
    PriceLocked,
    ReconciliationNotCompleted,
    ValidationError,
)
from ..money import ZERO, quantize_cost, quantize_money, to_decimal
from ..time_utils import last_day_of_month, month_label, utcnow, to_utc_z
from ..validation import coerce_date, coerce_decimal, coerce_int, require_text
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .lifecycle_service import ensure_transition
from . import costing_service, manday_service, ncr_service, reconciliation_service


# =============================================================================
# Queries
# =============================================================================

def get_period(period_id: int) -> Period:
    period = db.session.query(Period).filter_by(id=period_id).first()
    if not period:
        raise NotFoundError("period", period_id)
    return period


def list_periods(status: str | None = None) -> list[Period]:
    query = db.session.query(Period)
    if status:
        query = query.filter(Period.status == status)
    return query.order_by(Period.start_date.desc()).all()


def get_current_period() -> Period | None:
    """The OPEN period, recomputed on every call."""
    return (
        db.session.query(Period)
        .filter(Period.status == PeriodStatus.OPEN.value)
        .order_by(Period.start_date.desc())
        .first()
    )


def require_current_period() -> Period:
    period = get_current_period()
    if not period:
        raise NoOpenPeriod("No open period. Open a period before posting transactions.")
    return period


def require_open_period_location(location_id: int, period: Period | None = None) -> tuple[Period, PeriodLocation]:
    """
    Gate for every stock mutation: the period is OPEN and the location's
    PeriodLocation is OPEN (not READY, not CLOSED).
    """
    if period is None:
        period = require_current_period()
    elif period.status != PeriodStatus.OPEN.value:
        raise PeriodClosed(
            f"Period {period.name} is {period.status}",
            {"period_id": period.id, "status": period.status},
        )

    pl = (
        db.session.query(PeriodLocation)
        .filter_by(period_id=period.id, location_id=location_id)
        .first()
    )
    if pl is None or pl.status != PeriodLocationStatus.OPEN.value:
        raise PeriodClosed(
            "Location is not open for transactions in the current period",
            {
                "period_id": period.id,
                "location_id": location_id,
                "status": pl.status if pl else None,
            },
        )
    return period, pl


def get_period_prices(period_id: int) -> dict[int, ItemPrice]:
    prices = db.session.query(ItemPrice).filter_by(period_id=period_id).all()
    return {price.item_id: price for price in prices}


def _latest_closed_period(before: date | None = None) -> Period | None:
    query = db.session.query(Period).filter(Period.status == PeriodStatus.CLOSED.value)
    if before is not None:
        query = query.filter(Period.end_date < before)
    return query.order_by(Period.end_date.desc()).first()


def _closing_values(period: Period | None) -> dict[int, object]:
    if period is None:
        return {}
    return {
        pl.location_id: pl.closing_value
        for pl in db.session.query(PeriodLocation).filter_by(period_id=period.id).all()
    }


def _ensure_period_locations(
    period: Period,
    source: Period | None,
    *,
    refresh_opening: bool = False,
) -> list[PeriodLocation]:
    """
    One PeriodLocation per active location; opening = source closing value or 0.

    With refresh_opening, rows that already exist have their opening value
    recomputed from source as well.
    """
    closing = _closing_values(source)
    existing = {
        pl.location_id: pl
        for pl in db.session.query(PeriodLocation).filter_by(period_id=period.id).all()
    }
    if refresh_opening:
        for location_id, pl in existing.items():
            opening = closing.get(location_id)
            pl.opening_value = quantize_money(opening) if opening is not None else ZERO
    created = []
    for location in (
        db.session.query(Location).filter_by(is_active=True).order_by(Location.id.asc()).all()
    ):
        if location.id in existing:
            continue
        opening = closing.get(location.id)
        pl = PeriodLocation(
            period_id=period.id,
            location_id=location.id,
            status=PeriodLocationStatus.OPEN.value,
            opening_value=quantize_money(opening) if opening is not None else ZERO,
        )
        db.session.add(pl)
        created.append(pl)
    db.session.flush()
    return created


def _check_overlap(start_date: date, end_date: date, exclude_id: int | None = None) -> None:
    query = db.session.query(Period).filter(
        and_(Period.start_date <= end_date, Period.end_date >= start_date)
    )
    if exclude_id is not None:
        query = query.filter(Period.id != exclude_id)
    clash = query.first()
    if clash:
        raise DuplicateEntry(
            f"Period dates overlap with {clash.name}",
            {
                "period_id": clash.id,
                "start_date": clash.start_date.isoformat(),
                "end_date": clash.end_date.isoformat(),
            },
        )


# =============================================================================
# Creation and opening
# =============================================================================

def _create_period_inner(*, name: str, start_date: date, end_date: date, user_id: int | None) -> Period:
    if end_date < start_date:
        raise ValidationError(
            "end_date must be on or after start_date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    _check_overlap(start_date, end_date)

    period = Period(
        name=name,
        start_date=start_date,
        end_date=end_date,
        status=PeriodStatus.DRAFT.value,
        created_by_user_id=user_id,
    )
    db.session.add(period)
    db.session.flush()

    _ensure_period_locations(period, _latest_closed_period(before=start_date))
    return period


def create_period(*, name: str, start_date, end_date, user_id: int | None = None) -> Period:
    """Create a DRAFT period with a PeriodLocation per active location."""
    name = require_text(name, "name", max_length=100)
    start = coerce_date(start_date, "start_date")
    end = coerce_date(end_date, "end_date")

    def _op():
        period = _create_period_inner(name=name, start_date=start, end_date=end, user_id=user_id)
        append_ledger_event(
            period_id=period.id,
            event_type="period.created",
            event_category="periods",
            entity_type="period",
            entity_id=period.id,
            actor_user_id=user_id,
            note=period.name,
        )
        db.session.commit()
        return period

    return run_with_retry(_op)


def open_period(period_id: int, *, user_id: int | None = None) -> Period:
    """
    DRAFT -> OPEN. Prices lock from here on.

    Opening values are taken from the latest CLOSED period as it stands
    now, so a period created before its predecessor closed still carries
    the predecessor's closing values. Locations activated since creation
    get their PeriodLocation here.
    """
    def _op():
        period = lock_for_update(db.session.query(Period).filter_by(id=period_id)).first()
        if not period:
            raise NotFoundError("period", period_id)

        other = get_current_period()
        if other is not None and other.id != period.id:
            raise DuplicateEntry(
                f"Period {other.name} is already open",
                {"open_period_id": other.id},
            )

        period.status = ensure_transition("period", period.status, PeriodStatus.OPEN)
        period.opened_at = utcnow()
        _ensure_period_locations(
            period,
            _latest_closed_period(before=period.start_date),
            refresh_opening=True,
        )

        append_ledger_event(
            period_id=period.id,
            event_type="period.opened",
            event_category="periods",
            entity_type="period",
            entity_id=period.id,
            actor_user_id=user_id,
            occurred_at=period.opened_at,
            note=period.name,
        )
        db.session.commit()
        current_app.logger.info("Period %s (%s) opened", period.id, period.name)
        return period

    return run_with_retry(_op)


# =============================================================================
# Prices
# =============================================================================

def _require_draft_for_prices(period: Period) -> None:
    if period.status != PeriodStatus.DRAFT.value:
        raise PriceLocked(
            f"Prices are locked: period {period.name} is {period.status}",
            {"period_id": period.id, "status": period.status},
        )


def set_period_prices(period_id: int, prices: list[dict], *, user_id: int | None = None) -> list[ItemPrice]:
    """
    Upsert [{item_id, price}] for a DRAFT period.

    Fails with PriceLocked (code PERIOD_CLOSED) once the period has left
    DRAFT, whoever the caller is.
    """
    if not isinstance(prices, list) or not prices:
        raise ValidationError("At least one price is required", {"field": "prices"})

    parsed = []
    for index, raw in enumerate(prices, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Price {index} must be an object", {"line": index})
        item_id = coerce_int(raw.get("item_id"), f"prices[{index}].item_id")
        price = coerce_decimal(raw.get("price"), f"prices[{index}].price", non_negative=True)
        parsed.append((item_id, quantize_cost(price)))

    def _op():
        period = lock_for_update(db.session.query(Period).filter_by(id=period_id)).first()
        if not period:
            raise NotFoundError("period", period_id)
        _require_draft_for_prices(period)

        existing = get_period_prices(period_id)
        now = utcnow()
        currency = current_app.config.get("CURRENCY", "SAR")
        saved = []
        for item_id, price in parsed:
            if not db.session.query(Item).filter_by(id=item_id).first():
                raise NotFoundError("item", item_id)
            row = existing.get(item_id)
            if row is None:
                row = ItemPrice(item_id=item_id, period_id=period_id, currency=currency)
                db.session.add(row)
                existing[item_id] = row
            row.price = price
            row.set_by_user_id = user_id
            row.set_at = now
            saved.append(row)

        db.session.flush()
        append_ledger_event(
            period_id=period_id,
            event_type="period.prices_set",
            event_category="periods",
            entity_type="period",
            entity_id=period_id,
            actor_user_id=user_id,
            payload={"count": len(saved)},
        )
        db.session.commit()
        return saved

    return run_with_retry(_op)


def _copy_prices_inner(target: Period, source: Period, user_id: int | None) -> int:
    existing = get_period_prices(target.id)
    now = utcnow()
    copied = 0
    for source_price in db.session.query(ItemPrice).filter_by(period_id=source.id).all():
        row = existing.get(source_price.item_id)
        if row is None:
            row = ItemPrice(item_id=source_price.item_id, period_id=target.id)
            db.session.add(row)
        row.price = source_price.price
        row.currency = source_price.currency
        row.set_by_user_id = user_id
        row.set_at = now
        copied += 1
    db.session.flush()
    return copied


def copy_prices_from_previous(
    period_id: int,
    *,
    source_period_id: int | None = None,
    user_id: int | None = None,
) -> int:
    """Copy prices into a DRAFT period from the given or latest CLOSED period."""
    def _op():
        period = lock_for_update(db.session.query(Period).filter_by(id=period_id)).first()
        if not period:
            raise NotFoundError("period", period_id)
        _require_draft_for_prices(period)

        if source_period_id is not None:
            source = get_period(source_period_id)
        else:
            source = _latest_closed_period(before=period.start_date)
        if source is None:
            raise BusinessRuleViolation(
                "No closed period to copy prices from",
                {"period_id": period_id},
                code="NO_SOURCE_PERIOD",
            )

        copied = _copy_prices_inner(period, source, user_id)
        append_ledger_event(
            period_id=period_id,
            event_type="period.prices_copied",
            event_category="periods",
            entity_type="period",
            entity_id=period_id,
            actor_user_id=user_id,
            payload={"source_period_id": source.id, "count": copied},
        )
        db.session.commit()
        return copied

    return run_with_retry(_op)


# =============================================================================
# Location readiness
# =============================================================================

def _locked_period_location(period_id: int, location_id: int) -> tuple[Period, PeriodLocation]:
    period = get_period(period_id)
    pl = lock_for_update(
        db.session.query(PeriodLocation).filter_by(period_id=period_id, location_id=location_id)
    ).first()
    if not pl:
        raise NotFoundError("period_location", f"{period_id}/{location_id}")
    return period, pl


def mark_location_ready(period_id: int, location_id: int, *, user_id: int | None = None) -> PeriodLocation:
    """OPEN -> READY. Needs an OPEN period and an existing Reconciliation."""
    def _op():
        period, pl = _locked_period_location(period_id, location_id)
        if period.status != PeriodStatus.OPEN.value:
            raise PeriodClosed(
                f"Locations can only be marked ready while the period is OPEN (currently {period.status})",
                {"period_id": period_id, "status": period.status},
            )

        has_reconciliation = (
            db.session.query(Reconciliation.id)
            .filter_by(period_id=period_id, location_id=location_id)
            .first()
        )
        if not has_reconciliation:
            raise ReconciliationNotCompleted(
                "Complete the reconciliation for this location before marking it ready",
                {"period_id": period_id, "location_id": location_id},
            )

        pl.status = ensure_transition("period_location", pl.status, PeriodLocationStatus.READY)
        pl.ready_at = utcnow()

        append_ledger_event(
            location_id=location_id,
            period_id=period_id,
            event_type="period.location_ready",
            event_category="periods",
            entity_type="period",
            entity_id=period_id,
            actor_user_id=user_id,
            occurred_at=pl.ready_at,
        )
        db.session.commit()
        return pl

    return run_with_retry(_op)


def mark_location_unready(period_id: int, location_id: int, *, user_id: int | None = None) -> PeriodLocation:
    """READY -> OPEN while the period is still OPEN."""
    def _op():
        period, pl = _locked_period_location(period_id, location_id)
        if period.status != PeriodStatus.OPEN.value:
            raise PeriodClosed(
                f"Locations can only be reopened while the period is OPEN (currently {period.status})",
                {"period_id": period_id, "status": period.status},
            )

        pl.status = ensure_transition("period_location", pl.status, PeriodLocationStatus.OPEN)
        pl.ready_at = None

        append_ledger_event(
            location_id=location_id,
            period_id=period_id,
            event_type="period.location_unready",
            event_category="periods",
            entity_type="period",
            entity_id=period_id,
            actor_user_id=user_id,
        )
        db.session.commit()
        return pl

    return run_with_retry(_op)


# =============================================================================
# Close
# =============================================================================

def _not_ready(period: Period) -> list[dict]:
    return [
        {
            "location_id": pl.location_id,
            "location_code": pl.location.code if pl.location else None,
            "location_name": pl.location.name if pl.location else None,
            "status": pl.status,
        }
        for pl in period.period_locations
        if pl.status != PeriodLocationStatus.READY.value
    ]


def request_period_close(period_id: int, *, user_id: int | None = None) -> Approval:
    """
    Ask for the period to be closed.

    Every location must be READY (LOCATIONS_NOT_READY otherwise, nothing
    written). Creates the PERIOD_CLOSE approval and moves the period to
    PENDING_CLOSE.
    """
    from . import approval_service

    def _op():
        period = lock_for_update(db.session.query(Period).filter_by(id=period_id)).first()
        if not period:
            raise NotFoundError("period", period_id)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidStateTransition(
                "period", period.status, PeriodStatus.PENDING_CLOSE.value,
                f"Period must be OPEN to request close (currently {period.status})",
            )

        if not period.period_locations:
            raise LocationsNotReady("Period has no locations", {"period_id": period_id, "locations": []})
        not_ready = _not_ready(period)
        if not_ready:
            raise LocationsNotReady(
                f"{len(not_ready)} location(s) are not ready",
                {"period_id": period_id, "locations": not_ready},
            )

        approval = approval_service.create_approval_inner(
            entity_type=ApprovalEntityType.PERIOD_CLOSE.value,
            entity_id=period.id,
            user_id=user_id,
        )
        period.status = ensure_transition("period", period.status, PeriodStatus.PENDING_CLOSE)
        period.approval_id = approval.id

        append_ledger_event(
            period_id=period.id,
            event_type="period.close_requested",
            event_category="periods",
            entity_type="period",
            entity_id=period.id,
            actor_user_id=user_id,
            payload={"approval_id": approval.id},
        )
        db.session.commit()
        return approval

    return run_with_retry(_op)


def _stock_snapshot(location: Location, period: Period, breakdown: dict | None, taken_at) -> dict:
    rows = (
        db.session.query(LocationStock)
        .join(Item, Item.id == LocationStock.item_id)
        .filter(LocationStock.location_id == location.id, LocationStock.on_hand > 0)
        .order_by(Item.code.asc())
        .all()
    )
    items = []
    total = ZERO
    for stock in rows:
        value = costing_service.stock_value(stock.on_hand, stock.wac)
        total += value
        items.append({
            "item_id": stock.item_id,
            "item_code": stock.item.code,
            "item_name": stock.item.name,
            "item_unit": stock.item.unit,
            "quantity": str(stock.on_hand),
            "wac": str(stock.wac),
            "value": str(value),
        })

    return {
        "period_id": period.id,
        "location_id": location.id,
        "location_code": location.code,
        "location_name": location.name,
        "total_value": str(quantize_money(total)),
        "item_count": len(items),
        "items": items,
        "reconciliation": breakdown,
        "open_ncr_count": ncr_service.count_open_ncrs(period.id, location.id),
        "snapshot_timestamp": to_utc_z(taken_at),
    }


def close_period_inner(period_id: int, *, approval: Approval, user_id: int | None = None, comment: str | None = None) -> Period:
    """
    PERIOD_CLOSE approval handler. Runs inside the approval transaction.

    For every location: refresh the reconciliation, write the snapshot and
    closing value, close the PeriodLocation. Then APPROVED -> CLOSED.
    """
    period = lock_for_update(db.session.query(Period).filter_by(id=period_id)).first()
    if not period:
        raise NotFoundError("period", period_id)
    if period.status != PeriodStatus.PENDING_CLOSE.value:
        raise BusinessRuleViolation(
            f"Period is not pending close (currently {period.status})",
            {"period_id": period_id, "status": period.status},
            code="INVALID_STATUS",
        )

    not_ready = _not_ready(period)
    if not_ready:
        raise LocationsNotReady(
            "Some locations are no longer ready",
            {"period_id": period_id, "locations": not_ready},
        )

    period.status = ensure_transition("period", period.status, PeriodStatus.APPROVED)
    now = utcnow()

    for pl in period.period_locations:
        rec = reconciliation_service.refresh_reconciliation_inner(period, pl.location_id, create=False)
        breakdown = None
        if rec is not None:
            breakdown = reconciliation_service.build_breakdown(
                rec,
                total_mandays=manday_service.get_total_mandays(period.id, pl.location_id),
            )
        snapshot = _stock_snapshot(pl.location, period, breakdown, now)
        if snapshot["open_ncr_count"]:
            current_app.logger.warning(
                "Closing period %s with %s open NCR(s) at location %s",
                period.id, snapshot["open_ncr_count"], pl.location_id,
            )

        pl.status = ensure_transition("period_location", pl.status, PeriodLocationStatus.CLOSED)
        pl.closing_value = to_decimal(snapshot["total_value"])
        pl.snapshot_data = snapshot
        pl.closed_at = now

        append_ledger_event(
            location_id=pl.location_id,
            period_id=period.id,
            event_type="period.location_closed",
            event_category="periods",
            entity_type="period",
            entity_id=period.id,
            actor_user_id=user_id,
            occurred_at=now,
            payload={"closing_value": snapshot["total_value"], "item_count": snapshot["item_count"]},
        )

    db.session.flush()
    period.status = ensure_transition("period", period.status, PeriodStatus.CLOSED)
    period.closed_at = now

    append_ledger_event(
        period_id=period.id,
        event_type="period.closed",
        event_category="periods",
        entity_type="period",
        entity_id=period.id,
        actor_user_id=user_id,
        occurred_at=now,
        note=comment,
        payload={"approval_id": approval.id, "locations": len(period.period_locations)},
    )
    current_app.logger.info("Period %s (%s) closed", period.id, period.name)
    return period


def reject_close_inner(period_id: int, *, approval: Approval, user_id: int | None = None, comment: str | None = None) -> Period:
    """PERIOD_CLOSE rejection handler: PENDING_CLOSE -> OPEN, locations stay READY."""
    period = lock_for_update(db.session.query(Period).filter_by(id=period_id)).first()
    if not period:
        raise NotFoundError("period", period_id)

    period.status = ensure_transition("period", period.status, PeriodStatus.OPEN)
    period.approval_id = None

    append_ledger_event(
        period_id=period.id,
        event_type="period.close_rejected",
        event_category="periods",
        entity_type="period",
        entity_id=period.id,
        actor_user_id=user_id,
        note=comment,
        payload={"approval_id": approval.id},
    )
    return period


def approve_period_close(approval_id: int, *, user_id: int | None = None, comment: str | None = None) -> Approval:
    """Approve a PERIOD_CLOSE approval. Same routine as the generic approval endpoint."""
    from . import approval_service

    approval = approval_service.get_approval(approval_id)
    if approval.entity_type != ApprovalEntityType.PERIOD_CLOSE.value:
        raise ValidationError(
            "Approval is not a period close approval",
            {"approval_id": approval_id, "entity_type": approval.entity_type},
        )
    return approval_service.approve(approval_id, user_id=user_id, comment=comment)


def get_pending_close_approval(period_id: int) -> Approval | None:
    return (
        db.session.query(Approval)
        .filter_by(
            entity_type=ApprovalEntityType.PERIOD_CLOSE.value,
            entity_id=period_id,
            status=ApprovalStatus.PENDING.value,
        )
        .first()
    )


# =============================================================================
# Roll forward
# =============================================================================

def roll_forward_period(
    period_id: int,
    *,
    end_date=None,
    name: str | None = None,
    copy_prices: bool = True,
    user_id: int | None = None,
) -> Period:
    """
    Derive the next DRAFT period from a CLOSED one.

    start = closed end + 1 day; end = last day of that month unless given.
    Each location's opening value is the closed period's closing value.
    """
    explicit_end = coerce_date(end_date, "end_date") if end_date not in (None, "") else None

    def _op():
        source = get_period(period_id)
        if source.status != PeriodStatus.CLOSED.value:
            raise BusinessRuleViolation(
                f"Only a CLOSED period can be rolled forward (currently {source.status})",
                {"period_id": period_id, "status": source.status},
                code="INVALID_STATUS",
            )

        start = source.end_date + timedelta(days=1)
        end = explicit_end or last_day_of_month(start)
        period = _create_period_inner(
            name=(name or "").strip() or month_label(start),
            start_date=start,
            end_date=end,
            user_id=user_id,
        )

        # Opening values come from the source, not the latest closed period
        closing = _closing_values(source)
        for pl in db.session.query(PeriodLocation).filter_by(period_id=period.id).all():
            value = closing.get(pl.location_id)
            pl.opening_value = quantize_money(value) if value is not None else ZERO

        copied = _copy_prices_inner(period, source, user_id) if copy_prices else 0

        append_ledger_event(
            period_id=period.id,
            event_type="period.rolled_forward",
            event_category="periods",
            entity_type="period",
            entity_id=period.id,
            actor_user_id=user_id,
            note=period.name,
            payload={"source_period_id": source.id, "prices_copied": copied},
        )
        db.session.commit()
        current_app.logger.info("Period %s rolled forward into %s (%s)", source.id, period.id, period.name)
        return period

    return run_with_retry(_op)
