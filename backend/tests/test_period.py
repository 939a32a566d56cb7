from datetime import date
from decimal import Decimal

import pytest

from stockledger.errors import (
    BusinessRuleViolation,
    DuplicateEntry,
    InvalidStateTransition,
    LocationsNotReady,
    NoOpenPeriod,
    PeriodClosed,
    PriceLocked,
    ReconciliationNotCompleted,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import PeriodLocation
from stockledger.services import (
    approval_service,
    delivery_service,
    issue_service,
    period_service,
    reconciliation_service,
)


def _ready_all(period, *locations):
    for location in locations:
        reconciliation_service.save_reconciliation_adjustments(period.id, location.id, {})
        period_service.mark_location_ready(period.id, location.id, user_id=1)


def _stock_kitchen(kitchen, supplier, rice):
    delivery_service.post_delivery(
        location_id=kitchen.id,
        supplier_id=supplier.id,
        lines=[{"item_id": rice.id, "quantity": "100", "unit_price": "25.00"}],
        invoice_no="INV-P1",
    )
    issue_service.post_issue(
        location_id=kitchen.id,
        cost_centre="FOOD",
        lines=[{"item_id": rice.id, "quantity": "40"}],
    )


def test_create_period_adds_location_rows(db_session, draft_period, kitchen, store):
    period = period_service.get_period(draft_period.id)

    assert period.status == "DRAFT"
    assert {pl.location_id for pl in period.period_locations} == {kitchen.id, store.id}
    assert all(pl.opening_value == Decimal("0.00") for pl in period.period_locations)


def test_overlapping_period_is_rejected(db_session, draft_period):
    with pytest.raises(DuplicateEntry):
        period_service.create_period(name="Mid March", start_date="2026-03-15", end_date="2026-04-14")


def test_end_before_start(db_session):
    with pytest.raises(ValidationError):
        period_service.create_period(name="Backwards", start_date="2026-05-31", end_date="2026-05-01")


def test_only_one_open_period(db_session, open_period):
    other = period_service.create_period(name="April 2026", start_date="2026-04-01", end_date="2026-04-30")

    with pytest.raises(DuplicateEntry):
        period_service.open_period(other.id)


def test_prices_lock_when_period_opens(db_session, open_period, rice):
    with pytest.raises(PriceLocked) as exc:
        period_service.set_period_prices(open_period.id, [{"item_id": rice.id, "price": "30.00"}], user_id=1)

    assert exc.value.code == "PERIOD_CLOSED"
    assert period_service.get_period_prices(open_period.id)[rice.id].price == Decimal("25.0000")


def test_prices_upsert_while_draft(db_session, draft_period, rice):
    period_service.set_period_prices(draft_period.id, [{"item_id": rice.id, "price": "26.5"}], user_id=3)

    price = period_service.get_period_prices(draft_period.id)[rice.id]
    assert price.price == Decimal("26.5000")
    assert price.set_by_user_id == 3


def test_ready_requires_reconciliation(db_session, open_period, kitchen):
    with pytest.raises(ReconciliationNotCompleted):
        period_service.mark_location_ready(open_period.id, kitchen.id)


def test_unready_returns_location_to_open(db_session, open_period, kitchen):
    _ready_all(open_period, kitchen)

    pl = period_service.mark_location_unready(open_period.id, kitchen.id)
    assert pl.status == "OPEN"
    assert pl.ready_at is None


def test_close_request_lists_locations_not_ready(db_session, open_period, kitchen, store):
    _ready_all(open_period, kitchen)

    with pytest.raises(LocationsNotReady) as exc:
        period_service.request_period_close(open_period.id, user_id=1)

    not_ready = exc.value.details["locations"]
    assert [entry["location_id"] for entry in not_ready] == [store.id]
    assert not_ready[0]["location_code"] == "S1"
    assert period_service.get_period(open_period.id).status == "OPEN"
    assert period_service.get_pending_close_approval(open_period.id) is None


def test_close_request_needs_open_period(db_session, draft_period):
    with pytest.raises(InvalidStateTransition):
        period_service.request_period_close(draft_period.id)


def test_full_close_writes_snapshots(db_session, open_period, kitchen, store, supplier, rice):
    _stock_kitchen(kitchen, supplier, rice)
    _ready_all(open_period, kitchen, store)

    approval = period_service.request_period_close(open_period.id, user_id=1)
    assert approval.entity_type == "PERIOD_CLOSE"
    assert period_service.get_period(open_period.id).status == "PENDING_CLOSE"

    period_service.approve_period_close(approval.id, user_id=99, comment="Month end")

    period = period_service.get_period(open_period.id)
    assert period.status == "CLOSED"
    assert period.closed_at is not None
    assert approval_service.get_approval(approval.id).status == "APPROVED"

    by_location = {pl.location_id: pl for pl in period.period_locations}
    kitchen_pl = by_location[kitchen.id]
    assert kitchen_pl.status == "CLOSED"
    assert kitchen_pl.closing_value == Decimal("1500.00")
    snapshot = kitchen_pl.snapshot_data
    assert snapshot["total_value"] == "1500.00"
    assert snapshot["items"][0]["quantity"] == "60.0000"
    assert snapshot["items"][0]["wac"] == "25.0000"
    assert snapshot["reconciliation"]["receipts"] == "2500.00"
    assert snapshot["reconciliation"]["issues"] == "1000.00"

    store_pl = by_location[store.id]
    assert store_pl.closing_value == Decimal("0.00")
    assert store_pl.snapshot_data["items"] == []


def test_close_is_all_or_nothing(db_session, open_period, kitchen, store, monkeypatch):
    _ready_all(open_period, kitchen, store)
    approval = period_service.request_period_close(open_period.id, user_id=1)

    real_snapshot = period_service._stock_snapshot
    calls = []

    def failing_snapshot(location, period, breakdown, taken_at):
        calls.append(location.id)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real_snapshot(location, period, breakdown, taken_at)

    monkeypatch.setattr(period_service, "_stock_snapshot", failing_snapshot)

    with pytest.raises(RuntimeError):
        approval_service.approve(approval.id, user_id=99)

    period = period_service.get_period(open_period.id)
    assert period.status == "PENDING_CLOSE"
    assert approval_service.get_approval(approval.id).status == "PENDING"
    for pl in period.period_locations:
        assert pl.status == "READY"
        assert pl.snapshot_data is None
        assert pl.closing_value is None


def test_rejected_close_reopens_period(db_session, open_period, kitchen, store):
    _ready_all(open_period, kitchen, store)
    approval = period_service.request_period_close(open_period.id, user_id=1)

    approval_service.reject(approval.id, user_id=99, comment="Stock count pending")

    period = period_service.get_period(open_period.id)
    assert period.status == "OPEN"
    assert period.approval_id is None
    assert all(pl.status == "READY" for pl in period.period_locations)


def test_closed_period_refuses_postings(db_session, open_period, kitchen, store, supplier, rice):
    _ready_all(open_period, kitchen, store)
    approval = period_service.request_period_close(open_period.id)
    approval_service.approve(approval.id, user_id=99)

    with pytest.raises(NoOpenPeriod) as exc:
        issue_service.post_issue(location_id=kitchen.id, cost_centre="FOOD", lines=[{"item_id": rice.id, "quantity": "1"}])
    assert exc.value.code == "NO_OPEN_PERIOD"

    with pytest.raises(PeriodClosed):
        reconciliation_service.save_reconciliation_adjustments(open_period.id, kitchen.id, {"adjustments": "5"})


def test_roll_forward_carries_closing_into_opening(db_session, open_period, kitchen, store, supplier, rice, oil):
    _stock_kitchen(kitchen, supplier, rice)
    _ready_all(open_period, kitchen, store)
    approval = period_service.request_period_close(open_period.id)
    approval_service.approve(approval.id, user_id=99)

    nxt = period_service.roll_forward_period(open_period.id, user_id=1)

    assert nxt.status == "DRAFT"
    assert nxt.name == "April 2026"
    assert nxt.start_date == date(2026, 4, 1)
    assert nxt.end_date == date(2026, 4, 30)

    openings = {
        pl.location_id: pl.opening_value
        for pl in db.session.query(PeriodLocation).filter_by(period_id=nxt.id).all()
    }
    assert openings == {kitchen.id: Decimal("1500.00"), store.id: Decimal("0.00")}

    prices = period_service.get_period_prices(nxt.id)
    assert prices[rice.id].price == Decimal("25.0000")
    assert prices[oil.id].price == Decimal("8.0000")

    # The new period can open and its reconciliation starts from the carried value
    period_service.open_period(nxt.id)
    view = reconciliation_service.get_reconciliation(nxt.id, kitchen.id)
    assert view["breakdown"]["opening_stock"] == "1500.00"


def test_open_takes_opening_from_predecessor_closed_after_creation(
    db_session, open_period, kitchen, store, supplier, rice
):
    april = period_service.create_period(
        name="April 2026",
        start_date=date(2026, 4, 1),
        end_date=date(2026, 4, 30),
    )
    _stock_kitchen(kitchen, supplier, rice)
    _ready_all(open_period, kitchen, store)
    approval = period_service.request_period_close(open_period.id)
    approval_service.approve(approval.id, user_id=99)

    period_service.open_period(april.id)

    openings = {
        pl.location_id: pl.opening_value
        for pl in db.session.query(PeriodLocation).filter_by(period_id=april.id).all()
    }
    assert openings == {kitchen.id: Decimal("1500.00"), store.id: Decimal("0.00")}


def test_roll_forward_needs_closed_period(db_session, open_period):
    with pytest.raises(BusinessRuleViolation) as exc:
        period_service.roll_forward_period(open_period.id)
    assert exc.value.code == "INVALID_STATUS"


def test_copy_prices_from_previous(db_session, open_period, kitchen, store, rice):
    _ready_all(open_period, kitchen, store)
    approval = period_service.request_period_close(open_period.id)
    approval_service.approve(approval.id, user_id=99)

    nxt = period_service.create_period(name="April 2026", start_date="2026-04-01", end_date="2026-04-30")
    copied = period_service.copy_prices_from_previous(nxt.id, user_id=1)

    assert copied == 2
    assert period_service.get_period_prices(nxt.id)[rice.id].price == Decimal("25.0000")
