from decimal import Decimal

import pytest

from stockledger.errors import (
    DuplicateEntry,
    InvalidStateTransition,
    MissingPeriodPrices,
    NoOpenPeriod,
    PeriodClosed,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import NCR, Delivery, Item, LedgerEvent
from stockledger.services import delivery_service, period_service, stock_service


def _post(location, supplier, lines, invoice_no="INV-1001", **kwargs):
    return delivery_service.post_delivery(
        location_id=location.id,
        supplier_id=supplier.id,
        lines=lines,
        invoice_no=invoice_no,
        user_id=7,
        **kwargs,
    )


def test_price_variance_creates_one_ncr(db_session, open_period, kitchen, supplier, rice):
    result = _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "10", "unit_price": "26.00"}])

    delivery = result["delivery"]
    assert delivery.status == "POSTED"
    assert delivery.delivery_no.startswith("DEL-")
    assert delivery.has_variance is True
    assert delivery.total_amount == Decimal("260.00")

    assert len(result["ncrs_created"]) == 1
    ncr = result["ncrs_created"][0]
    assert ncr.ncr_type == "PRICE_VARIANCE"
    assert ncr.auto_generated is True
    assert ncr.status == "OPEN"
    assert ncr.value == Decimal("10.00")
    assert ncr.delivery_id == delivery.id
    assert "Expected Price (Period): SAR 25.0000" in ncr.reason

    line = delivery.lines[0]
    assert line.period_price == Decimal("25.0000")
    assert line.price_variance == Decimal("1.0000")
    assert line.variance_amount == Decimal("10.00")
    assert line.ncr_id == ncr.id


def test_matching_price_creates_no_ncr(db_session, open_period, kitchen, supplier, rice):
    result = _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "10", "unit_price": "25.00"}])

    assert result["ncrs_created"] == []
    assert result["delivery"].has_variance is False
    assert db.session.query(NCR).count() == 0


def test_lower_price_ncr_value_is_absolute(db_session, open_period, kitchen, supplier, rice):
    result = _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "4", "unit_price": "24.50"}])

    ncr = result["ncrs_created"][0]
    assert ncr.value == Decimal("2.00")
    assert result["delivery"].lines[0].variance_amount == Decimal("-2.00")


def test_threshold_suppresses_small_variances(app, db_session, open_period, kitchen, supplier, rice, monkeypatch):
    monkeypatch.setitem(app.config, "PRICE_VARIANCE_THRESHOLD_PERCENT", 5)

    small = _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "26.00"}], invoice_no="INV-A")
    large = _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "27.00"}], invoice_no="INV-B")

    # 4% stays under the threshold but is still flagged on the delivery
    assert small["ncrs_created"] == []
    assert small["delivery"].has_variance is True
    assert len(large["ncrs_created"]) == 1


def test_posting_updates_stock_and_wac(db_session, open_period, kitchen, supplier, rice):
    _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "100", "unit_price": "25.00"}], invoice_no="INV-1")
    _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "50", "unit_price": "28.00"}], invoice_no="INV-2")

    stock = stock_service.get_stock(kitchen.id, rice.id)
    assert stock.on_hand == Decimal("150.0000")
    assert stock.wac == Decimal("26.0000")


def test_missing_price_rejects_whole_delivery(db_session, open_period, kitchen, supplier, rice):
    flour = Item(code="FLOUR", name="Flour 10kg", unit="BAG", is_active=True)
    db_session.add(flour)
    db_session.commit()

    with pytest.raises(MissingPeriodPrices) as exc:
        _post(
            kitchen,
            supplier,
            [
                {"item_id": rice.id, "quantity": "10", "unit_price": "25.00"},
                {"item_id": flour.id, "quantity": "5", "unit_price": "12.00"},
            ],
        )

    assert exc.value.details["items"][0]["item_code"] == "FLOUR"
    assert db.session.query(Delivery).count() == 0
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("0")


def test_duplicate_invoice_is_rejected(db_session, open_period, kitchen, supplier, rice):
    _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}])

    with pytest.raises(DuplicateEntry):
        _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}])


def test_invoice_index_conflict_is_duplicate_entry(db_session, open_period, kitchen, supplier, rice, monkeypatch):
    _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}])
    # Simulate a concurrent writer that passed the read check before the first insert landed
    monkeypatch.setattr(delivery_service, "_require_invoice_unique", lambda *args, **kwargs: None)

    with pytest.raises(DuplicateEntry) as excinfo:
        _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "2", "unit_price": "25.00"}])

    assert excinfo.value.details["invoice_no"] == "INV-1001"
    assert db.session.query(Delivery).count() == 1
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("1.0000")


def test_invoice_required_to_post(db_session, open_period, kitchen, supplier, rice):
    with pytest.raises(ValidationError):
        _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}], invoice_no=None)


@pytest.mark.parametrize("quantity", ["0", "-3", "abc"])
def test_bad_quantity_is_rejected(db_session, open_period, kitchen, supplier, rice, quantity):
    with pytest.raises(ValidationError):
        _post(kitchen, supplier, [{"item_id": rice.id, "quantity": quantity, "unit_price": "25.00"}])


def test_no_open_period(db_session, draft_period, kitchen, supplier, rice):
    with pytest.raises(NoOpenPeriod):
        _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}])


def test_ready_location_rejects_postings(db_session, open_period, kitchen, supplier, rice):
    from stockledger.services import reconciliation_service

    reconciliation_service.save_reconciliation_adjustments(open_period.id, kitchen.id, {})
    period_service.mark_location_ready(open_period.id, kitchen.id)

    with pytest.raises(PeriodClosed) as exc:
        _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}])
    assert exc.value.code == "PERIOD_CLOSED"


def test_explicit_period_must_be_current(db_session, open_period, kitchen, supplier, rice):
    with pytest.raises(PeriodClosed):
        _post(
            kitchen,
            supplier,
            [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}],
            period_id=open_period.id + 100,
        )


def test_draft_has_no_stock_effect_until_posted(db_session, open_period, kitchen, supplier, rice):
    result = _post(
        kitchen,
        supplier,
        [{"item_id": rice.id, "quantity": "10", "unit_price": "26.00"}],
        invoice_no=None,
        status="DRAFT",
    )
    draft = result["delivery"]
    assert draft.status == "DRAFT"
    assert result["ncrs_created"] == []
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("0")

    posted = delivery_service.post_draft_delivery(draft.id, invoice_no="INV-77", user_id=7)

    assert posted["delivery"].status == "POSTED"
    assert posted["delivery"].invoice_no == "INV-77"
    assert len(posted["ncrs_created"]) == 1
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("10.0000")

    events = db.session.query(LedgerEvent).filter_by(entity_type="delivery", entity_id=draft.id).all()
    assert {e.event_type for e in events} == {"delivery.drafted", "delivery.posted"}


def test_posted_delivery_cannot_be_posted_again(db_session, open_period, kitchen, supplier, rice):
    result = _post(kitchen, supplier, [{"item_id": rice.id, "quantity": "1", "unit_price": "25.00"}])

    with pytest.raises(InvalidStateTransition) as exc:
        delivery_service.post_draft_delivery(result["delivery"].id)
    assert exc.value.code == "INVALID_STATUS"
