from decimal import Decimal

import pytest

from stockledger.errors import InsufficientStock, ValidationError
from stockledger.extensions import db
from stockledger.services import stock_service

from conftest import add_stock


def test_first_receipt_creates_row(db_session, kitchen, rice):
    stock = add_stock(kitchen.id, rice.id, 100, "10.00")

    assert stock.on_hand == Decimal("100.0000")
    assert stock.wac == Decimal("10.0000")
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("100")


def test_second_receipt_blends_wac(db_session, kitchen, rice):
    add_stock(kitchen.id, rice.id, 100, "10.00")
    add_stock(kitchen.id, rice.id, 50, "12.00")

    stock = stock_service.get_stock(kitchen.id, rice.id)
    assert stock.on_hand == Decimal("150.0000")
    assert stock.wac == Decimal("10.6667")


def test_decrement_keeps_wac(db_session, kitchen, rice):
    add_stock(kitchen.id, rice.id, 100, "10.00")
    add_stock(kitchen.id, rice.id, 50, "12.00")

    stock_service.apply_delta(kitchen.id, rice.id, Decimal("-30"))
    db.session.commit()

    stock = stock_service.get_stock(kitchen.id, rice.id)
    assert stock.on_hand == Decimal("120.0000")
    assert stock.wac == Decimal("10.6667")


def test_decrement_below_zero_is_rejected_and_row_unchanged(db_session, kitchen, rice):
    add_stock(kitchen.id, rice.id, 10, "5.00")

    with pytest.raises(InsufficientStock) as exc:
        stock_service.apply_delta(kitchen.id, rice.id, Decimal("-10.0001"))
    db.session.rollback()

    assert exc.value.code == "INSUFFICIENT_STOCK"
    assert exc.value.details["available"] == "10.0000"
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("10.0000")


def test_decrement_to_exactly_zero_is_allowed(db_session, kitchen, rice):
    add_stock(kitchen.id, rice.id, 10, "5.00")

    stock_service.apply_delta(kitchen.id, rice.id, Decimal("-10"))
    db.session.commit()

    stock = stock_service.get_stock(kitchen.id, rice.id)
    assert stock.on_hand == Decimal("0.0000")
    # WAC survives an empty shelf until the next receipt
    assert stock.wac == Decimal("5.0000")


def test_decrement_with_no_row_is_insufficient(db_session, kitchen, rice):
    with pytest.raises(InsufficientStock):
        stock_service.apply_delta(kitchen.id, rice.id, Decimal("-1"))


def test_zero_delta_is_invalid(db_session, kitchen, rice):
    with pytest.raises(ValidationError):
        stock_service.apply_delta(kitchen.id, rice.id, 0)


def test_check_sufficiency_sums_lines_per_item(db_session, kitchen, rice, oil):
    add_stock(kitchen.id, rice.id, 10, "5.00")
    add_stock(kitchen.id, oil.id, 3, "8.00")

    with pytest.raises(InsufficientStock) as exc:
        stock_service.check_sufficiency(
            kitchen.id,
            [(rice.id, "6"), (oil.id, "4"), (rice.id, "6")],
        )

    shortages = exc.value.details["shortages"]
    assert {s["item_id"] for s in shortages} == {rice.id, oil.id}
    rice_shortage = next(s for s in shortages if s["item_id"] == rice.id)
    assert rice_shortage["requested"] == "12.0000"


def test_location_stock_listing_and_value(db_session, kitchen, rice, oil):
    add_stock(kitchen.id, rice.id, 150, "10.6667")
    add_stock(kitchen.id, oil.id, 2, "8.00")
    stock_service.apply_delta(kitchen.id, oil.id, Decimal("-2"))
    db.session.commit()

    rows = stock_service.get_location_stock(kitchen.id)
    assert [row["item_code"] for row in rows] == ["RICE-25"]
    assert rows[0]["value"] == "1600.01"

    with_zero = stock_service.get_location_stock(kitchen.id, include_zero=True)
    assert len(with_zero) == 2

    assert stock_service.get_stock_value(kitchen.id) == Decimal("1600.01")
