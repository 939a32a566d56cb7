from decimal import Decimal

import pytest

from stockledger.errors import InsufficientStock, ValidationError
from stockledger.extensions import db
from stockledger.models import Issue
from stockledger.services import issue_service, stock_service

from conftest import add_stock


def test_issue_consumes_at_wac(db_session, open_period, kitchen, rice):
    add_stock(kitchen.id, rice.id, 100, "10.00")
    add_stock(kitchen.id, rice.id, 50, "12.00")

    issue = issue_service.post_issue(
        location_id=kitchen.id,
        cost_centre="food",
        lines=[{"item_id": rice.id, "quantity": "30"}],
        user_id=3,
    )

    assert issue.issue_no.startswith("ISS-")
    assert issue.cost_centre == "FOOD"
    assert issue.period_id == open_period.id
    assert issue.lines[0].wac_at_issue == Decimal("10.6667")
    assert issue.lines[0].line_value == Decimal("320.00")
    assert issue.total_value == Decimal("320.00")

    stock = stock_service.get_stock(kitchen.id, rice.id)
    assert stock.on_hand == Decimal("120.0000")
    assert stock.wac == Decimal("10.6667")


def test_shortage_on_any_line_leaves_all_stock_unchanged(db_session, open_period, kitchen, rice, oil):
    add_stock(kitchen.id, rice.id, 100, "10.00")
    add_stock(kitchen.id, oil.id, 5, "8.00")

    with pytest.raises(InsufficientStock) as exc:
        issue_service.post_issue(
            location_id=kitchen.id,
            cost_centre="FOOD",
            lines=[
                {"item_id": rice.id, "quantity": "50"},
                {"item_id": oil.id, "quantity": "6"},
            ],
        )

    assert exc.value.details["item_id"] == oil.id
    assert exc.value.details["requested"] == "6.0000"
    assert exc.value.details["available"] == "5.0000"
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("100.0000")
    assert stock_service.get_on_hand(kitchen.id, oil.id) == Decimal("5.0000")
    assert db.session.query(Issue).count() == 0


def test_repeated_item_lines_are_summed(db_session, open_period, kitchen, rice):
    add_stock(kitchen.id, rice.id, 10, "10.00")

    with pytest.raises(InsufficientStock):
        issue_service.post_issue(
            location_id=kitchen.id,
            cost_centre="FOOD",
            lines=[
                {"item_id": rice.id, "quantity": "6"},
                {"item_id": rice.id, "quantity": "6"},
            ],
        )
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("10.0000")


def test_issue_can_empty_the_shelf(db_session, open_period, kitchen, rice):
    add_stock(kitchen.id, rice.id, 10, "10.00")

    issue_service.post_issue(
        location_id=kitchen.id,
        cost_centre="CLEAN",
        lines=[{"item_id": rice.id, "quantity": "10"}],
    )
    assert stock_service.get_on_hand(kitchen.id, rice.id) == Decimal("0.0000")


def test_unknown_cost_centre(db_session, open_period, kitchen, rice):
    with pytest.raises(ValidationError):
        issue_service.post_issue(
            location_id=kitchen.id,
            cost_centre="BAR",
            lines=[{"item_id": rice.id, "quantity": "1"}],
        )
