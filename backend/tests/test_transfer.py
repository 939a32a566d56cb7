from decimal import Decimal

import pytest

from stockledger.errors import (
    DuplicateEntry,
    InsufficientStock,
    InvalidStateTransition,
    PeriodClosed,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import LedgerEvent
from stockledger.services import (
    approval_service,
    issue_service,
    period_service,
    reconciliation_service,
    stock_service,
    transfer_service,
)

from conftest import add_stock


def _request(source, destination, item, quantity, **kwargs):
    return transfer_service.create_transfer(
        from_location_id=source.id,
        to_location_id=destination.id,
        lines=[{"item_id": item.id, "quantity": quantity}],
        user_id=2,
        **kwargs,
    )


def test_approved_transfer_moves_stock_at_source_wac(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 200, "8.00")

    transfer = _request(kitchen, store, oil, "50")
    assert transfer.status == "PENDING_APPROVAL"
    assert transfer.transfer_no.startswith("TRF-")
    # Nothing moves on request
    assert stock_service.get_on_hand(kitchen.id, oil.id) == Decimal("200.0000")

    transfer = transfer_service.approve_transfer(transfer.id, user_id=9, comment="ok")

    assert transfer.status == "COMPLETED"
    assert transfer.period_id == open_period.id
    assert transfer.approved_by_user_id == 9
    assert transfer.total_value == Decimal("400.00")
    assert transfer.lines[0].wac_at_transfer == Decimal("8.0000")

    source = stock_service.get_stock(kitchen.id, oil.id)
    destination = stock_service.get_stock(store.id, oil.id)
    assert source.on_hand == Decimal("150.0000")
    assert source.wac == Decimal("8.0000")
    assert destination.on_hand == Decimal("50.0000")
    assert destination.wac == Decimal("8.0000")

    approval = approval_service.list_approvals(entity_type="TRANSFER")[0]
    assert approval.status == "APPROVED"
    assert approval.reviewed_by_user_id == 9

    directions = {
        e.payload["direction"]
        for e in db.session.query(LedgerEvent).filter_by(event_type="transfer.completed").all()
    }
    assert directions == {"in", "out"}


def test_destination_wac_blends_with_existing_stock(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 200, "8.00")
    add_stock(store.id, oil.id, 10, "10.00")

    transfer = _request(kitchen, store, oil, "50")
    transfer_service.approve_transfer(transfer.id, user_id=9)

    destination = stock_service.get_stock(store.id, oil.id)
    assert destination.on_hand == Decimal("60.0000")
    # (10 * 10 + 50 * 8) / 60
    assert destination.wac == Decimal("8.3333")


def test_shortage_at_approval_moves_nothing(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 200, "8.00")
    transfer = _request(kitchen, store, oil, "50")

    # Stock consumed between request and approval
    issue_service.post_issue(
        location_id=kitchen.id,
        cost_centre="FOOD",
        lines=[{"item_id": oil.id, "quantity": "180"}],
    )

    with pytest.raises(InsufficientStock):
        transfer_service.approve_transfer(transfer.id, user_id=9)

    transfer = transfer_service.get_transfer(transfer.id)
    assert transfer.status == "PENDING_APPROVAL"
    assert transfer.lines[0].wac_at_transfer is None
    assert approval_service.get_pending_approval("TRANSFER", transfer.id) is not None
    assert stock_service.get_on_hand(kitchen.id, oil.id) == Decimal("20.0000")
    assert stock_service.get_stock(store.id, oil.id) is None


def test_request_soft_checks_source_stock(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 10, "8.00")

    with pytest.raises(InsufficientStock):
        _request(kitchen, store, oil, "11")


def test_same_location_is_rejected(db_session, open_period, kitchen, oil):
    with pytest.raises(ValidationError):
        _request(kitchen, kitchen, oil, "1")


def test_rejection_needs_comment_and_moves_nothing(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 200, "8.00")
    transfer = _request(kitchen, store, oil, "50")

    with pytest.raises(ValidationError):
        transfer_service.reject_transfer(transfer.id, user_id=9, comment="  ")

    transfer = transfer_service.reject_transfer(transfer.id, user_id=9, comment="Not needed this week")

    assert transfer.status == "REJECTED"
    assert transfer.rejection_comment == "Not needed this week"
    assert stock_service.get_on_hand(kitchen.id, oil.id) == Decimal("200.0000")
    assert stock_service.get_stock(store.id, oil.id) is None


def test_draft_transfer_submits_later(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 20, "8.00")
    transfer = _request(kitchen, store, oil, "5", submit=False)
    assert transfer.status == "DRAFT"
    assert approval_service.get_pending_approval("TRANSFER", transfer.id) is None

    transfer = transfer_service.submit_transfer(transfer.id, user_id=2)
    assert transfer.status == "PENDING_APPROVAL"

    with pytest.raises(InvalidStateTransition):
        transfer_service.submit_transfer(transfer.id, user_id=2)


def test_destination_not_open_blocks_approval(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 20, "8.00")
    transfer = _request(kitchen, store, oil, "5")

    reconciliation_service.save_reconciliation_adjustments(open_period.id, store.id, {})
    period_service.mark_location_ready(open_period.id, store.id)

    with pytest.raises(PeriodClosed):
        transfer_service.approve_transfer(transfer.id, user_id=9)
    assert transfer_service.get_transfer(transfer.id).status == "PENDING_APPROVAL"


def test_one_pending_approval_per_transfer(db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 20, "8.00")
    transfer = _request(kitchen, store, oil, "5")

    with pytest.raises(DuplicateEntry):
        approval_service.create_approval_inner(entity_type="TRANSFER", entity_id=transfer.id)
    db.session.rollback()
