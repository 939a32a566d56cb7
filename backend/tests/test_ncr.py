from decimal import Decimal

import pytest

from stockledger.errors import InvalidStateTransition, NotFoundError, ValidationError
from stockledger.services import ncr_service


def _manual(location, **kwargs):
    kwargs.setdefault("reason", "Damaged on arrival")
    return ncr_service.create_manual_ncr(location_id=location.id, user_id=4, **kwargs)


class TestPriceVarianceCheck:
    def test_any_difference_exceeds_zero_tolerance(self, app):
        with app.app_context():
            variance = ncr_service.check_price_variance("25.0001", "25.00", "10")
        assert variance.exceeds_threshold is True
        assert variance.price_variance == Decimal("0.0001")

    def test_equal_prices(self, app):
        with app.app_context():
            variance = ncr_service.check_price_variance("25", "25.0000", "10")
        assert variance.has_variance is False
        assert variance.exceeds_threshold is False
        assert variance.variance_amount == Decimal("0.00")

    def test_amount_threshold(self, app):
        with app.app_context():
            under = ncr_service.check_price_variance("26", "25", "4", threshold_percent=0, threshold_amount=5)
            over = ncr_service.check_price_variance("26", "25", "6", threshold_percent=0, threshold_amount=5)
        assert under.exceeds_threshold is False
        assert over.exceeds_threshold is True

    def test_zero_period_price_counts_as_full_variance(self, app):
        with app.app_context():
            variance = ncr_service.check_price_variance("3", "0", "1", threshold_percent=50)
        assert variance.variance_percent == Decimal("100.00")
        assert variance.exceeds_threshold is True


def test_manual_ncr_value_from_lines(db_session, open_period, kitchen, rice):
    ncr = _manual(
        kitchen,
        lines=[{"item_id": rice.id, "quantity": "4", "unit_value": "30.00"}],
    )

    assert ncr.ncr_no.startswith("NCR-")
    assert ncr.ncr_type == "MANUAL"
    assert ncr.auto_generated is False
    assert ncr.period_id == open_period.id
    assert ncr.value == Decimal("120.00")
    assert ncr.lines[0].line_value == Decimal("120.00")


def test_manual_ncr_needs_reason_and_positive_value(db_session, open_period, kitchen):
    with pytest.raises(ValidationError):
        _manual(kitchen, reason="  ", value="10")
    with pytest.raises(ValidationError):
        _manual(kitchen, value="0")


def test_manual_ncr_unknown_location(db_session, open_period):
    with pytest.raises(NotFoundError):
        ncr_service.create_manual_ncr(location_id=999, reason="x", value="5")


def test_sent_then_credited(db_session, open_period, kitchen):
    ncr = _manual(kitchen, value="50")

    ncr = ncr_service.update_ncr_status(ncr.id, status="SENT", user_id=4)
    assert ncr.status == "SENT"
    assert ncr.resolved_at is None

    ncr = ncr_service.update_ncr_status(ncr.id, status="CREDITED", user_id=5)
    assert ncr.status == "CREDITED"
    assert ncr.resolved_at is not None

    credits, losses = ncr_service.ncr_totals(open_period.id, kitchen.id)
    assert credits == Decimal("50.00")
    assert losses == Decimal("0.00")


def test_settled_ncr_is_terminal(db_session, open_period, kitchen):
    ncr = _manual(kitchen, value="50")
    ncr_service.update_ncr_status(ncr.id, status="SENT")
    ncr_service.update_ncr_status(ncr.id, status="REJECTED")

    with pytest.raises(InvalidStateTransition):
        ncr_service.update_ncr_status(ncr.id, status="SENT")


def test_cannot_credit_an_open_ncr(db_session, open_period, kitchen):
    ncr = _manual(kitchen, value="50")

    with pytest.raises(InvalidStateTransition) as exc:
        ncr_service.update_ncr_status(ncr.id, status="CREDITED")
    assert exc.value.details["current_status"] == "OPEN"


def test_resolve_requires_type_and_impact(db_session, open_period, kitchen):
    ncr = _manual(kitchen, value="50")

    with pytest.raises(ValidationError):
        ncr_service.update_ncr_status(ncr.id, status="RESOLVED", financial_impact="LOSS")
    with pytest.raises(ValidationError):
        ncr_service.update_ncr_status(ncr.id, status="RESOLVED", resolution_type="Write-off")
    with pytest.raises(ValidationError):
        ncr_service.update_ncr_status(
            ncr.id, status="RESOLVED", resolution_type="Write-off", financial_impact="MAYBE"
        )

    ncr = ncr_service.update_ncr_status(
        ncr.id,
        status="RESOLVED",
        resolution_type="Write-off",
        financial_impact="LOSS",
        resolution_notes="Supplier closed",
    )
    assert ncr.financial_impact == "LOSS"

    credits, losses = ncr_service.ncr_totals(open_period.id, kitchen.id)
    assert losses == Decimal("50.00")


def test_summary_buckets(db_session, open_period, kitchen):
    credited = _manual(kitchen, value="10")
    ncr_service.update_ncr_status(credited.id, status="SENT")
    ncr_service.update_ncr_status(credited.id, status="CREDITED")

    pending = _manual(kitchen, value="20")
    ncr_service.update_ncr_status(pending.id, status="SENT")

    _manual(kitchen, value="30")

    summary = ncr_service.summarize_ncrs(open_period.id, kitchen.id)
    assert summary["credited"]["total"] == "10.00"
    assert summary["pending"]["total"] == "20.00"
    assert summary["losses"]["count"] == 0
    assert summary["open"]["count"] == 1
    assert "total" not in summary["open"]
    assert ncr_service.count_open_ncrs(open_period.id, kitchen.id) == 1
