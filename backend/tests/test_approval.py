import pytest

from stockledger.errors import BusinessRuleViolation, InvalidStateTransition, ValidationError
from stockledger.extensions import db
from stockledger.services import approval_service


@pytest.fixture
def clean_handlers(monkeypatch):
    monkeypatch.setattr(approval_service, "_HANDLERS", {})


def _pending(entity_type="PRF", entity_id=1, user_id=2):
    approval = approval_service.create_approval_inner(
        entity_type=entity_type, entity_id=entity_id, user_id=user_id
    )
    db.session.commit()
    return approval


def test_unregistered_type_cannot_execute(db_session, clean_handlers):
    approval = _pending("PRF", 11)

    with pytest.raises(BusinessRuleViolation) as exc:
        approval_service.approve(approval.id, user_id=9)

    assert exc.value.code == "UNSUPPORTED_APPROVAL_TYPE"
    assert approval_service.get_approval(approval.id).status == "PENDING"


def test_registered_handler_runs_inside_the_decision(db_session, clean_handlers):
    calls = []

    def approve_po(entity_id, *, approval, user_id, comment):
        calls.append(("approve", entity_id, approval.id, user_id, comment))

    def reject_po(entity_id, *, approval, user_id, comment):
        calls.append(("reject", entity_id, approval.id, user_id, comment))

    approval_service.register_handler("PO", approve=approve_po, reject=reject_po)
    approval = _pending("PO", 42)

    decided = approval_service.approve(approval.id, user_id=9, comment="Within budget")

    assert decided.status == "APPROVED"
    assert decided.reviewed_by_user_id == 9
    assert decided.comments == "Within budget"
    assert decided.reviewed_at is not None
    assert calls == [("approve", 42, approval.id, 9, "Within budget")]


def test_failing_handler_leaves_approval_pending(db_session, clean_handlers):
    def boom(entity_id, *, approval, user_id, comment):
        raise BusinessRuleViolation("Budget exhausted", code="BUDGET_EXHAUSTED")

    approval_service.register_handler("PO", approve=boom, reject=boom)
    approval = _pending("PO", 43)

    with pytest.raises(BusinessRuleViolation):
        approval_service.approve(approval.id, user_id=9)

    approval = approval_service.get_approval(approval.id)
    assert approval.status == "PENDING"
    assert approval.reviewed_by_user_id is None


def test_decided_approval_is_terminal(db_session, clean_handlers):
    approval_service.register_handler(
        "PO",
        approve=lambda entity_id, **kwargs: None,
        reject=lambda entity_id, **kwargs: None,
    )
    approval = _pending("PO", 44)
    approval_service.reject(approval.id, user_id=9, comment="Duplicate order")

    with pytest.raises(InvalidStateTransition) as exc:
        approval_service.approve(approval.id, user_id=9)
    assert exc.value.code == "INVALID_STATUS"


def test_rejection_requires_comment(db_session, clean_handlers):
    approval = _pending("PO", 45)

    with pytest.raises(ValidationError):
        approval_service.reject(approval.id, user_id=9, comment=None)


def test_register_unknown_type(clean_handlers):
    with pytest.raises(ValidationError):
        approval_service.register_handler("INVOICE", approve=print, reject=print)


def test_list_filters(db_session, clean_handlers):
    _pending("PRF", 1)
    _pending("PO", 2)

    assert [a.entity_type for a in approval_service.list_approvals(entity_type="PO")] == ["PO"]
    assert len(approval_service.list_approvals(status="PENDING")) == 2
    assert approval_service.list_approvals(status="APPROVED") == []
