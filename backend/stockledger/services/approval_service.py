# Overview: Generic approval records and per-entity-type execution dispatch.

"""
Approvals

An Approval is created by the action that needs it (submitting a transfer,
requesting a period close) and decided exactly once:

    PENDING -> APPROVED | REJECTED

Deciding an approval runs the handler registered for its entity_type inside
the same transaction. If the handler fails, the approval stays PENDING and
nothing the handler wrote survives.

Handlers take (entity_id, *, approval, user_id, comment) and must not commit.
TRANSFER and PERIOD_CLOSE are built in. PRF and PO records can be stored but
have no handler until one is registered with register_handler().
"""

from __future__ import annotations

from typing import Callable, NamedTuple

from flask import current_app

from ..extensions import db
from ..models import Approval
from ..models.enums import ApprovalEntityType, ApprovalStatus
from ..errors import BusinessRuleViolation, DuplicateEntry, InvalidStateTransition, NotFoundError, ValidationError
from ..time_utils import utcnow
from ..validation import optional_text
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .lifecycle_service import ensure_transition, is_terminal


class ApprovalHandler(NamedTuple):
    approve: Callable
    reject: Callable


_HANDLERS: dict[str, ApprovalHandler] = {}


def _builtin_handlers() -> dict[str, ApprovalHandler]:
    from . import period_service, transfer_service

    return {
        ApprovalEntityType.TRANSFER.value: ApprovalHandler(
            approve=transfer_service.complete_transfer_inner,
            reject=transfer_service.reject_transfer_inner,
        ),
        ApprovalEntityType.PERIOD_CLOSE.value: ApprovalHandler(
            approve=period_service.close_period_inner,
            reject=period_service.reject_close_inner,
        ),
    }


def register_handler(entity_type: str, *, approve: Callable, reject: Callable) -> None:
    """Plug in execution logic for an entity type (e.g. PRF, PO)."""
    if entity_type not in {member.value for member in ApprovalEntityType}:
        raise ValidationError(f"Unknown approval entity type '{entity_type}'")
    _HANDLERS[entity_type] = ApprovalHandler(approve=approve, reject=reject)


def get_handler(entity_type: str) -> ApprovalHandler:
    handler = _HANDLERS.get(entity_type) or _builtin_handlers().get(entity_type)
    if handler is None:
        raise BusinessRuleViolation(
            f"Approvals of type {entity_type} cannot be executed",
            {"entity_type": entity_type},
            code="UNSUPPORTED_APPROVAL_TYPE",
        )
    return handler


def create_approval_inner(*, entity_type: str, entity_id: int, user_id: int | None = None) -> Approval:
    """New PENDING approval. One pending approval per entity. No commit."""
    existing = (
        db.session.query(Approval)
        .filter_by(entity_type=entity_type, entity_id=entity_id, status=ApprovalStatus.PENDING.value)
        .first()
    )
    if existing:
        raise DuplicateEntry(
            f"{entity_type} {entity_id} already has a pending approval",
            {"approval_id": existing.id, "entity_type": entity_type, "entity_id": entity_id},
        )

    approval = Approval(
        entity_type=entity_type,
        entity_id=entity_id,
        status=ApprovalStatus.PENDING.value,
        requested_by_user_id=user_id,
        requested_at=utcnow(),
    )
    db.session.add(approval)
    db.session.flush()

    append_ledger_event(
        event_type="approval.requested",
        event_category="approvals",
        entity_type="approval",
        entity_id=approval.id,
        actor_user_id=user_id,
        occurred_at=approval.requested_at,
        payload={"entity_type": entity_type, "entity_id": entity_id},
    )
    return approval


def get_approval(approval_id: int) -> Approval:
    approval = db.session.query(Approval).filter_by(id=approval_id).first()
    if not approval:
        raise NotFoundError("approval", approval_id)
    return approval


def get_pending_approval(entity_type: str, entity_id: int) -> Approval | None:
    return (
        db.session.query(Approval)
        .filter_by(entity_type=entity_type, entity_id=entity_id, status=ApprovalStatus.PENDING.value)
        .first()
    )


def list_approvals(*, status: str | None = None, entity_type: str | None = None) -> list[Approval]:
    query = db.session.query(Approval)
    if status:
        query = query.filter(Approval.status == status)
    if entity_type:
        query = query.filter(Approval.entity_type == entity_type)
    return query.order_by(Approval.requested_at.desc(), Approval.id.desc()).all()


def _locked_pending(approval_id: int, target: ApprovalStatus) -> Approval:
    approval = lock_for_update(db.session.query(Approval).filter_by(id=approval_id)).first()
    if not approval:
        raise NotFoundError("approval", approval_id)
    if is_terminal("approval", approval.status):
        raise InvalidStateTransition(
            "approval",
            approval.status,
            target.value,
            f"Approval {approval_id} has already been {approval.status.lower()}",
        )
    return approval


def approve(approval_id: int, *, user_id: int | None = None, comment: str | None = None) -> Approval:
    """
    Approve and execute.

    The handler runs first; the approval only becomes APPROVED if the
    handler succeeds, and both land in one commit.
    """
    comment = optional_text(comment)

    def _op():
        approval = _locked_pending(approval_id, ApprovalStatus.APPROVED)
        handler = get_handler(approval.entity_type)

        handler.approve(approval.entity_id, approval=approval, user_id=user_id, comment=comment)

        approval.status = ensure_transition("approval", approval.status, ApprovalStatus.APPROVED)
        approval.reviewed_by_user_id = user_id
        approval.reviewed_at = utcnow()
        approval.comments = comment

        append_ledger_event(
            event_type="approval.approved",
            event_category="approvals",
            entity_type="approval",
            entity_id=approval.id,
            actor_user_id=user_id,
            occurred_at=approval.reviewed_at,
            note=comment,
            payload={"entity_type": approval.entity_type, "entity_id": approval.entity_id},
        )
        db.session.commit()
        current_app.logger.info(
            "Approval %s (%s:%s) approved", approval.id, approval.entity_type, approval.entity_id
        )
        return approval

    return run_with_retry(_op)


def reject(approval_id: int, *, user_id: int | None = None, comment: str | None = None) -> Approval:
    """Reject with a mandatory comment and run the entity's rejection handler."""
    comment = optional_text(comment)
    if not comment:
        raise ValidationError("A comment is required to reject", {"field": "comment"})

    def _op():
        approval = _locked_pending(approval_id, ApprovalStatus.REJECTED)
        handler = get_handler(approval.entity_type)

        handler.reject(approval.entity_id, approval=approval, user_id=user_id, comment=comment)

        approval.status = ensure_transition("approval", approval.status, ApprovalStatus.REJECTED)
        approval.reviewed_by_user_id = user_id
        approval.reviewed_at = utcnow()
        approval.comments = comment

        append_ledger_event(
            event_type="approval.rejected",
            event_category="approvals",
            entity_type="approval",
            entity_id=approval.id,
            actor_user_id=user_id,
            occurred_at=approval.reviewed_at,
            note=comment,
            payload={"entity_type": approval.entity_type, "entity_id": approval.entity_id},
        )
        db.session.commit()
        return approval

    return run_with_retry(_op)
