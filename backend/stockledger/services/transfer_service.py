# Overview: Inter-location transfers routed through the generic approval workflow.

"""
Transfer workflow

    DRAFT -> PENDING_APPROVAL -> APPROVED -> COMPLETED
    PENDING_APPROVAL -> REJECTED

Create / submit:
  - Source and destination differ and exist.
  - Source stock is soft-checked (no lock, nothing moves).
  - A TRANSFER approval is created alongside PENDING_APPROVAL.

Approve (complete_transfer_inner, run by approval_service):
  - Both locations OPEN in the current period.
  - Source sufficiency re-checked under lock against current stock.
  - wac_at_transfer = source WAC now; source decremented, destination
    received at that WAC (blended with any existing destination stock).
  - APPROVED and COMPLETED are written in the same transaction.
  - Any shortage aborts: transfer stays PENDING_APPROVAL, no stock moves.

Reject:
  - Comment required. Terminal, no stock movement.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Approval, Item, Location, Transfer, TransferLine
from ..models.enums import ApprovalEntityType, TransferStatus
from ..errors import BusinessRuleViolation, NotFoundError, ValidationError
from ..money import ZERO, quantize_money, quantize_qty
from ..time_utils import utcnow
from ..validation import coerce_int, optional_text, parse_item_lines
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .ledger_service import append_ledger_event
from .lifecycle_service import ensure_transition
from . import approval_service, costing_service, period_service, stock_service


def _load_location(location_id: int, field: str) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if not location:
        raise NotFoundError("location", location_id)
    if not location.is_active:
        raise ValidationError(f"{field} location {location.code} is inactive", {"field": field})
    return location


def _check_items(lines) -> None:
    for index, line in enumerate(lines, start=1):
        item = db.session.query(Item).filter_by(id=line["item_id"]).first()
        if not item:
            raise NotFoundError("item", line["item_id"])
        if not item.is_active:
            raise ValidationError(f"Line {index}: item {item.code} is inactive", {"line": index})


def _submit_inner(transfer: Transfer, user_id: int | None) -> Approval:
    stock_service.check_sufficiency(
        transfer.from_location_id,
        [(line.item_id, line.quantity) for line in transfer.lines],
    )
    transfer.status = ensure_transition("transfer", transfer.status, TransferStatus.PENDING_APPROVAL)
    approval = approval_service.create_approval_inner(
        entity_type=ApprovalEntityType.TRANSFER.value,
        entity_id=transfer.id,
        user_id=user_id,
    )
    append_ledger_event(
        location_id=transfer.from_location_id,
        event_type="transfer.submitted",
        event_category="transfers",
        entity_type="transfer",
        entity_id=transfer.id,
        actor_user_id=user_id,
        note=transfer.transfer_no,
        payload={"approval_id": approval.id, "to_location_id": transfer.to_location_id},
    )
    return approval


def create_transfer(
    *,
    from_location_id,
    to_location_id,
    lines,
    notes: str | None = None,
    submit: bool = True,
    user_id: int | None = None,
) -> Transfer:
    """
    Create a transfer request, PENDING_APPROVAL by default or DRAFT with submit=False.
    """
    from_id = coerce_int(from_location_id, "from_location_id")
    to_id = coerce_int(to_location_id, "to_location_id")
    if from_id == to_id:
        raise ValidationError("Source and destination locations must differ", {"field": "to_location_id"})
    parsed = parse_item_lines(lines)
    notes = optional_text(notes)

    def _op():
        _load_location(from_id, "from")
        _load_location(to_id, "to")
        _check_items(parsed)

        transfer = Transfer(
            transfer_no=next_document_number(document_type="TRANSFER"),
            from_location_id=from_id,
            to_location_id=to_id,
            status=TransferStatus.DRAFT.value,
            notes=notes,
            requested_by_user_id=user_id,
            request_date=utcnow(),
        )
        for line in parsed:
            transfer.lines.append(TransferLine(item_id=line["item_id"], quantity=quantize_qty(line["quantity"])))
        db.session.add(transfer)
        db.session.flush()

        append_ledger_event(
            location_id=from_id,
            event_type="transfer.created",
            event_category="transfers",
            entity_type="transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            occurred_at=transfer.request_date,
            note=transfer.transfer_no,
            payload={"to_location_id": to_id, "lines": len(parsed)},
        )
        if submit:
            _submit_inner(transfer, user_id)

        db.session.commit()
        return transfer

    return run_with_retry(_op)


def submit_transfer(transfer_id: int, *, user_id: int | None = None) -> Transfer:
    """DRAFT -> PENDING_APPROVAL."""
    def _op():
        transfer = lock_for_update(db.session.query(Transfer).filter_by(id=transfer_id)).first()
        if not transfer:
            raise NotFoundError("transfer", transfer_id)
        _submit_inner(transfer, user_id)
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def complete_transfer_inner(
    transfer_id: int,
    *,
    approval: Approval,
    user_id: int | None = None,
    comment: str | None = None,
) -> Transfer:
    """TRANSFER approval handler. No commit; approval_service owns the transaction."""
    transfer = lock_for_update(db.session.query(Transfer).filter_by(id=transfer_id)).first()
    if not transfer:
        raise NotFoundError("transfer", transfer_id)

    period = period_service.require_current_period()
    period_service.require_open_period_location(transfer.from_location_id, period)
    period_service.require_open_period_location(transfer.to_location_id, period)

    rows = stock_service.check_sufficiency(
        transfer.from_location_id,
        [(line.item_id, line.quantity) for line in transfer.lines],
        lock=True,
    )
    transfer.status = ensure_transition("transfer", transfer.status, TransferStatus.APPROVED)

    total = ZERO
    for line in transfer.lines:
        wac = rows[line.item_id].wac
        line.wac_at_transfer = wac
        line.line_value = costing_service.line_value(line.quantity, wac)
        total += line.line_value

        stock_service.apply_delta(transfer.from_location_id, line.item_id, -line.quantity)
        stock_service.receive(transfer.to_location_id, line.item_id, line.quantity, wac)

    now = utcnow()
    transfer.status = ensure_transition("transfer", transfer.status, TransferStatus.COMPLETED)
    transfer.period_id = period.id
    transfer.total_value = quantize_money(total)
    transfer.approved_by_user_id = user_id
    transfer.approval_date = now
    transfer.transfer_date = now

    for location_id, direction in (
        (transfer.from_location_id, "out"),
        (transfer.to_location_id, "in"),
    ):
        append_ledger_event(
            location_id=location_id,
            period_id=period.id,
            event_type="transfer.completed",
            event_category="transfers",
            entity_type="transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            occurred_at=now,
            note=transfer.transfer_no,
            payload={"direction": direction, "total_value": str(transfer.total_value), "approval_id": approval.id},
        )

    current_app.logger.info(
        "Transfer %s completed: %s -> %s (%s)",
        transfer.transfer_no, transfer.from_location_id, transfer.to_location_id, transfer.total_value,
    )
    return transfer


def reject_transfer_inner(
    transfer_id: int,
    *,
    approval: Approval,
    user_id: int | None = None,
    comment: str | None = None,
) -> Transfer:
    transfer = lock_for_update(db.session.query(Transfer).filter_by(id=transfer_id)).first()
    if not transfer:
        raise NotFoundError("transfer", transfer_id)

    transfer.status = ensure_transition("transfer", transfer.status, TransferStatus.REJECTED)
    transfer.rejection_comment = comment
    transfer.approved_by_user_id = user_id
    transfer.approval_date = utcnow()

    append_ledger_event(
        location_id=transfer.from_location_id,
        event_type="transfer.rejected",
        event_category="transfers",
        entity_type="transfer",
        entity_id=transfer.id,
        actor_user_id=user_id,
        occurred_at=transfer.approval_date,
        note=comment,
        payload={"approval_id": approval.id},
    )
    return transfer


def _pending_approval_for(transfer_id: int) -> Approval:
    transfer = get_transfer(transfer_id)
    approval = approval_service.get_pending_approval(ApprovalEntityType.TRANSFER.value, transfer_id)
    if approval is None:
        raise BusinessRuleViolation(
            f"Transfer {transfer.transfer_no} has no pending approval (status {transfer.status})",
            {"transfer_id": transfer_id, "status": transfer.status},
            code="INVALID_STATUS",
        )
    return approval


def approve_transfer(transfer_id: int, *, user_id: int | None = None, comment: str | None = None) -> Transfer:
    """Approve through the transfer's pending Approval; same path as the approvals endpoint."""
    approval = _pending_approval_for(transfer_id)
    approval_service.approve(approval.id, user_id=user_id, comment=comment)
    return get_transfer(transfer_id)


def reject_transfer(transfer_id: int, *, user_id: int | None = None, comment: str | None = None) -> Transfer:
    approval = _pending_approval_for(transfer_id)
    approval_service.reject(approval.id, user_id=user_id, comment=comment)
    return get_transfer(transfer_id)


def get_transfer(transfer_id: int) -> Transfer:
    transfer = db.session.query(Transfer).filter_by(id=transfer_id).first()
    if not transfer:
        raise NotFoundError("transfer", transfer_id)
    return transfer


def list_transfers(*, location_id: int | None = None, status: str | None = None) -> list[Transfer]:
    query = db.session.query(Transfer)
    if location_id is not None:
        query = query.filter(
            (Transfer.from_location_id == location_id) | (Transfer.to_location_id == location_id)
        )
    if status:
        query = query.filter(Transfer.status == status)
    return query.order_by(Transfer.id.desc()).all()
