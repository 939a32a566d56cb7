# Overview: Explicit transition tables for every status machine in the ledger.

"""
Stock Ledger state machines

================================================================================
Every status column is guarded by one table below. Services call
ensure_transition() before assigning a new status, so there is a single place
that decides what may follow what.
================================================================================

PERIOD (forward-only, with one administrative rewind):
    DRAFT -> OPEN -> PENDING_CLOSE -> APPROVED -> CLOSED
    PENDING_CLOSE -> OPEN          (close approval rejected)

PERIOD LOCATION:
    OPEN -> READY -> CLOSED
    READY -> OPEN                  (unready while the period is OPEN)

DELIVERY:
    DRAFT -> POSTED

TRANSFER:
    DRAFT -> PENDING_APPROVAL -> APPROVED -> COMPLETED
    PENDING_APPROVAL -> REJECTED

NCR:
    OPEN -> SENT -> CREDITED | REJECTED
    OPEN -> RESOLVED

APPROVAL:
    PENDING -> APPROVED | REJECTED
"""

from __future__ import annotations

from ..errors import InvalidStateTransition, ValidationError
from ..models.enums import (
    ApprovalStatus,
    DeliveryStatus,
    NCRStatus,
    PeriodLocationStatus,
    PeriodStatus,
    TransferStatus,
)


PERIOD_TRANSITIONS = {
    PeriodStatus.DRAFT: {PeriodStatus.OPEN},
    PeriodStatus.OPEN: {PeriodStatus.PENDING_CLOSE},
    PeriodStatus.PENDING_CLOSE: {PeriodStatus.APPROVED, PeriodStatus.OPEN},
    PeriodStatus.APPROVED: {PeriodStatus.CLOSED},
    PeriodStatus.CLOSED: set(),
}

PERIOD_LOCATION_TRANSITIONS = {
    PeriodLocationStatus.OPEN: {PeriodLocationStatus.READY},
    PeriodLocationStatus.READY: {PeriodLocationStatus.OPEN, PeriodLocationStatus.CLOSED},
    PeriodLocationStatus.CLOSED: set(),
}

DELIVERY_TRANSITIONS = {
    DeliveryStatus.DRAFT: {DeliveryStatus.POSTED},
    DeliveryStatus.POSTED: set(),
}

TRANSFER_TRANSITIONS = {
    TransferStatus.DRAFT: {TransferStatus.PENDING_APPROVAL},
    TransferStatus.PENDING_APPROVAL: {TransferStatus.APPROVED, TransferStatus.REJECTED},
    TransferStatus.APPROVED: {TransferStatus.COMPLETED},
    TransferStatus.REJECTED: set(),
    TransferStatus.COMPLETED: set(),
}

NCR_TRANSITIONS = {
    NCRStatus.OPEN: {NCRStatus.SENT, NCRStatus.RESOLVED},
    NCRStatus.SENT: {NCRStatus.CREDITED, NCRStatus.REJECTED},
    NCRStatus.CREDITED: set(),
    NCRStatus.REJECTED: set(),
    NCRStatus.RESOLVED: set(),
}

APPROVAL_TRANSITIONS = {
    ApprovalStatus.PENDING: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
    ApprovalStatus.APPROVED: set(),
    ApprovalStatus.REJECTED: set(),
}

MACHINES = {
    "period": (PeriodStatus, PERIOD_TRANSITIONS),
    "period_location": (PeriodLocationStatus, PERIOD_LOCATION_TRANSITIONS),
    "delivery": (DeliveryStatus, DELIVERY_TRANSITIONS),
    "transfer": (TransferStatus, TRANSFER_TRANSITIONS),
    "ncr": (NCRStatus, NCR_TRANSITIONS),
    "approval": (ApprovalStatus, APPROVAL_TRANSITIONS),
}


def _coerce(enum_cls, machine: str, status):
    try:
        return enum_cls(status)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {machine} status '{status}'. Must be one of: {allowed}")


def can_transition(machine: str, from_status, to_status) -> bool:
    """
    Check a transition against the machine's table.

    Same-state transitions are not allowed; every status change must be a
    real move.
    """
    enum_cls, table = MACHINES[machine]
    src = _coerce(enum_cls, machine, from_status)
    dst = _coerce(enum_cls, machine, to_status)
    return dst in table[src]


def ensure_transition(machine: str, from_status, to_status, message: str | None = None) -> str:
    """Raise InvalidStateTransition unless the move is allowed. Returns the new status value."""
    if not can_transition(machine, from_status, to_status):
        raise InvalidStateTransition(machine, str(_value(from_status)), str(_value(to_status)), message)
    return _value(to_status)


def is_terminal(machine: str, status) -> bool:
    enum_cls, table = MACHINES[machine]
    return not table[_coerce(enum_cls, machine, status)]


def _value(status):
    return status.value if hasattr(status, "value") else status
