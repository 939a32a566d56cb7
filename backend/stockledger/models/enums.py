from __future__ import annotations

from enum import Enum


class LocationType(str, Enum):
    KITCHEN = "KITCHEN"
    STORE = "STORE"
    CENTRAL = "CENTRAL"
    WAREHOUSE = "WAREHOUSE"


class PeriodStatus(str, Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PENDING_CLOSE = "PENDING_CLOSE"
    APPROVED = "APPROVED"
    CLOSED = "CLOSED"


class PeriodLocationStatus(str, Enum):
    OPEN = "OPEN"
    READY = "READY"
    CLOSED = "CLOSED"


class DeliveryStatus(str, Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"


class CostCentre(str, Enum):
    FOOD = "FOOD"
    CLEAN = "CLEAN"
    OTHER = "OTHER"


class TransferStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class NCRType(str, Enum):
    MANUAL = "MANUAL"
    PRICE_VARIANCE = "PRICE_VARIANCE"


class NCRStatus(str, Enum):
    OPEN = "OPEN"
    SENT = "SENT"
    CREDITED = "CREDITED"
    REJECTED = "REJECTED"
    RESOLVED = "RESOLVED"


class FinancialImpact(str, Enum):
    NONE = "NONE"
    CREDIT = "CREDIT"
    LOSS = "LOSS"


class ApprovalEntityType(str, Enum):
    TRANSFER = "TRANSFER"
    PRF = "PRF"
    PO = "PO"
    PERIOD_CLOSE = "PERIOD_CLOSE"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
