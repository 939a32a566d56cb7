# Overview: Error taxonomy shared by services and routes.

"""
Stock Ledger error taxonomy.

- ValidationError: malformed or missing input, raised before any write.
- BusinessRuleViolation: a well-formed request that breaks a ledger rule
  (insufficient stock, locked prices, locations not ready, ...). Carries
  structured details for the caller.
- ConcurrencyConflict: lock contention on a LocationStock key. Safe to retry.
- StorageUnavailable: the database cannot be reached. Not retried.

Every error exposes a stable `code` and an HTTP `status_code`. Routes
render them with `to_dict()`.
"""

from __future__ import annotations


class StockLedgerError(Exception):
    """Base class for all errors surfaced to callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(StockLedgerError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(StockLedgerError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity.replace('_', ' ').capitalize()} {entity_id} not found",
            {"entity": entity, "id": entity_id},
            code=f"{entity.upper()}_NOT_FOUND",
        )


class BusinessRuleViolation(StockLedgerError):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 400


class InsufficientStock(BusinessRuleViolation):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, item_id: int, location_id: int, requested, available, shortages: list | None = None):
        self.item_id = item_id
        self.location_id = location_id
        self.requested = requested
        self.available = available
        details = {
            "item_id": item_id,
            "location_id": location_id,
            "requested": str(requested),
            "available": str(available),
        }
        if shortages:
            details["shortages"] = shortages
        super().__init__(
            f"Insufficient stock for item {item_id} at location {location_id}. "
            f"Requested: {requested}, available: {available}",
            details,
        )


class NoOpenPeriod(BusinessRuleViolation):
    code = "NO_OPEN_PERIOD"


class PeriodClosed(BusinessRuleViolation):
    code = "PERIOD_CLOSED"


class PriceLocked(PeriodClosed):
    """Item prices can only be written while the period is DRAFT."""


class LocationsNotReady(BusinessRuleViolation):
    code = "LOCATIONS_NOT_READY"


class ReconciliationNotCompleted(BusinessRuleViolation):
    code = "RECONCILIATION_NOT_COMPLETED"


class InvalidStateTransition(BusinessRuleViolation):
    code = "INVALID_STATUS"

    def __init__(self, machine: str, from_status: str, to_status: str, message: str | None = None):
        super().__init__(
            message or f"{machine} cannot move from {from_status} to {to_status}",
            {"entity": machine, "current_status": from_status, "requested_status": to_status},
        )


class MissingPeriodPrices(BusinessRuleViolation):
    code = "MISSING_PERIOD_PRICES"


class DuplicateEntry(BusinessRuleViolation):
    code = "DUPLICATE_ENTRY"
    status_code = 409


class ConcurrencyConflict(StockLedgerError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409


class StorageUnavailable(StockLedgerError):
    code = "SYSTEM_ERROR"
    status_code = 503
