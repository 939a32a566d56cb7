from __future__ import annotations

from ..extensions import db
from stockledger.money import decimal_to_json
from stockledger.time_utils import to_utc_z, to_iso_date


class Period(db.Model):
    """
    Monthly accounting window with locked item prices.

    LIFECYCLE (forward-only):
        DRAFT -> OPEN -> PENDING_CLOSE -> APPROVED -> CLOSED

    DRAFT:         Prices editable, no stock movements.
    OPEN:          Prices locked, deliveries/issues/transfers post here.
    PENDING_CLOSE: Every location READY, PERIOD_CLOSE approval outstanding.
    APPROVED:      Close approved, snapshots being written (same transaction).
    CLOSED:        Immutable. Closing values feed the next period.

    "Current period" is always a query for status OPEN, never a stored pointer.
    """
    __tablename__ = "periods"
    __table_args__ = (
        db.Index("ix_periods_status_start", "status", "start_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    # Set when close is requested
    approval_id = db.Column(db.Integer, db.ForeignKey("approvals.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    period_locations = db.relationship(
        "PeriodLocation",
        back_populates="period",
        lazy=True,
        order_by="PeriodLocation.location_id",
    )

    def __repr__(self) -> str:
        return f"<Period id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self, include_locations: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "status": self.status,
            "approval_id": self.approval_id,
            "created_at": to_utc_z(self.created_at),
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
        }
        if include_locations:
            data["locations"] = [pl.to_dict() for pl in self.period_locations]
        return data


class PeriodLocation(db.Model):
    """
    Per-location state within a period.

    LIFECYCLE: OPEN -> READY -> CLOSED (READY -> OPEN allowed while the
    period is still OPEN).

    snapshot_data is written exactly once, at close, and never updated.
    """
    __tablename__ = "period_locations"

    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), primary_key=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)
    opening_value = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    closing_value = db.Column(db.Numeric(16, 2), nullable=True)
    snapshot_data = db.Column(db.JSON, nullable=True)

    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    period = db.relationship("Period", back_populates="period_locations")
    location = db.relationship("Location")

    def to_dict(self, include_snapshot: bool = False) -> dict:
        data = {
            "period_id": self.period_id,
            "location_id": self.location_id,
            "location_code": self.location.code if self.location else None,
            "location_name": self.location.name if self.location else None,
            "status": self.status,
            "opening_value": decimal_to_json(self.opening_value),
            "closing_value": decimal_to_json(self.closing_value),
            "ready_at": to_utc_z(self.ready_at),
            "closed_at": to_utc_z(self.closed_at),
        }
        if include_snapshot:
            data["snapshot"] = self.snapshot_data
        return data


class ItemPrice(db.Model):
    """
    Period-locked item price.

    Writable only while the owning Period is DRAFT. The write path in
    period_service enforces this; there is no other write path.
    """
    __tablename__ = "item_prices"
    __table_args__ = (
        db.UniqueConstraint("item_id", "period_id", name="uq_item_prices_item_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=False, index=True)
    price = db.Column(db.Numeric(14, 4), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="SAR")

    set_by_user_id = db.Column(db.Integer, nullable=True)
    set_at = db.Column(db.DateTime(timezone=True), nullable=True)

    item = db.relationship("Item")
    period = db.relationship("Period", backref=db.backref("item_prices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "period_id": self.period_id,
            "price": decimal_to_json(self.price),
            "currency": self.currency,
            "set_by_user_id": self.set_by_user_id,
            "set_at": to_utc_z(self.set_at),
        }


class Reconciliation(db.Model):
    """
    Per (period, location) reconciliation.

    Ledger-derived figures (opening, receipts, transfers, issues, closing,
    NCR credits/losses) are refreshed by reconciliation_service. Manual
    fields (back_charges, credits, condemnations, adjustments) are set by
    supervisors. consumption and manday_cost are never stored; they are
    computed from the stored figures.
    """
    __tablename__ = "reconciliations"
    __table_args__ = (
        db.UniqueConstraint("period_id", "location_id", name="uq_reconciliations_period_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # Ledger-derived
    opening_stock = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    receipts = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    transfers_in = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    transfers_out = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    issues = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    closing_stock = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    ncr_credits = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    ncr_losses = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    # Manual
    back_charges = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    credits = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    condemnations = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    adjustments = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    updated_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    period = db.relationship("Period")
    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "period_id": self.period_id,
            "location_id": self.location_id,
            "opening_stock": decimal_to_json(self.opening_stock),
            "receipts": decimal_to_json(self.receipts),
            "transfers_in": decimal_to_json(self.transfers_in),
            "transfers_out": decimal_to_json(self.transfers_out),
            "issues": decimal_to_json(self.issues),
            "closing_stock": decimal_to_json(self.closing_stock),
            "back_charges": decimal_to_json(self.back_charges),
            "credits": decimal_to_json(self.credits),
            "condemnations": decimal_to_json(self.condemnations),
            "adjustments": decimal_to_json(self.adjustments),
            "ncr_credits": decimal_to_json(self.ncr_credits),
            "ncr_losses": decimal_to_json(self.ncr_losses),
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class MandayEntry(db.Model):
    """Daily headcount (POB) for a location; summed into total mandays."""
    __tablename__ = "manday_entries"
    __table_args__ = (
        db.UniqueConstraint("period_id", "location_id", "entry_date", name="uq_manday_entries_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    entry_date = db.Column(db.Date, nullable=False)
    crew_count = db.Column(db.Integer, nullable=False, default=0)
    extra_count = db.Column(db.Integer, nullable=False, default=0)
    entered_by_user_id = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def total(self) -> int:
        return (self.crew_count or 0) + (self.extra_count or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "period_id": self.period_id,
            "location_id": self.location_id,
            "date": to_iso_date(self.entry_date),
            "crew_count": self.crew_count,
            "extra_count": self.extra_count,
            "total": self.total,
        }
