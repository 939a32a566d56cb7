from __future__ import annotations

from ..extensions import db
from stockledger.money import decimal_to_json
from stockledger.time_utils import to_utc_z, to_iso_date


class LocationStock(db.Model):
    """
    Authoritative on-hand quantity and weighted average cost per (location, item).

    INVARIANTS:
    - on_hand >= 0 (CHECK constraint plus the guard in stock_service.apply_delta)
    - wac >= 0
    - wac only changes on receipts (deliveries, transfer-in)

    This is the only row mutated by more than one processor. Writers take a
    row lock (SELECT ... FOR UPDATE) and the version_id column turns any
    lost update into a StaleDataError that the retry helper handles.
    """
    __tablename__ = "location_stock"
    __table_args__ = (
        db.CheckConstraint("on_hand >= 0", name="ck_location_stock_on_hand_non_negative"),
        db.CheckConstraint("wac >= 0", name="ck_location_stock_wac_non_negative"),
    )

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), primary_key=True)

    on_hand = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    wac = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    location = db.relationship("Location")
    item = db.relationship("Item")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<LocationStock location={self.location_id} item={self.item_id} on_hand={self.on_hand}>"

    @property
    def value(self):
        return self.on_hand * self.wac

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "item_id": self.item_id,
            "item_code": self.item.code if self.item else None,
            "item_name": self.item.name if self.item else None,
            "unit": self.item.unit if self.item else None,
            "on_hand": decimal_to_json(self.on_hand),
            "wac": decimal_to_json(self.wac),
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class Delivery(db.Model):
    """
    Goods receipt from a supplier.

    LIFECYCLE: DRAFT -> POSTED

    DRAFT:  Validated and stored, no stock effect, invoice optional.
    POSTED: Immutable. Every line has moved stock and WAC, and every price
            mismatch has produced a PRICE_VARIANCE NCR, all in one transaction.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.Index("ix_deliveries_location_period", "location_id", "period_id"),
        db.Index(
            "uq_deliveries_invoice_no",
            "invoice_no",
            unique=True,
            sqlite_where=db.text("invoice_no IS NOT NULL"),
            postgresql_where=db.text("invoice_no IS NOT NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_no = db.Column(db.String(32), nullable=False, unique=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    invoice_no = db.Column(db.String(100), nullable=True)
    delivery_note = db.Column(db.Text, nullable=True)
    delivery_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    total_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    has_variance = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    posted_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    location = db.relationship("Location")
    period = db.relationship("Period")
    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "DeliveryLine",
        back_populates="delivery",
        lazy=True,
        order_by="DeliveryLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "delivery_no": self.delivery_no,
            "location_id": self.location_id,
            "period_id": self.period_id,
            "supplier_id": self.supplier_id,
            "invoice_no": self.invoice_no,
            "delivery_note": self.delivery_note,
            "delivery_date": to_iso_date(self.delivery_date),
            "status": self.status,
            "total_amount": decimal_to_json(self.total_amount),
            "has_variance": self.has_variance,
            "created_by_user_id": self.created_by_user_id,
            "posted_by_user_id": self.posted_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "posted_at": to_utc_z(self.posted_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class DeliveryLine(db.Model):
    __tablename__ = "delivery_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 4), nullable=False)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)

    # Captured when the delivery is posted
    period_price = db.Column(db.Numeric(14, 4), nullable=True)
    price_variance = db.Column(db.Numeric(14, 4), nullable=True)  # unit_price - period_price
    variance_amount = db.Column(db.Numeric(16, 2), nullable=True)  # quantity * price_variance
    line_value = db.Column(db.Numeric(16, 2), nullable=False)

    ncr_id = db.Column(db.Integer, db.ForeignKey("ncrs.id"), nullable=True)

    delivery = db.relationship("Delivery", back_populates="lines")
    item = db.relationship("Item")
    ncr = db.relationship("NCR", foreign_keys=[ncr_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "item_id": self.item_id,
            "quantity": decimal_to_json(self.quantity),
            "unit_price": decimal_to_json(self.unit_price),
            "period_price": decimal_to_json(self.period_price),
            "price_variance": decimal_to_json(self.price_variance),
            "variance_amount": decimal_to_json(self.variance_amount),
            "line_value": decimal_to_json(self.line_value),
            "ncr_id": self.ncr_id,
        }


class Issue(db.Model):
    """
    Stock consumption at a location.

    Posted in one transaction. Each line freezes wac_at_issue, so later WAC
    changes never alter the value of a past issue.
    """
    __tablename__ = "issues"
    __table_args__ = (
        db.Index("ix_issues_location_period", "location_id", "period_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    issue_no = db.Column(db.String(32), nullable=False, unique=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=False, index=True)
    cost_centre = db.Column(db.String(16), nullable=False)  # FOOD, CLEAN, OTHER
    issue_date = db.Column(db.Date, nullable=False)
    total_value = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    posted_by_user_id = db.Column(db.Integer, nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    location = db.relationship("Location")
    period = db.relationship("Period")
    lines = db.relationship(
        "IssueLine",
        back_populates="issue",
        lazy=True,
        order_by="IssueLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issue_no": self.issue_no,
            "location_id": self.location_id,
            "period_id": self.period_id,
            "cost_centre": self.cost_centre,
            "issue_date": to_iso_date(self.issue_date),
            "total_value": decimal_to_json(self.total_value),
            "notes": self.notes,
            "posted_by_user_id": self.posted_by_user_id,
            "posted_at": to_utc_z(self.posted_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class IssueLine(db.Model):
    __tablename__ = "issue_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    issue_id = db.Column(db.Integer, db.ForeignKey("issues.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 4), nullable=False)
    wac_at_issue = db.Column(db.Numeric(14, 4), nullable=False)
    line_value = db.Column(db.Numeric(16, 2), nullable=False)

    issue = db.relationship("Issue", back_populates="lines")
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "item_id": self.item_id,
            "quantity": decimal_to_json(self.quantity),
            "wac_at_issue": decimal_to_json(self.wac_at_issue),
            "line_value": decimal_to_json(self.line_value),
        }
