from __future__ import annotations

from ..extensions import db
from stockledger.money import decimal_to_json
from stockledger.time_utils import to_utc_z


class Transfer(db.Model):
    """
    Inter-location stock transfer.

    LIFECYCLE:
    1. DRAFT: Lines captured, not yet submitted
    2. PENDING_APPROVAL: Submitted, TRANSFER approval outstanding
    3. APPROVED: Transient, set and completed inside the approval transaction
    4. COMPLETED: Source decremented, destination received at wac_at_transfer
    5. REJECTED: Terminal, no stock movement

    period_id is the OPEN period the stock moved in. It stays NULL until the
    transfer completes.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.CheckConstraint("from_location_id <> to_location_id", name="ck_transfers_distinct_locations"),
        db.Index("ix_transfers_period_status", "period_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_no = db.Column(db.String(32), nullable=False, unique=True)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=True, index=True)

    # DRAFT, PENDING_APPROVAL, APPROVED, REJECTED, COMPLETED
    status = db.Column(db.String(20), nullable=False, default="PENDING_APPROVAL", index=True)

    total_value = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    rejection_comment = db.Column(db.Text, nullable=True)

    requested_by_user_id = db.Column(db.Integer, nullable=True)
    approved_by_user_id = db.Column(db.Integer, nullable=True)

    request_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    transfer_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])
    period = db.relationship("Period")
    lines = db.relationship(
        "TransferLine",
        back_populates="transfer",
        lazy=True,
        order_by="TransferLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_no": self.transfer_no,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "period_id": self.period_id,
            "status": self.status,
            "total_value": decimal_to_json(self.total_value),
            "notes": self.notes,
            "rejection_comment": self.rejection_comment,
            "requested_by_user_id": self.requested_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "request_date": to_utc_z(self.request_date),
            "approval_date": to_utc_z(self.approval_date),
            "transfer_date": to_utc_z(self.transfer_date),
            "version_id": self.version_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class TransferLine(db.Model):
    __tablename__ = "transfer_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 4), nullable=False)

    # Source WAC captured at approval time
    wac_at_transfer = db.Column(db.Numeric(14, 4), nullable=True)
    line_value = db.Column(db.Numeric(16, 2), nullable=True)

    transfer = db.relationship("Transfer", back_populates="lines")
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "item_id": self.item_id,
            "quantity": decimal_to_json(self.quantity),
            "wac_at_transfer": decimal_to_json(self.wac_at_transfer),
            "line_value": decimal_to_json(self.line_value),
        }


class NCR(db.Model):
    """
    Non-conformance report.

    LIFECYCLE:
        OPEN -> SENT -> CREDITED | REJECTED
        OPEN -> RESOLVED (requires resolution_type and financial_impact)

    PRICE_VARIANCE NCRs are only ever created by the delivery processor
    (auto_generated=True). value is always positive; the signed variance
    lives on the delivery line.
    """
    __tablename__ = "ncrs"
    __table_args__ = (
        db.CheckConstraint("value >= 0", name="ck_ncrs_value_non_negative"),
        db.Index("ix_ncrs_period_location_status", "period_id", "location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ncr_no = db.Column(db.String(32), nullable=False, unique=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    period_id = db.Column(db.Integer, db.ForeignKey("periods.id"), nullable=True, index=True)

    ncr_type = db.Column(db.String(20), nullable=False, default="MANUAL")  # MANUAL, PRICE_VARIANCE
    auto_generated = db.Column(db.Boolean, nullable=False, default=False)

    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=True, index=True)
    # Plain reference; delivery_lines.ncr_id carries the FK in the other direction
    delivery_line_id = db.Column(db.Integer, nullable=True, index=True)

    reason = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(14, 4), nullable=True)
    value = db.Column(db.Numeric(16, 2), nullable=False)

    # OPEN, SENT, CREDITED, REJECTED, RESOLVED
    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)
    resolution_type = db.Column(db.String(100), nullable=True)
    financial_impact = db.Column(db.String(8), nullable=True)  # NONE, CREDIT, LOSS
    resolution_notes = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    location = db.relationship("Location")
    period = db.relationship("Period")
    delivery = db.relationship("Delivery", foreign_keys=[delivery_id])
    lines = db.relationship(
        "NCRLine",
        back_populates="ncr",
        lazy=True,
        order_by="NCRLine.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<NCR {self.ncr_no} {self.ncr_type} {self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ncr_no": self.ncr_no,
            "location_id": self.location_id,
            "period_id": self.period_id,
            "type": self.ncr_type,
            "auto_generated": self.auto_generated,
            "delivery_id": self.delivery_id,
            "delivery_line_id": self.delivery_line_id,
            "reason": self.reason,
            "quantity": decimal_to_json(self.quantity),
            "value": decimal_to_json(self.value),
            "status": self.status,
            "resolution_type": self.resolution_type,
            "financial_impact": self.financial_impact,
            "resolution_notes": self.resolution_notes,
            "resolved_at": to_utc_z(self.resolved_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class NCRLine(db.Model):
    __tablename__ = "ncr_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ncr_id = db.Column(db.Integer, db.ForeignKey("ncrs.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    quantity = db.Column(db.Numeric(14, 4), nullable=False)
    unit_value = db.Column(db.Numeric(14, 4), nullable=False)
    line_value = db.Column(db.Numeric(16, 2), nullable=False)

    ncr = db.relationship("NCR", back_populates="lines")
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": decimal_to_json(self.quantity),
            "unit_value": decimal_to_json(self.unit_value),
            "line_value": decimal_to_json(self.line_value),
        }


class Approval(db.Model):
    """
    Generic approval record: PENDING -> APPROVED | REJECTED.

    Tagged by entity_type (TRANSFER, PRF, PO, PERIOD_CLOSE) plus entity_id.
    Created by the action that needs approval, never directly. Once decided
    the record is frozen; execution logic lives in approval_service's
    per-type dispatch table.
    """
    __tablename__ = "approvals"
    __table_args__ = (
        db.Index("ix_approvals_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(20), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    requested_by_user_id = db.Column(db.Integer, nullable=True)
    reviewed_by_user_id = db.Column(db.Integer, nullable=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comments = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Approval {self.entity_type}:{self.entity_id} {self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "status": self.status,
            "requested_by_user_id": self.requested_by_user_id,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "requested_at": to_utc_z(self.requested_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "comments": self.comments,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type, per-year document sequences.

    Backs DEL-2026-0001 style numbers for deliveries, issues, transfers
    and NCRs.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
