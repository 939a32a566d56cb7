"""Initial stock ledger schema

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=nullable)


def upgrade():
    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("location_type", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("locations", schema=None) as batch_op:
        batch_op.create_index("ix_locations_code", ["code"], unique=True)
        batch_op.create_index("ix_locations_is_active", ["is_active"], unique=False)

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("items", schema=None) as batch_op:
        batch_op.create_index("ix_items_code", ["code"], unique=True)
        batch_op.create_index("ix_items_is_active", ["is_active"], unique=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_suppliers_code", ["code"], unique=True)

    # ------------------------------------------------------------------
    # Approvals and periods
    # ------------------------------------------------------------------
    op.create_table(
        "approvals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("requested_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_by_user_id", sa.Integer(), nullable=True),
        _timestamp("requested_at"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("approvals", schema=None) as batch_op:
        batch_op.create_index("ix_approvals_entity", ["entity_type", "entity_id"], unique=False)
        batch_op.create_index("ix_approvals_status", ["status"], unique=False)

    op.create_table(
        "periods",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("approval_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["approval_id"], ["approvals.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("periods", schema=None) as batch_op:
        batch_op.create_index("ix_periods_status", ["status"], unique=False)
        batch_op.create_index("ix_periods_status_start", ["status", "start_date"], unique=False)

    op.create_table(
        "period_locations",
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="OPEN"),
        sa.Column("opening_value", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("closing_value", sa.Numeric(16, 2), nullable=True),
        sa.Column("snapshot_data", sa.JSON(), nullable=True),
        sa.Column("ready_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("period_id", "location_id"),
    )
    with op.batch_alter_table("period_locations", schema=None) as batch_op:
        batch_op.create_index("ix_period_locations_status", ["status"], unique=False)

    op.create_table(
        "item_prices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(14, 4), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="SAR"),
        sa.Column("set_by_user_id", sa.Integer(), nullable=True),
        sa.Column("set_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_id", "period_id", name="uq_item_prices_item_period"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("item_prices", schema=None) as batch_op:
        batch_op.create_index("ix_item_prices_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_item_prices_period_id", ["period_id"], unique=False)

    op.create_table(
        "reconciliations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("opening_stock", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("receipts", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("transfers_in", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("transfers_out", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("issues", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("closing_stock", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("ncr_credits", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("ncr_losses", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("back_charges", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("credits", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("condemnations", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("adjustments", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period_id", "location_id", name="uq_reconciliations_period_location"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reconciliations", schema=None) as batch_op:
        batch_op.create_index("ix_reconciliations_period_id", ["period_id"], unique=False)
        batch_op.create_index("ix_reconciliations_location_id", ["location_id"], unique=False)

    op.create_table(
        "manday_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("crew_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("extra_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("entered_by_user_id", sa.Integer(), nullable=True),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period_id", "location_id", "entry_date", name="uq_manday_entries_day"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("manday_entries", schema=None) as batch_op:
        batch_op.create_index("ix_manday_entries_period_id", ["period_id"], unique=False)
        batch_op.create_index("ix_manday_entries_location_id", ["location_id"], unique=False)

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    op.create_table(
        "location_stock",
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("on_hand", sa.Numeric(14, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("wac", sa.Numeric(14, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.CheckConstraint("on_hand >= 0", name="ck_location_stock_on_hand_non_negative"),
        sa.CheckConstraint("wac >= 0", name="ck_location_stock_wac_non_negative"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("location_id", "item_id"),
    )

    # ------------------------------------------------------------------
    # Deliveries and NCRs
    # ------------------------------------------------------------------
    op.create_table(
        "deliveries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("delivery_no", sa.String(32), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("invoice_no", sa.String(100), nullable=True),
        sa.Column("delivery_note", sa.Text(), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("total_amount", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("has_variance", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("posted_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("delivery_no"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("deliveries", schema=None) as batch_op:
        batch_op.create_index("ix_deliveries_location_period", ["location_id", "period_id"], unique=False)
        batch_op.create_index("ix_deliveries_status", ["status"], unique=False)
        batch_op.create_index(
            "uq_deliveries_invoice_no",
            ["invoice_no"],
            unique=True,
            sqlite_where=sa.text("invoice_no IS NOT NULL"),
            postgresql_where=sa.text("invoice_no IS NOT NULL"),
        )

    op.create_table(
        "ncrs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ncr_no", sa.String(32), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=True),
        sa.Column("ncr_type", sa.String(20), nullable=False, server_default="MANUAL"),
        sa.Column("auto_generated", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivery_id", sa.Integer(), nullable=True),
        sa.Column("delivery_line_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=True),
        sa.Column("value", sa.Numeric(16, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="OPEN"),
        sa.Column("resolution_type", sa.String(100), nullable=True),
        sa.Column("financial_impact", sa.String(8), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("value >= 0", name="ck_ncrs_value_non_negative"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.ForeignKeyConstraint(["delivery_id"], ["deliveries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ncr_no"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ncrs", schema=None) as batch_op:
        batch_op.create_index("ix_ncrs_period_location_status", ["period_id", "location_id", "status"], unique=False)
        batch_op.create_index("ix_ncrs_delivery_id", ["delivery_id"], unique=False)
        batch_op.create_index("ix_ncrs_delivery_line_id", ["delivery_line_id"], unique=False)

    op.create_table(
        "delivery_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("delivery_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=False),
        sa.Column("period_price", sa.Numeric(14, 4), nullable=True),
        sa.Column("price_variance", sa.Numeric(14, 4), nullable=True),
        sa.Column("variance_amount", sa.Numeric(16, 2), nullable=True),
        sa.Column("line_value", sa.Numeric(16, 2), nullable=False),
        sa.Column("ncr_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["delivery_id"], ["deliveries.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.ForeignKeyConstraint(["ncr_id"], ["ncrs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("delivery_lines", schema=None) as batch_op:
        batch_op.create_index("ix_delivery_lines_delivery_id", ["delivery_id"], unique=False)
        batch_op.create_index("ix_delivery_lines_item_id", ["item_id"], unique=False)

    op.create_table(
        "ncr_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ncr_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
        sa.Column("unit_value", sa.Numeric(14, 4), nullable=False),
        sa.Column("line_value", sa.Numeric(16, 2), nullable=False),
        sa.ForeignKeyConstraint(["ncr_id"], ["ncrs.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ncr_lines", schema=None) as batch_op:
        batch_op.create_index("ix_ncr_lines_ncr_id", ["ncr_id"], unique=False)

    # ------------------------------------------------------------------
    # Issues and transfers
    # ------------------------------------------------------------------
    op.create_table(
        "issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_no", sa.String(32), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("cost_centre", sa.String(16), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("total_value", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("posted_by_user_id", sa.Integer(), nullable=True),
        _timestamp("posted_at"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("issue_no"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("issues", schema=None) as batch_op:
        batch_op.create_index("ix_issues_location_period", ["location_id", "period_id"], unique=False)

    op.create_table(
        "issue_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
        sa.Column("wac_at_issue", sa.Numeric(14, 4), nullable=False),
        sa.Column("line_value", sa.Numeric(16, 2), nullable=False),
        sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("issue_lines", schema=None) as batch_op:
        batch_op.create_index("ix_issue_lines_issue_id", ["issue_id"], unique=False)

    op.create_table(
        "transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_no", sa.String(32), nullable=False),
        sa.Column("from_location_id", sa.Integer(), nullable=False),
        sa.Column("to_location_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING_APPROVAL"),
        sa.Column("total_value", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejection_comment", sa.Text(), nullable=True),
        sa.Column("requested_by_user_id", sa.Integer(), nullable=True),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        _timestamp("request_date"),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transfer_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("from_location_id <> to_location_id", name="ck_transfers_distinct_locations"),
        sa.ForeignKeyConstraint(["from_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["to_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transfer_no"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transfers", schema=None) as batch_op:
        batch_op.create_index("ix_transfers_period_status", ["period_id", "status"], unique=False)
        batch_op.create_index("ix_transfers_from_location_id", ["from_location_id"], unique=False)
        batch_op.create_index("ix_transfers_to_location_id", ["to_location_id"], unique=False)

    op.create_table(
        "transfer_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
        sa.Column("wac_at_transfer", sa.Numeric(14, 4), nullable=True),
        sa.Column("line_value", sa.Numeric(16, 2), nullable=True),
        sa.ForeignKeyConstraint(["transfer_id"], ["transfers.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transfer_lines", schema=None) as batch_op:
        batch_op.create_index("ix_transfer_lines_transfer_id", ["transfer_id"], unique=False)

    # ------------------------------------------------------------------
    # Numbering and audit
    # ------------------------------------------------------------------
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("period_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_category", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        _timestamp("occurred_at"),
        _timestamp("created_at"),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_location_occurred", ["location_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_ledger_events_entity", ["entity_type", "entity_id"], unique=False)
        batch_op.create_index("ix_ledger_events_event_type", ["event_type"], unique=False)


def downgrade():
    for table in (
        "ledger_events",
        "document_sequences",
        "transfer_lines",
        "transfers",
        "issue_lines",
        "issues",
        "ncr_lines",
        "delivery_lines",
        "ncrs",
        "deliveries",
        "location_stock",
        "manday_entries",
        "reconciliations",
        "item_prices",
        "period_locations",
        "periods",
        "approvals",
        "suppliers",
        "items",
        "locations",
    ):
        op.drop_table(table)
