"""requisition workflow tables

Revision ID: 0001_init_requisition_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_init_requisition_tables"
down_revision = None
branch_labels = None
depends_on = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("department", sa.String(length=20), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_name", "users", ["name"])
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "requisitions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("department", sa.String(length=20), nullable=False),
        sa.Column("requester_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("queried_to", sa.String(length=20), nullable=True),
        sa.Column("previous_status_on_query", sa.String(length=40), nullable=True),
        sa.Column("signatures", JSON_TYPE, nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_requisitions_type", "requisitions", ["type"])
    op.create_index("ix_requisitions_status", "requisitions", ["status"])
    op.create_index("ix_requisitions_requester_id", "requisitions", ["requester_id"])
    op.create_index("ix_requisitions_created_at", "requisitions", ["created_at"])

    op.create_table(
        "requisition_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("requisition_id", sa.Uuid(), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("supplier", sa.String(length=200), nullable=True),
        sa.Column("estimated_unit_cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("stock_level", sa.Integer(), nullable=True),
    )
    op.create_index("ix_requisition_items_requisition_id", "requisition_items", ["requisition_id"])

    op.create_table(
        "histology_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("requisition_id", sa.Uuid(), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("patient_name", sa.String(length=200), nullable=False),
        sa.Column("hospital_no", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("lab_no", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("receipt_no", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("outsource_service", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("outsource_bills", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("internal_charge", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("retainership", sa.String(length=100), nullable=False, server_default=""),
    )
    op.create_index("ix_histology_items_requisition_id", "histology_items", ["requisition_id"])

    op.create_table(
        "approval_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("requisition_id", sa.Uuid(), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(length=30), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("signature", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_approval_logs_requisition_id", "approval_logs", ["requisition_id"])
    op.create_index("ix_approval_logs_user_id", "approval_logs", ["user_id"])
    op.create_index("ix_approval_logs_action", "approval_logs", ["action"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("requisition_id", sa.Uuid(), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_messages_requisition_id", "messages", ["requisition_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("requisition_id", sa.Uuid(), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("proof_path", sa.String(length=500), nullable=True),
        sa.Column("recorded_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_requisition_id", "payments", ["requisition_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("recipient_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("requisition_id", sa.Uuid(), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_payments_requisition_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_messages_requisition_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_approval_logs_action", table_name="approval_logs")
    op.drop_index("ix_approval_logs_user_id", table_name="approval_logs")
    op.drop_index("ix_approval_logs_requisition_id", table_name="approval_logs")
    op.drop_table("approval_logs")
    op.drop_index("ix_histology_items_requisition_id", table_name="histology_items")
    op.drop_table("histology_items")
    op.drop_index("ix_requisition_items_requisition_id", table_name="requisition_items")
    op.drop_table("requisition_items")
    op.drop_index("ix_requisitions_created_at", table_name="requisitions")
    op.drop_index("ix_requisitions_requester_id", table_name="requisitions")
    op.drop_index("ix_requisitions_status", table_name="requisitions")
    op.drop_index("ix_requisitions_type", table_name="requisitions")
    op.drop_table("requisitions")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_name", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
