"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "handoff_bookings",
        sa.Column("slot_key", sa.String(length=80), primary_key=True),
        sa.Column("booking_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "payment_attempts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_db_id", sa.Integer(), nullable=True),
        sa.Column("booking_code", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("provider", sa.String(length=40), nullable=False, server_default="razorpay"),
        sa.Column("order_id", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("state", sa.String(length=30), nullable=False, server_default="ORDER_CREATED"),
        sa.Column("payment_id", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("signature", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("failure_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("confirmation_json", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_attempts_booking_db_id", "payment_attempts", ["booking_db_id"])
    op.create_index("ix_payment_attempts_booking_code", "payment_attempts", ["booking_code"])
    op.create_index("ix_payment_attempts_order_id", "payment_attempts", ["order_id"])
    op.create_index("ix_payment_attempts_state", "payment_attempts", ["state"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor", "audit_logs", ["actor"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("payment_attempts")
    op.drop_table("handoff_bookings")
