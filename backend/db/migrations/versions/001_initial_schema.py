"""
Initial schema - dealers, orders, materials, alerts

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Dealers
    op.create_table(
        "dealers",
        sa.Column("id", sa.String(36), primary_key=True, server_default=sa.text("gen_random_uuid()::text")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("territory", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255)),
        sa.Column("contact_phone", sa.String(50)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 2. Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True, server_default=sa.text("gen_random_uuid()::text")),
        sa.Column("dealer_id", sa.String(36), sa.ForeignKey("dealers.id")),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="unpaid"),
        sa.Column("total_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("production_lead_time", sa.Integer),
        sa.Column("estimated_delivery", sa.DateTime),
        sa.Column("actual_delivery", sa.DateTime),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('received', 'sentToFactory', 'inProduction', 'delivered')", name="ck_order_status"
        ),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'partiallyPaid', 'fullyPaid')", name="ck_order_payment_status"
        ),
    )
    op.create_index("ix_orders_status", "orders", ["status"])

    # 3. Materials
    op.create_table(
        "materials",
        sa.Column("id", sa.String(36), primary_key=True, server_default=sa.text("gen_random_uuid()::text")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False, server_default="General"),
        sa.Column("current_stock", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_stock", sa.Integer, nullable=False, server_default="0"),
        sa.Column("threshold", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unit", sa.String(50), nullable=False, server_default="units"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("current_stock >= 0", name="ck_material_stock_non_negative"),
    )

    # 4. Alerts
    op.create_table(
        "alerts",
        sa.Column("id", sa.String(36), primary_key=True, server_default=sa.text("gen_random_uuid()::text")),
        sa.Column("alert_type", sa.String(20), nullable=False),
        sa.Column("category", sa.String(30), nullable=False, server_default="info"),
        sa.Column("sub_kind", sa.String(30), nullable=False, server_default="manual"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("priority", sa.String(10), nullable=False, server_default="medium"),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("related_order_id", sa.String(36), sa.ForeignKey("orders.id")),
        sa.Column("related_material_id", sa.String(36), sa.ForeignKey("materials.id")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime),
        sa.CheckConstraint("alert_type IN ('critical', 'delay', 'lowStock', 'info')", name="ck_alert_type"),
        sa.CheckConstraint(
            "category IN ('payment', 'shipping_delay', 'stuck', 'low_stock', 'info')", name="ck_alert_category"
        ),
        sa.CheckConstraint(
            "sub_kind IN ('payment_due', 'due_soon', 'overdue', 'stuck', 'low_stock', 'manual')",
            name="ck_alert_sub_kind",
        ),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_alert_priority"),
        sa.CheckConstraint(
            "(resolved AND resolved_at IS NOT NULL) OR (NOT resolved AND resolved_at IS NULL)",
            name="ck_alert_resolved_at",
        ),
    )
    op.create_index("ix_alerts_unresolved_type", "alerts", ["resolved", "alert_type"])
    # Idempotency keys: one open alert per (entity, type, title)
    op.create_index(
        "uq_alerts_open_order_key",
        "alerts",
        ["related_order_id", "alert_type", "title"],
        unique=True,
        postgresql_where=sa.text("NOT resolved"),
    )
    op.create_index(
        "uq_alerts_open_material_key",
        "alerts",
        ["related_material_id", "alert_type", "title"],
        unique=True,
        postgresql_where=sa.text("NOT resolved"),
    )


def downgrade() -> None:
    op.drop_index("uq_alerts_open_material_key", table_name="alerts")
    op.drop_index("uq_alerts_open_order_key", table_name="alerts")
    op.drop_index("ix_alerts_unresolved_type", table_name="alerts")
    op.drop_table("alerts")
    op.drop_table("materials")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_table("orders")
    op.drop_table("dealers")
