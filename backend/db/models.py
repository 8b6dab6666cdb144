"""
HQ Dashboard Database Models

Tables:
  1. dealers    - Regional dealers placing orders
  2. orders     - Dealer orders moving through the factory pipeline
  3. materials  - Inventory materials with low-stock thresholds
  4. alerts     - Operational alerts raised by the alert engine

The alert engine only reads orders/materials and writes alerts. Order status
and payment fields are maintained elsewhere.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)

from db.session import Base


def _new_id() -> str:
    return str(uuid.uuid4())


# ─── Enumerations ──────────────────────────────────────────────────────────

ORDER_STATUSES = ("received", "sentToFactory", "inProduction", "delivered")
PAYMENT_STATUSES = ("unpaid", "partiallyPaid", "fullyPaid")

# Legacy alert type. "critical" means payment-related, not severity.
ALERT_TYPES = ("critical", "delay", "lowStock", "info")
ALERT_CATEGORIES = ("payment", "shipping_delay", "stuck", "low_stock", "info")
ALERT_SUB_KINDS = ("payment_due", "due_soon", "overdue", "stuck", "low_stock", "manual")
ALERT_PRIORITIES = ("low", "medium", "high")


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# ─── 1. Dealers ─────────────────────────────────────────────────────────────


class Dealer(Base):
    __tablename__ = "dealers"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    territory = Column(String(255), nullable=False)
    contact_email = Column(String(255))
    contact_phone = Column(String(50))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# ─── 2. Orders ──────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    dealer_id = Column(String(36), ForeignKey("dealers.id"))
    order_number = Column(String(50), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="received")
    payment_status = Column(String(20), nullable=False, default="unpaid")
    total_value = Column(Numeric(10, 2), nullable=False, default=0)
    production_lead_time = Column(Integer)
    estimated_delivery = Column(DateTime)
    actual_delivery = Column(DateTime)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_orders_status", "status"),
        CheckConstraint(_in_clause("status", ORDER_STATUSES), name="ck_order_status"),
        CheckConstraint(_in_clause("payment_status", PAYMENT_STATUSES), name="ck_order_payment_status"),
    )


# ─── 3. Materials ───────────────────────────────────────────────────────────


class Material(Base):
    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, default="General")
    current_stock = Column(Integer, nullable=False, default=0)
    max_stock = Column(Integer, nullable=False, default=0)
    threshold = Column(Integer, nullable=False, default=0)
    unit = Column(String(50), nullable=False, default="units")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (CheckConstraint("current_stock >= 0", name="ck_material_stock_non_negative"),)


# ─── 4. Alerts ──────────────────────────────────────────────────────────────


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(String(36), primary_key=True, default=_new_id)
    alert_type = Column(String(20), nullable=False)
    category = Column(String(30), nullable=False, default="info")
    sub_kind = Column(String(30), nullable=False, default="manual")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default="medium")
    resolved = Column(Boolean, nullable=False, default=False)
    related_order_id = Column(String(36), ForeignKey("orders.id"))
    related_material_id = Column(String(36), ForeignKey("materials.id"))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = Column(DateTime)

    __table_args__ = (
        Index("ix_alerts_unresolved_type", "resolved", "alert_type"),
        # At most one open alert per (order, type, title). Inserts that collide are no-ops.
        Index(
            "uq_alerts_open_order_key",
            "related_order_id",
            "alert_type",
            "title",
            unique=True,
            postgresql_where=text("NOT resolved"),
            sqlite_where=text("NOT resolved"),
        ),
        Index(
            "uq_alerts_open_material_key",
            "related_material_id",
            "alert_type",
            "title",
            unique=True,
            postgresql_where=text("NOT resolved"),
            sqlite_where=text("NOT resolved"),
        ),
        CheckConstraint(_in_clause("alert_type", ALERT_TYPES), name="ck_alert_type"),
        CheckConstraint(_in_clause("category", ALERT_CATEGORIES), name="ck_alert_category"),
        CheckConstraint(_in_clause("sub_kind", ALERT_SUB_KINDS), name="ck_alert_sub_kind"),
        CheckConstraint(_in_clause("priority", ALERT_PRIORITIES), name="ck_alert_priority"),
        CheckConstraint(
            "(resolved AND resolved_at IS NOT NULL) OR (NOT resolved AND resolved_at IS NULL)",
            name="ck_alert_resolved_at",
        ),
    )
