"""
Alert Rules — scan orders and materials and raise alerts.

Rules:
  - payment overdue: unpaid order whose ship date is within 7 days (or past)
  - due very soon / overdue: ship date tiers for undelivered orders
  - stuck in stage: order motionless in its status past a per-status threshold
  - low stock: material at or below its threshold

Every rule checks for an open alert with the same (entity, type, title)
before inserting. The partial unique index on alerts backs that check, so a
concurrent duplicate insert becomes a no-op instead of a second row.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog

from core.config import get_settings

if TYPE_CHECKING:
    from alerts.email import AlertNotifier
    from db.alert_store import AlertStore
    from db.models import Alert, Material, Order

logger = structlog.get_logger()

SECONDS_PER_DAY = 24 * 60 * 60

# ──────────────────────────────────────────────────────────────────────────
# Alert kinds
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AlertKind:
    alert_type: str
    category: str
    sub_kind: str
    title: str


PAYMENT_DUE = AlertKind("critical", "payment", "payment_due", "Payment Required Before Shipping")
DUE_SOON = AlertKind("delay", "shipping_delay", "due_soon", "Order Due Very Soon")
OVERDUE = AlertKind("delay", "shipping_delay", "overdue", "Order Overdue")
STUCK = AlertKind("delay", "stuck", "stuck", "Order Stuck in Production")
LOW_STOCK = AlertKind("lowStock", "low_stock", "low_stock", "Low Inventory Alert")

ALERT_KINDS = (PAYMENT_DUE, DUE_SOON, OVERDUE, STUCK, LOW_STOCK)

PAYMENT_WINDOW_DAYS = 7
DUE_SOON_DAYS = 3

STUCK_THRESHOLD_DAYS = {
    "received": 7,
    "sentToFactory": 14,
    "inProduction": 21,
}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def sub_kind_for(alert: Alert) -> str | None:
    """Resolve an alert's sub-kind, falling back to its title for rows written before sub_kind existed."""
    if alert.sub_kind and alert.sub_kind != "manual":
        return alert.sub_kind
    for kind in ALERT_KINDS:
        if kind.alert_type == alert.alert_type and kind.title == alert.title:
            return kind.sub_kind
    return None


# ──────────────────────────────────────────────────────────────────────────
# Day arithmetic + tiering
# ──────────────────────────────────────────────────────────────────────────


def days_until(ship_date: datetime, now: datetime) -> int:
    """Whole days until the ship date, rounded up. Zero or negative means it has arrived."""
    return math.ceil((ship_date - now).total_seconds() / SECONDS_PER_DAY)


def days_since(timestamp: datetime, now: datetime) -> int:
    """Whole days elapsed since timestamp, rounded down."""
    return math.floor((now - timestamp).total_seconds() / SECONDS_PER_DAY)


def classify_payment_priority(days_until_ship: int) -> str | None:
    """Priority for a payment alert, or None when the ship date is too far out."""
    if days_until_ship <= 0:
        return "high"
    elif days_until_ship <= DUE_SOON_DAYS:
        return "medium"
    elif days_until_ship <= PAYMENT_WINDOW_DAYS:
        return "low"
    return None


def classify_ship_tier(days_until_ship: int) -> AlertKind | None:
    """Due-soon and overdue tiers are mutually exclusive; day 0 belongs to neither."""
    if 0 < days_until_ship <= DUE_SOON_DAYS:
        return DUE_SOON
    if days_until_ship < 0:
        return OVERDUE
    return None


def stuck_threshold_days(status: str) -> int | None:
    return STUCK_THRESHOLD_DAYS.get(status)


def classify_low_stock_priority(stock: int, threshold: int) -> str:
    return "high" if stock <= threshold * 0.5 else "medium"


def _plural_days(days: int) -> str:
    return "day" if days == 1 else "days"


def _format_date(value: datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def _format_amount(value: Decimal | float | int | None) -> str:
    symbol = get_settings().currency_symbol
    return f"{symbol}{Decimal(value or 0):.2f}"


def payment_message(order: Order, days_until_ship: int) -> str:
    amount = _format_amount(order.total_value)
    ship = _format_date(order.estimated_delivery)
    if days_until_ship <= 0:
        return (
            f"URGENT: Payment of {amount} required for order {order.order_number}. "
            f"Ship date {ship} has passed!"
        )
    if days_until_ship <= DUE_SOON_DAYS:
        return (
            f"Payment of {amount} needed for order {order.order_number} within "
            f"{days_until_ship} {_plural_days(days_until_ship)} (ships {ship})"
        )
    return f"Payment of {amount} due soon for order {order.order_number} (ships {ship})"


# ──────────────────────────────────────────────────────────────────────────
# Shared insert path
# ──────────────────────────────────────────────────────────────────────────


async def _raise_alert(
    store: AlertStore,
    kind: AlertKind,
    *,
    message: str,
    priority: str,
    now: datetime,
    notifier: AlertNotifier | None,
    related_order_id: str | None = None,
    related_material_id: str | None = None,
) -> Alert | None:
    alert = await store.create_alert(
        alert_type=kind.alert_type,
        category=kind.category,
        sub_kind=kind.sub_kind,
        title=kind.title,
        message=message,
        priority=priority,
        created_at=now,
        related_order_id=related_order_id,
        related_material_id=related_material_id,
    )
    if alert is None:
        logger.info(
            "alerts.create.duplicate_skipped",
            sub_kind=kind.sub_kind,
            order_id=related_order_id,
            material_id=related_material_id,
        )
        return None

    if notifier is not None and priority == "high":
        try:
            await notifier.notify_admins(kind.title, message, priority)
        except Exception as exc:  # noqa: BLE001
            logger.warning("alerts.notify.failed", alert_id=alert.id, error=str(exc))
    return alert


# ──────────────────────────────────────────────────────────────────────────
# Payment overdue
# ──────────────────────────────────────────────────────────────────────────


async def check_payment_overdue_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
    notifier: AlertNotifier | None = None,
) -> dict[str, int]:
    """
    Raise a payment alert for undelivered, not fully paid orders whose ship
    date is at most 7 days away. An existing open payment alert for the order
    suppresses a new one regardless of tier.
    """
    now = now or utcnow()
    orders = await store.list_orders(exclude_delivered=True, require_ship_date=True)

    alerts_created = 0
    for order in orders:
        if order.payment_status == "fullyPaid" or order.estimated_delivery is None:
            continue

        days_until_ship = days_until(order.estimated_delivery, now)
        priority = classify_payment_priority(days_until_ship)
        if priority is None:
            continue

        existing = await store.find_unresolved_alert(alert_type=PAYMENT_DUE.alert_type, related_order_id=order.id)
        if existing is not None:
            continue

        created = await _raise_alert(
            store,
            PAYMENT_DUE,
            message=payment_message(order, days_until_ship),
            priority=priority,
            now=now,
            notifier=notifier,
            related_order_id=order.id,
        )
        if created is not None:
            alerts_created += 1
            logger.info(
                "alerts.payment.created",
                order_number=order.order_number,
                priority=priority,
                days_until_ship=days_until_ship,
            )

    logger.info("alerts.payment.check_complete", alerts_created=alerts_created)
    return {"alerts_created": alerts_created}


# ──────────────────────────────────────────────────────────────────────────
# Due very soon / overdue
# ──────────────────────────────────────────────────────────────────────────


async def check_overdue_orders_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
    notifier: AlertNotifier | None = None,
) -> dict[str, int]:
    """
    Tier A "Order Due Very Soon" when 0 < days_until_ship <= 3, tier B
    "Order Overdue" when the ship date has passed. When an order lands in one
    tier, an open alert of the other tier for that order is resolved.
    """
    now = now or utcnow()
    orders = await store.list_orders(exclude_delivered=True, require_ship_date=True)

    alerts_created = 0
    alerts_superseded = 0
    for order in orders:
        if order.estimated_delivery is None:
            continue

        days_until_ship = days_until(order.estimated_delivery, now)
        kind = classify_ship_tier(days_until_ship)
        if kind is None:
            continue

        other = OVERDUE if kind is DUE_SOON else DUE_SOON
        stale = await store.find_unresolved_alert(
            alert_type=other.alert_type, related_order_id=order.id, title=other.title
        )
        if stale is not None:
            await store.resolve_alert(stale.id, now)
            alerts_superseded += 1
            logger.info("alerts.delay.superseded", order_number=order.order_number, resolved_sub_kind=other.sub_kind)

        existing = await store.find_unresolved_alert(
            alert_type=kind.alert_type, related_order_id=order.id, title=kind.title
        )
        if existing is not None:
            continue

        ship = _format_date(order.estimated_delivery)
        if kind is DUE_SOON:
            priority = "medium"
            message = (
                f"URGENT: Order {order.order_number} ships in {days_until_ship} "
                f"{_plural_days(days_until_ship)} ({ship}). Final check required!"
            )
        else:
            priority = "high"
            days_overdue = abs(days_until_ship)
            message = f"CRITICAL: Order {order.order_number} is overdue by {days_overdue} days (Expected: {ship})"

        created = await _raise_alert(
            store,
            kind,
            message=message,
            priority=priority,
            now=now,
            notifier=notifier,
            related_order_id=order.id,
        )
        if created is not None:
            alerts_created += 1
            logger.info("alerts.delay.created", order_number=order.order_number, sub_kind=kind.sub_kind)

    logger.info(
        "alerts.delay.check_complete",
        alerts_created=alerts_created,
        alerts_superseded=alerts_superseded,
    )
    return {"alerts_created": alerts_created, "alerts_superseded": alerts_superseded}


# ──────────────────────────────────────────────────────────────────────────
# Stuck in stage
# ──────────────────────────────────────────────────────────────────────────


async def check_stuck_orders_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
    notifier: AlertNotifier | None = None,
) -> dict[str, int]:
    """Flag orders whose updated_at has not moved for their status's threshold."""
    now = now or utcnow()
    orders = await store.list_orders(exclude_delivered=True)

    alerts_created = 0
    for order in orders:
        if order.updated_at is None:
            continue
        threshold = stuck_threshold_days(order.status)
        if threshold is None:
            continue

        days_since_update = days_since(order.updated_at, now)
        if days_since_update < threshold:
            continue

        existing = await store.find_unresolved_alert(
            alert_type=STUCK.alert_type, related_order_id=order.id, title=STUCK.title
        )
        if existing is not None:
            continue

        created = await _raise_alert(
            store,
            STUCK,
            message=f"Order {order.order_number} has been in {order.status} status for {days_since_update} days",
            priority="medium",
            now=now,
            notifier=notifier,
            related_order_id=order.id,
        )
        if created is not None:
            alerts_created += 1
            logger.info(
                "alerts.stuck.created",
                order_number=order.order_number,
                status=order.status,
                days_since_update=days_since_update,
            )

    logger.info("alerts.stuck.check_complete", alerts_created=alerts_created)
    return {"alerts_created": alerts_created}


# ──────────────────────────────────────────────────────────────────────────
# Low stock
# ──────────────────────────────────────────────────────────────────────────


async def raise_low_stock_alert(
    store: AlertStore,
    material: Material,
    *,
    now: datetime | None = None,
    notifier: AlertNotifier | None = None,
) -> Alert | None:
    """Raise a low-stock alert for one material if it is low and has none open."""
    now = now or utcnow()
    if material.current_stock > material.threshold:
        return None

    existing = await store.find_unresolved_alert(
        alert_type=LOW_STOCK.alert_type, related_material_id=material.id, title=LOW_STOCK.title
    )
    if existing is not None:
        return None

    return await _raise_alert(
        store,
        LOW_STOCK,
        message=f"{material.name} is running low ({material.current_stock} {material.unit} remaining)",
        priority=classify_low_stock_priority(material.current_stock, material.threshold),
        now=now,
        notifier=notifier,
        related_material_id=material.id,
    )


async def check_low_stock_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
    notifier: AlertNotifier | None = None,
) -> dict[str, int]:
    now = now or utcnow()
    materials = await store.list_low_stock_materials()

    alerts_created = 0
    for material in materials:
        if await raise_low_stock_alert(store, material, now=now, notifier=notifier) is not None:
            alerts_created += 1
            logger.info("alerts.low_stock.created", material=material.name, stock=material.current_stock)

    logger.info("alerts.low_stock.check_complete", alerts_created=alerts_created)
    return {"alerts_created": alerts_created}


async def update_material_stock(
    store: AlertStore,
    material_id: str,
    stock: int,
    *,
    now: datetime | None = None,
    notifier: AlertNotifier | None = None,
) -> dict[str, Any] | None:
    """
    Stock-edit path: persist the new stock level and raise a low-stock alert
    when it falls to the threshold. Returns None for an unknown material.
    """
    if stock < 0:
        raise ValueError("stock must be non-negative")

    material = await store.update_material_stock(material_id, stock)
    if material is None:
        return None

    alert = await raise_low_stock_alert(store, material, now=now, notifier=notifier)
    return {"material": material, "alert": alert}
