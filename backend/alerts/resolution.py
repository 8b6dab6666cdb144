"""
Alert Resolution — close open alerts whose triggering condition has cleared.

Alerts pointing at an order or material that no longer exists are left open.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from alerts.rules import (
    DUE_SOON,
    DUE_SOON_DAYS,
    LOW_STOCK,
    OVERDUE,
    PAYMENT_DUE,
    STUCK,
    days_until,
    sub_kind_for,
    utcnow,
)

if TYPE_CHECKING:
    from db.alert_store import AlertStore
    from db.models import Alert, Order

logger = structlog.get_logger()


async def resolve_completed_payment_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Resolve payment alerts once the order is fully paid or delivered."""
    now = now or utcnow()
    alerts = await store.list_unresolved_alerts(PAYMENT_DUE.alert_type)

    alerts_resolved = 0
    for alert in alerts:
        if not alert.related_order_id:
            continue
        order = await store.get_order_by_id(alert.related_order_id)
        if order is None:
            continue
        if order.payment_status == "fullyPaid" or order.status == "delivered":
            await store.resolve_alert(alert.id, now)
            alerts_resolved += 1
            logger.info("alerts.payment.resolved", order_number=order.order_number, alert_id=alert.id)

    logger.info("alerts.payment.resolution_complete", alerts_resolved=alerts_resolved)
    return {"alerts_resolved": alerts_resolved}


def delay_condition_cleared(alert: Alert, order: Order, now: datetime) -> bool:
    if order.status == "delivered":
        return True

    sub_kind = sub_kind_for(alert)
    if sub_kind == DUE_SOON.sub_kind:
        if order.estimated_delivery is None:
            return True
        return days_until(order.estimated_delivery, now) > DUE_SOON_DAYS
    if sub_kind == OVERDUE.sub_kind:
        # Clearing the ship date does not undo lateness; only a future date or delivery does.
        # A due-soon alert, by contrast, closes once no ship date is near.
        return order.estimated_delivery is not None and order.estimated_delivery > now
    if sub_kind == STUCK.sub_kind:
        # Proxy for "status changed": the order has been touched since the alert fired.
        return order.updated_at is not None and order.updated_at > alert.created_at
    return False


async def resolve_completed_overdue_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Resolve due-soon, overdue and stuck alerts whose order has moved on."""
    now = now or utcnow()
    alerts = await store.list_unresolved_alerts(DUE_SOON.alert_type)

    alerts_resolved = 0
    for alert in alerts:
        if not alert.related_order_id:
            continue
        order = await store.get_order_by_id(alert.related_order_id)
        if order is None:
            continue
        if delay_condition_cleared(alert, order, now):
            await store.resolve_alert(alert.id, now)
            alerts_resolved += 1
            logger.info(
                "alerts.delay.resolved",
                order_number=order.order_number,
                alert_id=alert.id,
                sub_kind=sub_kind_for(alert),
            )

    logger.info("alerts.delay.resolution_complete", alerts_resolved=alerts_resolved)
    return {"alerts_resolved": alerts_resolved}


async def resolve_restocked_material_alerts(
    store: AlertStore,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Resolve low-stock alerts once the material is back above its threshold."""
    now = now or utcnow()
    alerts = await store.list_unresolved_alerts(LOW_STOCK.alert_type)

    alerts_resolved = 0
    for alert in alerts:
        if not alert.related_material_id:
            continue
        material = await store.get_material_by_id(alert.related_material_id)
        if material is None:
            continue
        if material.current_stock > material.threshold:
            await store.resolve_alert(alert.id, now)
            alerts_resolved += 1
            logger.info("alerts.low_stock.resolved", material=material.name, alert_id=alert.id)

    logger.info("alerts.low_stock.resolution_complete", alerts_resolved=alerts_resolved)
    return {"alerts_resolved": alerts_resolved}
