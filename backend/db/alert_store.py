"""
Alert Store — data access facade used by the alert engine.

Wraps an AsyncSession with the handful of reads/writes the rule and
resolution evaluators need. Every write commits immediately; rows are
single-row inserts or single-row updates keyed by alert id.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.exceptions import DuplicateOpenAlertError
from db.models import Alert, Material, Order


class AlertStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def rollback(self) -> None:
        await self.db.rollback()

    # ── Orders ─────────────────────────────────────────────────────────

    async def list_orders(
        self,
        *,
        exclude_delivered: bool = False,
        require_ship_date: bool = False,
    ) -> list[Order]:
        query = select(Order).order_by(Order.created_at)
        if exclude_delivered:
            query = query.where(Order.status != "delivered")
        if require_ship_date:
            query = query.where(Order.estimated_delivery.is_not(None))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_order_by_id(self, order_id: str) -> Order | None:
        return await self.db.get(Order, order_id)

    # ── Materials ──────────────────────────────────────────────────────

    async def list_low_stock_materials(self) -> list[Material]:
        result = await self.db.execute(
            select(Material).where(Material.current_stock <= Material.threshold).order_by(Material.name)
        )
        return list(result.scalars().all())

    async def get_material_by_id(self, material_id: str) -> Material | None:
        return await self.db.get(Material, material_id)

    async def update_material_stock(self, material_id: str, stock: int) -> Material | None:
        material = await self.db.get(Material, material_id)
        if material is None:
            return None
        material.current_stock = stock
        await self.db.commit()
        return material

    # ── Alerts ─────────────────────────────────────────────────────────

    async def list_unresolved_alerts(self, alert_type: str | None = None) -> list[Alert]:
        query = select(Alert).where(Alert.resolved.is_(False)).order_by(Alert.created_at)
        if alert_type is not None:
            query = query.where(Alert.alert_type == alert_type)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_alerts(self, *, include_resolved: bool = False, limit: int = 100, offset: int = 0) -> list[Alert]:
        query = select(Alert).order_by(Alert.created_at.desc()).limit(limit).offset(offset)
        if not include_resolved:
            query = query.where(Alert.resolved.is_(False))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_unresolved_alert(
        self,
        *,
        alert_type: str,
        related_order_id: str | None = None,
        related_material_id: str | None = None,
        title: str | None = None,
    ) -> Alert | None:
        """Return the first open alert matching the idempotency key, if any."""
        query = select(Alert).where(Alert.resolved.is_(False), Alert.alert_type == alert_type)
        if related_order_id is not None:
            query = query.where(Alert.related_order_id == related_order_id)
        if related_material_id is not None:
            query = query.where(Alert.related_material_id == related_material_id)
        if title is not None:
            query = query.where(Alert.title == title)
        result = await self.db.execute(query.limit(1))
        return result.scalars().first()

    async def create_alert(
        self,
        *,
        alert_type: str,
        category: str,
        sub_kind: str,
        title: str,
        message: str,
        priority: str,
        created_at: datetime,
        related_order_id: str | None = None,
        related_material_id: str | None = None,
    ) -> Alert | None:
        """
        Insert an alert. Returns None when an open alert with the same
        (related entity, type, title) already exists.
        """
        values: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "alert_type": alert_type,
            "category": category,
            "sub_kind": sub_kind,
            "title": title,
            "message": message,
            "priority": priority,
            "resolved": False,
            "related_order_id": related_order_id,
            "related_material_id": related_material_id,
            "created_at": created_at,
        }
        stmt = self._insert_ignoring_conflicts(values).returning(Alert.id)
        result = await self.db.execute(stmt)
        alert_id = result.scalar_one_or_none()
        await self.db.commit()
        if alert_id is None:
            return None
        return await self.db.get(Alert, alert_id)

    async def resolve_alert(self, alert_id: str, now: datetime) -> Alert | None:
        """Resolve an alert. An already resolved alert is returned unchanged."""
        alert = await self.db.get(Alert, alert_id)
        if alert is None or alert.resolved:
            return alert
        return await self._set_resolved(alert, resolved=True, resolved_at=now)

    async def unresolve_alert(self, alert_id: str) -> Alert | None:
        """
        Reopen an alert. Raises DuplicateOpenAlertError when an open alert with
        the same key already exists.
        """
        alert = await self.db.get(Alert, alert_id)
        if alert is None:
            return None
        return await self._set_resolved(alert, resolved=False, resolved_at=None)

    async def _set_resolved(self, alert: Alert, *, resolved: bool, resolved_at: datetime | None) -> Alert:
        alert_id = alert.id
        alert.resolved = resolved
        alert.resolved_at = resolved_at
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise DuplicateOpenAlertError(alert_id) from exc
        return alert

    def _insert_ignoring_conflicts(self, values: dict[str, Any]):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(Alert).values(**values).on_conflict_do_nothing()
        if dialect == "sqlite":
            return sqlite_insert(Alert).values(**values).on_conflict_do_nothing()
        return insert(Alert).values(**values)
