"""
API Integration Tests — Alert and material endpoints with seeded data.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient

from alerts.rules import utcnow


@pytest.fixture
async def seeded_alerts(store, make_order):
    """One open payment alert, one open delay alert, one resolved low-stock alert."""
    now = utcnow()
    await make_order("ORD-1")
    await make_order("ORD-2")

    payment = await store.create_alert(
        alert_type="critical",
        category="payment",
        sub_kind="payment_due",
        title="Payment Required Before Shipping",
        message="Payment of ¥1000.00 due soon for order ORD-1",
        priority="high",
        created_at=now - timedelta(hours=2),
        related_order_id="ORD-1",
    )
    delay = await store.create_alert(
        alert_type="delay",
        category="shipping_delay",
        sub_kind="due_soon",
        title="Order Due Very Soon",
        message="Order ORD-2 ships in 2 days",
        priority="medium",
        created_at=now - timedelta(hours=1),
        related_order_id="ORD-2",
    )
    closed = await store.create_alert(
        alert_type="delay",
        category="shipping_delay",
        sub_kind="overdue",
        title="Order Overdue",
        message="Order ORD-2 is overdue by 1 days",
        priority="high",
        created_at=now - timedelta(days=3),
        related_order_id="ORD-2",
    )
    await store.resolve_alert(closed.id, now - timedelta(days=2))
    return {"payment": payment, "delay": delay, "closed": closed}


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
class TestAlertsIntegration:
    async def test_list_open_alerts_newest_first(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/")
        assert resp.status_code == 200
        data = resp.json()
        assert [a["id"] for a in data] == [seeded_alerts["delay"].id, seeded_alerts["payment"].id]
        assert data[1]["alert_type"] == "critical"
        assert data[1]["category"] == "payment"

    async def test_include_resolved(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/?include_resolved=true")
        assert resp.status_code == 200
        assert len(resp.json()) == 3

    async def test_pagination(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/?skip=1&limit=1")
        assert resp.status_code == 200
        assert [a["id"] for a in resp.json()] == [seeded_alerts["payment"].id]

    async def test_summary(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/summary")
        assert resp.status_code == 200
        assert resp.json() == {"unresolved": 2, "high": 1, "payment": 1, "delay": 1, "low_stock": 0}

    async def test_resolve(self, client: AsyncClient, seeded_alerts):
        alert_id = seeded_alerts["payment"].id
        resp = await client.put(f"/api/v1/alerts/{alert_id}/resolve")
        assert resp.status_code == 200
        data = resp.json()
        assert data["resolved"] is True
        assert data["resolved_at"] is not None

    async def test_resolving_twice_keeps_first_resolved_at(self, client: AsyncClient, seeded_alerts):
        alert_id = seeded_alerts["delay"].id

        first = await client.put(f"/api/v1/alerts/{alert_id}/resolve")
        second = await client.put(f"/api/v1/alerts/{alert_id}/resolve")

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["resolved"] is True
        assert second.json()["resolved_at"] == first.json()["resolved_at"]

    async def test_resolving_already_resolved_alert_is_unchanged(self, client: AsyncClient, seeded_alerts):
        closed = seeded_alerts["closed"]
        original_resolved_at = closed.resolved_at

        resp = await client.put(f"/api/v1/alerts/{closed.id}/resolve")

        assert resp.status_code == 200
        assert resp.json()["resolved_at"] == original_resolved_at.isoformat()

    async def test_resolve_missing_returns_404(self, client: AsyncClient):
        resp = await client.put("/api/v1/alerts/does-not-exist/resolve")
        assert resp.status_code == 404

    async def test_unresolve_reopens(self, client: AsyncClient, seeded_alerts):
        alert_id = seeded_alerts["payment"].id
        await client.put(f"/api/v1/alerts/{alert_id}/resolve")

        resp = await client.put(f"/api/v1/alerts/{alert_id}/unresolve")

        assert resp.status_code == 200
        assert resp.json()["resolved"] is False
        assert resp.json()["resolved_at"] is None

    async def test_unresolve_conflicts_with_open_duplicate(self, client: AsyncClient, store, seeded_alerts):
        payment = seeded_alerts["payment"]
        await client.put(f"/api/v1/alerts/{payment.id}/resolve")
        reraised = await store.create_alert(
            alert_type="critical",
            category="payment",
            sub_kind="payment_due",
            title=payment.title,
            message="raised again",
            priority="high",
            created_at=utcnow(),
            related_order_id="ORD-1",
        )
        assert reraised is not None

        resp = await client.put(f"/api/v1/alerts/{payment.id}/unresolve")

        assert resp.status_code == 409
        assert reraised.id in resp.json()["detail"]

    async def test_unresolve_missing_returns_404(self, client: AsyncClient):
        resp = await client.put("/api/v1/alerts/does-not-exist/unresolve")
        assert resp.status_code == 404

    async def test_unresolve_racing_duplicate_returns_409(
        self, client: AsyncClient, store, test_db, seeded_alerts, monkeypatch
    ):
        """The unique index still turns a duplicate inserted after the pre-check into a 409."""
        from db.alert_store import AlertStore
        from db.models import Alert

        closed = seeded_alerts["closed"]
        await store.create_alert(
            alert_type="delay",
            category="shipping_delay",
            sub_kind="overdue",
            title=closed.title,
            message="raised while reopening",
            priority="high",
            created_at=utcnow(),
            related_order_id="ORD-2",
        )

        async def _no_duplicate(self, **kwargs):
            return None

        monkeypatch.setattr(AlertStore, "find_unresolved_alert", _no_duplicate)

        resp = await client.put(f"/api/v1/alerts/{closed.id}/unresolve")

        assert resp.status_code == 409
        reloaded = await test_db.get(Alert, closed.id)
        assert reloaded.resolved is True
        assert reloaded.resolved_at is not None


@pytest.mark.asyncio
class TestAlertCheckEndpoint:
    async def test_check_creates_then_is_idempotent(self, client: AsyncClient, test_db):
        from db.models import Order

        now = utcnow()
        test_db.add(
            Order(
                id="ORD-LIVE",
                order_number="ORD-LIVE",
                status="sentToFactory",
                payment_status="unpaid",
                total_value=Decimal("1000.00"),
                estimated_delivery=now + timedelta(days=2),
                created_at=now - timedelta(days=3),
                updated_at=now - timedelta(days=1),
            )
        )
        await test_db.commit()

        first = await client.post("/api/v1/alerts/check")
        second = await client.post("/api/v1/alerts/check")

        assert first.status_code == 200
        assert first.json() == {"alerts_created": 2, "alerts_resolved": 0, "steps_failed": 0}
        assert second.json()["alerts_created"] == 0

    async def test_check_reports_failed_steps(self, client: AsyncClient, monkeypatch):
        from alerts.engine import AlertChecker

        async def broken(self):
            raise RuntimeError("db went away")

        monkeypatch.setattr(AlertChecker, "check_low_stock_alerts", broken)

        resp = await client.post("/api/v1/alerts/check")

        assert resp.status_code == 500
        assert resp.json()["detail"]["failed_steps"] == ["low_stock"]


@pytest.mark.asyncio
class TestAlertStepEndpoint:
    async def _seed_unpaid_order(self, test_db):
        from db.models import Order

        now = utcnow()
        order = Order(
            id="ORD-STEP",
            order_number="ORD-STEP",
            status="sentToFactory",
            payment_status="unpaid",
            total_value=Decimal("800.00"),
            estimated_delivery=now + timedelta(days=2),
            created_at=now - timedelta(days=3),
            updated_at=now - timedelta(days=1),
        )
        test_db.add(order)
        await test_db.commit()
        return order

    async def test_payment_rule_step(self, client: AsyncClient, test_db):
        await self._seed_unpaid_order(test_db)

        first = await client.post("/api/v1/alerts/check/payment_overdue")
        second = await client.post("/api/v1/alerts/check/payment_overdue")

        assert first.status_code == 200
        assert first.json() == {"alerts_created": 1}
        assert second.json() == {"alerts_created": 0}

        listed = (await client.get("/api/v1/alerts/")).json()
        assert [a["alert_type"] for a in listed] == ["critical"]

    async def test_payment_resolution_step(self, client: AsyncClient, test_db):
        order = await self._seed_unpaid_order(test_db)
        await client.post("/api/v1/alerts/check/payment_overdue")

        order.payment_status = "fullyPaid"
        await test_db.commit()
        resp = await client.post("/api/v1/alerts/check/payment_resolution")

        assert resp.status_code == 200
        assert resp.json() == {"alerts_resolved": 1}

    async def test_overdue_rule_step(self, client: AsyncClient, test_db):
        await self._seed_unpaid_order(test_db)

        resp = await client.post("/api/v1/alerts/check/overdue_orders")

        assert resp.status_code == 200
        assert resp.json() == {"alerts_created": 1, "alerts_superseded": 0}

    async def test_stuck_rule_step_with_nothing_stuck(self, client: AsyncClient, test_db):
        await self._seed_unpaid_order(test_db)

        resp = await client.post("/api/v1/alerts/check/stuck_orders")

        assert resp.status_code == 200
        assert resp.json() == {"alerts_created": 0}

    async def test_unknown_step_returns_404(self, client: AsyncClient):
        resp = await client.post("/api/v1/alerts/check/not_a_step")
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestMaterialsIntegration:
    async def test_low_stock_listing(self, client: AsyncClient, make_material):
        await make_material("Pendant Light", stock=4, threshold=10)
        await make_material("Flooring", stock=100, threshold=10)

        resp = await client.get("/api/v1/materials/low-stock")

        assert resp.status_code == 200
        assert [m["name"] for m in resp.json()] == ["Pendant Light"]

    async def test_stock_update_raises_alert(self, client: AsyncClient, make_material, notifier):
        material = await make_material(stock=50, threshold=10)

        resp = await client.put(f"/api/v1/materials/{material.id}/stock", json={"stock": 5})

        assert resp.status_code == 200
        data = resp.json()
        assert data["material"]["current_stock"] == 5
        assert data["alert_id"] is not None
        assert len(notifier.admin_calls) == 1

        listed = await client.get("/api/v1/alerts/")
        (alert,) = listed.json()
        assert alert["alert_type"] == "lowStock"
        assert alert["priority"] == "high"
        assert alert["related_material_id"] == material.id

    async def test_stock_update_above_threshold(self, client: AsyncClient, make_material):
        material = await make_material(stock=5, threshold=10)

        resp = await client.put(f"/api/v1/materials/{material.id}/stock", json={"stock": 40})

        assert resp.status_code == 200
        assert resp.json()["alert_id"] is None

    async def test_negative_stock_rejected(self, client: AsyncClient, make_material):
        material = await make_material()

        resp = await client.put(f"/api/v1/materials/{material.id}/stock", json={"stock": -1})

        assert resp.status_code == 422

    async def test_unknown_material_returns_404(self, client: AsyncClient):
        resp = await client.put("/api/v1/materials/missing/stock", json={"stock": 3})
        assert resp.status_code == 404
