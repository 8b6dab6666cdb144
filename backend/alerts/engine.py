"""
Alert Engine — one pass of every rule and resolution evaluator.

Step order:
  1. payment overdue rule
  2. payment resolution
  3. due-soon / overdue rule
  4. stuck-in-stage rule
  5. delay + stuck resolution
  6. low-stock rule
  7. low-stock resolution

Rules run before the resolution step for the same alert family, so an alert
created in a pass is never resolved by that same pass. Steps are isolated:
a failing step is recorded and the remaining steps still run. If any step
failed, AlertPipelineError is raised after the pass so the scheduler can
retry the whole (idempotent) pipeline.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from alerts.exceptions import AlertPipelineError
from alerts.resolution import (
    resolve_completed_overdue_alerts,
    resolve_completed_payment_alerts,
    resolve_restocked_material_alerts,
)
from alerts.rules import (
    check_low_stock_alerts,
    check_overdue_orders_alerts,
    check_payment_overdue_alerts,
    check_stuck_orders_alerts,
    utcnow,
)

if TYPE_CHECKING:
    from alerts.email import AlertNotifier
    from db.alert_store import AlertStore

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class AlertChecker:
    """Runs the alert steps against one store with an injectable clock."""

    def __init__(
        self,
        store: AlertStore,
        *,
        notifier: AlertNotifier | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def check_payment_overdue_alerts(self) -> dict[str, int]:
        return await check_payment_overdue_alerts(self.store, now=self.clock(), notifier=self.notifier)

    async def resolve_completed_payment_alerts(self) -> dict[str, int]:
        return await resolve_completed_payment_alerts(self.store, now=self.clock())

    async def check_overdue_orders_alerts(self) -> dict[str, int]:
        return await check_overdue_orders_alerts(self.store, now=self.clock(), notifier=self.notifier)

    async def check_stuck_orders_alerts(self) -> dict[str, int]:
        return await check_stuck_orders_alerts(self.store, now=self.clock(), notifier=self.notifier)

    async def resolve_completed_overdue_alerts(self) -> dict[str, int]:
        return await resolve_completed_overdue_alerts(self.store, now=self.clock())

    async def check_low_stock_alerts(self) -> dict[str, int]:
        return await check_low_stock_alerts(self.store, now=self.clock(), notifier=self.notifier)

    async def resolve_restocked_material_alerts(self) -> dict[str, int]:
        return await resolve_restocked_material_alerts(self.store, now=self.clock())

    def steps(self) -> list[tuple[str, Callable[[], Awaitable[dict[str, int]]]]]:
        return [
            ("payment_overdue", self.check_payment_overdue_alerts),
            ("payment_resolution", self.resolve_completed_payment_alerts),
            ("overdue_orders", self.check_overdue_orders_alerts),
            ("stuck_orders", self.check_stuck_orders_alerts),
            ("delay_resolution", self.resolve_completed_overdue_alerts),
            ("low_stock", self.check_low_stock_alerts),
            ("low_stock_resolution", self.resolve_restocked_material_alerts),
        ]

    async def run_pipeline(self) -> dict[str, int]:
        """
        Run every step once. Returns totals:
          {"alerts_created": n, "alerts_resolved": m, "steps_failed": 0}
        Raises AlertPipelineError if any step failed.
        """
        totals = {"alerts_created": 0, "alerts_resolved": 0, "steps_failed": 0}
        failures: dict[str, BaseException] = {}

        for name, step in self.steps():
            try:
                result = await step()
            except Exception as exc:  # noqa: BLE001
                failures[name] = exc
                totals["steps_failed"] += 1
                logger.error("alerts.pipeline.step_failed", step=name, error=str(exc), exc_info=True)
                await self.store.rollback()
                continue

            totals["alerts_created"] += result.get("alerts_created", 0)
            totals["alerts_resolved"] += result.get("alerts_resolved", 0) + result.get("alerts_superseded", 0)

        if failures:
            raise AlertPipelineError(failures)

        logger.info("alerts.pipeline.complete", **totals)
        return totals
