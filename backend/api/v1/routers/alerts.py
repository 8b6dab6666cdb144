"""
Alerts Router — Alert feed, manual resolution and on-demand checks.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, select

from alerts.email import AlertNotifier
from alerts.engine import AlertChecker
from alerts.exceptions import AlertPipelineError, DuplicateOpenAlertError
from alerts.rules import utcnow
from api.deps import get_alert_store, get_notifier
from db.alert_store import AlertStore
from db.models import Alert

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    id: str
    alert_type: str
    category: str
    sub_kind: str
    title: str
    message: str
    priority: str
    resolved: bool
    related_order_id: str | None
    related_material_id: str | None
    created_at: datetime
    resolved_at: datetime | None

    model_config = {"from_attributes": True}


class AlertSummary(BaseModel):
    unresolved: int
    high: int
    payment: int
    delay: int
    low_stock: int


class AlertCheckResponse(BaseModel):
    alerts_created: int
    alerts_resolved: int
    steps_failed: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[AlertResponse])
async def list_alerts(
    include_resolved: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    store: AlertStore = Depends(get_alert_store),
):
    """List alerts, newest first. Unresolved only unless include_resolved is set."""
    return await store.list_alerts(include_resolved=include_resolved, limit=limit, offset=skip)


@router.get("/summary", response_model=AlertSummary)
async def get_alert_summary(store: AlertStore = Depends(get_alert_store)):
    """Counts of open alerts for the dashboard header."""
    open_alerts = select(Alert).where(Alert.resolved.is_(False))

    async def _count(query) -> int:
        return (await store.db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    return AlertSummary(
        unresolved=await _count(open_alerts),
        high=await _count(open_alerts.where(Alert.priority == "high")),
        payment=await _count(open_alerts.where(Alert.alert_type == "critical")),
        delay=await _count(open_alerts.where(Alert.alert_type == "delay")),
        low_stock=await _count(open_alerts.where(Alert.alert_type == "lowStock")),
    )


@router.put("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(alert_id: str, store: AlertStore = Depends(get_alert_store)):
    """Manually resolve an alert."""
    alert = await store.resolve_alert(alert_id, utcnow())
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.put("/{alert_id}/unresolve", response_model=AlertResponse)
async def unresolve_alert(alert_id: str, store: AlertStore = Depends(get_alert_store)):
    """Reopen a manually resolved alert."""
    existing = await store.db.get(Alert, alert_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Alert not found")

    title = existing.title
    duplicate = None
    if existing.resolved:
        duplicate = await store.find_unresolved_alert(
            alert_type=existing.alert_type,
            related_order_id=existing.related_order_id,
            related_material_id=existing.related_material_id,
            title=title,
        )
    if duplicate is not None:
        raise HTTPException(
            status_code=409,
            detail=f"An open '{title}' alert already exists for this item ({duplicate.id}).",
        )

    # A rule may insert the same open alert between the check above and the update.
    try:
        return await store.unresolve_alert(alert_id)
    except DuplicateOpenAlertError as exc:
        raise HTTPException(
            status_code=409,
            detail=f"An open '{title}' alert already exists for this item.",
        ) from exc


@router.post("/check", response_model=AlertCheckResponse)
async def run_alert_check(
    store: AlertStore = Depends(get_alert_store),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """Run every alert rule and resolution step once, without retry."""
    checker = AlertChecker(store, notifier=notifier)
    try:
        return await checker.run_pipeline()
    except AlertPipelineError as exc:
        raise HTTPException(
            status_code=500,
            detail={"message": "Alert check failed", "failed_steps": sorted(exc.failures)},
        ) from exc


@router.post("/check/{step}", response_model=dict[str, int])
async def run_alert_step(
    step: str,
    store: AlertStore = Depends(get_alert_store),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """
    Run a single rule or resolution step, e.g. payment_overdue or
    delay_resolution. Returns that step's counts.
    """
    steps = dict(AlertChecker(store, notifier=notifier).steps())
    if step not in steps:
        raise HTTPException(status_code=404, detail=f"Unknown alert step '{step}'")
    return await steps[step]()
