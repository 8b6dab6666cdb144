"""
Alert Check Worker — scheduled alert pipeline run.

Retry and backoff happen inside the tick (see alerts.scheduler), so the task
itself never asks Celery to retry. A Redis lock keeps overlapping ticks from
running on different workers at the same time.

Schedule: See celery_app.py beat_schedule
"""

import asyncio

import redis
import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()

LOCK_NAME = "locks:alert-checks"


@celery_app.task(
    name="workers.alerts.run_alert_checks",
    bind=True,
    acks_late=True,
)
def run_alert_checks(self):
    """
    Scheduled job: run every alert rule and resolution step once.
    Returns the tick summary; never raises.
    """
    from core.config import get_settings

    settings = get_settings()
    run_id = self.request.id or "manual"

    client = redis.Redis.from_url(settings.redis_url)
    lock = client.lock(LOCK_NAME, timeout=settings.alert_lock_timeout_seconds)
    if not lock.acquire(blocking=False):
        logger.warning("alerts.worker.lock_held", run_id=run_id)
        return {"status": "skipped", "reason": "lock_held", "run_id": run_id}

    try:
        summary = asyncio.run(_run_checks())
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            logger.warning("alerts.worker.lock_expired", run_id=run_id)

    summary["run_id"] = run_id
    logger.info("alerts.worker.completed", **summary)
    return summary


async def _run_checks() -> dict:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from alerts.scheduler import run_alert_checks as run_tick
    from core.config import get_settings

    settings = get_settings()
    engine = create_async_engine(settings.database_url)
    try:
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        return await run_tick(session_factory)
    finally:
        await engine.dispose()
