"""
Celery Application Configuration
"""

from celery import Celery

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "hq_dashboard",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.alerts"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.alerts.*": {"queue": "alerts"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Every 5 minutes locally, hourly elsewhere (ALERT_CHECK_INTERVAL_SECONDS overrides).
    beat_schedule={
        "alert-checks": {
            "task": "workers.alerts.run_alert_checks",
            "schedule": float(settings.alert_check_interval_seconds),
            "options": {"queue": "alerts", "expires": float(settings.alert_check_interval_seconds)},
        },
    },
)
