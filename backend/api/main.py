"""
HQ Dashboard API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("HQ Dashboard API starting up", version=settings.app_version)
    scheduler = None
    if settings.alert_scheduler_enabled:
        from alerts.email import EmailNotifier
        from alerts.scheduler import AlertScheduler
        from db.session import AsyncSessionLocal

        scheduler = AlertScheduler(AsyncSessionLocal, notifier=EmailNotifier())
        scheduler.start()
        logger.info("alerts.scheduler.enabled", interval_seconds=scheduler.interval_seconds)
    app.state.alert_scheduler = scheduler
    yield
    if scheduler is not None:
        await scheduler.stop()
    logger.info("HQ Dashboard API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Dealer order, inventory and operational alert dashboard",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import alerts, materials

app.include_router(alerts.router)
app.include_router(materials.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
