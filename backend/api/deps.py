"""
HQ Dashboard API Dependencies

Dependency injection for DB sessions, the alert store and the notifier.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.email import AlertNotifier, EmailNotifier
from db.alert_store import AlertStore
from db.session import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_alert_store(db: AsyncSession = Depends(get_db)) -> AlertStore:
    return AlertStore(db)


def get_notifier() -> AlertNotifier:
    return EmailNotifier()
