"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.config import Settings, get_settings
from workforce_payroll.database import init_db
from workforce_payroll.services.notifications import (
    LoggingNotificationSender,
    NotificationSender,
    WhatsAppNotificationSender,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings() -> Settings:
    return get_settings()


def get_clock() -> Clock:
    return SystemClock()


async def get_organization_id(
    x_organization_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract organization ID from header."""
    if not x_organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-ID header is required",
        )
    try:
        return UUID(x_organization_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Organization-ID format",
        )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
OrganizationId = Annotated[UUID, Depends(get_organization_id)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
AppClock = Annotated[Clock, Depends(get_clock)]


def get_notifier(db: DbSession, settings: AppSettings) -> NotificationSender:
    """WhatsApp delivery when a gateway is configured, log-only otherwise."""
    if settings.whatsapp_api_url and settings.whatsapp_api_token:
        return WhatsAppNotificationSender(
            db, settings.whatsapp_api_url, settings.whatsapp_api_token
        )
    return LoggingNotificationSender()


Notifier = Annotated[NotificationSender, Depends(get_notifier)]
