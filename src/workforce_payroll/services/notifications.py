"""Notification senders used by the approval workflow and payouts."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.errors import NotificationError
from workforce_payroll.models import User

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    """Delivers a text message to an employee.

    Implementations raise NotificationError when delivery fails.
    """

    async def notify(self, employee_id: UUID, organization_id: UUID, message: str) -> None: ...


class LoggingNotificationSender:
    """Writes notifications to the log instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[UUID, UUID, str]] = []

    async def notify(self, employee_id: UUID, organization_id: UUID, message: str) -> None:
        self.sent.append((employee_id, organization_id, message))
        logger.info("Notify %s (org %s): %s", employee_id, organization_id, message)


class WhatsAppNotificationSender:
    """Sends WhatsApp messages through an HTTP messaging gateway.

    Users who have not opted in, or have no phone number, are skipped.
    """

    def __init__(
        self,
        session: AsyncSession,
        api_url: str | None,
        api_token: str | None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.session = session
        self.api_url = api_url
        self.api_token = api_token
        self.client = client
        self.timeout = timeout

    async def notify(self, employee_id: UUID, organization_id: UUID, message: str) -> None:
        try:
            user = await self.session.get(User, employee_id)
        except SQLAlchemyError as e:
            raise NotificationError(f"Could not load user {employee_id}: {e}") from e

        if user is None or user.organization_id != organization_id:
            logger.info("WhatsApp message to %s skipped: user not found", employee_id)
            return
        if not user.whatsapp_opt_in or not user.phone_number:
            skip_reasons = []
            if not user.whatsapp_opt_in:
                skip_reasons.append("not opted in")
            if not user.phone_number:
                skip_reasons.append("phone number missing")
            logger.info(
                "WhatsApp message to %s skipped: user is %s",
                employee_id,
                " and ".join(skip_reasons),
            )
            return
        if not self.api_url or not self.api_token:
            logger.warning(
                "WhatsApp gateway not configured; message for %s not sent: %r",
                employee_id,
                message,
            )
            return

        await self._send(user.phone_number, message)

    async def _send(self, phone_number: str, message: str) -> None:
        payload = {"to": f"whatsapp:{phone_number}", "body": message}
        headers = {"Authorization": f"Bearer {self.api_token}"}
        try:
            if self.client is not None:
                response = await self.client.post(self.api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"WhatsApp delivery to {phone_number} failed: {e}") from e
