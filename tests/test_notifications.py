"""Tests for notification senders."""

import json

import httpx
import pytest

from workforce_payroll.errors import NotificationError
from workforce_payroll.services.notifications import WhatsAppNotificationSender


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestWhatsAppNotificationSender:
    """Test delivery through the messaging gateway."""

    async def test_posts_message_for_opted_in_user(self, session, world):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        async with _client(handler) as client:
            sender = WhatsAppNotificationSender(
                session, "https://gateway.test/messages", "secret", client=client
            )
            await sender.notify(world.alice_id, world.organization_id, "Payroll approved")

        assert len(requests) == 1
        assert requests[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(requests[0].content) == {
            "to": "whatsapp:+15550100",
            "body": "Payroll approved",
        }

    async def test_skips_user_without_opt_in(self, session, world):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _client(handler) as client:
            sender = WhatsAppNotificationSender(
                session, "https://gateway.test/messages", "secret", client=client
            )
            await sender.notify(world.bob_id, world.organization_id, "Payroll approved")

    async def test_unconfigured_gateway_skips(self, session, world):
        sender = WhatsAppNotificationSender(session, None, None)

        await sender.notify(world.alice_id, world.organization_id, "Payroll approved")

    async def test_gateway_error_raises(self, session, world):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        async with _client(handler) as client:
            sender = WhatsAppNotificationSender(
                session, "https://gateway.test/messages", "secret", client=client
            )
            with pytest.raises(NotificationError):
                await sender.notify(world.alice_id, world.organization_id, "Payroll approved")
