"""Tests for the httpx-based webhook transport."""

import json

import httpx
import pytest

from familycal.core.exceptions import NotificationTransportError
from familycal.transport.webhook import WebhookNotificationTransport

pytestmark = pytest.mark.unit

URL = "http://hook.local/send"


def _transport(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookNotificationTransport(URL, client=client), client


async def test_posts_recipient_and_text_as_json():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    transport, client = _transport(handler)
    async with client:
        assert await transport.send("family-phone", "hello") is True

    assert str(seen[0].url) == URL
    assert json.loads(seen[0].content) == {"recipient": "family-phone", "text": "hello"}
    assert seen[0].headers["user-agent"].startswith("familycal-notifier")


async def test_non_2xx_raises():
    transport, client = _transport(lambda request: httpx.Response(502))

    async with client:
        with pytest.raises(NotificationTransportError, match="502"):
            await transport.send("family-phone", "hello")


async def test_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    transport, client = _transport(handler)

    async with client:
        with pytest.raises(NotificationTransportError) as excinfo:
            await transport.send("family-phone", "hello")

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


async def test_aclose_leaves_shared_client_open():
    transport, client = _transport(lambda request: httpx.Response(204))

    await transport.aclose()

    assert client.is_closed is False
    await client.aclose()


async def test_aclose_closes_owned_client():
    transport = WebhookNotificationTransport(URL)

    await transport.aclose()

    assert transport._client.is_closed is True
