"""Webhook notification transport.

Posts ``{"recipient": ..., "text": ...}`` as JSON to a configured URL. Delivery
to the recipient's device or messenger account happens behind the webhook.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..core.exceptions import NotificationTransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "familycal-notifier/1.0",
    "Content-Type": "application/json",
}


class WebhookNotificationTransport:
    """NotificationTransport backed by an HTTP webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        headers: Optional[dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Create the transport.

        Args:
            url: Webhook endpoint receiving JSON POSTs
            timeout: Per-request timeout in seconds
            headers: Extra headers merged over the defaults
            client: Optional shared client; the transport creates and owns one otherwise
        """
        self.url = url
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def send(self, recipient: str, text: str) -> bool:
        """POST one message.

        Raises:
            NotificationTransportError: on network errors or non-2xx responses
        """
        try:
            response = await self._client.post(
                self.url,
                json={"recipient": recipient, "text": text},
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise NotificationTransportError(f"webhook request failed: {e}") from e

        if not response.is_success:
            raise NotificationTransportError(
                f"webhook returned HTTP {response.status_code} for {recipient}"
            )
        logger.debug("Webhook accepted message for %s (HTTP %d)", recipient, response.status_code)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
