"""Transport that writes reminders to the log, used when no webhook is configured."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LogNotificationTransport:
    """Logs each message at INFO and records it in ``sent``."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, recipient: str, text: str) -> bool:
        self.sent.append((recipient, text))
        logger.info("Notification for %s:\n%s", recipient, text)
        return True
