"""Dedup flags for sent notifications, backed by a key-value store.

A flag marks one (recipient, occurrence, phase, lead time) reminder as sent.
Flags carry their creation timestamp and are purged once older than the TTL.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

from ..core.exceptions import FlagStoreCorruptedError
from ..storage.protocols import KeyValueStore
from .models import OccurrenceKey

logger = logging.getLogger(__name__)

FLAG_PREFIX = "notified:"
DEFAULT_FLAG_TTL = datetime.timedelta(hours=24)


def make_flag_key(
    recipient: str,
    occurrence: OccurrenceKey,
    phase: str,
    lead_time: datetime.timedelta,
) -> str:
    """Stable dedup key for one reminder."""
    lead_minutes = int(lead_time.total_seconds() // 60)
    return f"{FLAG_PREFIX}{recipient}:{occurrence.serialize()}:{phase}:{lead_minutes}"


def _parse_timestamp(key: str, value: Any) -> datetime.datetime:
    if not isinstance(value, str):
        raise FlagStoreCorruptedError(f"flag {key!r} has non-string timestamp {value!r}")
    try:
        ts = datetime.datetime.fromisoformat(value)
    except ValueError as e:
        raise FlagStoreCorruptedError(f"flag {key!r} has unparseable timestamp {value!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.UTC)
    return ts


class NotificationFlagStore:
    """NOTIFIED flags with an explicit TTL purge contract.

    The underlying store only needs ``get``/``set``/``remove``/``keys``; keys
    not starting with ``notified:`` belong to other users of the store and are
    left alone.
    """

    def __init__(self, kv_store: KeyValueStore, ttl: datetime.timedelta = DEFAULT_FLAG_TTL) -> None:
        self._kv = kv_store
        self.ttl = ttl

    def is_notified(self, key: str) -> bool:
        value = self._kv.get(key)
        if value is None:
            return False
        _parse_timestamp(key, value)
        return True

    def mark_notified(self, key: str, now: datetime.datetime) -> None:
        self._kv.set(key, now.isoformat())
        logger.debug("Marked %s notified at %s", key, now.isoformat())

    def notified_at(self, key: str) -> datetime.datetime | None:
        value = self._kv.get(key)
        if value is None:
            return None
        return _parse_timestamp(key, value)

    def active_flags(self) -> dict[str, datetime.datetime]:
        return {
            key: _parse_timestamp(key, self._kv.get(key))
            for key in list(self._kv.keys())
            if key.startswith(FLAG_PREFIX)
        }

    def purge_expired(self, now: datetime.datetime) -> int:
        """Remove flags older than the TTL.

        Returns:
            Number of flags removed

        Raises:
            FlagStoreCorruptedError: if a flag's timestamp cannot be read
        """
        cutoff = now - self.ttl
        removed = 0
        for key, stamped in self.active_flags().items():
            if stamped < cutoff:
                self._kv.remove(key)
                removed += 1
        if removed:
            logger.debug("Purged %d notification flags older than %s", removed, cutoff.isoformat())
        return removed
