"""Interfaces of the collaborators the engines depend on."""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from typing import Any, Optional, Protocol, runtime_checkable

from ..domain.models import ScheduleDraft, ScheduleFilter, ScheduleRecord


@runtime_checkable
class ScheduleStorage(Protocol):
    """Persistence of schedule records.

    Every call may raise StorageError; the engines surface it to their caller
    instead of retrying.
    """

    async def list(self, filter: Optional[ScheduleFilter] = None) -> list[ScheduleRecord]: ...

    async def create(self, draft: ScheduleDraft) -> str: ...

    async def update(self, record_id: str, fields: dict[str, Any]) -> None: ...

    async def delete(self, record_id: str) -> None: ...

    async def add_exclusion_date(self, record_id: str, day: datetime.date) -> None: ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Small local durable store used for dedup flags and settings."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> Iterable[str]: ...


@runtime_checkable
class NotificationTransport(Protocol):
    """Delivers rendered reminder text to a recipient.

    Returns True on success, False when delivery was rejected. May raise
    NotificationTransportError.
    """

    async def send(self, recipient: str, text: str) -> bool: ...
