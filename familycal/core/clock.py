"""Injectable clocks so scheduling code can run against virtual time."""

from __future__ import annotations

import asyncio
import datetime
from typing import Protocol

from .timezone_utils import ensure_aware, now_utc


class Clock(Protocol):
    """Source of the current time plus a way to wait."""

    def now(self) -> datetime.datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock time (honors FAMILYCAL_TEST_TIME through now_utc)."""

    def now(self) -> datetime.datetime:
        return now_utc()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FakeClock:
    """Manually advanced clock for tests.

    ``sleep()`` advances virtual time instead of waiting and then yields to the
    event loop once so other tasks get a chance to run.
    """

    def __init__(self, start: datetime.datetime) -> None:
        self._now = ensure_aware(start)
        self.sleeps: list[float] = []

    def now(self) -> datetime.datetime:
        return self._now

    def advance(self, delta: datetime.timedelta) -> datetime.datetime:
        self._now = self._now + delta
        return self._now

    def set(self, value: datetime.datetime) -> None:
        self._now = ensure_aware(value)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now = self._now + datetime.timedelta(seconds=seconds)
        await asyncio.sleep(0)
