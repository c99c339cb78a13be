"""Shared fixtures for familycal tests."""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from typing import Any

import pytest

from familycal.core.clock import FakeClock
from familycal.domain.models import (
    NotificationPreference,
    Person,
    RecurrenceRule,
    RecurrenceType,
    ScheduleRecord,
)
from familycal.storage.memory_store import InMemoryScheduleStore

BASE_TIME = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)  # a Monday


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def make_record() -> Callable[..., ScheduleRecord]:
    """Factory building ScheduleRecords with sensible defaults.

    Keyword arguments override any field; ``recurrence`` may be a
    RecurrenceType shortcut instead of a full rule.
    """
    counter = {"n": 0}

    def _make(**overrides: Any) -> ScheduleRecord:
        counter["n"] += 1
        recurrence = overrides.pop("recurrence", RecurrenceRule())
        if isinstance(recurrence, RecurrenceType):
            recurrence = RecurrenceRule(type=recurrence)
        data: dict[str, Any] = {
            "id": f"rec-{counter['n']}",
            "title": "Swimming lesson",
            "start": BASE_TIME,
            "end": BASE_TIME.replace(hour=10),
            "person": Person.PARENT_A,
            "recurrence": recurrence,
        }
        data.update(overrides)
        return ScheduleRecord(**data)

    return _make


@pytest.fixture
def notify_start() -> dict[str, NotificationPreference]:
    return {"family-phone": NotificationPreference(notify_on_start=True)}


@pytest.fixture
def store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(BASE_TIME)


FAMILYCAL_ENV_KEYS = (
    "FAMILYCAL_TEST_TIME",
    "FAMILYCAL_DEBUG",
    "FAMILYCAL_LOG_LEVEL",
    "FAMILYCAL_DEFAULT_TIMEZONE",
    "FAMILYCAL_TICK_INTERVAL",
    "FAMILYCAL_WEBHOOK_URL",
    "FAMILYCAL_FLAG_STORE",
    "FAMILYCAL_RECORDS",
    "FAMILYCAL_NOTIFICATIONS_ENABLED",
)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep FAMILYCAL_* variables from leaking between tests."""
    for key in FAMILYCAL_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield
    # .env loading writes os.environ directly
    for key in FAMILYCAL_ENV_KEYS:
        os.environ.pop(key, None)
