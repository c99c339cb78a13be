"""Wiring of storage, flag store, transport and scheduler from a Config."""

from __future__ import annotations

import asyncio
import datetime
import logging
import signal
from typing import Any, Optional

from .config_loader import Config
from .core.clock import Clock
from .core.timezone_utils import resolve_timezone
from .domain.notification_flags import NotificationFlagStore
from .domain.notification_scheduler import NotificationWindowScheduler, SchedulerController
from .domain.recurrence import RecurrenceExpander
from .storage.kv_store import InMemoryKeyValueStore, JsonKeyValueStore
from .storage.memory_store import InMemoryScheduleStore
from .storage.protocols import NotificationTransport, ScheduleStorage
from .transport.console import LogNotificationTransport
from .transport.webhook import WebhookNotificationTransport

logger = logging.getLogger(__name__)


def build_storage(config: Config) -> InMemoryScheduleStore:
    tz = resolve_timezone(config.default_timezone)
    if config.records_path:
        return InMemoryScheduleStore.from_file(config.records_path, timezone=tz)
    logger.info("No records file configured; starting with empty storage")
    return InMemoryScheduleStore(timezone=tz)


def build_transport(config: Config) -> NotificationTransport:
    if config.webhook_url:
        return WebhookNotificationTransport(
            config.webhook_url, timeout=config.webhook_timeout_seconds
        )
    logger.info("No webhook configured; notifications will be logged only")
    return LogNotificationTransport()


def build_expander(config: Config) -> RecurrenceExpander:
    return RecurrenceExpander(
        max_occurrences=config.max_occurrences,
        timezone=resolve_timezone(config.default_timezone),
    )


def build_scheduler(
    config: Config,
    storage: Optional[ScheduleStorage] = None,
    transport: Optional[NotificationTransport] = None,
) -> NotificationWindowScheduler:
    """Create a scheduler from config, building any collaborator not supplied."""
    kv_store = (
        JsonKeyValueStore(config.flag_store_path)
        if config.flag_store_path
        else InMemoryKeyValueStore()
    )
    flag_store = NotificationFlagStore(kv_store, ttl=datetime.timedelta(hours=config.flag_ttl_hours))
    return NotificationWindowScheduler(
        storage=storage if storage is not None else build_storage(config),
        transport=transport if transport is not None else build_transport(config),
        flag_store=flag_store,
        expander=build_expander(config),
        display_timezone=resolve_timezone(config.default_timezone),
        person_names=config.person_names,
        enabled=config.notifications_enabled,
    )


async def _close_transport(transport: Any) -> None:
    aclose = getattr(transport, "aclose", None)
    if callable(aclose):
        await aclose()


async def run_once(config: Config) -> int:
    """Run a single notification cycle and return the number of messages sent."""
    scheduler = build_scheduler(config)
    try:
        controller = SchedulerController(scheduler)
        sent = await controller.tick()
        return len(sent)
    finally:
        await _close_transport(scheduler.transport)


async def run_forever(
    config: Config,
    clock: Optional[Clock] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Run the periodic notification tick until ``stop_event`` is set.

    When no event is supplied, SIGINT/SIGTERM set an internal one.
    """
    scheduler = build_scheduler(config)
    controller = SchedulerController(
        scheduler, clock=clock, interval_seconds=config.tick_interval_seconds
    )
    event = stop_event or asyncio.Event()

    if stop_event is None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, event.set)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handler for %s not supported on this platform", sig)

    controller.start()
    try:
        await event.wait()
    finally:
        await controller.stop()
        await _close_transport(scheduler.transport)
