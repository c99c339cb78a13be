"""Lead-time reminder scheduling for family schedule records.

Every tick, each record is expanded around ``now`` and every
(occurrence, recipient, phase) whose start or end lies about ten minutes away
is sent once. Sent reminders are remembered through NotificationFlagStore so
later ticks inside the same window do not send again.

Per (occurrence, recipient, phase) the lifecycle is PENDING -> NOTIFIED. A
flag is only written after the transport reports success, so a failed send is
retried by the next tick while the window is still open.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.clock import Clock, SystemClock
from ..core.exceptions import NotificationTransportError
from ..storage.protocols import NotificationTransport, ScheduleStorage
from .messages import TEST_MESSAGE, render_notification
from .models import Occurrence, ScheduleFilter, ScheduleRecord
from .notification_flags import NotificationFlagStore, make_flag_key
from .recurrence import RecurrenceExpander

logger = logging.getLogger(__name__)

NOTIFICATION_LEAD_TIME = datetime.timedelta(minutes=10)
# Wide enough to absorb the one-minute tick granularity and clock drift
NOTIFICATION_TOLERANCE = datetime.timedelta(minutes=2)
TICK_INTERVAL_SECONDS = 60
# How long stop() waits for an in-flight tick before cancelling it
STOP_TIMEOUT_SECONDS = 10.0


class NotificationPhase(str, Enum):
    START = "start"
    END = "end"


@dataclass(frozen=True)
class NotificationDecision:
    """One reminder that is due now."""

    recipient: str
    occurrence: Occurrence
    phase: NotificationPhase
    flag_key: str

    @property
    def target_time(self) -> datetime.datetime:
        if self.phase == NotificationPhase.END and self.occurrence.end is not None:
            return self.occurrence.end
        return self.occurrence.start


class NotificationWindowScheduler:
    """Decides which reminders are due and dispatches each one at most once."""

    def __init__(
        self,
        storage: ScheduleStorage,
        transport: NotificationTransport,
        flag_store: NotificationFlagStore,
        expander: Optional[RecurrenceExpander] = None,
        lead_time: datetime.timedelta = NOTIFICATION_LEAD_TIME,
        tolerance: datetime.timedelta = NOTIFICATION_TOLERANCE,
        display_timezone: Optional[datetime.tzinfo] = None,
        person_names: Optional[Mapping[str, str]] = None,
        enabled: bool = True,
    ) -> None:
        self.storage = storage
        self.transport = transport
        self.flag_store = flag_store
        self.expander = expander or RecurrenceExpander()
        self.lead_time = lead_time
        self.tolerance = tolerance
        self.display_timezone = display_timezone
        self.person_names = dict(person_names or {})
        self.enabled = enabled

    def is_due(self, target: datetime.datetime, now: datetime.datetime) -> bool:
        """True when ``target`` is within lead time +/- tolerance of ``now``."""
        delta = target - now
        return self.lead_time - self.tolerance < delta <= self.lead_time + self.tolerance

    def due_notifications(
        self, records: Iterable[ScheduleRecord], now: datetime.datetime
    ) -> list[NotificationDecision]:
        """Every (occurrence, recipient, phase) whose reminder window contains ``now``."""
        horizon = now + self.lead_time + self.tolerance
        decisions: list[NotificationDecision] = []

        for record in records:
            if not record.notification_prefs:
                continue
            lookback = now - (record.duration or datetime.timedelta(0))
            for occ in self.expander.expand(record, lookback, horizon):
                for recipient, prefs in occ.notification_prefs.items():
                    if prefs.notify_on_start and self.is_due(occ.start, now):
                        decisions.append(self._decision(recipient, occ, NotificationPhase.START))
                    if prefs.notify_on_end and occ.end is not None and self.is_due(occ.end, now):
                        decisions.append(self._decision(recipient, occ, NotificationPhase.END))
        return decisions

    async def check_and_send_notifications(
        self, now: datetime.datetime
    ) -> list[NotificationDecision]:
        """Run one scheduling cycle.

        Returns:
            Decisions that were dispatched successfully during this cycle

        Raises:
            StorageError: if records cannot be listed
            FlagStoreCorruptedError: if dedup flags cannot be read
        """
        if not self.enabled:
            logger.debug("Notifications disabled; skipping cycle")
            return []

        records = await self.storage.list(ScheduleFilter())
        self.flag_store.purge_expired(now)

        sent: list[NotificationDecision] = []
        for decision in self.due_notifications(records, now):
            if self.flag_store.is_notified(decision.flag_key):
                logger.debug("Already notified %s", decision.flag_key)
                continue
            if await self._dispatch(decision):
                self.flag_store.mark_notified(decision.flag_key, now)
                sent.append(decision)

        if sent:
            logger.info("Sent %d notification(s)", len(sent))
        return sent

    async def send_test_message(self, recipient: str) -> bool:
        """Send a fixed test message; returns the transport's success flag."""
        try:
            return bool(await self.transport.send(recipient, TEST_MESSAGE))
        except NotificationTransportError as e:
            logger.warning("Test message to %s failed: %s", recipient, e)
            return False

    def render(self, decision: NotificationDecision) -> str:
        return render_notification(
            decision.occurrence,
            decision.phase.value,
            tz=self.display_timezone,
            person_names=self.person_names,
        )

    async def _dispatch(self, decision: NotificationDecision) -> bool:
        try:
            ok = await self.transport.send(decision.recipient, self.render(decision))
        except Exception:
            logger.exception(
                "Failed to send %s notification for %s to %s",
                decision.phase.value,
                decision.occurrence.occurrence_id,
                decision.recipient,
            )
            return False
        if not ok:
            logger.warning(
                "Transport rejected %s notification for %s to %s; will retry next tick",
                decision.phase.value,
                decision.occurrence.occurrence_id,
                decision.recipient,
            )
            return False
        logger.debug(
            "Notification sent for %s (%s) to %s",
            decision.occurrence.title,
            decision.phase.value,
            decision.recipient,
        )
        return True

    def _decision(
        self, recipient: str, occ: Occurrence, phase: NotificationPhase
    ) -> NotificationDecision:
        return NotificationDecision(
            recipient=recipient,
            occurrence=occ,
            phase=phase,
            flag_key=make_flag_key(recipient, occ.key, phase.value, self.lead_time),
        )


class SchedulerController:
    """Owns the periodic tick driving a NotificationWindowScheduler.

    The clock is injected so tests can run the loop on virtual time. Stopping
    only halts the tick; NOTIFIED flags already written stay in place.
    """

    def __init__(
        self,
        scheduler: NotificationWindowScheduler,
        clock: Optional[Clock] = None,
        interval_seconds: float = TICK_INTERVAL_SECONDS,
        stop_timeout: float = STOP_TIMEOUT_SECONDS,
    ) -> None:
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.interval_seconds = interval_seconds
        self.stop_timeout = stop_timeout
        self._in_tick = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> list[NotificationDecision]:
        """Run one cycle at the clock's current time."""
        self.tick_count += 1
        self._in_tick = True
        try:
            return await self.scheduler.check_and_send_notifications(self.clock.now())
        finally:
            self._in_tick = False

    def start(self) -> None:
        """Start ticking: one immediate cycle, then one per interval.

        Must be called with a running event loop. Starting an already running
        controller is a no-op.
        """
        if self.is_running:
            logger.debug("Notification scheduler already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event))
        logger.info("Notification scheduler started (interval %ss)", self.interval_seconds)

    async def stop(self) -> None:
        """Stop ticking and wait for the loop to exit.

        A tick that is already dispatching is allowed to finish, so a reminder
        that went out also gets its flag. Only a tick still running after
        ``stop_timeout`` seconds is cancelled.
        """
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        if self._in_tick:
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Notification tick still running after %ss; cancelling", self.stop_timeout
                )
        if not self._task.done():
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._stop_event = None
        logger.info("Notification scheduler stopped")

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Notification tick failed")
            if stop_event.is_set():
                break
            await self.clock.sleep(self.interval_seconds)
