"""Recurrence expansion for family schedule records."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Iterator
from typing import Optional, Union

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, MONTHLY, WEEKLY, rrule, weekday

from ..core.exceptions import RecurrenceRuleError
from ..core.timezone_utils import ensure_aware
from .models import MonthlyMode, Occurrence, RecurrenceRule, RecurrenceType, ScheduleRecord

logger = logging.getLogger(__name__)

# Safety bound on occurrences produced by a single expand() call
MAX_OCCURRENCES = 100

WindowBound = Union[datetime.date, datetime.datetime]


def sunday_based_to_python(day: int) -> int:
    """Convert 0=Sunday weekday numbering to Python's 0=Monday numbering."""
    return (day + 6) % 7


def python_to_sunday_based(day: int) -> int:
    """Convert Python's 0=Monday weekday numbering to 0=Sunday numbering."""
    return (day + 1) % 7


def normalize_window(
    window_start: WindowBound,
    window_end: WindowBound,
    tz: datetime.tzinfo,
) -> tuple[datetime.datetime, datetime.datetime]:
    """Turn date or datetime bounds into aware datetimes.

    A bare date as ``window_end`` covers that whole day.
    """
    if isinstance(window_start, datetime.datetime):
        start = ensure_aware(window_start, tz)
    else:
        start = datetime.datetime.combine(window_start, datetime.time.min, tzinfo=tz)

    if isinstance(window_end, datetime.datetime):
        end = ensure_aware(window_end, tz)
    else:
        end = datetime.datetime.combine(window_end, datetime.time.max, tzinfo=tz)
    return start, end


class RecurrenceExpander:
    """Expands a stored record into concrete occurrences inside a query window.

    The expander is stateless between calls: every ``expand()`` recomputes the
    series from the record's start, so overlapping windows yield occurrences
    with identical keys.
    """

    def __init__(
        self,
        max_occurrences: int = MAX_OCCURRENCES,
        timezone: Optional[datetime.tzinfo] = None,
    ) -> None:
        """Create an expander.

        Args:
            max_occurrences: Upper bound on occurrences returned per record
            timezone: Zone in which weekdays, month days and exclusion dates are
                evaluated. Defaults to the tzinfo of each record's start.
        """
        self.max_occurrences = max_occurrences
        self.timezone = timezone

    def expand(
        self,
        record: ScheduleRecord,
        window_start: WindowBound,
        window_end: WindowBound,
    ) -> list[Occurrence]:
        """Materialize ``record`` for every date it occurs in the window.

        Non-recurring records come back unchanged as a single occurrence; the
        caller windows them (see expand_records). Malformed rules produce an
        empty list rather than an error.
        """
        rule = record.recurrence
        if rule.type == RecurrenceType.NONE:
            return [Occurrence.from_record(record)]

        tz = self.timezone or record.start.tzinfo or datetime.UTC
        series_start = record.start.astimezone(tz)
        win_start, win_end = normalize_window(window_start, window_end, tz)

        try:
            limit = self._series_limit(rule, series_start, win_end)
            candidates = self._candidates(rule, series_start, win_start, limit)
            return self._collect(record, candidates, win_start, tz)
        except RecurrenceRuleError as e:
            logger.warning("Skipping expansion of record %s: %s", record.id, e)
            return []

    def _series_limit(
        self,
        rule: RecurrenceRule,
        series_start: datetime.datetime,
        win_end: datetime.datetime,
    ) -> datetime.datetime:
        if rule.end_date is None:
            return win_end
        # Naive end dates are read in the expansion timezone
        end = ensure_aware(rule.end_date, series_start.tzinfo)
        if end < series_start:
            raise RecurrenceRuleError(
                f"end date {end.isoformat()} is before start {series_start.isoformat()}"
            )
        return min(end.astimezone(series_start.tzinfo), win_end)

    def _candidates(
        self,
        rule: RecurrenceRule,
        series_start: datetime.datetime,
        win_start: datetime.datetime,
        limit: datetime.datetime,
    ) -> Iterable[datetime.datetime]:
        if win_start > limit:
            return []

        if rule.type == RecurrenceType.DAILY:
            return rrule(DAILY, dtstart=series_start, until=limit).between(
                win_start, limit, inc=True
            )

        if rule.type == RecurrenceType.WEEKLY:
            days = rule.weekdays or {python_to_sunday_based(series_start.weekday())}
            by_weekday = sorted(sunday_based_to_python(d) for d in days)
            return rrule(WEEKLY, dtstart=series_start, byweekday=by_weekday, until=limit).between(
                win_start, limit, inc=True
            )

        if rule.type == RecurrenceType.MONTHLY:
            if rule.monthly_mode == MonthlyMode.DAY_OF_WEEK_ORDINAL:
                ordinal = (series_start.day - 1) // 7 + 1
                anchor = weekday(series_start.weekday(), ordinal)
                return rrule(MONTHLY, dtstart=series_start, byweekday=anchor, until=limit).between(
                    win_start, limit, inc=True
                )
            return _same_day_each_month(series_start, win_start, limit)

        raise RecurrenceRuleError(f"unsupported recurrence type {rule.type!r}")

    def _collect(
        self,
        record: ScheduleRecord,
        candidates: Iterable[datetime.datetime],
        win_start: datetime.datetime,
        tz: datetime.tzinfo,
    ) -> list[Occurrence]:
        excluded = record.recurrence.exclusion_dates
        occurrences: list[Occurrence] = []
        skipped = 0

        for current in candidates:
            if current < win_start:
                continue
            occurrence_date = current.astimezone(tz).date()
            if occurrence_date in excluded:
                skipped += 1
                continue
            if len(occurrences) >= self.max_occurrences:
                logger.debug(
                    "Expansion of %s limited to %d occurrences", record.id, self.max_occurrences
                )
                break
            occurrences.append(Occurrence.from_record(record, current, occurrence_date))

        logger.debug(
            "Expanded record %s (%s): %d occurrences, %d excluded",
            record.id,
            record.recurrence.type.value,
            len(occurrences),
            skipped,
        )
        return occurrences


def _same_day_each_month(
    series_start: datetime.datetime,
    win_start: datetime.datetime,
    limit: datetime.datetime,
) -> Iterator[datetime.datetime]:
    """Yield the series start's day of month each month, clamped to short months.

    Each step offsets from the series start rather than the previous
    occurrence so a 31st that was clamped to the 30th returns to the 31st.
    """
    months = 0
    if win_start > series_start:
        months = max(
            0,
            (win_start.year - series_start.year) * 12 + win_start.month - series_start.month - 1,
        )
    while True:
        current = series_start + relativedelta(months=months)
        if current > limit:
            return
        yield current
        months += 1


def expand_records(
    records: Iterable[ScheduleRecord],
    window_start: WindowBound,
    window_end: WindowBound,
    expander: Optional[RecurrenceExpander] = None,
) -> list[Occurrence]:
    """Expand every record and keep the occurrences overlapping the window.

    This is the uniform windowing step applied to recurring and non-recurring
    records alike. Results are ordered by start time.
    """
    expander = expander or RecurrenceExpander()
    result: list[Occurrence] = []
    for record in records:
        tz = expander.timezone or record.start.tzinfo or datetime.UTC
        win_start, win_end = normalize_window(window_start, window_end, tz)
        for occ in expander.expand(record, window_start, window_end):
            occ_end = occ.end or occ.start
            if occ.start <= win_end and occ_end >= win_start:
                result.append(occ)
    result.sort(key=lambda o: (o.start, o.occurrence_id))
    return result
