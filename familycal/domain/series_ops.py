"""Delete modes for recurring series and multi-person logical events."""

from __future__ import annotations

import datetime
import logging

from ..core.exceptions import RecurrenceRuleError
from ..storage.protocols import ScheduleStorage
from .models import Occurrence, ScheduleFilter
from .synchronizer import Identity, find_related

logger = logging.getLogger(__name__)


async def delete_occurrence(storage: ScheduleStorage, occurrence: Occurrence) -> datetime.date:
    """Suppress a single occurrence of a recurring record.

    The base record is kept; the occurrence date joins its exclusion set.

    Returns:
        The excluded date

    Raises:
        RecurrenceRuleError: if the occurrence does not come from a recurring record
    """
    occurrence_date = occurrence.key.occurrence_date
    if occurrence_date is None:
        raise RecurrenceRuleError(
            f"{occurrence.original_id} is not recurring; delete the record instead"
        )
    await storage.add_exclusion_date(occurrence.original_id, occurrence_date)
    logger.info("Excluded %s from series %s", occurrence_date.isoformat(), occurrence.original_id)
    return occurrence_date


async def delete_series(storage: ScheduleStorage, record_id: str) -> None:
    """Delete a recurring record together with every occurrence it generates."""
    await storage.delete(record_id)
    logger.info("Deleted series %s", record_id)


async def delete_logical_event(storage: ScheduleStorage, identity: Identity) -> list[str]:
    """Delete every per-person record making up one logical event.

    Returns:
        Ids of the deleted records (empty when nothing matched)
    """
    related = find_related(await storage.list(ScheduleFilter()), identity)
    deleted: list[str] = []
    for record in related:
        await storage.delete(record.id)
        deleted.append(record.id)
    logger.info("Deleted logical event %r (%d records)", identity[0], len(deleted))
    return deleted
