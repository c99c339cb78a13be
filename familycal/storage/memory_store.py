"""In-memory schedule storage.

Reference implementation of the ScheduleStorage protocol. Used by the test
suite and by the CLI, which seeds it from a YAML/JSON records file.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from ..core.exceptions import StorageError
from ..core.timezone_utils import now_utc
from ..domain.models import ScheduleDraft, ScheduleFilter, ScheduleRecord

logger = logging.getLogger(__name__)


class InMemoryScheduleStore:
    """Dict-backed record storage with storage-assigned ids and timestamps."""

    def __init__(
        self,
        records: Optional[list[ScheduleRecord]] = None,
        timezone: Optional[datetime.tzinfo] = None,
    ) -> None:
        self._records: dict[str, ScheduleRecord] = {}
        self._lock = asyncio.Lock()
        self.timezone = timezone
        for record in records or []:
            self._records[record.id] = record

    @classmethod
    def from_file(
        cls, path: str | Path, timezone: Optional[datetime.tzinfo] = None
    ) -> "InMemoryScheduleStore":
        """Load records from a YAML or JSON file holding a list of record mappings.

        Naive timestamps in the file are read in ``timezone``.

        Raises:
            StorageError: if the file cannot be read or a record is invalid
        """
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"cannot read records file {p}: {e}") from e

        try:
            if p.suffix.lower() == ".json":
                raw = json.loads(text)
            else:
                raw = yaml.safe_load(text) or []
        except (ValueError, yaml.YAMLError) as e:
            raise StorageError(f"cannot parse records file {p}: {e}") from e

        if isinstance(raw, dict):
            raw = raw.get("records", [])
        if not isinstance(raw, list):
            raise StorageError(f"records file {p} must contain a list of records")

        records = []
        for i, item in enumerate(raw):
            if isinstance(item, dict) and "id" not in item:
                item = {**item, "id": f"rec-{i + 1}"}
            try:
                records.append(
                    ScheduleRecord.model_validate(item, context={"timezone": timezone})
                )
            except ValidationError as e:
                raise StorageError(f"invalid record #{i + 1} in {p}: {e}") from e

        logger.info("Loaded %d records from %s", len(records), p)
        return cls(records, timezone=timezone)

    async def list(self, filter: Optional[ScheduleFilter] = None) -> list[ScheduleRecord]:
        async with self._lock:
            records = [r.model_copy(deep=True) for r in self._records.values()]
        if filter is not None:
            records = [r for r in records if filter.matches(r, self.timezone)]
        records.sort(key=lambda r: (r.start, r.id))
        return records

    async def get(self, record_id: str) -> Optional[ScheduleRecord]:
        async with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    async def create(self, draft: ScheduleDraft) -> str:
        now = now_utc()
        record_id = uuid.uuid4().hex
        record = ScheduleRecord(
            **draft.model_dump(mode="python"),
            id=record_id,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._records[record_id] = record
        logger.debug("Created record %s for %s", record_id, draft.person.value)
        return record_id

    async def update(self, record_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise StorageError(f"record {record_id} not found")
            merged = {**current.model_dump(mode="python"), **fields, "updated_at": now_utc()}
            try:
                self._records[record_id] = ScheduleRecord.model_validate(merged)
            except ValidationError as e:
                raise StorageError(f"invalid update for {record_id}: {e}") from e
        logger.debug("Updated record %s (%s)", record_id, ", ".join(sorted(fields)))

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            removed = self._records.pop(record_id, None)
        if removed is None:
            logger.debug("Delete of missing record %s ignored", record_id)
        else:
            logger.debug("Deleted record %s", record_id)

    async def add_exclusion_date(self, record_id: str, day: datetime.date) -> None:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise StorageError(f"record {record_id} not found")
            recurrence = current.recurrence.model_copy(deep=True)
            recurrence.exclusion_dates.add(day)
            self._records[record_id] = current.model_copy(
                update={"recurrence": recurrence, "updated_at": now_utc()}
            )
        logger.debug("Added exclusion %s to %s", day.isoformat(), record_id)

    def __len__(self) -> int:
        return len(self._records)
