"""Reconciliation of multi-person logical events against per-person records.

A logical event is the set of stored records that share one
``(title, start, end)`` tuple, one record per assigned person. Editing the
event's person set turns into create/update/delete operations on those
records. Planning is a pure computation; applying the plan is the only part
that touches storage.

Known limitations:
- Two sessions editing the same logical event concurrently each diff against
  their own snapshot of related records; there is no locking, and the last
  writer's plan wins for overlapping persons.
- Operations are applied one at a time. A failure part-way through leaves the
  logical event partially synchronized; the error reports how many operations
  completed so the caller can decide whether to retry the rest.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..core.exceptions import PersonValidationError, ReconcileApplyError
from ..core.timezone_utils import ensure_aware
from ..storage.protocols import ScheduleStorage
from .models import (
    NotificationPreference,
    Person,
    RecurrenceRule,
    ScheduleDraft,
    ScheduleFilter,
    ScheduleRecord,
)

logger = logging.getLogger(__name__)

Identity = tuple[str, datetime.datetime, Optional[datetime.datetime]]


def validate_persons(persons: Iterable[Union[Person, str]]) -> frozenset[Person]:
    """Coerce raw person tags into a validated set.

    Raises:
        PersonValidationError: if the set is empty, contains an unknown tag,
            or mixes ``all`` with individual persons.
    """
    result: set[Person] = set()
    for raw in persons:
        try:
            result.add(Person(raw))
        except ValueError as e:
            raise PersonValidationError(f"unknown person {raw!r}") from e

    if not result:
        raise PersonValidationError("a logical event needs at least one person")
    if Person.ALL in result and len(result) > 1:
        raise PersonValidationError("'all' cannot be combined with individual persons")
    return frozenset(result)


class EditContext(BaseModel):
    """An edit of one logical event.

    ``original_*`` carry the identity the event had before the edit; they are
    what related records are resolved by, even when the edit changes the
    title or time.
    """

    original_title: str
    original_start: datetime.datetime
    original_end: Optional[datetime.datetime] = None

    title: str
    description: Optional[str] = None
    start: datetime.datetime
    end: Optional[datetime.datetime] = None
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    notification_prefs: dict[str, NotificationPreference] = Field(default_factory=dict)
    important: bool = False
    persons: frozenset[Person]

    @field_validator("persons", mode="before")
    @classmethod
    def _check_persons(cls, value: Any) -> frozenset[Person]:
        if isinstance(value, (str, Person)):
            value = [value]
        return validate_persons(value)

    @field_validator("original_start", "original_end", "start", "end")
    @classmethod
    def _aware(cls, value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        return ensure_aware(value) if value is not None else None

    @property
    def original_identity(self) -> Identity:
        return (self.original_title, self.original_start, self.original_end)

    @property
    def new_identity(self) -> Identity:
        return (self.title, self.start, self.end)

    def draft_for(self, person: Person) -> ScheduleDraft:
        """Full set of edited field values for one person's record."""
        return ScheduleDraft(
            title=self.title,
            description=self.description,
            start=self.start,
            end=self.end,
            person=person,
            recurrence=self.recurrence.model_copy(deep=True),
            notification_prefs={k: v.model_copy() for k, v in self.notification_prefs.items()},
            important=self.important,
        )


@dataclass(frozen=True)
class CreateOperation:
    draft: ScheduleDraft

    @property
    def person(self) -> Person:
        return self.draft.person


@dataclass(frozen=True)
class UpdateOperation:
    """Full overwrite of an existing record with edited values."""

    record_id: str
    draft: ScheduleDraft

    @property
    def person(self) -> Person:
        return self.draft.person

    def fields(self) -> dict[str, Any]:
        return update_fields(self.draft)


@dataclass(frozen=True)
class DeleteOperation:
    record_id: str
    person: Person


Operation = Union[CreateOperation, UpdateOperation, DeleteOperation]


@dataclass
class ReconcilePlan:
    """Operations that bring storage in line with an edited logical event."""

    to_create: list[CreateOperation] = field(default_factory=list)
    to_update: list[UpdateOperation] = field(default_factory=list)
    to_delete: list[DeleteOperation] = field(default_factory=list)
    resolution_miss: bool = False

    def operations(self) -> list[Operation]:
        """Apply order: deletes, then updates, then creates."""
        return [*self.to_delete, *self.to_update, *self.to_create]

    def __len__(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.to_delete)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0


def update_fields(draft: ScheduleDraft) -> dict[str, Any]:
    """Every editable field of ``draft``, for a full-overwrite update."""
    return {
        "title": draft.title,
        "description": draft.description,
        "start": draft.start,
        "end": draft.end,
        "person": draft.person,
        "recurrence": draft.recurrence.model_copy(deep=True),
        "notification_prefs": {k: v.model_copy() for k, v in draft.notification_prefs.items()},
        "important": draft.important,
    }


def find_related(records: Iterable[ScheduleRecord], identity: Identity) -> list[ScheduleRecord]:
    """Records whose (title, start, end) exactly equals ``identity``."""
    return [r for r in records if r.identity == identity]


class LogicalEventSynchronizer:
    """Plans and applies person-set changes for logical events."""

    def reconcile(self, edit: EditContext, records: Sequence[ScheduleRecord]) -> ReconcilePlan:
        """Diff the edited person set against the currently stored records.

        Every person in the new set ends up with exactly one record at the new
        identity. A record that already sits there, from an earlier run of the
        same edit or from an event the edit collides with, is reused and any
        extra copy is deleted.

        Args:
            edit: Pre-edit identity, new field values and new person set
            records: Current snapshot of stored records

        Returns:
            ReconcilePlan with one operation per affected person
        """
        related = find_related(records, edit.original_identity)
        plan = ReconcilePlan(resolution_miss=not related)
        if not related:
            logger.info(
                "No stored records match %r at %s; creating logical event from scratch",
                edit.original_title,
                edit.original_start.isoformat(),
            )

        by_person: dict[Person, list[ScheduleRecord]] = {}
        for record in related:
            by_person.setdefault(record.person, []).append(record)

        new_persons = set(edit.persons)
        for person in _ordered(set(by_person) - new_persons):
            for record in by_person[person]:
                plan.to_delete.append(DeleteOperation(record_id=record.id, person=person))

        # Records already sitting at the new identity, from an earlier run of
        # this edit or from an unrelated event the edit now collides with
        related_ids = {r.id for r in related}
        at_new: dict[Person, list[ScheduleRecord]] = {}
        for record in find_related(records, edit.new_identity):
            if record.id not in related_ids and record.person in new_persons:
                at_new.setdefault(record.person, []).append(record)

        for person in _ordered(new_persons):
            candidates = [*by_person.get(person, []), *at_new.get(person, [])]
            if not candidates:
                plan.to_create.append(CreateOperation(draft=edit.draft_for(person)))
                continue
            keep, *duplicates = candidates
            plan.to_update.append(UpdateOperation(record_id=keep.id, draft=edit.draft_for(person)))
            for dup in duplicates:
                logger.warning("Removing duplicate record %s for %s", dup.id, person.value)
                plan.to_delete.append(DeleteOperation(record_id=dup.id, person=person))

        logger.debug(
            "Reconcile %r: create=%s update=%s delete=%s",
            edit.title,
            [op.person.value for op in plan.to_create],
            [op.person.value for op in plan.to_update],
            [op.person.value for op in plan.to_delete],
        )
        return plan

    async def apply(self, plan: ReconcilePlan, storage: ScheduleStorage) -> list[str]:
        """Apply ``plan`` to storage one operation at a time.

        Creates are re-checked against storage first: if a record for the
        same person and identity already exists, it is updated instead.

        Returns:
            Ids of created or updated records, in apply order

        Raises:
            ReconcileApplyError: if any operation fails; ``completed`` holds
                the number of operations applied before the failure
        """
        if plan.is_empty:
            logger.debug("Reconcile plan is empty; nothing to apply")
            return []

        operations = plan.operations()
        touched: list[str] = []
        completed = 0

        for op in operations:
            try:
                if isinstance(op, DeleteOperation):
                    await storage.delete(op.record_id)
                elif isinstance(op, UpdateOperation):
                    await storage.update(op.record_id, op.fields())
                    touched.append(op.record_id)
                else:
                    touched.append(await self._guarded_create(op, storage))
            except Exception as e:
                logger.exception(
                    "Reconcile failed after %d of %d operations", completed, len(operations)
                )
                raise ReconcileApplyError(
                    f"{type(op).__name__} for {op.person.value} failed: {e}",
                    completed=completed,
                    total=len(operations),
                ) from e
            completed += 1

        logger.info("Applied reconcile plan: %d operations", completed)
        return touched

    async def synchronize(self, edit: EditContext, storage: ScheduleStorage) -> ReconcilePlan:
        """Load current records, reconcile ``edit`` and apply the result."""
        records = await storage.list(ScheduleFilter())
        plan = self.reconcile(edit, records)
        await self.apply(plan, storage)
        return plan

    async def _guarded_create(self, op: CreateOperation, storage: ScheduleStorage) -> str:
        draft = op.draft
        existing = [
            r
            for r in find_related(
                await storage.list(ScheduleFilter(person=draft.person)), draft.identity
            )
            if r.person == draft.person
        ]
        if existing:
            logger.info(
                "Record for %s already exists as %s; updating instead of creating",
                draft.person.value,
                existing[0].id,
            )
            await storage.update(existing[0].id, update_fields(draft))
            return existing[0].id
        return await storage.create(draft)


def _ordered(persons: Iterable[Person]) -> list[Person]:
    """Stable person order (declaration order of the enum)."""
    order = list(Person)
    return sorted(persons, key=order.index)
