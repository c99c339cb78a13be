"""
Unit tests for familycal.domain.synchronizer.

Reconcile is exercised as a pure function over record snapshots; apply and
synchronize run against the in-memory store or AsyncMock collaborators.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from familycal.core.exceptions import PersonValidationError, ReconcileApplyError, StorageError
from familycal.domain.models import NotificationPreference, Person, RecurrenceType, ScheduleFilter
from familycal.domain.synchronizer import (
    CreateOperation,
    DeleteOperation,
    EditContext,
    LogicalEventSynchronizer,
    ReconcilePlan,
    UpdateOperation,
    find_related,
    validate_persons,
)
from familycal.storage.memory_store import InMemoryScheduleStore

pytestmark = pytest.mark.unit


@pytest.fixture
def parents(make_record):
    """Logical event assigned to both parents."""
    return [
        make_record(id="dad-1", person=Person.PARENT_A),
        make_record(id="mom-1", person=Person.PARENT_B),
    ]


def _edit(record, persons, **changes):
    data = {
        "original_title": record.title,
        "original_start": record.start,
        "original_end": record.end,
        "title": record.title,
        "start": record.start,
        "end": record.end,
        "persons": persons,
    }
    data.update(changes)
    return EditContext(**data)


class TestReconcile:
    def test_swap_one_parent_for_child(self, parents):
        edit = _edit(parents[0], [Person.PARENT_A, Person.CHILD_A])

        plan = LogicalEventSynchronizer().reconcile(edit, parents)

        assert [op.record_id for op in plan.to_delete] == ["mom-1"]
        assert [op.record_id for op in plan.to_update] == ["dad-1"]
        assert [op.person for op in plan.to_create] == [Person.CHILD_A]
        assert plan.resolution_miss is False

    def test_collapse_to_all_deletes_every_person(self, parents):
        edit = _edit(parents[0], [Person.ALL])

        plan = LogicalEventSynchronizer().reconcile(edit, parents)

        assert sorted(op.record_id for op in plan.to_delete) == ["dad-1", "mom-1"]
        assert plan.to_update == []
        assert [op.person for op in plan.to_create] == [Person.ALL]

    def test_related_records_resolved_by_pre_edit_identity(self, parents):
        new_start = parents[0].start + timedelta(hours=2)
        edit = _edit(
            parents[0],
            [Person.PARENT_A, Person.PARENT_B],
            title="Swimming (moved)",
            start=new_start,
            end=new_start + timedelta(hours=1),
        )

        plan = LogicalEventSynchronizer().reconcile(edit, parents)

        assert plan.to_create == [] and plan.to_delete == []
        assert sorted(op.record_id for op in plan.to_update) == ["dad-1", "mom-1"]
        assert all(op.draft.title == "Swimming (moved)" for op in plan.to_update)
        assert all(op.draft.start == new_start for op in plan.to_update)

    def test_kept_person_gets_full_overwrite(self, parents):
        prefs = {"dad-phone": NotificationPreference(notify_on_start=True, notify_on_end=True)}
        edit = _edit(
            parents[0],
            [Person.PARENT_A],
            description="Pool B",
            notification_prefs=prefs,
            important=True,
            recurrence={"type": "weekly", "weekdays": [1]},
        )

        plan = LogicalEventSynchronizer().reconcile(edit, parents)

        fields = plan.to_update[0].fields()
        assert fields["description"] == "Pool B"
        assert fields["important"] is True
        assert fields["notification_prefs"]["dad-phone"].notify_on_end is True
        assert fields["recurrence"].type == RecurrenceType.WEEKLY
        assert fields["person"] == Person.PARENT_A

    def test_unrelated_records_are_ignored(self, parents, make_record):
        other = make_record(id="other-1", title="Piano", person=Person.CHILD_B)
        edit = _edit(parents[0], [Person.PARENT_A])

        plan = LogicalEventSynchronizer().reconcile(edit, [*parents, other])

        assert "other-1" not in {op.record_id for op in plan.to_delete}

    def test_no_related_records_degrades_to_create(self, parents):
        edit = _edit(parents[0], [Person.PARENT_A, Person.CHILD_B])

        plan = LogicalEventSynchronizer().reconcile(edit, [])

        assert plan.resolution_miss is True
        assert plan.to_update == [] and plan.to_delete == []
        assert [op.person for op in plan.to_create] == [Person.PARENT_A, Person.CHILD_B]

    def test_duplicate_records_for_one_person_are_collapsed(self, parents, make_record):
        dup = make_record(id="dad-2", person=Person.PARENT_A)
        edit = _edit(parents[0], [Person.PARENT_A, Person.PARENT_B])

        plan = LogicalEventSynchronizer().reconcile(edit, [*parents, dup])

        assert [op.record_id for op in plan.to_delete] == ["dad-2"]
        assert sorted(op.record_id for op in plan.to_update) == ["dad-1", "mom-1"]

    def test_repeat_reconcile_after_apply_updates_instead_of_creating(self, parents, make_record):
        moved = parents[0].start + timedelta(days=1)
        edit = _edit(
            parents[0], [Person.PARENT_A, Person.CHILD_A], start=moved, end=moved + timedelta(hours=1)
        )
        # State after the first application of this edit
        after = [
            make_record(id="dad-1", person=Person.PARENT_A, start=moved, end=moved + timedelta(hours=1)),
            make_record(id="kid-1", person=Person.CHILD_A, start=moved, end=moved + timedelta(hours=1)),
        ]

        plan = LogicalEventSynchronizer().reconcile(edit, after)

        assert plan.to_create == []
        assert sorted(op.record_id for op in plan.to_update) == ["dad-1", "kid-1"]

    def test_operations_order_deletes_first(self, parents):
        edit = _edit(parents[0], [Person.PARENT_A, Person.CHILD_A])

        ops = LogicalEventSynchronizer().reconcile(edit, parents).operations()

        assert [type(op) for op in ops] == [DeleteOperation, UpdateOperation, CreateOperation]

    def test_moving_onto_an_occupied_identity_keeps_one_record_per_person(self, parents, make_record):
        piano_start = parents[0].start + timedelta(days=1)
        piano = make_record(
            id="piano-dad", title="Piano", start=piano_start, end=piano_start + timedelta(hours=1)
        )
        edit = _edit(parents[0], [Person.PARENT_A], title="Piano", start=piano.start, end=piano.end)

        plan = LogicalEventSynchronizer().reconcile(edit, [*parents, piano])

        assert [op.record_id for op in plan.to_delete] == ["mom-1", "piano-dad"]
        assert [op.record_id for op in plan.to_update] == ["dad-1"]
        assert plan.to_create == []


class TestPersonValidation:
    def test_all_cannot_combine_with_individuals(self):
        with pytest.raises(PersonValidationError):
            validate_persons([Person.ALL, Person.PARENT_A])

    def test_empty_set_rejected(self):
        with pytest.raises(PersonValidationError):
            validate_persons([])

    def test_unknown_tag_rejected(self):
        with pytest.raises(PersonValidationError, match="grandma"):
            validate_persons(["grandma"])

    def test_string_tags_are_coerced(self):
        assert validate_persons(["parent_a", "child_b"]) == {Person.PARENT_A, Person.CHILD_B}

    def test_edit_context_validates_at_boundary(self, parents):
        with pytest.raises(ValidationError):
            _edit(parents[0], ["all", "child_a"])


class TestApply:
    async def test_apply_against_store(self, parents):
        store = InMemoryScheduleStore(parents)
        edit = _edit(parents[0], [Person.PARENT_A, Person.CHILD_A])
        sync = LogicalEventSynchronizer()

        plan = sync.reconcile(edit, await store.list())
        touched = await sync.apply(plan, store)

        records = await store.list()
        assert {r.person for r in records} == {Person.PARENT_A, Person.CHILD_A}
        assert len(touched) == 2
        assert all(r.identity == parents[0].identity for r in records)

    async def test_applying_same_plan_twice_does_not_duplicate(self, parents):
        store = InMemoryScheduleStore(parents)
        edit = _edit(parents[0], [Person.PARENT_A, Person.CHILD_A])
        sync = LogicalEventSynchronizer()
        plan = sync.reconcile(edit, await store.list())

        await sync.apply(plan, store)
        await sync.apply(plan, store)

        records = await store.list()
        assert [r.person for r in records].count(Person.CHILD_A) == 1
        assert len(records) == 2

    async def test_synchronize_twice_with_changed_title(self, parents):
        store = InMemoryScheduleStore(parents)
        edit = _edit(parents[0], [Person.PARENT_B, Person.CHILD_B], title="Swim team")
        sync = LogicalEventSynchronizer()

        await sync.synchronize(edit, store)
        second = await sync.synchronize(edit, store)

        records = await store.list()
        assert second.to_create == []
        assert {r.person for r in records} == {Person.PARENT_B, Person.CHILD_B}
        assert {r.title for r in records} == {"Swim team"}

    async def test_partial_failure_reports_completed_count(self, parents):
        storage = AsyncMock()
        storage.list.return_value = []
        storage.create.side_effect = StorageError("backend unavailable")
        edit = _edit(parents[0], [Person.PARENT_A, Person.CHILD_A])
        sync = LogicalEventSynchronizer()
        plan = sync.reconcile(edit, parents)

        with pytest.raises(ReconcileApplyError) as excinfo:
            await sync.apply(plan, storage)

        assert excinfo.value.completed == 2
        assert excinfo.value.total == 3
        assert isinstance(excinfo.value.__cause__, StorageError)
        storage.delete.assert_awaited_once_with("mom-1")

    async def test_guarded_create_queries_person_filter(self, parents):
        storage = AsyncMock()
        storage.list.return_value = []
        storage.create.return_value = "new-id"
        edit = _edit(parents[0], [Person.CHILD_A])
        sync = LogicalEventSynchronizer()
        plan = sync.reconcile(edit, [])

        touched = await sync.apply(plan, storage)

        assert touched == ["new-id"]
        storage.list.assert_awaited_once_with(ScheduleFilter(person=Person.CHILD_A))

    async def test_synchronize_onto_occupied_identity_leaves_single_record(self, parents, make_record):
        piano_start = parents[0].start + timedelta(days=1)
        piano = make_record(
            id="piano-dad", title="Piano", start=piano_start, end=piano_start + timedelta(hours=1)
        )
        store = InMemoryScheduleStore([*parents, piano])
        edit = _edit(parents[0], [Person.PARENT_A], title="Piano", start=piano.start, end=piano.end)

        await LogicalEventSynchronizer().synchronize(edit, store)

        records = await store.list()
        at_piano = [r for r in records if r.identity == piano.identity]
        assert [r.person for r in at_piano] == [Person.PARENT_A]
        assert len(records) == 1

    async def test_empty_plan_touches_no_storage(self):
        storage = AsyncMock()

        touched = await LogicalEventSynchronizer().apply(ReconcilePlan(), storage)

        assert touched == []
        assert storage.method_calls == []


def test_find_related_exact_match_only(parents, make_record):
    shifted = make_record(id="x", start=parents[0].start + timedelta(minutes=1), end=parents[0].end)

    assert {r.id for r in find_related([*parents, shifted], parents[0].identity)} == {"dad-1", "mom-1"}
