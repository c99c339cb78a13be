"""Data models for family schedule records, recurrence rules and occurrences."""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
    model_validator,
)

from ..core.timezone_utils import ensure_aware


class Person(str, Enum):
    """Closed set of assignees a schedule record can belong to.

    ``ALL`` is a sentinel meaning "the whole family"; it is never combined with
    individual persons inside one logical event.
    """

    ALL = "all"
    PARENT_A = "parent_a"
    PARENT_B = "parent_b"
    CHILD_A = "child_a"
    CHILD_B = "child_b"

    @property
    def display_name(self) -> str:
        return PERSON_NAMES[self]

    @property
    def color(self) -> str:
        return PERSON_COLORS[self]


PERSON_NAMES: dict[Person, str] = {
    Person.ALL: "Everyone",
    Person.PARENT_A: "Parent A",
    Person.PARENT_B: "Parent B",
    Person.CHILD_A: "Child A",
    Person.CHILD_B: "Child B",
}

PERSON_COLORS: dict[Person, str] = {
    Person.ALL: "#808080",  # Gray
    Person.PARENT_A: "#3788d8",  # Blue
    Person.PARENT_B: "#9b59b6",  # Purple
    Person.CHILD_A: "#27ae60",  # Green
    Person.CHILD_B: "#f39c12",  # Yellow
}


class RecurrenceType(str, Enum):
    """How a record repeats."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class MonthlyMode(str, Enum):
    """Anchor used by monthly recurrence."""

    DAY_OF_MONTH = "dayOfMonth"
    DAY_OF_WEEK_ORDINAL = "dayOfWeekOrdinal"


class RecurrenceRule(BaseModel):
    """Recurrence rule plus the set of suppressed occurrence dates.

    Weekdays use 0=Sunday .. 6=Saturday, the numbering calendar front-ends
    send. ``end_date`` is inclusive; a bare date means the end of that day.
    A naive ``end_date`` (bare dates included) is wall-clock time in the zone
    the series is expanded in, so it is kept naive here.
    """

    type: RecurrenceType = Field(default=RecurrenceType.NONE, description="Repeat frequency")
    weekdays: set[int] = Field(
        default_factory=set, description="Weekly refinement, 0=Sunday .. 6=Saturday"
    )
    monthly_mode: MonthlyMode = Field(
        default=MonthlyMode.DAY_OF_MONTH, description="Monthly anchor"
    )
    end_date: Optional[datetime.datetime] = Field(
        default=None, description="Last instant an occurrence may start"
    )
    exclusion_dates: set[datetime.date] = Field(
        default_factory=set, description="Occurrence dates suppressed from expansion"
    )

    @field_validator("weekdays")
    @classmethod
    def _check_weekdays(cls, value: set[int]) -> set[int]:
        bad = [d for d in value if not 0 <= d <= 6]
        if bad:
            raise ValueError(f"weekdays must be in 0..6, got {sorted(bad)}")
        return value

    @field_validator("end_date", mode="before")
    @classmethod
    def _end_of_day_for_bare_dates(cls, value: Any) -> Any:
        if isinstance(value, str) and len(value) == 10:
            value = datetime.date.fromisoformat(value)
        if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
            return datetime.datetime.combine(value, datetime.time.max)
        return value

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceType.NONE

    @field_serializer("weekdays")
    def serialize_weekdays(self, value: set[int]) -> list[int]:
        return sorted(value)

    @field_serializer("exclusion_dates")
    def serialize_exclusions(self, value: set[datetime.date]) -> list[str]:
        return sorted(d.isoformat() for d in value)


class NotificationPreference(BaseModel):
    """Which phases of an event a recipient wants to be reminded about."""

    notify_on_start: bool = False
    notify_on_end: bool = False


class ScheduleDraft(BaseModel):
    """Field values of a schedule record before storage assigns an identity."""

    title: str = Field(..., description="Schedule title")
    description: Optional[str] = Field(default=None, description="Free-text details")
    start: datetime.datetime = Field(..., description="Start timestamp")
    end: Optional[datetime.datetime] = Field(default=None, description="End timestamp")
    person: Person = Field(..., description="Single assignee of this record")
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    notification_prefs: dict[str, NotificationPreference] = Field(
        default_factory=dict, description="Recipient identity -> reminder preferences"
    )
    important: bool = Field(default=False, description="Surface as a deadline / D-day")

    @field_validator("start", "end")
    @classmethod
    def _aware(
        cls, value: Optional[datetime.datetime], info: ValidationInfo
    ) -> Optional[datetime.datetime]:
        # Naive values belong to the loader's timezone when one is given
        tz = (info.context or {}).get("timezone")
        return ensure_aware(value, tz) if value is not None else None

    @model_validator(mode="after")
    def _end_after_start(self) -> "ScheduleDraft":
        if self.end is not None and self.end <= self.start:
            raise ValueError("end must be strictly after start")
        return self

    @property
    def identity(self) -> tuple[str, datetime.datetime, Optional[datetime.datetime]]:
        """The (title, start, end) tuple shared by records of one logical event."""
        return (self.title, self.start, self.end)

    @property
    def duration(self) -> Optional[datetime.timedelta]:
        if self.end is None:
            return None
        return self.end - self.start

    def is_past(self, now: datetime.datetime) -> bool:
        return self.start < now

    @field_serializer("start", "end", when_used="unless-none")
    def serialize_datetime(self, dt: datetime.datetime) -> str:
        return dt.isoformat()


class ScheduleRecord(ScheduleDraft):
    """One stored, single-person calendar entry."""

    id: str = Field(..., description="Storage-assigned identifier")
    created_at: Optional[datetime.datetime] = Field(default=None)
    updated_at: Optional[datetime.datetime] = Field(default=None)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.is_recurring

    @field_serializer("created_at", "updated_at", when_used="unless-none")
    def serialize_timestamps(self, dt: datetime.datetime) -> str:
        return dt.isoformat()


class OccurrenceKey(BaseModel):
    """Composite identity of one materialized occurrence.

    ``occurrence_date`` is None for non-recurring records, whose single
    occurrence keeps the record id as its serialized identifier.
    """

    model_config = ConfigDict(frozen=True)

    base_id: str
    occurrence_date: Optional[datetime.date] = None

    def serialize(self) -> str:
        if self.occurrence_date is None:
            return self.base_id
        return f"{self.base_id}_{self.occurrence_date:%Y%m%d}"

    def __str__(self) -> str:
        return self.serialize()


class Occurrence(BaseModel):
    """Ephemeral instance of a ScheduleRecord on one concrete date."""

    key: OccurrenceKey
    title: str
    description: Optional[str] = None
    start: datetime.datetime
    end: Optional[datetime.datetime] = None
    person: Person
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    notification_prefs: dict[str, NotificationPreference] = Field(default_factory=dict)
    important: bool = False

    @classmethod
    def from_record(
        cls,
        record: ScheduleRecord,
        start: Optional[datetime.datetime] = None,
        occurrence_date: Optional[datetime.date] = None,
    ) -> "Occurrence":
        """Copy ``record`` into an occurrence starting at ``start`` (default: the record's own)."""
        occ_start = start if start is not None else record.start
        duration = record.duration
        return cls(
            key=OccurrenceKey(base_id=record.id, occurrence_date=occurrence_date),
            title=record.title,
            description=record.description,
            start=occ_start,
            end=occ_start + duration if duration is not None else None,
            person=record.person,
            recurrence=record.recurrence.model_copy(deep=True),
            notification_prefs={
                k: v.model_copy() for k, v in record.notification_prefs.items()
            },
            important=record.important,
        )

    @property
    def occurrence_id(self) -> str:
        return self.key.serialize()

    @property
    def original_id(self) -> str:
        return self.key.base_id

    @field_serializer("start", "end", when_used="unless-none")
    def serialize_datetime(self, dt: datetime.datetime) -> str:
        return dt.isoformat()


class ScheduleFilter(BaseModel):
    """Query filter understood by the storage collaborator.

    ``start_date``/``end_date`` bound the record start by whole days; a person
    other than ``all`` matches that person's records plus family-wide ones.
    """

    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    person: Optional[Person] = None

    def matches(self, record: ScheduleDraft, tz: Optional[datetime.tzinfo] = None) -> bool:
        local_start = record.start.astimezone(tz) if tz is not None else record.start
        if self.start_date is not None and local_start.date() < self.start_date:
            return False
        if self.end_date is not None and local_start.date() > self.end_date:
            return False
        if self.person is not None and self.person != Person.ALL:
            return record.person in (self.person, Person.ALL)
        return True
