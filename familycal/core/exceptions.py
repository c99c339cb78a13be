"""Exception hierarchy for familycal.

Each failure mode of the recurrence, synchronization and notification engines
maps to one exception type so callers can tell a malformed rule apart from a
storage outage or a failed dispatch.
"""

from __future__ import annotations


class FamilyCalError(Exception):
    """Base exception for all familycal errors."""


class RecurrenceRuleError(FamilyCalError):
    """A recurrence rule cannot be expanded.

    Raised when:
    - The rule type is not one of none/daily/weekly/monthly
    - The rule end date lies before the series start

    Never escapes RecurrenceExpander.expand(); the expander logs it and
    returns an empty expansion instead.
    """


class PersonValidationError(FamilyCalError, ValueError):
    """The person set of an edited logical event is invalid.

    Raised when:
    - The new person set is empty
    - The sentinel person ``all`` is combined with individual persons
    - A value is not a known person tag
    """


class StorageError(FamilyCalError):
    """The storage collaborator failed to list, create, update or delete a record."""


class NotificationTransportError(FamilyCalError):
    """The notification transport failed to deliver a message."""


class ReconcileApplyError(FamilyCalError):
    """Applying a reconcile plan failed part-way through.

    Attributes:
        completed: Number of operations that were applied before the failure
        total: Number of operations in the plan
    """

    def __init__(self, message: str, completed: int, total: int) -> None:
        super().__init__(message)
        self.completed = completed
        self.total = total


class FlagStoreCorruptedError(FamilyCalError):
    """Persisted notification flags cannot be read.

    The scheduler reports this instead of discarding flags, since silently
    resetting the store would re-send notifications that already went out.
    """
