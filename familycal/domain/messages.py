"""Text rendering for reminder notifications."""

from __future__ import annotations

import datetime
from collections.abc import Mapping
from typing import Optional

from .models import Occurrence, Person

TEST_MESSAGE = (
    "📅 Family calendar test message\n\n"
    "Notification settings are working."
)

PHASE_LABELS = {
    "start": "Starts",
    "end": "Ends",
}


def person_label(person: Person, names: Optional[Mapping[str, str]] = None) -> str:
    """Display name for ``person``, honoring configured overrides."""
    if names and person.value in names:
        return names[person.value]
    return person.display_name


def render_notification(
    occurrence: Occurrence,
    phase: str,
    tz: Optional[datetime.tzinfo] = None,
    person_names: Optional[Mapping[str, str]] = None,
) -> str:
    """Compose the reminder text for one occurrence phase.

    Example::

        📅 Schedule reminder

        [Parent A] Swimming lesson
        Starts: 2025-01-06 09:00
        Details: Bring goggles
    """
    when = occurrence.start if phase == "start" else occurrence.end or occurrence.start
    if tz is not None:
        when = when.astimezone(tz)

    lines = [
        "📅 Schedule reminder",
        "",
        f"[{person_label(occurrence.person, person_names)}] {occurrence.title}",
        f"{PHASE_LABELS.get(phase, phase)}: {when:%Y-%m-%d %H:%M}",
    ]
    if occurrence.description:
        lines.append(f"Details: {occurrence.description}")
    return "\n".join(lines)
