# src/sideai/records/models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum


def utc_now() -> datetime:
    """Current UTC time at whole-second precision (the resolution stored on disk)."""
    return datetime.now(UTC).replace(microsecond=0)


class Priority(StrEnum):
    """
    Task priority.

    Values are the stored wire strings; ordering follows urgency, not the alphabet:
    LOW < MEDIUM < HIGH < URGENT.
    """

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @property
    def color(self) -> str:
        return _PRIORITY_COLOR[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank >= other.rank


_PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2, Priority.URGENT: 3}
_PRIORITY_COLOR = {
    Priority.LOW: "blue",
    Priority.MEDIUM: "green",
    Priority.HIGH: "orange",
    Priority.URGENT: "red",
}


class RepeatInterval(StrEnum):
    """Stored with a reminder; nothing reschedules a reminder automatically."""

    NONE = "None"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


@dataclass(frozen=True, slots=True)
class Task:
    title: str
    description: str = ""
    due_date: datetime | None = None
    priority: Priority = Priority.MEDIUM
    is_completed: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    tags: tuple[str, ...] = ()
    reminder_date: datetime | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def touch(self, now: datetime | None = None) -> Task:
        return replace(self, updated_at=now or utc_now())

    def toggled(self, now: datetime | None = None) -> Task:
        return replace(self, is_completed=not self.is_completed, updated_at=now or utc_now())


@dataclass(frozen=True, slots=True)
class ScheduleEvent:
    title: str
    start_date: datetime
    end_date: datetime
    description: str = ""
    location: str | None = None
    is_all_day: bool = False
    created_at: datetime = field(default_factory=utc_now)
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class Reminder:
    title: str
    reminder_date: datetime
    notes: str = ""
    is_completed: bool = False
    repeat_interval: RepeatInterval | None = RepeatInterval.NONE
    created_at: datetime = field(default_factory=utc_now)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def toggled(self) -> Reminder:
        return replace(self, is_completed=not self.is_completed)


Record = Task | ScheduleEvent | Reminder
