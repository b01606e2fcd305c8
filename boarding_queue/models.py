"""Data model shared by the scheduling core, the store and the MQTT adapter.

Timestamps are POSIX epoch seconds (floats), the same representation the MQTT
messages carry. Every record can render itself as a JSON-ready dict via
`to_message()`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ServiceClass(str, Enum):
    STANDARD = "STANDARD"
    ELEVATED = "ELEVATED"
    PREMIUM = "PREMIUM"


class EntryStatus(str, Enum):
    WAITING = "WAITING"
    CALLED = "CALLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_active(self) -> bool:
        return self in (EntryStatus.WAITING, EntryStatus.CALLED)

    @property
    def is_terminal(self) -> bool:
        return self in (EntryStatus.COMPLETED, EntryStatus.NO_SHOW)


class CounterStatus(str, Enum):
    IDLE = "IDLE"
    BUSY = "BUSY"


@dataclass(frozen=True)
class QueueEntry:
    """One passenger's claim on a line."""

    id: str
    subject_id: str
    line_id: str
    service_class: ServiceClass
    needs_assistance: bool
    joined_at: float
    status: EntryStatus = EntryStatus.WAITING
    assigned_counter: str | None = None
    service_started_at: float | None = None
    service_completed_at: float | None = None

    @property
    def is_priority(self) -> bool:
        return self.service_class is not ServiceClass.STANDARD or self.needs_assistance

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "line_id": self.line_id,
            "service_class": self.service_class.value,
            "needs_assistance": self.needs_assistance,
            "joined_at": self.joined_at,
            "status": self.status.value,
            "assigned_counter": self.assigned_counter,
            "service_started_at": self.service_started_at,
            "service_completed_at": self.service_completed_at,
        }


@dataclass(frozen=True)
class Line:
    """Scheduling context for one flight. Only the deadline matters to the core."""

    id: str
    deadline_at: float | None = None

    def to_message(self) -> dict[str, Any]:
        return {"id": self.id, "deadline_at": self.deadline_at}


@dataclass(frozen=True)
class Counter:
    id: str
    status: CounterStatus = CounterStatus.IDLE
    # Lookup only; QueueEntry.assigned_counter owns the binding.
    current_entry_id: str | None = None

    def to_message(self) -> dict[str, Any]:
        return {"id": self.id, "status": self.status.value, "current_entry_id": self.current_entry_id}
