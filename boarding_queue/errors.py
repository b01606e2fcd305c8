"""Error taxonomy and the shared error envelope.

The core raises `QueueError` subclasses. The MQTT adapter turns them into the
same `{"type": "error", "code": ..., "message": ...}` envelope used by every
component, so counters and passengers see consistent failures.

"Line empty" and "counter busy" are not errors: they are ordinary claim
outcomes (see `assignment.ClaimOutcome`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_message(self, *, corr_id: str | None = None) -> dict[str, Any]:
        msg: dict[str, Any] = {"type": "error", "code": self.code, "message": self.message, **self.details}
        if corr_id is not None:
            msg["corr_id"] = corr_id
        return msg


class QueueError(Exception):
    code = "queue_error"

    def details(self) -> dict[str, Any]:
        return {}


class NotFound(QueueError):
    """A referenced entry, counter or line does not exist."""

    code = "not_found"

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key


class AlreadyActive(QueueError):
    """The subject already holds a WAITING or CALLED entry on the line."""

    code = "already_active"

    def __init__(self, subject_id: str, line_id: str, existing_entry_id: str) -> None:
        super().__init__(f"subject {subject_id!r} already queued on line {line_id!r}")
        self.subject_id = subject_id
        self.line_id = line_id
        self.existing_entry_id = existing_entry_id

    def details(self) -> dict[str, Any]:
        return {"existing_entry_id": self.existing_entry_id}


class InvalidTransition(QueueError):
    """complete/no-show requested for an entry that is not CALLED."""

    code = "invalid_transition"

    def __init__(self, entry_id: str, current: str, target: str) -> None:
        super().__init__(f"entry {entry_id!r} cannot move from {current} to {target}")
        self.entry_id = entry_id
        self.current = current
        self.target = target


class ConcurrentClaimConflict(QueueError):
    """A competing claim took the selected candidate before commit.

    Recovered inside `CounterAssignmentManager.claim_next`; never reaches callers.
    """

    code = "concurrent_claim_conflict"

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"entry {entry_id!r} was claimed concurrently")
        self.entry_id = entry_id


def to_error_response(exc: QueueError) -> ErrorResponse:
    return ErrorResponse(exc.code, str(exc), exc.details())
