"""Persistent store contract and an in-memory implementation.

The scheduling core never caches records: every operation reads a fresh
snapshot from the store and commits through compare-and-swap writes keyed on
the expected prior status. Any backend offering those primitives (a SQL table
with `UPDATE ... WHERE status = ?`, Redis with WATCH/MULTI, ...) can stand in
for `InMemoryQueueStore`.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Any, Protocol

from .errors import AlreadyActive, NotFound
from .models import Counter, CounterStatus, EntryStatus, Line, QueueEntry, ServiceClass


class QueueStoreProtocol(Protocol):
    """Store operations used by the scheduling core."""

    # -------------------- reads --------------------

    def get_entry(self, entry_id: str) -> QueueEntry:
        """Raises NotFound."""
        ...

    def list_waiting(self, line_id: str) -> list[QueueEntry]: ...

    def list_called(self, line_id: str) -> list[QueueEntry]: ...

    def list_completed(self, line_id: str, *, limit: int) -> list[QueueEntry]:
        """Most recent COMPLETED entries, newest `service_completed_at` first."""
        ...

    def find_active_entry(self, subject_id: str, line_id: str | None = None) -> QueueEntry | None:
        """WAITING or CALLED entry of the subject; the earliest created one if `line_id` is None."""
        ...

    def get_counter(self, counter_id: str) -> Counter:
        """Raises NotFound."""
        ...

    def get_line(self, line_id: str) -> Line:
        """Raises NotFound."""
        ...

    def list_line_ids(self) -> list[str]: ...

    def list_counters(self) -> list[Counter]: ...

    # -------------------- writes --------------------

    def add_line(self, line: Line) -> None: ...

    def add_counter(self, counter: Counter) -> None: ...

    def create_entry(
        self,
        *,
        subject_id: str,
        line_id: str,
        service_class: ServiceClass,
        needs_assistance: bool,
        joined_at: float,
    ) -> QueueEntry:
        """Create a WAITING entry. Raises AlreadyActive or NotFound (line)."""
        ...

    def update_entry_if(self, entry_id: str, expected_status: EntryStatus, **changes: Any) -> QueueEntry | None:
        """Apply `changes` only if the entry is still in `expected_status`.

        Returns the updated entry, or None when the status no longer matches.
        Raises NotFound.
        """
        ...

    def update_counter_if(self, counter_id: str, expected_status: CounterStatus, **changes: Any) -> Counter | None:
        """Counter counterpart of `update_entry_if`."""
        ...


class InMemoryQueueStore:
    """Thread-safe in-memory store.

    Records are immutable dataclasses, so handing them out never exposes
    internal state; updates swap in new instances under the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, QueueEntry] = {}
        self._counters: dict[str, Counter] = {}
        self._lines: dict[str, Line] = {}
        # Zero-padded so lexical id order follows creation order.
        self._ids = itertools.count(1)

    # -------------------- reads --------------------

    def get_entry(self, entry_id: str) -> QueueEntry:
        with self._lock:
            entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFound("entry", entry_id)
        return entry

    def list_waiting(self, line_id: str) -> list[QueueEntry]:
        return self._list(line_id, EntryStatus.WAITING)

    def list_called(self, line_id: str) -> list[QueueEntry]:
        return self._list(line_id, EntryStatus.CALLED)

    def list_completed(self, line_id: str, *, limit: int) -> list[QueueEntry]:
        done = self._list(line_id, EntryStatus.COMPLETED)
        done.sort(key=lambda e: e.service_completed_at or 0.0, reverse=True)
        return done[:limit]

    def find_active_entry(self, subject_id: str, line_id: str | None = None) -> QueueEntry | None:
        with self._lock:
            return self._find_active_locked(subject_id, line_id)

    def get_counter(self, counter_id: str) -> Counter:
        with self._lock:
            counter = self._counters.get(counter_id)
        if counter is None:
            raise NotFound("counter", counter_id)
        return counter

    def get_line(self, line_id: str) -> Line:
        with self._lock:
            line = self._lines.get(line_id)
        if line is None:
            raise NotFound("line", line_id)
        return line

    def list_line_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._lines)

    def list_counters(self) -> list[Counter]:
        with self._lock:
            return [self._counters[cid] for cid in sorted(self._counters)]

    # -------------------- writes --------------------

    def add_line(self, line: Line) -> None:
        with self._lock:
            self._lines[line.id] = line

    def add_counter(self, counter: Counter) -> None:
        with self._lock:
            self._counters[counter.id] = counter

    def create_entry(
        self,
        *,
        subject_id: str,
        line_id: str,
        service_class: ServiceClass,
        needs_assistance: bool,
        joined_at: float,
    ) -> QueueEntry:
        with self._lock:
            if line_id not in self._lines:
                raise NotFound("line", line_id)
            existing = self._find_active_locked(subject_id, line_id)
            if existing is not None:
                raise AlreadyActive(subject_id, line_id, existing.id)

            entry = QueueEntry(
                id=f"E{next(self._ids):08d}",
                subject_id=subject_id,
                line_id=line_id,
                service_class=service_class,
                needs_assistance=needs_assistance,
                joined_at=joined_at,
            )
            self._entries[entry.id] = entry
            return entry

    def update_entry_if(self, entry_id: str, expected_status: EntryStatus, **changes: Any) -> QueueEntry | None:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFound("entry", entry_id)
            if entry.status is not expected_status:
                return None
            updated = replace(entry, **changes)
            self._entries[entry_id] = updated
            return updated

    def update_counter_if(self, counter_id: str, expected_status: CounterStatus, **changes: Any) -> Counter | None:
        with self._lock:
            counter = self._counters.get(counter_id)
            if counter is None:
                raise NotFound("counter", counter_id)
            if counter.status is not expected_status:
                return None
            updated = replace(counter, **changes)
            self._counters[counter_id] = updated
            return updated

    # -------------------- internals --------------------

    def _list(self, line_id: str, status: EntryStatus) -> list[QueueEntry]:
        with self._lock:
            return [e for e in self._entries.values() if e.line_id == line_id and e.status is status]

    def _find_active_locked(self, subject_id: str, line_id: str | None) -> QueueEntry | None:
        for e in self._entries.values():
            if e.subject_id != subject_id or not e.status.is_active:
                continue
            if line_id is None or e.line_id == line_id:
                return e
        return None
