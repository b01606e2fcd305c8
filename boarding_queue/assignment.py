from __future__ import annotations

# Counter assignment state machine.
#
# Counters move IDLE -> BUSY -> IDLE; entries move WAITING -> CALLED ->
# {COMPLETED, NO_SHOW}. The two are cross-referenced: a counter is BUSY
# exactly while one CALLED entry carries its id in `assigned_counter`.
#
# Claims for the same line are serialized by a per-line lock, and every write
# is a compare-and-swap on the expected prior status, so a store shared by
# several manager processes still never binds one entry to two counters.

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .errors import ConcurrentClaimConflict, InvalidTransition, NotFound
from .models import Counter, CounterStatus, EntryStatus, Line, QueueEntry
from .notifications import Notification, NotificationBus
from .ordering import sort_key
from .store import QueueStoreProtocol

DEFAULT_MAX_CLAIM_ATTEMPTS = 5

Clock = Callable[[], float]


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    LINE_EMPTY = "line_empty"
    COUNTER_BUSY = "counter_busy"


@dataclass(frozen=True)
class ClaimResult:
    outcome: ClaimOutcome
    entry: QueueEntry | None = None

    @property
    def claimed(self) -> bool:
        return self.outcome is ClaimOutcome.CLAIMED

    def to_message(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "entry": self.entry.to_message() if self.entry is not None else None,
        }


class CounterAssignmentManager:
    """Atomic claim-next, complete and no-show transitions."""

    def __init__(
        self,
        *,
        store: QueueStoreProtocol,
        bus: NotificationBus,
        clock: Clock = time.time,
        max_claim_attempts: int = DEFAULT_MAX_CLAIM_ATTEMPTS,
    ) -> None:
        if max_claim_attempts < 1:
            raise ValueError("max_claim_attempts must be >= 1")
        self.store = store
        self.bus = bus
        self.clock = clock
        self.max_claim_attempts = max_claim_attempts

        self._locks_guard = threading.Lock()
        self._line_locks: dict[str, threading.Lock] = {}

    # -------------------- counter lifecycle --------------------

    def register_counter(self, counter_id: str) -> Counter:
        """Create an IDLE counter, or return the existing one unchanged."""
        try:
            return self.store.get_counter(counter_id)
        except NotFound:
            pass
        counter = Counter(id=counter_id)
        self.store.add_counter(counter)
        return counter

    # -------------------- transitions --------------------

    def claim_next(self, line_id: str, counter_id: str) -> ClaimResult:
        """Bind the top-ranked WAITING entry of `line_id` to `counter_id`.

        Returns COUNTER_BUSY without touching state if the counter is serving,
        LINE_EMPTY if nothing could be claimed. Raises NotFound for an unknown
        counter or line.
        """
        counter = self.store.get_counter(counter_id)
        line = self.store.get_line(line_id)
        if counter.status is CounterStatus.BUSY:
            return ClaimResult(ClaimOutcome.COUNTER_BUSY)

        # Reserve the counter first: two in-flight claims for one counter
        # cannot both get past this point.
        if self.store.update_counter_if(counter_id, CounterStatus.IDLE, status=CounterStatus.BUSY) is None:
            return ClaimResult(ClaimOutcome.COUNTER_BUSY)

        claimed: QueueEntry | None = None
        try:
            with self._line_lock(line_id):
                claimed = self._claim_top(line, counter_id)
                if claimed is not None:
                    self.store.update_counter_if(counter_id, CounterStatus.BUSY, current_entry_id=claimed.id)
        finally:
            if claimed is None:
                self.store.update_counter_if(
                    counter_id, CounterStatus.BUSY, status=CounterStatus.IDLE, current_entry_id=None
                )

        if claimed is None:
            return ClaimResult(ClaimOutcome.LINE_EMPTY)

        self.bus.emit(
            Notification.participant_called(
                line_id=line_id,
                subject_id=claimed.subject_id,
                entry_id=claimed.id,
                counter_id=counter_id,
            )
        )
        self.bus.emit(Notification.line_updated(line_id))
        return ClaimResult(ClaimOutcome.CLAIMED, claimed)

    def complete_service(self, entry_id: str) -> QueueEntry:
        return self._finish(entry_id, EntryStatus.COMPLETED)

    def mark_no_show(self, entry_id: str) -> QueueEntry:
        # The completion time is stamped for bookkeeping; no-shows never feed
        # the service rate history, which reads COMPLETED entries only.
        return self._finish(entry_id, EntryStatus.NO_SHOW)

    # -------------------- internals --------------------

    def _line_lock(self, line_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._line_locks.get(line_id)
            if lock is None:
                lock = self._line_locks[line_id] = threading.Lock()
            return lock

    def _claim_top(self, line: Line, counter_id: str) -> QueueEntry | None:
        for _attempt in range(self.max_claim_attempts):
            now = self.clock()
            waiting = self.store.list_waiting(line.id)
            if not waiting:
                return None
            candidate = min(waiting, key=lambda e: sort_key(e, deadline_at=line.deadline_at, now=now))
            try:
                return self._commit_claim(candidate, counter_id, now)
            except ConcurrentClaimConflict:
                continue
        return None

    def _commit_claim(self, candidate: QueueEntry, counter_id: str, now: float) -> QueueEntry:
        updated = self.store.update_entry_if(
            candidate.id,
            EntryStatus.WAITING,
            status=EntryStatus.CALLED,
            assigned_counter=counter_id,
            service_started_at=now,
        )
        if updated is None:
            raise ConcurrentClaimConflict(candidate.id)
        return updated

    def _finish(self, entry_id: str, target: EntryStatus) -> QueueEntry:
        entry = self.store.get_entry(entry_id)
        if entry.status is not EntryStatus.CALLED:
            raise InvalidTransition(entry_id, entry.status.value, target.value)

        updated = self.store.update_entry_if(
            entry_id,
            EntryStatus.CALLED,
            status=target,
            assigned_counter=None,
            service_completed_at=self.clock(),
        )
        if updated is None:
            # Lost a race against another complete/no-show for the same entry.
            current = self.store.get_entry(entry_id)
            raise InvalidTransition(entry_id, current.status.value, target.value)

        if entry.assigned_counter is not None:
            self.store.update_counter_if(
                entry.assigned_counter, CounterStatus.BUSY, status=CounterStatus.IDLE, current_entry_id=None
            )

        self.bus.emit(Notification.line_updated(entry.line_id))
        return updated
