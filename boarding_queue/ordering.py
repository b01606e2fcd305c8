"""Total order over the WAITING entries of one line.

Ranking rules, applied in order:
1. higher priority score first
2. earlier `joined_at` first (FIFO fallback)
3. lower entry id first (deterministic tiebreak)

All comparisons inside one query must use the same `now`, otherwise score drift
between comparisons could make positions inconsistent.
"""

from __future__ import annotations

from typing import Iterable

from .models import QueueEntry
from .scoring import priority_score


def entry_score(entry: QueueEntry, *, deadline_at: float | None, now: float) -> int:
    return priority_score(
        service_class=entry.service_class,
        needs_assistance=entry.needs_assistance,
        joined_at=entry.joined_at,
        deadline_at=deadline_at,
        now=now,
    )


def sort_key(entry: QueueEntry, *, deadline_at: float | None, now: float) -> tuple[int, float, str]:
    """Ascending sort key: smaller key ranks first."""
    return (-entry_score(entry, deadline_at=deadline_at, now=now), entry.joined_at, entry.id)


def compare(a: QueueEntry, b: QueueEntry, *, deadline_at: float | None, now: float) -> int:
    """Return -1 if `a` ranks first, 1 if `b` ranks first, 0 on a full tie."""
    ka = sort_key(a, deadline_at=deadline_at, now=now)
    kb = sort_key(b, deadline_at=deadline_at, now=now)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


def rank_entries(entries: Iterable[QueueEntry], *, deadline_at: float | None, now: float) -> list[QueueEntry]:
    """Return entries sorted best-first."""
    return sorted(entries, key=lambda e: sort_key(e, deadline_at=deadline_at, now=now))


def position_of(
    entry: QueueEntry,
    waiting: Iterable[QueueEntry],
    *,
    deadline_at: float | None,
    now: float,
) -> int:
    """0-based position: number of WAITING entries of the same line strictly ahead of `entry`."""
    key = sort_key(entry, deadline_at=deadline_at, now=now)
    ahead = 0
    for other in waiting:
        if other.id == entry.id or other.line_id != entry.line_id:
            continue
        if sort_key(other, deadline_at=deadline_at, now=now) < key:
            ahead += 1
    return ahead
