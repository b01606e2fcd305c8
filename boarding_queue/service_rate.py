from __future__ import annotations

# Service rate helpers.
#
# We estimate how long a counter takes per passenger from the line's recent
# completed services:
#   avg_minutes = ceil(mean(completed_at - started_at)) over the last 10
#
# - records missing either timestamp count as a fixed 3 minutes
# - an empty history (cold start) also yields 3 minutes
# - no-shows never reach this module: only COMPLETED entries are history

import math
from typing import Iterable

from .models import EntryStatus, QueueEntry

HISTORY_WINDOW = 10
FALLBACK_SERVICE_MINUTES = 3
DEFAULT_SERVICE_MINUTES = 3


def service_duration_seconds(entry: QueueEntry) -> float:
    """Duration of one completed service, with the fixed fallback for malformed records."""
    if entry.service_started_at is not None and entry.service_completed_at is not None:
        return max(0.0, entry.service_completed_at - entry.service_started_at)
    return FALLBACK_SERVICE_MINUTES * 60.0


def average_service_minutes(history: Iterable[QueueEntry]) -> int:
    """Average service duration in whole minutes (rounded up, at least 1).

    Args:
        history: COMPLETED entries of one line, newest first. Only the first
            `HISTORY_WINDOW` are used; anything not COMPLETED is ignored.

    Returns:
        Integer >= 1.
    """
    durations: list[float] = []
    for entry in history:
        if entry.status is not EntryStatus.COMPLETED:
            continue
        durations.append(service_duration_seconds(entry))
        if len(durations) >= HISTORY_WINDOW:
            break

    if not durations:
        return DEFAULT_SERVICE_MINUTES

    mean_seconds = sum(durations) / len(durations)
    return max(1, math.ceil(mean_seconds / 60.0))
