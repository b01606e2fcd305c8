from __future__ import annotations

# Wait time estimation.
#
#   eta_minutes = ceil((position + 1) * avg_service_minutes * congestion_factor)
#
# The congestion factor models the efficiency loss of a crowded line: 1.2 when
# more than 10 passengers are waiting, 1.0 otherwise. Arithmetic is done with
# Fractions so that exact products such as 5 * 1 * 1.2 do not round up to 7.

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Sequence

from .models import EntryStatus, QueueEntry
from .ordering import position_of

CONGESTION_THRESHOLD = 10
CONGESTION_FACTOR = Fraction(6, 5)


@dataclass(frozen=True)
class WaitEstimate:
    position: int
    eta_minutes: int

    def to_message(self) -> dict[str, Any]:
        return {"position": self.position, "eta_minutes": self.eta_minutes}


def congestion_factor(waiting_count: int) -> Fraction:
    return CONGESTION_FACTOR if waiting_count > CONGESTION_THRESHOLD else Fraction(1)


def eta_minutes(*, position: int, avg_service_minutes: int, waiting_count: int) -> int:
    """ETA for the passenger at 0-based `position`. Non-decreasing in `position`."""
    if position < 0:
        raise ValueError("position must be >= 0")
    return math.ceil((position + 1) * avg_service_minutes * congestion_factor(waiting_count))


def estimate_wait(
    entry: QueueEntry,
    waiting: Sequence[QueueEntry],
    *,
    deadline_at: float | None,
    avg_service_minutes: int,
    now: float,
) -> WaitEstimate:
    """Rank and ETA for `entry` given a snapshot of its line's WAITING entries.

    A CALLED entry is already being served: position 0, ETA 0.
    """
    if entry.status is EntryStatus.CALLED:
        return WaitEstimate(position=0, eta_minutes=0)

    position = position_of(entry, waiting, deadline_at=deadline_at, now=now)
    return WaitEstimate(
        position=position,
        eta_minutes=eta_minutes(
            position=position,
            avg_service_minutes=avg_service_minutes,
            waiting_count=len(waiting),
        ),
    )
