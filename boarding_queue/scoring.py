from __future__ import annotations

# Priority score.
#
# A passenger's score is the sum of four terms:
#   base class score + accessibility bonus + aging + deadline urgency
#
# The score depends on the clock, so it is always recomputed at query time and
# never stored.

import math

from .models import ServiceClass

BASE_SCORES: dict[ServiceClass, int] = {
    ServiceClass.STANDARD: 100,
    ServiceClass.ELEVATED: 300,
    ServiceClass.PREMIUM: 500,
}
ACCESSIBILITY_BONUS = 400
AGING_POINTS_PER_MINUTE = 2
URGENCY_WINDOW_MINUTES = 90
URGENCY_POINTS_PER_MINUTE = 10


def priority_score(
    *,
    service_class: ServiceClass,
    needs_assistance: bool,
    joined_at: float,
    deadline_at: float | None,
    now: float,
) -> int:
    """Compute the priority score of a queue entry at time `now`.

    Args:
        service_class: class of service, determines the base score.
        needs_assistance: adds a flat accessibility bonus.
        joined_at: when the entry joined (epoch seconds).
        deadline_at: line deadline such as a departure time, or None.
        now: evaluation time (epoch seconds).

    Returns:
        Integer score; higher ranks first.

    The urgency term opens at 90 minutes before the deadline with a small bonus
    and grows to 900 points as the deadline approaches, so that late passengers
    overtake class-based ordering. Past the deadline it drops back to 0.
    """
    score = BASE_SCORES[service_class]

    if needs_assistance:
        score += ACCESSIBILITY_BONUS

    waited_minutes = (now - joined_at) / 60.0
    score += math.floor(waited_minutes * AGING_POINTS_PER_MINUTE)

    if deadline_at is not None:
        minutes_left = (deadline_at - now) / 60.0
        if 0 < minutes_left < URGENCY_WINDOW_MINUTES:
            score += math.floor((URGENCY_WINDOW_MINUTES - minutes_left) * URGENCY_POINTS_PER_MINUTE)

    return score
