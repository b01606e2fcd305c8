from __future__ import annotations

"""Arrival models for passenger generation.

For a Poisson arrival process with rate λ (passengers/second):
- The number of arrivals in a time window follows a Poisson distribution.
- The *inter-arrival times* are i.i.d. Exponential(λ).

In practice, we simulate this by repeatedly sampling an exponential waiting time
and sleeping that amount.

Passenger mix follows a typical check-in hall: 70% standard, 20% elevated,
10% premium fares, and about 15% of passengers needing assistance.
"""

import random

from .models import ServiceClass

CLASS_MIX: tuple[tuple[ServiceClass, float], ...] = (
    (ServiceClass.STANDARD, 0.7),
    (ServiceClass.ELEVATED, 0.2),
    (ServiceClass.PREMIUM, 0.1),
)
ASSISTANCE_RATE = 0.15


def sample_exponential_interarrival(*, rate_per_sec: float, rng: random.Random | None = None) -> float:
    """Sample the next inter-arrival time (seconds) for a Poisson process.

    Args:
        rate_per_sec: λ, the arrival rate in passengers/second. Must be > 0.
        rng: optional RNG (useful for deterministic tests).

    Returns:
        A positive float representing seconds until the next arrival.
    """
    if rate_per_sec <= 0:
        raise ValueError("rate_per_sec must be > 0")

    r = rng or random
    return float(r.expovariate(rate_per_sec))


def sample_service_class(*, rng: random.Random | None = None) -> ServiceClass:
    """Draw a service class from `CLASS_MIX`."""
    r = (rng or random).random()
    cumulative = 0.0
    for service_class, share in CLASS_MIX:
        cumulative += share
        if r < cumulative:
            return service_class
    return CLASS_MIX[-1][0]


def sample_needs_assistance(*, rng: random.Random | None = None, rate: float = ASSISTANCE_RATE) -> bool:
    if not 0.0 <= rate <= 1.0:
        raise ValueError("rate must be within [0, 1]")
    return (rng or random).random() < rate
