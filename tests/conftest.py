from typing import Any

import pytest

from boarding_queue.manager import QueueManager

T0 = 1_700_000_000.0
MINUTE = 60.0


class FakeClock:
    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, *, minutes: float = 0.0, seconds: float = 0.0) -> None:
        self.now += minutes * MINUTE + seconds


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        self.messages.append((topic, message))

    def topics(self) -> list[str]:
        return [t for t, _ in self.messages]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def manager(clock, publisher):
    m = QueueManager(publisher=publisher, clock=clock)
    # Departure far away: no urgency term during the tests.
    m.register_line("FL100", deadline_at=T0 + 24 * 60 * MINUTE)
    m.register_counter("C1")
    m.register_counter("C2")
    return m
