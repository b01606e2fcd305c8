"""Notifications emitted by the scheduling core.

The core only knows a publisher with `publish(topic, message)`. `MqttClient`
satisfies that contract directly; tests pass a recording fake.

Notifications are a closed set of kinds, each with a fixed payload shape:
- LINE_UPDATED: the line's ordering or membership changed
- PARTICIPANT_CALLED: a passenger was bound to a counter
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .mqtt_topics import DEFAULT_NAMESPACE, line_updates, passenger_events


class PublisherProtocol(Protocol):
    def publish(self, topic: str, message: dict[str, Any]) -> None: ...


class NotificationKind(str, Enum):
    LINE_UPDATED = "line_updated"
    PARTICIPANT_CALLED = "called"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    line_id: str
    subject_id: str | None = None
    entry_id: str | None = None
    counter_id: str | None = None

    @classmethod
    def line_updated(cls, line_id: str) -> Notification:
        return cls(NotificationKind.LINE_UPDATED, line_id)

    @classmethod
    def participant_called(cls, *, line_id: str, subject_id: str, entry_id: str, counter_id: str) -> Notification:
        return cls(
            NotificationKind.PARTICIPANT_CALLED,
            line_id,
            subject_id=subject_id,
            entry_id=entry_id,
            counter_id=counter_id,
        )

    def topic(self, namespace: str = DEFAULT_NAMESPACE) -> str:
        if self.kind is NotificationKind.PARTICIPANT_CALLED:
            if self.subject_id is None:
                raise ValueError("participant notification without subject_id")
            return passenger_events(self.subject_id, namespace)
        return line_updates(self.line_id, namespace)

    def to_message(self) -> dict[str, Any]:
        if self.kind is NotificationKind.PARTICIPANT_CALLED:
            return {
                "type": self.kind.value,
                "line_id": self.line_id,
                "entry_id": self.entry_id,
                "counter_id": self.counter_id,
                "message": f"Please proceed to {self.counter_id}",
            }
        return {"type": self.kind.value, "line_id": self.line_id}


class NotificationBus:
    """Maps notifications onto topics of one namespace and hands them to a publisher.

    Notifications are emitted after the state change they describe has been
    committed, so delivery is best-effort: a failing publisher is reported and
    the operation still succeeds. Clients poll status to catch up.
    """

    def __init__(self, publisher: PublisherProtocol, *, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.publisher = publisher
        self.namespace = namespace

    def emit(self, notification: Notification) -> bool:
        """Publish one notification. Returns False if it could not be delivered."""
        try:
            self.publisher.publish(notification.topic(self.namespace), notification.to_message())
        except Exception as e:
            print(f"[notify] {notification.kind.value} on line {notification.line_id} not delivered: {e}")
            return False
        return True
