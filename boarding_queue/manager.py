from __future__ import annotations

# The Queue Manager is the *authoritative brain* of the system.
#
# IMPORTANT: This file contains two layers:
# 1) `QueueManager` (pure logic over a store, easy to unit test)
# 2) `MqttQueueManagerService` + `main()` (integration with MQTT broker)

import argparse
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from .assignment import DEFAULT_MAX_CLAIM_ATTEMPTS, ClaimResult, Clock, CounterAssignmentManager
from .errors import ErrorResponse, QueueError, to_error_response
from .models import Counter, EntryStatus, Line, QueueEntry, ServiceClass
from .mqtt_topics import DEFAULT_NAMESPACE
from .notifications import Notification, NotificationBus, PublisherProtocol
from .ordering import entry_score, rank_entries
from .service_rate import HISTORY_WINDOW, average_service_minutes
from .store import InMemoryQueueStore, QueueStoreProtocol
from .wait_time import estimate_wait, eta_minutes

if TYPE_CHECKING:
    from .mqtt_client import MqttClient


@dataclass(frozen=True)
class StatusReport:
    entry: QueueEntry
    position: int
    eta_minutes: int

    def to_message(self) -> dict[str, Any]:
        return {"entry": self.entry.to_message(), "position": self.position, "eta_minutes": self.eta_minutes}


@dataclass(frozen=True)
class LineMetrics:
    line_id: str
    waiting_count: int
    priority_count: int
    total_eta_minutes: int
    avg_service_minutes: int

    def to_message(self) -> dict[str, Any]:
        return {
            "line_id": self.line_id,
            "waiting_count": self.waiting_count,
            "priority_count": self.priority_count,
            "total_eta_minutes": self.total_eta_minutes,
            "avg_service_minutes": self.avg_service_minutes,
        }


@dataclass(frozen=True)
class LineRow:
    """One row of the admin view. `position` is None for entries already at a counter."""

    entry: QueueEntry
    score: int
    position: int | None

    def to_message(self) -> dict[str, Any]:
        return {"entry": self.entry.to_message(), "score": self.score, "position": self.position}


class _NullPublisher:
    def publish(self, topic: str, message: dict[str, Any]) -> None:
        return None


class QueueManager:
    """Core business logic (testable without MQTT).

    Every query reads the clock once and uses that instant for all score and
    position computations of the response.
    """

    def __init__(
        self,
        *,
        store: QueueStoreProtocol | None = None,
        publisher: PublisherProtocol | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Clock = time.time,
        max_claim_attempts: int = DEFAULT_MAX_CLAIM_ATTEMPTS,
    ) -> None:
        self.store: QueueStoreProtocol = store if store is not None else InMemoryQueueStore()
        self.bus = NotificationBus(publisher if publisher is not None else _NullPublisher(), namespace=namespace)
        self.clock = clock
        self.assignments = CounterAssignmentManager(
            store=self.store,
            bus=self.bus,
            clock=clock,
            max_claim_attempts=max_claim_attempts,
        )

    # -------------------- lines & counters --------------------

    def register_line(self, line_id: str, deadline_at: float | None = None) -> Line:
        """Create or replace a line (e.g. when a flight's departure time changes)."""
        line = Line(id=line_id, deadline_at=deadline_at)
        self.store.add_line(line)
        return line

    def register_counter(self, counter_id: str) -> Counter:
        return self.assignments.register_counter(counter_id)

    # -------------------- passenger operations --------------------

    def join(self, subject_id: str, line_id: str, service_class: ServiceClass, needs_assistance: bool) -> QueueEntry:
        """Add a passenger to a line. Raises AlreadyActive or NotFound."""
        entry = self.store.create_entry(
            subject_id=subject_id,
            line_id=line_id,
            service_class=service_class,
            needs_assistance=needs_assistance,
            joined_at=self.clock(),
        )
        self.bus.emit(Notification.line_updated(line_id))
        return entry

    def status(self, subject_id: str, line_id: str | None = None) -> StatusReport | None:
        """Current entry, 0-based position and ETA of a passenger, or None if not queued.

        A passenger may be queued on several lines at once. Without `line_id`
        the earliest-created active entry is reported.
        """
        entry = self.store.find_active_entry(subject_id, line_id)
        if entry is None:
            return None
        return self.estimate(entry)

    def estimate(self, entry: QueueEntry) -> StatusReport:
        """Position and ETA of a specific entry at the current instant."""
        now = self.clock()
        line = self.store.get_line(entry.line_id)
        estimate = estimate_wait(
            entry,
            self.store.list_waiting(line.id),
            deadline_at=line.deadline_at,
            avg_service_minutes=self._avg_service_minutes(line.id),
            now=now,
        )
        return StatusReport(entry=entry, position=estimate.position, eta_minutes=estimate.eta_minutes)

    # -------------------- counter operations --------------------

    def claim_next(self, line_id: str, counter_id: str) -> ClaimResult:
        return self.assignments.claim_next(line_id, counter_id)

    def complete_service(self, entry_id: str) -> QueueEntry:
        return self.assignments.complete_service(entry_id)

    def mark_no_show(self, entry_id: str) -> QueueEntry:
        return self.assignments.mark_no_show(entry_id)

    def counter_state(self, counter_id: str) -> tuple[Counter, QueueEntry | None]:
        """A counter and the CALLED entry it is serving, if any.

        Lets an agent that lost a claim reply pick up the passenger the
        manager already bound to it.
        """
        counter = self.store.get_counter(counter_id)
        if counter.current_entry_id is None:
            return counter, None
        entry = self.store.get_entry(counter.current_entry_id)
        if entry.status is not EntryStatus.CALLED or entry.assigned_counter != counter_id:
            return counter, None
        return counter, entry

    # -------------------- observability --------------------

    def metrics(self, line_id: str) -> LineMetrics:
        """Waiting count, priority passengers and time to drain the line.

        `total_eta_minutes` is the ETA of the last waiting passenger, i.e. how
        long until the current line is fully served.
        """
        self.store.get_line(line_id)
        waiting = self.store.list_waiting(line_id)
        avg = self._avg_service_minutes(line_id)
        total = 0
        if waiting:
            total = eta_minutes(position=len(waiting) - 1, avg_service_minutes=avg, waiting_count=len(waiting))
        return LineMetrics(
            line_id=line_id,
            waiting_count=len(waiting),
            priority_count=sum(1 for e in waiting if e.is_priority),
            total_eta_minutes=total,
            avg_service_minutes=avg,
        )

    def line_view(self, line_id: str) -> list[LineRow]:
        """Admin view: entries at a counter first, then WAITING entries in rank order."""
        now = self.clock()
        line = self.store.get_line(line_id)

        def score(e: QueueEntry) -> int:
            return entry_score(e, deadline_at=line.deadline_at, now=now)

        called = sorted(self.store.list_called(line_id), key=lambda e: (e.service_started_at or 0.0, e.id))
        ranked = rank_entries(self.store.list_waiting(line_id), deadline_at=line.deadline_at, now=now)

        rows = [LineRow(entry=e, score=score(e), position=None) for e in called]
        rows += [LineRow(entry=e, score=score(e), position=i) for i, e in enumerate(ranked)]
        return rows

    def snapshot(self) -> dict[str, Any]:
        """Metrics of every line plus counter states (broadcast to observers)."""
        return {
            "type": "status_response",
            "lines": {lid: self.metrics(lid).to_message() for lid in self.store.list_line_ids()},
            "counters": {c.id: c.to_message() for c in self.store.list_counters()},
            "ts": self.clock(),
        }

    def _avg_service_minutes(self, line_id: str) -> int:
        return average_service_minutes(self.store.list_completed(line_id, limit=HISTORY_WINDOW))


Handler = Callable[[dict[str, Any]], dict[str, Any]]


class MqttQueueManagerService:
    """MQTT adapter around the QueueManager business logic."""

    def __init__(
        self,
        *,
        mqtt: MqttClient,
        namespace: str = DEFAULT_NAMESPACE,
        manager: QueueManager | None = None,
    ) -> None:
        # Local imports so unit tests can import QueueManager without paho-mqtt.
        from .mqtt_topics import manager_requests, status_updates

        self._manager_requests = manager_requests
        self._status_updates = status_updates

        self.mqtt = mqtt
        self.namespace = namespace
        # The MQTT client doubles as the notification publisher.
        self.manager = manager if manager is not None else QueueManager(publisher=mqtt, namespace=namespace)

        self._handlers: dict[str, Handler] = {
            "register_line": self._on_register_line,
            "register_counter": self._on_register_counter,
            "join_queue": self._on_join_queue,
            "queue_status": self._on_queue_status,
            "claim_next": self._on_claim_next,
            "complete_service": self._on_complete_service,
            "mark_no_show": self._on_mark_no_show,
            "counter_state": self._on_counter_state,
            "line_metrics": self._on_line_metrics,
            "line_view": self._on_line_view,
        }

        # Background publisher thread control.
        self._stop_event = threading.Event()
        self._status_thread: threading.Thread | None = None

    def start(self, *, publish_status_every: float = 2.0) -> None:
        self.mqtt.subscribe(self._manager_requests(self.namespace))
        self.mqtt.add_handler(self._handle_message, topic_filter=self._manager_requests(self.namespace))

        # Start periodic publisher for observers.
        self._status_thread = threading.Thread(
            target=self._status_publisher_loop,
            args=(publish_status_every,),
            daemon=True,
        )
        self._status_thread.start()

    def stop(self) -> None:
        """Stop background threads. Call before disconnecting MQTT."""
        self._stop_event.set()
        t = self._status_thread
        if t and t.is_alive():
            t.join(timeout=1.0)

    def _status_publisher_loop(self, interval: float) -> None:
        """Publish periodic per-line metrics for observers."""
        while not self._stop_event.is_set():
            try:
                self.mqtt.publish(self._status_updates(self.namespace), self.manager.snapshot())
            except Exception as e:
                # Keep publishing even if an occasional error occurs.
                print(f"[manager] status publish failed: {e}")
            self._stop_event.wait(interval)

    def _reply(self, reply_to: str, corr_id: str | None, message: dict[str, Any]) -> None:
        msg = dict(message)
        if corr_id is not None:
            msg["corr_id"] = corr_id
        self.mqtt.publish(reply_to, msg)

    def _handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        handler = self._handlers.get(str(msg.get("type")))
        reply_to = msg.get("reply_to") if isinstance(msg.get("reply_to"), str) else None
        if handler is None or not reply_to:
            return
        corr_id = msg.get("corr_id") if isinstance(msg.get("corr_id"), str) else None

        try:
            reply = handler(msg)
        except QueueError as e:
            reply = to_error_response(e).to_message()
        except (KeyError, ValueError, TypeError) as e:
            reply = ErrorResponse("bad_request", str(e)).to_message()
        self._reply(reply_to, corr_id, reply)

    # -------------------- request handlers --------------------

    def _on_register_line(self, msg: dict[str, Any]) -> dict[str, Any]:
        deadline = msg.get("deadline_at")
        line = self.manager.register_line(_required(msg, "line_id"), None if deadline is None else float(deadline))
        return {"type": "line_registered", "line": line.to_message()}

    def _on_register_counter(self, msg: dict[str, Any]) -> dict[str, Any]:
        counter = self.manager.register_counter(_required(msg, "counter_id"))
        return {"type": "counter_registered", "counter": counter.to_message()}

    def _on_join_queue(self, msg: dict[str, Any]) -> dict[str, Any]:
        entry = self.manager.join(
            _required(msg, "subject_id"),
            _required(msg, "line_id"),
            ServiceClass(str(msg.get("service_class", ServiceClass.STANDARD.value)).upper()),
            _flag(msg, "needs_assistance"),
        )
        report = self.manager.estimate(entry)
        return {"type": "joined", **report.to_message()}

    def _on_queue_status(self, msg: dict[str, Any]) -> dict[str, Any]:
        line_id = _required(msg, "line_id") if msg.get("line_id") is not None else None
        report = self.manager.status(_required(msg, "subject_id"), line_id)
        if report is None:
            return {"type": "queue_status", "entry": None}
        return {"type": "queue_status", **report.to_message()}

    def _on_claim_next(self, msg: dict[str, Any]) -> dict[str, Any]:
        result = self.manager.claim_next(_required(msg, "line_id"), _required(msg, "counter_id"))
        return {"type": "claim_result", **result.to_message()}

    def _on_complete_service(self, msg: dict[str, Any]) -> dict[str, Any]:
        entry = self.manager.complete_service(_required(msg, "entry_id"))
        return {"type": "service_completed", "entry": entry.to_message()}

    def _on_mark_no_show(self, msg: dict[str, Any]) -> dict[str, Any]:
        entry = self.manager.mark_no_show(_required(msg, "entry_id"))
        return {"type": "no_show_marked", "entry": entry.to_message()}

    def _on_counter_state(self, msg: dict[str, Any]) -> dict[str, Any]:
        counter, entry = self.manager.counter_state(_required(msg, "counter_id"))
        return {
            "type": "counter_state",
            "counter": counter.to_message(),
            "entry": entry.to_message() if entry is not None else None,
        }

    def _on_line_metrics(self, msg: dict[str, Any]) -> dict[str, Any]:
        return {"type": "line_metrics", **self.manager.metrics(_required(msg, "line_id")).to_message()}

    def _on_line_view(self, msg: dict[str, Any]) -> dict[str, Any]:
        line_id = _required(msg, "line_id")
        rows = self.manager.line_view(line_id)
        return {"type": "line_view", "line_id": line_id, "rows": [r.to_message() for r in rows]}


# Ids end up as MQTT topic levels (passenger events, line updates, counter status).
_TOPIC_UNSAFE = ("+", "#", "/")


def _required(msg: dict[str, Any], key: str) -> str:
    value = str(msg.get(key, "") or "")
    if not value:
        raise ValueError(f"{key} required")
    if any(ch in value for ch in _TOPIC_UNSAFE):
        raise ValueError(f"{key} must not contain '+', '#' or '/'")
    return value


def _flag(msg: dict[str, Any], key: str) -> bool:
    value = msg.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def main() -> None:
    # Import MQTT dependencies only when running the real service.
    from .mqtt_client import MqttClient

    parser = argparse.ArgumentParser(description="Queue Manager (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument(
        "--line",
        action="append",
        dest="lines",
        metavar="LINE_ID",
        help="line (flight) to open at startup; repeatable",
    )
    parser.add_argument(
        "--departs-in-minutes",
        type=float,
        default=None,
        help="deadline of the startup lines, relative to now (no urgency term if omitted)",
    )
    parser.add_argument("--max-claim-attempts", type=int, default=DEFAULT_MAX_CLAIM_ATTEMPTS)
    parser.add_argument(
        "--publish-status-every",
        type=float,
        default=2.0,
        help="seconds between broadcast status updates (observer dashboard)",
    )
    args = parser.parse_args()

    mqtt_client = MqttClient(client_id="manager", host=args.mqtt_host, port=args.mqtt_port)
    mqtt_client.start()

    manager = QueueManager(
        publisher=mqtt_client,
        namespace=args.namespace,
        max_claim_attempts=args.max_claim_attempts,
    )
    deadline_at = None
    if args.departs_in_minutes is not None:
        deadline_at = time.time() + args.departs_in_minutes * 60.0
    for line_id in args.lines or []:
        manager.register_line(line_id, deadline_at)
        print(f"[manager] opened line {line_id} (deadline_at={deadline_at})")

    service = MqttQueueManagerService(mqtt=mqtt_client, namespace=args.namespace, manager=manager)
    service.start(publish_status_every=args.publish_status_every)

    print(f"[manager] connected to MQTT {args.mqtt_host}:{args.mqtt_port}, namespace={args.namespace}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
        mqtt_client.stop()


if __name__ == "__main__":
    main()
