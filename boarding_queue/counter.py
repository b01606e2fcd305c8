from __future__ import annotations

# Counter agent (auto-pilot).
#
# Each counter is a simple autonomous process:
# - it registers itself with the manager
# - it repeatedly asks the manager to claim the next passenger of its line
# - it "serves" a passenger by sleeping for service_seconds, then reports the
#   service as completed (or as a no-show, with probability no_show_rate)
#
# "line empty" and "counter busy" are ordinary outcomes: the agent just waits
# and asks again. A claim is never issued while a previous one for the same
# counter is still in flight.
#
# Lost replies:
# - "counter busy" while the agent holds no passenger means a claim reply got
#   lost; the agent asks for its counter state and resumes that passenger
# - complete/no-show reports are retried until answered
#
# Normal operation feature:
# - the counter publishes its own status periodically (so observers can monitor
#   the system without polling the manager).

import argparse
import random
import threading
import time
from typing import Any, Callable

from .mqtt_topics import DEFAULT_NAMESPACE

RequestFn = Callable[[dict[str, Any]], dict[str, Any]]

BENIGN_OUTCOMES = ("line_empty", "counter_busy")

REPORT_REPLIES = {"complete_service": "service_completed", "mark_no_show": "no_show_marked"}
DEFAULT_REPORT_ATTEMPTS = 5


def _raise_on_error(mtype: str, resp: dict[str, Any]) -> None:
    if resp.get("type") == "error":
        raise RuntimeError(f"{mtype} failed: {resp.get('code')}: {resp.get('message')}")


class CounterAgent:
    """Claim/serve/complete loop of one counter, independent of the transport."""

    def __init__(
        self,
        *,
        counter_id: str,
        line_id: str,
        request: RequestFn,
        service_seconds: float,
        no_show_rate: float = 0.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        report_attempts: int = DEFAULT_REPORT_ATTEMPTS,
    ) -> None:
        if service_seconds < 0:
            raise ValueError("service_seconds must be >= 0")
        if not 0.0 <= no_show_rate <= 1.0:
            raise ValueError("no_show_rate must be within [0, 1]")
        if report_attempts < 1:
            raise ValueError("report_attempts must be >= 1")

        self.counter_id = counter_id
        self.line_id = line_id
        self.request = request
        self.service_seconds = service_seconds
        self.no_show_rate = no_show_rate
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.report_attempts = report_attempts

        self._in_flight = threading.Lock()
        # Entry handed out by try_claim and not yet reported.
        self.current_entry: dict[str, Any] | None = None
        self.served_count = 0
        self.no_show_count = 0
        self.resumed_count = 0

    def register(self) -> None:
        resp = self.request({"type": "register_counter", "counter_id": self.counter_id})
        if resp.get("type") != "counter_registered":
            raise RuntimeError(f"Registration failed: {resp}")

    def try_claim(self) -> dict[str, Any] | None:
        """Ask for the next passenger. Returns the claimed entry, or None.

        None covers the benign outcomes and the case where another claim for
        this counter is still in flight. While an entry handed out earlier is
        not yet reported, no new claim is issued and None is returned.
        """
        if self.current_entry is not None:
            return None
        if not self._in_flight.acquire(blocking=False):
            return None
        try:
            resp = self.request({"type": "claim_next", "line_id": self.line_id, "counter_id": self.counter_id})
            _raise_on_error("claim_next", resp)
            if resp.get("outcome") == "counter_busy":
                # Busy while we hold nothing: a claim reply was lost after the
                # manager committed it.
                entry = self._resume()
            elif resp.get("outcome") in BENIGN_OUTCOMES:
                entry = None
            else:
                entry = resp.get("entry")
            self.current_entry = entry
            return entry
        finally:
            self._in_flight.release()

    def _resume(self) -> dict[str, Any] | None:
        resp = self.request({"type": "counter_state", "counter_id": self.counter_id})
        _raise_on_error("counter_state", resp)
        entry = resp.get("entry")
        if entry is not None:
            self.resumed_count += 1
        return entry

    def serve(self, entry: dict[str, Any]) -> str:
        """Serve one passenger and report the outcome. Returns the reply type.

        The entry is released even if reporting fails, so the next claim
        finds the counter still busy and resumes it.
        """
        try:
            self._sleep(self.service_seconds)

            no_show = self._rng.random() < self.no_show_rate
            mtype = "mark_no_show" if no_show else "complete_service"
            reply_type = self._report(mtype, entry["id"])
        finally:
            self.current_entry = None

        if no_show:
            self.no_show_count += 1
        else:
            self.served_count += 1
        return reply_type

    def _report(self, mtype: str, entry_id: str) -> str:
        """Send a terminal transition, retrying when the reply is lost.

        An `invalid_transition` after a lost reply means the earlier attempt
        was applied. Raises TimeoutError once `report_attempts` are used up;
        the entry then stays CALLED on this counter and is resumed on the
        next claim.
        """
        for attempt in range(self.report_attempts):
            try:
                resp = self.request({"type": mtype, "entry_id": entry_id})
            except TimeoutError:
                print(f"[counter {self.counter_id}] no reply to {mtype} for {entry_id}, retrying")
                continue
            if attempt > 0 and resp.get("code") == "invalid_transition":
                return REPORT_REPLIES[mtype]
            _raise_on_error(mtype, resp)
            return str(resp.get("type"))
        raise TimeoutError(f"{mtype} for {entry_id} unanswered after {self.report_attempts} attempts")

    def status_message(self) -> dict[str, Any]:
        return {
            "type": "counter_status",
            "counter_id": self.counter_id,
            "line_id": self.line_id,
            "service_seconds": self.service_seconds,
            "served_count": self.served_count,
            "no_show_count": self.no_show_count,
            "resumed_count": self.resumed_count,
            "ts": time.time(),
        }


def run_counter(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    counter_id: str,
    line_id: str,
    service_seconds: float,
    no_show_rate: float = 0.0,
    status_every: float = 2.0,
    idle_poll_seconds: float = 0.5,
    seed: int | None = None,
) -> None:
    from .mqtt_client import MqttClient
    from .mqtt_topics import counter_status, manager_requests, manager_responses

    client_id = f"counter-{counter_id}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    # Each counter listens on its own response topic (point-to-point).
    reply_topic = manager_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    def request(message: dict[str, Any]) -> dict[str, Any]:
        return mqtt.request(
            request_topic=manager_requests(namespace),
            response_topic=reply_topic,
            message=message,
            timeout=5.0,
        )

    agent = CounterAgent(
        counter_id=counter_id,
        line_id=line_id,
        request=request,
        service_seconds=service_seconds,
        no_show_rate=no_show_rate,
        rng=random.Random(seed) if seed is not None else None,
    )
    agent.register()
    print(f"[counter {counter_id}] registered on line {line_id}, service_seconds={service_seconds}")

    last_status = 0.0
    try:
        while True:
            now = time.time()
            if now - last_status >= status_every:
                mqtt.publish(counter_status(counter_id, namespace), agent.status_message())
                last_status = now

            try:
                entry = agent.try_claim()
            except TimeoutError:
                print(f"[counter {counter_id}] manager did not answer, retrying")
                continue
            except RuntimeError as e:
                print(f"[counter {counter_id}] {e}")
                time.sleep(idle_poll_seconds)
                continue

            if entry is None:
                time.sleep(idle_poll_seconds)
                continue

            print(f"[counter {counter_id}] serving {entry['subject_id']} ({entry['service_class']})")
            try:
                outcome = agent.serve(entry)
            except (TimeoutError, RuntimeError) as e:
                print(f"[counter {counter_id}] could not report {entry['id']}: {e}")
                continue
            print(f"[counter {counter_id}] {outcome} {entry['subject_id']}")
    except KeyboardInterrupt:
        pass
    finally:
        mqtt.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Counter agent (MQTT auto-pilot)")
    parser.add_argument("--counter-id", required=True)
    parser.add_argument("--line-id", required=True)
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument("--service-seconds", type=float, default=2.0)
    parser.add_argument("--no-show-rate", type=float, default=0.0, help="probability a called passenger never shows up")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--status-every",
        type=float,
        default=2.0,
        help="seconds between counter status publications",
    )
    args = parser.parse_args()

    run_counter(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        counter_id=args.counter_id,
        line_id=args.line_id,
        service_seconds=args.service_seconds,
        no_show_rate=args.no_show_rate,
        status_every=args.status_every,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
