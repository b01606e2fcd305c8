from __future__ import annotations

# Passenger client.
#
# A passenger is a short-lived process:
# - connect to broker
# - publish a join_queue request and print the initial position/ETA
# - with --watch: keep polling queue_status and listen on the passenger's
#   event topic until a counter calls them

import argparse
import threading
import time
from typing import Any

from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, manager_requests, manager_responses, passenger_events


def join_queue(
    *,
    mqtt: MqttClient,
    reply_topic: str,
    namespace: str,
    subject_id: str,
    line_id: str,
    service_class: str,
    needs_assistance: bool,
) -> dict[str, Any]:
    return mqtt.request(
        request_topic=manager_requests(namespace),
        response_topic=reply_topic,
        message={
            "type": "join_queue",
            "subject_id": subject_id,
            "line_id": line_id,
            "service_class": service_class,
            "needs_assistance": needs_assistance,
        },
        timeout=5.0,
    )


def run_passenger(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    subject_id: str,
    line_id: str,
    service_class: str,
    needs_assistance: bool,
    watch: bool = False,
    poll_every: float = 5.0,
) -> None:
    # Use a unique client id so multiple passengers can run concurrently.
    client_id = f"passenger-{subject_id}-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    # Passenger listens for its responses on a dedicated topic.
    reply_topic = manager_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    called = threading.Event()

    def on_event(topic: str, msg: dict[str, Any]) -> None:
        if msg.get("type") == "called":
            print(f"[passenger {subject_id}] {msg.get('message')}")
            called.set()

    events_topic = passenger_events(subject_id, namespace)
    mqtt.subscribe(events_topic)
    mqtt.add_handler(on_event, topic_filter=events_topic)

    try:
        resp = join_queue(
            mqtt=mqtt,
            reply_topic=reply_topic,
            namespace=namespace,
            subject_id=subject_id,
            line_id=line_id,
            service_class=service_class,
            needs_assistance=needs_assistance,
        )
        if resp.get("type") != "joined":
            print(f"[passenger {subject_id}] error: {resp}")
            return
        print(
            f"[passenger {subject_id}] joined {line_id} as {resp['entry']['id']} "
            f"(position {resp['position']}, eta {resp['eta_minutes']} min)"
        )

        while watch and not called.wait(poll_every):
            status = mqtt.request(
                request_topic=manager_requests(namespace),
                response_topic=reply_topic,
                message={"type": "queue_status", "subject_id": subject_id},
                timeout=5.0,
            )
            if status.get("entry") is None:
                print(f"[passenger {subject_id}] no longer queued")
                return
            print(f"[passenger {subject_id}] position {status['position']}, eta {status['eta_minutes']} min")
    except KeyboardInterrupt:
        pass
    finally:
        mqtt.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Passenger client (MQTT)")
    parser.add_argument("--subject-id", required=True)
    parser.add_argument("--line-id", required=True)
    parser.add_argument("--service-class", default="STANDARD", choices=["STANDARD", "ELEVATED", "PREMIUM"])
    parser.add_argument("--needs-assistance", action="store_true")
    parser.add_argument("--watch", action="store_true", help="poll position until called")
    parser.add_argument("--poll-every", type=float, default=5.0)
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    args = parser.parse_args()

    run_passenger(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        subject_id=args.subject_id,
        line_id=args.line_id,
        service_class=args.service_class,
        needs_assistance=args.needs_assistance,
        watch=args.watch,
        poll_every=args.poll_every,
    )


if __name__ == "__main__":
    main()
