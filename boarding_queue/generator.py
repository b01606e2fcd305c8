from __future__ import annotations

# Passenger generator (normal system component).
#
# This process simulates a stream of arriving passengers and uses the exact same
# MQTT request/response protocol as the interactive `passenger` CLI.
#
# Poisson arrival model:
# - Passengers arrive according to a Poisson process with rate λ (passengers/sec)
# - Inter-arrival times are exponential with mean 1/λ
# - Each passenger draws a fare class and an assistance need (see arrival.py)

import argparse
import random
import time

from .arrival import sample_exponential_interarrival, sample_needs_assistance, sample_service_class
from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, manager_requests, manager_responses


def run_generator(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    line_id: str,
    rate_per_sec: float,
    name_prefix: str = "pax",
    max_passengers: int | None = None,
    seed: int | None = None,
) -> None:
    """Generate passengers indefinitely (or for max_passengers).

    Args:
        line_id: line (flight) the passengers join.
        rate_per_sec: λ, passengers per second.
        max_passengers: if provided, stop after emitting this many passengers.
        seed: if provided, makes arrivals and passenger mix deterministic.
    """
    rng = random.Random(seed) if seed is not None else None

    client_id = f"generator-{int(time.time())}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = manager_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    print(
        f"[generator] connected to MQTT {mqtt_host}:{mqtt_port}, namespace={namespace}, "
        f"line={line_id}, rate={rate_per_sec} pax/s"
    )

    run_tag = int(time.time())
    i = 0
    try:
        while True:
            if max_passengers is not None and i >= max_passengers:
                print(f"[generator] reached max_passengers={max_passengers}, stopping")
                return

            # Wait for the next arrival.
            dt = sample_exponential_interarrival(rate_per_sec=rate_per_sec, rng=rng)
            time.sleep(dt)

            i += 1
            subject_id = f"{name_prefix}-{run_tag}-{i}"
            service_class = sample_service_class(rng=rng)
            needs_assistance = sample_needs_assistance(rng=rng)

            try:
                resp = mqtt.request(
                    request_topic=manager_requests(namespace),
                    response_topic=reply_topic,
                    message={
                        "type": "join_queue",
                        "subject_id": subject_id,
                        "line_id": line_id,
                        "service_class": service_class.value,
                        "needs_assistance": needs_assistance,
                    },
                    timeout=5.0,
                )
            except TimeoutError:
                print(f"[generator] {subject_id} -> no response (dt={dt:0.2f}s)")
                continue

            if resp.get("type") == "joined":
                assist = " +assist" if needs_assistance else ""
                print(
                    f"[generator] {subject_id} {service_class.value}{assist} -> "
                    f"pos {resp['position']}, eta {resp['eta_minutes']} min (dt={dt:0.2f}s)"
                )
            else:
                print(f"[generator] {subject_id} -> error {resp} (dt={dt:0.2f}s)")

    except KeyboardInterrupt:
        pass
    finally:
        mqtt.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Passenger generator (Poisson arrivals over MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument("--line-id", required=True)
    parser.add_argument(
        "--rate",
        type=float,
        required=True,
        help="arrival rate λ in passengers/second (Poisson process)",
    )
    parser.add_argument("--name-prefix", default="pax")
    parser.add_argument("--max-passengers", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    run_generator(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        line_id=args.line_id,
        rate_per_sec=args.rate,
        name_prefix=args.name_prefix,
        max_passengers=args.max_passengers,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
