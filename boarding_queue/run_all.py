from __future__ import annotations

# Single-command runner.
#
# This module starts a full local system from one command by spawning child
# processes:
# - manager (with one line open, e.g. one flight)
# - N counter agents (auto-pilot) serving that line
# - generator (Poisson arrivals)
#
# The core system components remain independent processes.

import argparse
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass

from .mqtt_topics import DEFAULT_NAMESPACE


@dataclass
class Child:
    name: str
    proc: subprocess.Popen


def run_all(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    line_id: str,
    departs_in_minutes: float | None,
    num_counters: int,
    arrival_rate: float,
    service_seconds: float,
    no_show_rate: float,
    seed: int | None,
) -> None:
    if num_counters <= 0:
        raise ValueError("num_counters must be > 0")
    if arrival_rate <= 0:
        raise ValueError("arrival_rate must be > 0")

    python = sys.executable
    mqtt_args = ["--mqtt-host", mqtt_host, "--mqtt-port", str(mqtt_port), "--namespace", namespace]

    # Put all children in their own process groups so Ctrl+C can stop everything.
    def popen(name: str, args: list[str]) -> Child:
        proc = subprocess.Popen(
            args,
            preexec_fn=os.setsid,
        )
        return Child(name=name, proc=proc)

    children: list[Child] = []

    mgr_args = [python, "-m", "boarding_queue.manager", *mqtt_args, "--line", line_id]
    if departs_in_minutes is not None:
        mgr_args += ["--departs-in-minutes", str(departs_in_minutes)]
    children.append(popen("manager", mgr_args))

    # Small delay so the manager connects before others start spamming requests.
    time.sleep(0.5)

    for i in range(1, num_counters + 1):
        cid = f"Counter-{i}"
        ctr_args = [
            python,
            "-m",
            "boarding_queue.counter",
            "--counter-id",
            cid,
            "--line-id",
            line_id,
            *mqtt_args,
            "--service-seconds",
            str(service_seconds),
            "--no-show-rate",
            str(no_show_rate),
        ]
        if seed is not None:
            ctr_args += ["--seed", str(seed + i)]
        children.append(popen(cid, ctr_args))

    gen_args = [
        python,
        "-m",
        "boarding_queue.generator",
        *mqtt_args,
        "--line-id",
        line_id,
        "--rate",
        str(arrival_rate),
    ]
    if seed is not None:
        gen_args += ["--seed", str(seed)]

    children.append(popen("generator", gen_args))

    print(
        "[run] started: "
        + ", ".join(f"{c.name}(pid={c.proc.pid})" for c in children)
        + "\nPress Ctrl+C to stop all."
    )

    try:
        # Wait until any child exits unexpectedly.
        while True:
            for c in children:
                rc = c.proc.poll()
                if rc is not None:
                    raise RuntimeError(f"Child {c.name} exited with code {rc}")
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        _terminate_children(children)


def _terminate_children(children: list[Child]) -> None:
    # Try graceful termination.
    for c in children:
        if c.proc.poll() is None:
            try:
                os.killpg(os.getpgid(c.proc.pid), signal.SIGTERM)
            except ProcessLookupError:
                pass

    # Wait a bit.
    deadline = time.time() + 2.0
    while time.time() < deadline:
        if all(c.proc.poll() is not None for c in children):
            return
        time.sleep(0.1)

    # Force kill.
    for c in children:
        if c.proc.poll() is None:
            try:
                os.killpg(os.getpgid(c.proc.pid), signal.SIGKILL)
            except ProcessLookupError:
                pass


def main() -> None:
    parser = argparse.ArgumentParser(description="Run manager + counters + generator")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=f"{DEFAULT_NAMESPACE}/run/{int(time.time())}")
    parser.add_argument("--line-id", default="FL100")
    parser.add_argument("--departs-in-minutes", type=float, default=120.0)
    parser.add_argument("--num-counters", type=int, required=True)
    parser.add_argument("--arrival-rate", type=float, required=True, help="λ passengers/second")
    parser.add_argument("--service-seconds", type=float, default=2.0)
    parser.add_argument("--no-show-rate", type=float, default=0.05)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    run_all(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        line_id=args.line_id,
        departs_in_minutes=args.departs_in_minutes,
        num_counters=args.num_counters,
        arrival_rate=args.arrival_rate,
        service_seconds=args.service_seconds,
        no_show_rate=args.no_show_rate,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
