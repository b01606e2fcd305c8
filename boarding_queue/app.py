from __future__ import annotations

# Single-entrypoint runner.
#
# Primary way to run the project is the single command:
#     python -m boarding_queue.app run --num-counters N --arrival-rate LAMBDA
#
# A few advanced subcommands start individual components for debugging and
# development.

import argparse
import sys
from typing import Callable

from .mqtt_topics import DEFAULT_NAMESPACE


def main() -> None:
    parser = argparse.ArgumentParser(description="Boarding Queue System (MQTT) - main entrypoint")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_mqtt_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--mqtt-host", default="127.0.0.1")
        p.add_argument("--mqtt-port", type=int, default=1883)
        p.add_argument("--namespace", default=DEFAULT_NAMESPACE)

    # ---- Normal operation: one command ----
    p_run = sub.add_parser("run", help="Start manager + N counters + generator")
    add_mqtt_args(p_run)
    p_run.add_argument("--line-id", default="FL100")
    p_run.add_argument("--departs-in-minutes", type=float, default=120.0)
    p_run.add_argument("--num-counters", type=int, required=True)
    p_run.add_argument("--arrival-rate", type=float, required=True, help="λ passengers/second")
    p_run.add_argument("--service-seconds", type=float, default=2.0)
    p_run.add_argument("--no-show-rate", type=float, default=0.05)
    p_run.add_argument("--seed", type=int, default=None)

    # ---- Advanced/debug subcommands ----
    p_mgr = sub.add_parser("manager", help="(advanced) Start the queue manager only")
    add_mqtt_args(p_mgr)
    p_mgr.add_argument("--line-id", default="FL100")
    p_mgr.add_argument("--departs-in-minutes", type=float, default=None)

    p_ctr = sub.add_parser("counter", help="(advanced) Start a single counter agent")
    add_mqtt_args(p_ctr)
    p_ctr.add_argument("--counter-id", required=True)
    p_ctr.add_argument("--line-id", default="FL100")
    p_ctr.add_argument("--service-seconds", type=float, default=2.0)

    p_pax = sub.add_parser("passenger", help="(advanced) Send one passenger join request")
    add_mqtt_args(p_pax)
    p_pax.add_argument("--subject-id", required=True)
    p_pax.add_argument("--line-id", default="FL100")
    p_pax.add_argument("--service-class", default="STANDARD", choices=["STANDARD", "ELEVATED", "PREMIUM"])
    p_pax.add_argument("--needs-assistance", action="store_true")
    p_pax.add_argument("--watch", action="store_true")

    args = parser.parse_args()
    mqtt_args = ["--mqtt-host", args.mqtt_host, "--mqtt-port", str(args.mqtt_port), "--namespace", args.namespace]

    if args.cmd == "run":
        from .run_all import main as run

        run_args = [
            *mqtt_args,
            "--line-id",
            args.line_id,
            "--departs-in-minutes",
            str(args.departs_in_minutes),
            "--num-counters",
            str(args.num_counters),
            "--arrival-rate",
            str(args.arrival_rate),
            "--service-seconds",
            str(args.service_seconds),
            "--no-show-rate",
            str(args.no_show_rate),
        ]
        if args.seed is not None:
            run_args += ["--seed", str(args.seed)]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "manager":
        from .manager import main as run

        run_args = [*mqtt_args, "--line", args.line_id]
        if args.departs_in_minutes is not None:
            run_args += ["--departs-in-minutes", str(args.departs_in_minutes)]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "counter":
        from .counter import main as run

        run_args = [
            *mqtt_args,
            "--counter-id",
            args.counter_id,
            "--line-id",
            args.line_id,
            "--service-seconds",
            str(args.service_seconds),
        ]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "passenger":
        from .passenger import main as run

        run_args = [
            *mqtt_args,
            "--subject-id",
            args.subject_id,
            "--line-id",
            args.line_id,
            "--service-class",
            args.service_class,
        ]
        if args.needs_assistance:
            run_args += ["--needs-assistance"]
        if args.watch:
            run_args += ["--watch"]
        _dispatch_to_module_main(run, run_args)
        return


def _dispatch_to_module_main(module_main: Callable[[], None], argv: list[str]) -> None:
    old_argv = sys.argv[:]
    try:
        sys.argv = [old_argv[0], *argv]
        module_main()
    finally:
        sys.argv = old_argv


if __name__ == "__main__":
    main()
