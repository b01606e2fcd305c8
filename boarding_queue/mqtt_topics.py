"""MQTT topic helpers.

We keep topic construction in one place so all components agree on naming.

Topic layout under a configurable namespace (default: `boarding/v0`):

Request/response:
- `<ns>/manager/requests`
    Every operation (join, status, claim, complete, no-show, metrics, ...).
- `<ns>/manager/responses/<client_id>`
    Replies for one client (passenger, counter agent, generator).

Notifications (published by the scheduling core):
- `<ns>/lines/<line_id>/updates`
    Line-wide "queue changed" signal.
- `<ns>/passengers/<subject_id>/events`
    Participant-scoped "you were called" signal carrying the counter id.

Streaming/broadcast:
- `<ns>/status/updates`
    Manager broadcasts periodic per-line metrics snapshots.
- `<ns>/counters/status/<counter_id>`
    Each counter agent publishes its own status (served/no-show counters).

You can run multiple independent demos on a shared broker by changing the
`namespace` parameter (e.g. `--namespace demo/alice`).
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "boarding/v0"


def manager_requests(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/manager/requests"


def manager_responses(client_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/manager/responses/{client_id}"


def line_updates(line_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/lines/{line_id}/updates"


def passenger_events(subject_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/passengers/{subject_id}/events"


def status_updates(namespace: str = DEFAULT_NAMESPACE) -> str:
    """Broadcast per-line metrics snapshots.

    In normal operation the manager publishes periodic snapshots here.
    Observers subscribe to this topic.
    """
    return f"{namespace}/status/updates"


def counter_status(counter_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Per-counter status stream, published by each counter agent."""
    return f"{namespace}/counters/status/{counter_id}"
