import random
import threading

import pytest

from boarding_queue.counter import CounterAgent
from boarding_queue.manager import MqttQueueManagerService
from boarding_queue.models import CounterStatus, EntryStatus, ServiceClass


class FakeMqtt:
    def __init__(self):
        self.messages = []

    def publish(self, topic, message):
        self.messages.append((topic, message))


def loopback(manager):
    """Request function that goes through the manager's message handler in-process."""
    service = MqttQueueManagerService(mqtt=FakeMqtt(), manager=manager)

    def request(message):
        service._handle_message(
            "boarding/v0/manager/requests", {**message, "reply_to": "boarding/v0/manager/responses/test"}
        )
        return service.mqtt.messages[-1][1]

    return request


def make_agent(manager, counter_id="C3", **kwargs):
    kwargs.setdefault("service_seconds", 0.0)
    kwargs.setdefault("sleep", lambda _s: None)
    return CounterAgent(counter_id=counter_id, line_id="FL100", request=loopback(manager), **kwargs)


def test_register_then_claim_and_complete(manager):
    entry = manager.join("alice", "FL100", ServiceClass.STANDARD, False)
    agent = make_agent(manager)
    agent.register()

    claimed = agent.try_claim()
    assert claimed["id"] == entry.id
    assert claimed["assigned_counter"] == "C3"

    assert agent.serve(claimed) == "service_completed"
    assert manager.store.get_entry(entry.id).status is EntryStatus.COMPLETED
    assert manager.store.get_counter("C3").status is CounterStatus.IDLE
    assert agent.served_count == 1


def test_benign_outcomes_return_none(manager):
    agent = make_agent(manager)
    agent.register()
    assert agent.try_claim() is None

    manager.join("alice", "FL100", ServiceClass.STANDARD, False)
    manager.join("bob", "FL100", ServiceClass.STANDARD, False)
    assert agent.try_claim() is not None
    # Still serving the first passenger.
    assert agent.try_claim() is None
    assert len(manager.store.list_waiting("FL100")) == 1


def test_no_show_rate_one_always_marks_no_show(manager):
    entry = manager.join("alice", "FL100", ServiceClass.STANDARD, False)
    agent = make_agent(manager, no_show_rate=1.0, rng=random.Random(1))
    agent.register()

    assert agent.serve(agent.try_claim()) == "no_show_marked"
    assert manager.store.get_entry(entry.id).status is EntryStatus.NO_SHOW
    assert (agent.served_count, agent.no_show_count) == (0, 1)


def test_serve_sleeps_for_service_time(manager):
    slept = []
    manager.join("alice", "FL100", ServiceClass.STANDARD, False)
    agent = make_agent(manager, service_seconds=1.5, sleep=slept.append)
    agent.register()
    agent.serve(agent.try_claim())
    assert slept == [1.5]


def test_error_reply_raises(manager):
    agent = CounterAgent(counter_id="C9", line_id="FL100", request=loopback(manager), service_seconds=0.0)
    with pytest.raises(RuntimeError):
        agent.try_claim()


def test_claim_not_issued_while_previous_in_flight():
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def slow_request(message):
        calls.append(message["type"])
        entered.set()
        release.wait(timeout=5.0)
        return {"type": "claim_result", "outcome": "line_empty", "entry": None}

    agent = CounterAgent(counter_id="C1", line_id="FL100", request=slow_request, service_seconds=0.0)
    t = threading.Thread(target=agent.try_claim)
    t.start()
    assert entered.wait(timeout=5.0)

    assert agent.try_claim() is None
    release.set()
    t.join(timeout=5.0)
    assert calls == ["claim_next"]


def test_invalid_parameters_rejected():
    with pytest.raises(ValueError):
        CounterAgent(counter_id="C1", line_id="FL100", request=dict, service_seconds=-1)
    with pytest.raises(ValueError):
        CounterAgent(counter_id="C1", line_id="FL100", request=dict, service_seconds=1, no_show_rate=1.5)
    with pytest.raises(ValueError):
        CounterAgent(counter_id="C1", line_id="FL100", request=dict, service_seconds=1, report_attempts=0)


class FlakyLink:
    """Loopback request function that can lose requests or replies per message type."""

    def __init__(self, manager):
        self.service = MqttQueueManagerService(mqtt=FakeMqtt(), manager=manager)
        self.lose_requests = {}
        self.lose_replies = {}

    def __call__(self, message):
        mtype = message["type"]
        if self.lose_requests.get(mtype, 0) > 0:
            self.lose_requests[mtype] -= 1
            raise TimeoutError(f"lost {mtype} request")
        self.service._handle_message(
            "boarding/v0/manager/requests", {**message, "reply_to": "boarding/v0/manager/responses/test"}
        )
        reply = self.service.mqtt.messages[-1][1]
        if self.lose_replies.get(mtype, 0) > 0:
            self.lose_replies[mtype] -= 1
            raise TimeoutError(f"lost {mtype} reply")
        return reply


def flaky_agent(manager, link, **kwargs):
    return CounterAgent(
        counter_id="C3",
        line_id="FL100",
        request=link,
        service_seconds=0.0,
        sleep=lambda _s: None,
        **kwargs,
    )


def test_lost_claim_reply_resumes_bound_passenger(manager):
    p0 = manager.join("p0", "FL100", ServiceClass.STANDARD, False)
    p1 = manager.join("p1", "FL100", ServiceClass.STANDARD, False)
    link = FlakyLink(manager)
    agent = flaky_agent(manager, link)
    agent.register()

    link.lose_replies["claim_next"] = 1
    with pytest.raises(TimeoutError):
        agent.try_claim()
    assert manager.store.get_entry(p0.id).assigned_counter == "C3"
    assert agent.current_entry is None

    resumed = agent.try_claim()
    assert resumed["id"] == p0.id
    assert agent.resumed_count == 1

    assert agent.serve(resumed) == "service_completed"
    assert manager.store.get_entry(p0.id).status is EntryStatus.COMPLETED
    assert agent.try_claim()["id"] == p1.id


def test_lost_completion_reply_is_retried(manager):
    entry = manager.join("p0", "FL100", ServiceClass.STANDARD, False)
    link = FlakyLink(manager)
    agent = flaky_agent(manager, link)
    agent.register()

    link.lose_replies["complete_service"] = 1
    assert agent.serve(agent.try_claim()) == "service_completed"

    assert agent.served_count == 1
    assert manager.store.get_entry(entry.id).status is EntryStatus.COMPLETED
    assert manager.store.get_counter("C3").status is CounterStatus.IDLE


def test_unanswered_report_is_resumed_on_next_claim(manager):
    entry = manager.join("p0", "FL100", ServiceClass.STANDARD, False)
    link = FlakyLink(manager)
    agent = flaky_agent(manager, link, report_attempts=2)
    agent.register()

    link.lose_requests["complete_service"] = 2
    with pytest.raises(TimeoutError):
        agent.serve(agent.try_claim())
    assert manager.store.get_entry(entry.id).status is EntryStatus.CALLED
    assert agent.served_count == 0

    again = agent.try_claim()
    assert again["id"] == entry.id
    agent.serve(again)
    assert manager.store.get_entry(entry.id).status is EntryStatus.COMPLETED
    assert manager.store.get_counter("C3").status is CounterStatus.IDLE


def test_first_report_rejected_is_an_error(manager):
    entry = manager.join("p0", "FL100", ServiceClass.STANDARD, False)
    agent = make_agent(manager)
    agent.register()
    claimed = agent.try_claim()
    manager.complete_service(entry.id)

    with pytest.raises(RuntimeError):
        agent.serve(claimed)
