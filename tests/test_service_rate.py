from boarding_queue.models import EntryStatus, Line, QueueEntry, ServiceClass
from boarding_queue.service_rate import average_service_minutes
from boarding_queue.store import InMemoryQueueStore

T0 = 1_700_000_000.0
MIN = 60.0


def done(eid, minutes, *, started=T0, status=EntryStatus.COMPLETED):
    return QueueEntry(
        id=eid,
        subject_id=f"s-{eid}",
        line_id="FL100",
        service_class=ServiceClass.STANDARD,
        needs_assistance=False,
        joined_at=T0 - 10 * MIN,
        status=status,
        service_started_at=started,
        service_completed_at=None if minutes is None else T0 + minutes * MIN,
    )


def test_cold_start_defaults_to_three_minutes():
    assert average_service_minutes([]) == 3


def test_mean_is_rounded_up():
    assert average_service_minutes([done("E1", 4), done("E2", 5)]) == 5


def test_malformed_records_count_as_three_minutes():
    assert average_service_minutes([done("E1", None), done("E2", 5)]) == 4
    assert average_service_minutes([done("E1", 5, started=None)]) == 3


def test_only_the_ten_most_recent_are_used():
    history = [done(f"E{i}", 2) for i in range(10)] + [done(f"X{i}", 20) for i in range(5)]
    assert average_service_minutes(history) == 2


def test_non_completed_entries_are_ignored():
    history = [done("E1", 30, status=EntryStatus.NO_SHOW), done("E2", 2)]
    assert average_service_minutes(history) == 2


def test_instant_services_still_yield_at_least_one_minute():
    assert average_service_minutes([done("E1", 0)]) == 1


def test_store_returns_newest_completed_first():
    store = InMemoryQueueStore()
    store.add_line(Line("FL100"))
    ids = []
    for i in range(12):
        e = store.create_entry(
            subject_id=f"p{i}",
            line_id="FL100",
            service_class=ServiceClass.STANDARD,
            needs_assistance=False,
            joined_at=T0,
        )
        store.update_entry_if(e.id, EntryStatus.WAITING, status=EntryStatus.CALLED, service_started_at=T0)
        store.update_entry_if(
            e.id, EntryStatus.CALLED, status=EntryStatus.COMPLETED, service_completed_at=T0 + (i + 1) * MIN
        )
        ids.append(e.id)

    recent = store.list_completed("FL100", limit=10)
    assert [e.id for e in recent] == list(reversed(ids))[:10]
