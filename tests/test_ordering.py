import random

from boarding_queue.models import QueueEntry, ServiceClass
from boarding_queue.ordering import compare, entry_score, position_of, rank_entries

T0 = 1_700_000_000.0
MIN = 60.0


def entry(eid, service_class=ServiceClass.STANDARD, joined=T0, line="FL100", assist=False):
    return QueueEntry(
        id=eid,
        subject_id=f"s-{eid}",
        line_id=line,
        service_class=service_class,
        needs_assistance=assist,
        joined_at=joined,
    )


def test_premium_joined_later_still_ranks_first():
    a = entry("E1", ServiceClass.STANDARD, joined=T0)
    b = entry("E2", ServiceClass.PREMIUM, joined=T0 + MIN)
    waiting = [a, b]

    assert compare(b, a, deadline_at=None, now=T0) == -1
    assert position_of(a, waiting, deadline_at=None, now=T0) == 1
    assert position_of(b, waiting, deadline_at=None, now=T0) == 0


def test_aging_does_not_overtake_premium_within_an_hour():
    a = entry("E1", ServiceClass.STANDARD, joined=T0 - 60 * MIN)
    b = entry("E2", ServiceClass.PREMIUM, joined=T0)

    assert entry_score(a, deadline_at=None, now=T0) == 220
    assert entry_score(b, deadline_at=None, now=T0) == 500
    assert rank_entries([a, b], deadline_at=None, now=T0) == [b, a]


def test_equal_score_falls_back_to_fifo():
    # Same class; joined 10 seconds apart so aging floors to the same value.
    early = entry("E9", joined=T0 - 10)
    late = entry("E1", joined=T0)
    assert entry_score(early, deadline_at=None, now=T0) == entry_score(late, deadline_at=None, now=T0)
    assert compare(early, late, deadline_at=None, now=T0) == -1
    assert compare(late, early, deadline_at=None, now=T0) == 1


def test_full_tie_broken_by_lower_id():
    a = entry("E1")
    b = entry("E2")
    assert compare(a, b, deadline_at=None, now=T0) == -1
    assert compare(a, a, deadline_at=None, now=T0) == 0


def test_ordering_is_deterministic_regardless_of_input_order():
    classes = list(ServiceClass)
    rng = random.Random(7)
    entries = [
        entry(f"E{i:03d}", rng.choice(classes), joined=T0 - rng.randint(0, 3) * MIN, assist=rng.random() < 0.2)
        for i in range(40)
    ]
    now = T0 + 5 * MIN
    expected = rank_entries(entries, deadline_at=T0 + 60 * MIN, now=now)

    for seed in range(5):
        shuffled = entries[:]
        random.Random(seed).shuffle(shuffled)
        assert rank_entries(shuffled, deadline_at=T0 + 60 * MIN, now=now) == expected

    positions = [position_of(e, entries, deadline_at=T0 + 60 * MIN, now=now) for e in expected]
    assert positions == list(range(len(entries)))


def test_position_ignores_other_lines():
    mine = entry("E5", ServiceClass.STANDARD)
    other_line = entry("E1", ServiceClass.PREMIUM, line="FL200")
    assert position_of(mine, [mine, other_line], deadline_at=None, now=T0) == 0
