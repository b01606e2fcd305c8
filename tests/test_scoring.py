from boarding_queue.models import ServiceClass
from boarding_queue.scoring import priority_score

T0 = 1_700_000_000.0
MIN = 60.0


def score(service_class=ServiceClass.STANDARD, *, assist=False, joined=T0, deadline=None, now=T0):
    return priority_score(
        service_class=service_class,
        needs_assistance=assist,
        joined_at=joined,
        deadline_at=deadline,
        now=now,
    )


def test_base_score_per_class():
    assert score(ServiceClass.STANDARD) == 100
    assert score(ServiceClass.ELEVATED) == 300
    assert score(ServiceClass.PREMIUM) == 500


def test_assistance_bonus():
    assert score(ServiceClass.PREMIUM, assist=True) == 900


def test_aging_adds_two_points_per_minute_floored():
    assert score(joined=T0 - 60 * MIN) == 220
    # 30.4 minutes -> floor(60.8) = 60
    assert score(joined=T0 - 30.4 * MIN) == 160


def test_urgency_inside_window():
    # 30 minutes to departure -> (90 - 30) * 10
    assert score(deadline=T0 + 30 * MIN) == 700
    # window just opened -> small positive bonus
    assert score(deadline=T0 + 89.5 * MIN) == 105


def test_urgency_zero_outside_window():
    assert score(deadline=T0 + 90 * MIN) == 100
    assert score(deadline=T0 + 300 * MIN) == 100
    assert score(deadline=T0) == 100
    assert score(deadline=T0 - 5 * MIN) == 100


def test_score_non_decreasing_until_deadline():
    deadline = T0 + 120 * MIN
    joined = T0 - 10 * MIN
    previous = None
    now = joined
    while now < deadline:
        current = score(ServiceClass.ELEVATED, joined=joined, deadline=deadline, now=now)
        if previous is not None:
            assert current >= previous
        previous = current
        now += 37.0


def test_score_non_decreasing_without_deadline():
    values = [score(joined=T0, now=T0 + s) for s in range(0, 7200, 13)]
    assert values == sorted(values)
