import random

import pytest

from echo_sandbox import delays
from echo_sandbox.directives import ResolvedDirectives
from echo_sandbox.rng import SharedRandom


def seeded(seed=7):
    return SharedRandom(random.Random(seed))


@pytest.mark.parametrize("value,expected", [
    ("250", 250),
    ("250ms", 250),
    (" 40 ms", 40),
    ("0", 0),
    ("999999", delays.MAX_DELAY_MS),
])
def test_fixed_delay_parses_and_clamps(value, expected):
    assert delays.fixed_delay(value) == expected


@pytest.mark.parametrize("value", ["abc", "-5", "1.5s", ""])
def test_fixed_delay_rejects_garbage(value):
    assert delays.fixed_delay(value) is None


def test_jitter_stays_within_base_plus_minus_variance():
    rng = seeded()
    seen = {delays.jitter_delay("50,50", rng) for _ in range(500)}
    assert min(seen) >= 0
    assert max(seen) <= 100
    # both halves of the window are reachable
    assert min(seen) < 50 < max(seen)


def test_jitter_with_zero_variance_is_exact():
    assert delays.jitter_delay("120,0", seeded()) == 120


@pytest.mark.parametrize("value", ["50", "50,x", "50,-1", "1,2,3"])
def test_jitter_rejects_malformed_pairs(value):
    assert delays.jitter_delay(value, seeded()) is None


def test_random_range_is_inclusive():
    rng = seeded()
    seen = {delays.random_range_delay("10,12", rng) for _ in range(200)}
    assert seen == {10, 11, 12}


def test_random_range_requires_min_not_above_max():
    assert delays.random_range_delay("20,10", seeded()) is None


def test_random_range_clamps_to_ceiling():
    value = delays.random_range_delay("400000,500000", seeded())
    assert value == delays.MAX_DELAY_MS


def test_exponential_backoff_window():
    rng = seeded()
    for _ in range(300):
        # 25 * 2^2 = 100, +/- 25%
        assert 75 <= delays.exponential_delay("25,3", rng) <= 125


def test_exponential_backoff_huge_attempt_is_clamped():
    rng = seeded()
    for _ in range(50):
        assert 0 <= delays.exponential_delay("10,1000000", rng) <= delays.MAX_DELAY_MS


@pytest.mark.parametrize("value", ["0,3", "25,0", "25", "a,b"])
def test_exponential_rejects_invalid_input(value):
    assert delays.exponential_delay(value, seeded()) is None


def test_latency_fixed_and_range():
    rng = seeded()
    assert delays.latency_delay("75ms", rng) == 75
    seen = {delays.latency_delay("5-7ms", rng) for _ in range(100)}
    assert seen == {5, 6, 7}
    assert delays.latency_delay("9-3ms", rng) is None
    assert delays.latency_delay("x-3ms", rng) is None


def test_first_parseable_family_wins():
    rng = seeded()
    d = ResolvedDirectives(delay="10", jitter="500,0", latency="900")
    assert delays.compute_delay(d, rng) == ("fixed", 10)


def test_parse_failure_falls_through_to_next_family():
    rng = seeded()
    d = ResolvedDirectives(delay="soon", jitter="nope", random_delay="30,30", latency="900")
    assert delays.compute_delay(d, rng) == ("random", 30)

    d = ResolvedDirectives(exponential="0,0", latency="15ms")
    assert delays.compute_delay(d, rng) == ("latency", 15)


def test_no_directives_means_no_delay():
    assert delays.compute_delay(ResolvedDirectives(), seeded()) is None


def test_simulator_sleeps_for_computed_duration(sleep):
    simulator = delays.DelaySimulator(seeded(), sleep=sleep)
    assert simulator.apply(ResolvedDirectives(delay="250ms")) == 250
    assert sleep.calls == [0.25]

    assert simulator.apply(ResolvedDirectives()) is None
    assert sleep.calls == [0.25]
