"""Unit tests for the in-memory window counter store."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import Mock

import pytest

from rate_governor.adapters.rate_limit.base import Rate
from rate_governor.adapters.rate_limit.in_memory import InMemoryWindowCounterStore

PER_MINUTE = Rate(limit=5, period=timedelta(seconds=60))


def test_first_observation_opens_window(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)

    counter = store.increment_and_get("k", PER_MINUTE)

    assert counter.count == 1
    assert counter.expires_at == 1060.0


def test_counts_increase_within_window(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)

    counts = []
    for step in range(10):
        clock.return_value = 1000.0 + step
        counts.append(store.increment_and_get("k", PER_MINUTE))

    assert [c.count for c in counts] == list(range(1, 11))
    assert {c.expires_at for c in counts} == {1060.0}


def test_store_does_not_interpret_limit(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)
    rate = Rate(limit=1, period=timedelta(seconds=60))

    store.increment_and_get("k", rate)
    assert store.increment_and_get("k", rate).count == 2


def test_window_rolls_over_exactly_at_expiry(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)
    for _ in range(7):
        store.increment_and_get("k", PER_MINUTE)

    clock.return_value = 1060.0
    counter = store.increment_and_get("k", PER_MINUTE)

    assert counter.count == 1
    assert counter.expires_at == 1120.0


def test_window_rollover_anchors_on_call_time(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)
    store.increment_and_get("k", PER_MINUTE)

    clock.return_value = 1234.5
    counter = store.increment_and_get("k", PER_MINUTE)

    assert counter.count == 1
    assert counter.expires_at == 1294.5


def test_just_before_expiry_still_counts(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)
    store.increment_and_get("k", PER_MINUTE)

    clock.return_value = 1059.999
    counter = store.increment_and_get("k", PER_MINUTE)

    assert counter.count == 2
    assert counter.expires_at == 1060.0


def test_isolated_by_key(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)

    store.increment_and_get("k1", PER_MINUTE)
    store.increment_and_get("k1", PER_MINUTE)

    assert store.increment_and_get("k2", PER_MINUTE).count == 1


def test_peek_does_not_count(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock)

    assert store.peek("k") is None
    store.increment_and_get("k", PER_MINUTE)

    assert store.peek("k").count == 1
    assert store.peek("k").count == 1


def test_rejects_empty_key() -> None:
    store = InMemoryWindowCounterStore()

    with pytest.raises(ValueError):
        store.increment_and_get("", PER_MINUTE)


def test_invalid_sweep_interval() -> None:
    with pytest.raises(ValueError):
        InMemoryWindowCounterStore(sweep_interval_seconds=0)


def test_sweep_expired_removes_only_expired_entries(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock, sweep_interval_seconds=None)
    short = Rate(limit=1, period=timedelta(seconds=10))
    store.increment_and_get("short", short)
    store.increment_and_get("long", PER_MINUTE)

    clock.return_value = 1010.0
    removed = store.sweep_expired()

    assert removed == 1
    assert len(store) == 1
    assert store.peek("short") is None
    assert store.peek("long") is not None


def test_opportunistic_sweep_runs_after_interval(clock: Mock) -> None:
    store = InMemoryWindowCounterStore(clock=clock, sweep_interval_seconds=120)
    for i in range(5):
        store.increment_and_get(f"idle-{i}", PER_MINUTE)

    clock.return_value = 1100.0
    store.increment_and_get("active", PER_MINUTE)
    assert len(store) == 6

    clock.return_value = 1120.0
    store.increment_and_get("active", PER_MINUTE)
    assert len(store) == 1


def test_concurrent_increments_are_exactly_once() -> None:
    store = InMemoryWindowCounterStore()
    rate = Rate(limit=1, period=timedelta(hours=1))
    calls = 500

    def hit(_: int) -> int:
        return store.increment_and_get("shared", rate).count

    with ThreadPoolExecutor(max_workers=16) as pool:
        counts = list(pool.map(hit, range(calls)))

    assert sorted(counts) == list(range(1, calls + 1))
    assert store.peek("shared").count == calls
