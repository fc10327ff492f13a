"""Unit tests for flohub.cache."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from flohub.cache import EventCache, time_of_day_bucket
from flohub.events.models import AggregationResult

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> EventCache:
    return EventCache(ttl_seconds=60, max_size=2, clock=clock)


@pytest.mark.parametrize(
    ("hour", "bucket"),
    [(4, "night"), (5, "morning"), (11, "morning"), (12, "afternoon"), (17, "evening"), (22, "night")],
)
def test_time_of_day_bucket_when_hour_then_bucket(hour: int, bucket: str) -> None:
    assert time_of_day_bucket(datetime(2025, 6, 2, hour, 30, tzinfo=timezone.utc)) == bucket


def test_time_of_day_bucket_when_timezone_given_then_local_hour_used() -> None:
    # 14:00 UTC is 10:00 in New York
    now = datetime(2025, 6, 2, 14, 0, tzinfo=timezone.utc)

    assert time_of_day_bucket(now, ZoneInfo("America/New_York")) == "morning"


def test_get_when_entry_fresh_then_hit(cache: EventCache) -> None:
    key = cache.generate_key("alice", {"timeMin": "a"}, "morning")
    result = AggregationResult(total_sources=1)
    cache.set(key, result)

    assert cache.get(key) is result
    assert cache.get_stats()["hits"] == 1


def test_get_when_ttl_elapsed_then_miss(cache: EventCache, clock: FakeClock) -> None:
    key = cache.generate_key("alice", {}, "morning")
    cache.set(key, AggregationResult())
    clock.now += 61

    assert cache.get(key) is None
    assert cache.get_stats()["current_size"] == 0


def test_generate_key_when_params_reordered_then_same_key(cache: EventCache) -> None:
    first = cache.generate_key("alice", {"a": 1, "b": 2}, "night")
    second = cache.generate_key("alice", {"b": 2, "a": 1}, "night")

    assert first == second
    assert first != cache.generate_key("alice", {"a": 1, "b": 2}, "morning")


def test_invalidate_user_when_called_then_only_that_user_dropped(cache: EventCache) -> None:
    alice = cache.generate_key("alice", {}, "morning")
    bob = cache.generate_key("bob", {}, "morning")
    cache.set(alice, AggregationResult())
    cache.set(bob, AggregationResult())

    cache.invalidate_user("alice")

    assert cache.get(alice) is None
    assert cache.get(bob) is not None
    assert cache.generate_key("alice", {}, "morning") != alice


def test_set_when_full_then_oldest_evicted(cache: EventCache) -> None:
    keys = [cache.generate_key("alice", {"n": n}, "morning") for n in range(3)]
    for key in keys:
        cache.set(key, AggregationResult())

    assert cache.get(keys[0]) is None
    assert cache.get(keys[2]) is not None
    assert cache.get_stats()["evictions"] == 1


def test_set_when_ttl_zero_then_disabled(clock: FakeClock) -> None:
    cache = EventCache(ttl_seconds=0, clock=clock)
    key = cache.generate_key("alice", {}, "morning")
    cache.set(key, AggregationResult())

    assert cache.get(key) is None
