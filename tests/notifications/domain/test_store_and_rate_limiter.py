"""Tests for the in-process key-value store and the per-user rate limiter."""

import pytest
from notifications.notification.rate_limiter import KEY_PREFIX, RateLimiter
from notifications.store import MemoryStore, build_store


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def memory_store(clock):
    return MemoryStore(clock=clock)


class TestMemoryStore:
    def test_build_store_without_url_is_in_memory(self):
        assert isinstance(build_store(None), MemoryStore)

    def test_set_and_get(self, memory_store):
        memory_store.set("k", "v")
        assert memory_store.get("k") == "v"

    def test_values_expire_after_ttl(self, memory_store, clock):
        memory_store.set("k", "v", ttl_seconds=60)
        clock.advance(59)
        assert memory_store.get("k") == "v"
        clock.advance(1)
        assert memory_store.get("k") is None

    def test_delete_many(self, memory_store):
        memory_store.set("a", "1")
        memory_store.set("b", "2")
        memory_store.delete("a", "b", "missing")
        assert memory_store.get("a") is None
        assert memory_store.get("b") is None

    def test_window_ttl_is_set_by_the_first_increment_only(self, memory_store, clock):
        assert memory_store.increment_window("w", 10) == 1
        clock.advance(5)
        assert memory_store.increment_window("w", 10) == 2
        clock.advance(5)
        assert memory_store.increment_window("w", 10) == 1

    def test_hash_counters(self, memory_store):
        memory_store.hincrby("h", "total_sent")
        memory_store.hincrby("h", "total_sent", 2)
        memory_store.hincrby("h", "total_failed")
        assert memory_store.hgetall("h") == {"total_sent": 3, "total_failed": 1}

    def test_missing_hash_is_empty(self, memory_store):
        assert memory_store.hgetall("nope") == {}

    def test_flush(self, memory_store):
        memory_store.set("k", "v")
        memory_store.hincrby("h", "f")
        memory_store.flush()
        assert memory_store.get("k") is None
        assert memory_store.hgetall("h") == {}


class TestRateLimiter:
    def test_allows_up_to_the_limit(self, memory_store):
        limiter = RateLimiter(memory_store, limit=3, window_seconds=60)
        assert [limiter.check_and_increment("u1") for _ in range(4)] == [True, True, True, False]

    def test_limits_are_per_user(self, memory_store):
        limiter = RateLimiter(memory_store, limit=1, window_seconds=60)
        assert limiter.check_and_increment("u1") is True
        assert limiter.check_and_increment("u2") is True
        assert limiter.check_and_increment("u1") is False

    def test_window_resets_after_expiry(self, memory_store, clock):
        limiter = RateLimiter(memory_store, limit=1, window_seconds=60)
        limiter.check_and_increment("u1")
        assert limiter.check_and_increment("u1") is False
        clock.advance(60)
        assert limiter.check_and_increment("u1") is True

    def test_denied_calls_still_count(self, memory_store):
        limiter = RateLimiter(memory_store, limit=1, window_seconds=60)
        limiter.check_and_increment("u1")
        limiter.check_and_increment("u1")
        assert memory_store.get(f"{KEY_PREFIX}u1") == "2"

    def test_reset(self, memory_store):
        limiter = RateLimiter(memory_store, limit=1, window_seconds=60)
        limiter.check_and_increment("u1")
        limiter.reset("u1")
        assert limiter.check_and_increment("u1") is True
