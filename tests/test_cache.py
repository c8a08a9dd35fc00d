"""
Tests for the analytics cache, its backends and the refresh scheduler.
"""
import pickle
import threading
import time

import pytest

from irec_analytics.cache import (
    DEFAULT_TTLS,
    AnalyticsCache,
    CacheEntry,
    MemoryCacheBackend,
    RedisCacheBackend,
    RefreshScheduler,
    build_backend,
)
from irec_analytics.errors import CacheUnavailable
from irec_analytics.models import DatasetKind


class BrokenBackend(MemoryCacheBackend):
    """Backend whose every operation fails"""

    def get(self, key):
        raise CacheUnavailable("down")

    def set(self, key, entry, ttl_seconds):
        raise CacheUnavailable("down")

    def keys(self):
        raise CacheUnavailable("down")


@pytest.fixture
def cache(fake_clock):
    return AnalyticsCache(clock=fake_clock)


class TestExpiry:

    def test_hit_within_ttl(self, cache, fake_clock):
        cache.set(DatasetKind.MARKET_DATA, "p1", {"price": 40})
        fake_clock.advance(59)
        assert cache.get(DatasetKind.MARKET_DATA, "p1") == {"price": 40}

    def test_miss_after_ttl(self, cache, fake_clock):
        cache.set(DatasetKind.MARKET_DATA, "p1", {"price": 40})
        fake_clock.advance(60)
        assert cache.get(DatasetKind.MARKET_DATA, "p1") is None

    def test_kinds_expire_independently(self, cache, fake_clock):
        cache.set(DatasetKind.REAL_TIME_STATS, "k", 1)
        cache.set(DatasetKind.CERTIFICATES, "k", 2)
        fake_clock.advance(31)
        assert cache.get(DatasetKind.REAL_TIME_STATS, "k") is None
        assert cache.get(DatasetKind.CERTIFICATES, "k") == 2

    def test_default_ttls(self):
        assert DEFAULT_TTLS[DatasetKind.REAL_TIME_STATS] == 30
        assert DEFAULT_TTLS[DatasetKind.PAYMENT_METHODS] == 120
        assert DEFAULT_TTLS[DatasetKind.HISTORICAL] == 900

    def test_ttl_override(self, fake_clock):
        cache = AnalyticsCache(ttls={DatasetKind.SUPPLY: 5}, clock=fake_clock)
        cache.set(DatasetKind.SUPPLY, "k", "v")
        fake_clock.advance(5)
        assert cache.get(DatasetKind.SUPPLY, "k") is None

    def test_purge_expired(self, cache, fake_clock):
        cache.set(DatasetKind.REAL_TIME_STATS, "a", 1)
        cache.set(DatasetKind.HISTORICAL, "b", 2)
        fake_clock.advance(100)
        assert cache.purge_expired() == 1
        assert cache.stats().entries == 1


class TestOperations:

    def test_get_or_compute_runs_once(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return ["result"]

        first = cache.get_or_compute(DatasetKind.TOKENIZATION, "all", compute)
        second = cache.get_or_compute(DatasetKind.TOKENIZATION, "all", compute)
        assert first is second
        assert len(calls) == 1

    def test_cached_none_is_a_hit(self, cache):
        calls = []
        cache.get_or_compute(DatasetKind.SUPPLY, "n", lambda: calls.append(1))
        cache.get_or_compute(DatasetKind.SUPPLY, "n", lambda: calls.append(1))
        assert len(calls) == 1

    def test_last_writer_wins(self, cache):
        cache.set(DatasetKind.SUPPLY, "k", "old")
        cache.set(DatasetKind.SUPPLY, "k", "new")
        assert cache.get(DatasetKind.SUPPLY, "k") == "new"
        assert cache.stats().entries == 1

    def test_clear_by_kind(self, cache):
        cache.set(DatasetKind.SUPPLY, "a", 1)
        cache.set(DatasetKind.MARKET_DATA, "a", 2)
        cache.clear(DatasetKind.SUPPLY)
        assert cache.get(DatasetKind.SUPPLY, "a") is None
        assert cache.get(DatasetKind.MARKET_DATA, "a") == 2
        cache.clear()
        assert cache.stats().entries == 0

    def test_eviction_drops_closest_to_expiry(self, fake_clock):
        cache = AnalyticsCache(max_entries=10, clock=fake_clock)
        cache.set(DatasetKind.REAL_TIME_STATS, "short", 0)
        for i in range(9):
            cache.set(DatasetKind.HISTORICAL, f"long{i}", i)
        cache.set(DatasetKind.HISTORICAL, "newest", 99)

        stats = cache.stats()
        assert stats.entries == 10
        assert stats.evictions == 1
        assert cache.get(DatasetKind.REAL_TIME_STATS, "short") is None
        assert cache.get(DatasetKind.HISTORICAL, "newest") == 99

    def test_stats(self, cache):
        cache.set(DatasetKind.SUPPLY, "a", 1)
        cache.get(DatasetKind.SUPPLY, "a")
        cache.get(DatasetKind.SUPPLY, "missing")
        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.by_kind["supply"] == 1
        assert stats.hit_rate == pytest.approx(50.0)


class TestUnavailableBackend:

    def test_falls_back_to_compute(self, fake_clock):
        cache = AnalyticsCache(clock=fake_clock, backend=BrokenBackend())
        assert cache.get(DatasetKind.SUPPLY, "a") is None
        assert cache.get_or_compute(DatasetKind.SUPPLY, "a", lambda: 42) == 42
        stats = cache.stats()
        assert stats.errors >= 2
        assert stats.entries == 0


class TestRedisBackend:

    def test_round_trip_with_native_ttl(self, fake_redis, fake_clock):
        cache = AnalyticsCache(clock=fake_clock, backend=RedisCacheBackend(fake_redis))
        cache.set(DatasetKind.MARKET_DATA, "p1", {"price": "40.00"})
        assert cache.get(DatasetKind.MARKET_DATA, "p1") == {"price": "40.00"}
        assert fake_redis.expiries["irec:cache:market_data:p1"] == 60

    def test_keys_strip_prefix(self, fake_redis):
        backend = RedisCacheBackend(fake_redis)
        backend.set("supply:a", CacheEntry(value=1, stored_at=0, expires_at=10), 10)
        assert backend.keys() == ["supply:a"]

    def test_corrupt_entry_is_a_miss(self, fake_redis, fake_clock):
        cache = AnalyticsCache(clock=fake_clock, backend=RedisCacheBackend(fake_redis))
        fake_redis.store["irec:cache:supply:k"] = b"\x00garbage"
        assert cache.get(DatasetKind.SUPPLY, "k") is None
        assert cache.stats().errors >= 1
        assert cache.get_or_compute(DatasetKind.SUPPLY, "k", lambda: 7) == 7
        assert cache.get(DatasetKind.SUPPLY, "k") == 7

    def test_foreign_object_is_rejected(self, fake_redis):
        backend = RedisCacheBackend(fake_redis)
        fake_redis.store["irec:cache:supply:k"] = pickle.dumps({"value": 1})
        with pytest.raises(CacheUnavailable):
            backend.get("supply:k")

    def test_no_url_uses_memory(self):
        assert isinstance(build_backend(None), MemoryCacheBackend)

    def test_unreachable_redis_uses_memory(self):
        assert isinstance(build_backend("redis://127.0.0.1:1/0"), MemoryCacheBackend)


class TestRefreshScheduler:

    def test_tick_runs_callback(self):
        calls = []
        scheduler = RefreshScheduler(lambda: calls.append(1), interval=3600)
        assert scheduler.tick()
        assert calls == [1]

    def test_overlapping_tick_is_skipped(self):
        results = []
        scheduler = None

        def callback():
            results.append(scheduler.tick())

        scheduler = RefreshScheduler(callback, interval=3600)
        scheduler.tick()
        assert results == [False]
        assert scheduler.skipped == 1
        assert scheduler.ticks == 1

    def test_failing_callback_is_logged(self):
        def callback():
            raise RuntimeError("boom")

        scheduler = RefreshScheduler(callback, interval=3600)
        assert scheduler.tick()
        assert scheduler.ticks == 0

    def test_restart_replaces_timer(self):
        scheduler = RefreshScheduler(lambda: None, interval=3600)
        scheduler.start()
        first = scheduler._timer
        scheduler.start(1800)
        try:
            assert first.finished.is_set()
            assert scheduler._timer is not first
            assert scheduler.interval == 1800
            assert scheduler.is_running
        finally:
            scheduler.stop()
        assert not scheduler.is_running

    def test_timer_chain_rearms_until_stopped(self):
        calls = []
        second = threading.Event()

        def callback():
            calls.append(threading.current_thread().name)
            if len(calls) >= 2:
                second.set()

        scheduler = RefreshScheduler(callback, interval=0.05, name="irec-test-refresh")
        scheduler.start()
        try:
            assert second.wait(timeout=5)
        finally:
            scheduler.stop()
        assert not scheduler.is_running
        assert set(calls) == {"irec-test-refresh"}

        time.sleep(0.1)
        settled = len(calls)
        time.sleep(0.3)
        assert len(calls) == settled
        assert scheduler.ticks == settled
