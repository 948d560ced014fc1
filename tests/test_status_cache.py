"""Tests for status_cache.py — single-slot TTL cache."""

import threading

import pytest

from conftest import FakeClock
from pueue_bridge.errors import CacheLockError
from pueue_bridge.status_cache import StatusCache


@pytest.fixture
def cache(clock):
    return StatusCache(clock=clock)


class TestStatusCache:
    def test_empty_cache_misses(self, cache):
        assert cache.get() is None

    def test_hit_within_ttl(self, cache, clock):
        cache.store({"tasks": {}}, {"groups": {}}, "5381:0")
        clock.advance(0.3)
        entry = cache.get()
        assert entry is not None
        assert entry.payload == {"tasks": {}}
        assert entry.digest == "5381:0"

    def test_hit_exactly_at_ttl(self, cache, clock):
        cache.store({}, {}, "d")
        clock.advance(0.5)
        assert cache.get() is not None

    def test_miss_after_ttl(self, cache, clock):
        cache.store({}, {}, "d")
        clock.advance(0.51)
        assert cache.get() is None

    def test_store_replaces_entry(self, cache, clock):
        cache.store({"n": 1}, {}, "first")
        clock.advance(0.4)
        cache.store({"n": 2}, {}, "second")
        clock.advance(0.4)
        entry = cache.get()
        assert entry.digest == "second"
        assert entry.captured_at == pytest.approx(clock.now - 0.4)

    def test_custom_ttl(self):
        clock = FakeClock()
        cache = StatusCache(ttl=5, clock=clock)
        cache.store({}, {}, "d")
        clock.advance(4)
        assert cache.get() is not None

    def test_lock_timeout_raises(self):
        cache = StatusCache(lock_timeout=0.01)
        cache._lock.acquire()
        try:
            with pytest.raises(CacheLockError, match="Status cache lock failed"):
                cache.get()
        finally:
            cache._lock.release()

    def test_concurrent_stores_last_writer_wins(self, cache):
        barrier = threading.Barrier(8)

        def writer(n):
            barrier.wait()
            cache.store({"n": n}, {}, str(n))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        entry = cache.get()
        assert entry is not None
        assert entry.payload == {"n": int(entry.digest)}
