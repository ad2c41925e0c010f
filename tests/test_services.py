import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from pinforge.clients import MemoryCache
from pinforge.services import CacheService, LockService, ProgressService, RateLimiter, render_lock_key
from pinforge.services.locks import UNTRACKED


# ---------------------------------------------------------------------------
# Memory cache


def test_memory_cache_expiry(cache, clock):
    cache.set("k", "v", ex=10)
    assert cache.get("k") == "v"
    clock.advance(9)
    assert cache.ttl("k") == pytest.approx(1)
    clock.advance(1)
    assert cache.get("k") is None


def test_memory_cache_set_nx(cache):
    assert cache.set("k", "first", nx=True)
    assert not cache.set("k", "second", nx=True)
    assert cache.get("k") == "first"


# ---------------------------------------------------------------------------
# Progress


def test_start_resets_counters(progress):
    progress.start("c1", 10)
    progress.increment("c1", "completed")
    progress.add_error("c1", 3, "boom")

    progress.start("c1", 4)
    record = progress.get_progress("c1")
    assert (record.total, record.completed, record.failed) == (4, 0, 0)
    assert record.status == "processing"
    assert record.started_at is not None
    assert record.errors == []


class CountingCache(MemoryCache):
    """Counts successful terminal-marker claims."""

    def __init__(self):
        super().__init__()
        self.terminal_claims = 0

    def set(self, key, value, ex=None, nx=False):
        claimed = super().set(key, value, ex=ex, nx=nx)
        if claimed and key.endswith(":terminal"):
            self.terminal_claims += 1
        return claimed


def test_concurrent_increments_transition_to_failed_once():
    cache = CountingCache()
    progress = ProgressService(cache)
    progress.start("c1", 100)

    fields = ["completed"] * 63 + ["failed"] * 37
    with ThreadPoolExecutor(max_workers=16) as executor:
        list(executor.map(lambda field: progress.increment("c1", field), fields))

    record = progress.get_progress("c1")
    assert (record.completed, record.failed) == (63, 37)
    assert record.status == "failed"
    assert record.percentage == 100
    assert record.completed_at is not None
    assert cache.terminal_claims == 1


def test_all_completed_turns_completed(progress):
    progress.start("c1", 3)
    for _ in range(3):
        record = progress.increment("c1", "completed")
    assert record.status == "completed"
    assert progress.get_progress("c1").status == "completed"


def test_terminal_status_is_not_rewritten(progress):
    progress.start("c1", 1)
    progress.increment("c1", "completed")
    first = progress.get_progress("c1").completed_at

    # a late duplicate does not win the terminal marker again
    progress.increment("c1", "failed")
    record = progress.get_progress("c1")
    assert record.status == "completed"
    assert record.completed_at == first


def test_unknown_counter_is_rejected(progress):
    with pytest.raises(ValueError):
        progress.increment("c1", "skipped")


def test_errors_are_recorded_in_order(progress, cache):
    progress.start("c1", 5)
    progress.add_error("c1", 1, "bad image")
    progress.add_error("c1", 4, "upload failed")
    assert progress.get_progress("c1").errors == [
        {"row": 1, "error": "bad image"},
        {"row": 4, "error": "upload failed"},
    ]
    assert json.loads(cache.lrange("progress:c1:errors", 0, -1)[0])["row"] == 1


def test_progress_expires(progress, clock):
    progress.start("c1", 5)
    clock.advance(progress.ttl + 1)
    assert progress.get_progress("c1") is None


def test_clear_progress(progress):
    progress.start("c1", 5)
    progress.clear_progress("c1")
    assert progress.get_progress("c1") is None


def test_progress_without_backend_is_a_no_op():
    progress = ProgressService(None)
    progress.start("c1", 5)
    assert progress.increment("c1", "completed") is None
    assert progress.get_progress("c1") is None


def test_progress_fails_open_on_backend_errors(broken_cache):
    progress = ProgressService(broken_cache)
    progress.start("c1", 5)
    progress.add_error("c1", 0, "x")
    assert progress.increment("c1", "completed") is None
    assert progress.get_progress("c1") is None


# ---------------------------------------------------------------------------
# Locks


def test_only_one_acquire_wins(locks):
    key = render_lock_key("c1")
    with ThreadPoolExecutor(max_workers=8) as executor:
        tokens = list(executor.map(lambda _: locks.acquire(key), range(8)))
    assert sum(1 for token in tokens if token) == 1
    assert locks.is_campaign_rendering("c1")


def test_release_frees_the_lock(locks):
    token = locks.acquire("render:c1")
    assert token
    locks.release("render:c1", token)
    assert not locks.is_locked("render:c1")
    assert locks.acquire("render:c1")


def test_crashed_holder_lock_expires(cache, clock):
    locks = LockService(cache, ttl=300)
    assert locks.acquire("render:c1")
    clock.advance(299)
    assert not locks.acquire("render:c1")
    clock.advance(1)
    assert locks.acquire("render:c1")


def test_expired_holder_cannot_release_successor(cache, clock):
    locks = LockService(cache, ttl=300)
    stale = locks.acquire("render:c1")
    clock.advance(300)
    fresh = locks.acquire("render:c1")
    assert fresh and fresh != stale

    locks.release("render:c1", stale)
    assert locks.is_locked("render:c1")
    locks.release("render:c1", fresh)
    assert not locks.is_locked("render:c1")


def test_locks_fail_open(broken_cache):
    locks = LockService(broken_cache)
    assert locks.acquire("render:c1")
    assert not locks.is_locked("render:c1")
    locks.release("render:c1", UNTRACKED)

    assert LockService(None).acquire("render:c1")


# ---------------------------------------------------------------------------
# Rate limiting


def test_rate_limit_window(cache, clock):
    limiter = RateLimiter(cache, max_requests=3, window_seconds=60, clock=clock)
    assert [limiter.check("render:c1") for _ in range(4)] == [True, True, True, False]
    assert limiter.check("render:c2")

    clock.advance(61)
    assert limiter.check("render:c1")


def test_rate_limit_fails_open(broken_cache):
    assert RateLimiter(broken_cache, max_requests=1).check("render:c1")
    assert RateLimiter(None, max_requests=0).check("render:c1")


# ---------------------------------------------------------------------------
# Read-through cache


def test_cache_get_reads_through_once(cache):
    service = CacheService(cache)
    calls = []

    def fetch():
        calls.append(1)
        return {"url": "https://fonts.example.com/brand.ttf"}

    assert service.cache_get("fonts:custom:Brand", fetch, 60) == {"url": "https://fonts.example.com/brand.ttf"}
    assert service.cache_get("fonts:custom:Brand", fetch, 60) == {"url": "https://fonts.example.com/brand.ttf"}
    assert len(calls) == 1


def test_cache_invalidate_pattern(cache):
    service = CacheService(cache)
    service.cache_get("fonts:a", lambda: 1)
    service.cache_get("fonts:b", lambda: 2)
    service.cache_get("templates:a", lambda: 3)
    assert service.cache_invalidate_pattern("fonts:*") == 2
    assert cache.keys("*") == ["templates:a"]

    service.cache_invalidate("templates:a")
    assert cache.get("templates:a") is None


def test_cache_errors_fall_through_to_fetcher(broken_cache):
    assert CacheService(broken_cache).cache_get("k", lambda: "fresh") == "fresh"
    assert CacheService(None).cache_get("k", lambda: "fresh") == "fresh"


def test_memory_cache_is_shared_between_services():
    cache = MemoryCache()
    ProgressService(cache).start("c1", 2)
    assert ProgressService(cache).get_progress("c1").total == 2
