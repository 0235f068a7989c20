"""
Tests for the TTL result cache.

Covers: key rendering, TTL expiry with lazy eviction, identity
invalidation, retention sweeps, tagged lookups, write serialisation and
lock release.
"""
import asyncio
from datetime import timedelta

import pytest

from pipeline.result_cache import CacheKey, MemoryCacheBackend, ResultCache


@pytest.fixture
def cache(clock):
    return ResultCache(default_ttl=timedelta(hours=24), clock=clock)


def run(coro):
    return asyncio.run(coro)


# ─── Keys ─────────────────────────────────────────────────────


class TestCacheKey:

    def test_str_format(self):
        assert str(ResultCache.make_key("u1", "dairy", "pain")) == "correlation:u1:dairy:pain"

    def test_extras_appended(self):
        key = ResultCache.make_key("u1", "dairy", "pain", "rank", "30d", 24)
        assert key.extra == ("rank", "30d", "24")
        assert str(key) == "correlation:u1:dairy:pain:rank:30d:24"

    def test_keys_are_hashable_and_comparable(self):
        assert CacheKey("u1", "a", "b") == ResultCache.make_key("u1", "a", "b")
        assert len({CacheKey("u1", "a", "b"), ResultCache.make_key("u1", "a", "b")}) == 1


# ─── get / set / TTL ─────────────────────────────────────────


class TestGetSet:

    def test_round_trip(self, cache):
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            await cache.set(key, {"score": 12.5})
            return await cache.get(key)

        assert run(scenario()) == {"score": 12.5}

    def test_miss_is_none(self, cache):
        assert run(cache.get(cache.make_key("u1", "x", "y"))) is None

    def test_entry_expires_after_ttl(self, cache, clock):
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            await cache.set(key, "v")
            clock.advance(hours=23, minutes=59)
            fresh = await cache.get(key)
            clock.advance(minutes=1)
            stale = await cache.get(key)
            return fresh, stale

        assert run(scenario()) == ("v", None)

    def test_expired_entry_evicted_on_read(self, clock):
        backend = MemoryCacheBackend()
        cache = ResultCache(backend=backend, default_ttl=timedelta(hours=1), clock=clock)
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            await cache.set(key, "v")
            clock.advance(hours=2)
            await cache.get(key)
            return await backend.get(key)

        assert run(scenario()) is None

    def test_custom_ttl(self, cache, clock):
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            await cache.set(key, "v", ttl=timedelta(minutes=5))
            clock.advance(minutes=6)
            return await cache.get(key)

        assert run(scenario()) is None

    def test_zero_ttl_is_honoured(self, cache, t0):
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            entry = await cache.set(key, "v", ttl=timedelta(0))
            return entry, await cache.get(key)

        entry, value = run(scenario())
        assert entry.expires_at == entry.computed_at == t0
        assert value is None

    def test_set_stamps_computed_at(self, cache, clock, t0):
        entry = run(cache.set(cache.make_key("u1", "a", "b"), 1))
        assert entry.computed_at == t0
        assert entry.expires_at == t0 + timedelta(hours=24)

    def test_concurrent_writes_last_one_wins(self, cache):
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            await asyncio.gather(*(cache.set(key, i) for i in range(5)))
            return await cache.get(key)

        assert run(scenario()) == 4


# ─── Invalidation ────────────────────────────────────────────


class TestInvalidation:

    def _populate(self, cache):
        async def scenario():
            await cache.set(cache.make_key("u1", "dairy", "pain"), 1)
            await cache.set(cache.make_key("u1", "dairy", "pain", "rank", "30d"), 2)
            await cache.set(cache.make_key("u1", "dairy", "itch"), 3)
            await cache.set(cache.make_key("u1", "gluten", "pain"), 4)
            await cache.set(cache.make_key("u2", "dairy", "pain"), 5)
        run(scenario())

    def test_invalidate_pair_covers_all_extras(self, cache):
        self._populate(cache)
        assert run(cache.invalidate("u1", "dairy", "pain")) == 2
        assert run(cache.get(cache.make_key("u1", "dairy", "itch"))) == 3

    def test_invalidate_by_cause(self, cache):
        self._populate(cache)
        assert run(cache.invalidate_by_cause("u1", "dairy")) == 3
        assert run(cache.get(cache.make_key("u1", "gluten", "pain"))) == 4
        assert run(cache.get(cache.make_key("u2", "dairy", "pain"))) == 5

    def test_invalidate_by_effect(self, cache):
        self._populate(cache)
        assert run(cache.invalidate_by_effect("u1", "pain")) == 3
        assert run(cache.get(cache.make_key("u1", "dairy", "itch"))) == 3

    def test_invalidate_user(self, cache):
        self._populate(cache)
        assert run(cache.invalidate_user("u1")) == 4
        assert run(cache.stats()) == {"total": 1, "expired": 0, "active": 1}

    def test_locks_released_with_entries(self, cache):
        async def scenario():
            for i in range(1000):
                await cache.set(cache.make_key("u1", "item-%d" % i, "pain"), i)
            await cache.set(cache.make_key("u2", "dairy", "pain"), 1)
            await cache.invalidate_user("u1")

        run(scenario())
        assert list(cache._locks) == [cache.make_key("u2", "dairy", "pain")]

    def test_locks_released_on_expiry(self, cache, clock):
        key = cache.make_key("u1", "dairy", "pain")

        async def scenario():
            await cache.set(key, "v", ttl=timedelta(minutes=1))
            clock.advance(minutes=2)
            return await cache.get(key)

        assert run(scenario()) is None
        assert cache._locks == {}


# ─── Sweeps and lookups ──────────────────────────────────────


class TestSweeps:

    def test_cleanup_expired(self, cache, clock):
        async def scenario():
            await cache.set(cache.make_key("u1", "a", "b"), 1, ttl=timedelta(hours=1))
            await cache.set(cache.make_key("u1", "c", "d"), 2)
            clock.advance(hours=2)
            before = await cache.stats("u1")
            removed = await cache.cleanup_expired()
            return before, removed, await cache.stats("u1")

        before, removed, after = run(scenario())
        assert before == {"total": 2, "expired": 1, "active": 1}
        assert removed == 1
        assert after == {"total": 1, "expired": 0, "active": 1}

    def test_delete_older_than(self, cache, clock, t0):
        async def scenario():
            await cache.set(cache.make_key("u1", "old", "x"), 1)
            clock.advance(days=8)
            await cache.set(cache.make_key("u1", "new", "x"), 2)
            return await cache.delete_older_than("u1", clock() - timedelta(days=7))

        assert run(scenario()) == 1
        assert run(cache.get(cache.make_key("u1", "new", "x"))) == 2

    def test_latest_computed_at_by_tag(self, cache, clock, t0):
        async def scenario():
            await cache.set(cache.make_key("u1", "a", "b", "rank", "7d"), 1)
            clock.advance(hours=1)
            await cache.set(cache.make_key("u1", "c", "d"), 2)
            return (
                await cache.latest_computed_at("u1", tag="rank"),
                await cache.latest_computed_at("u1"),
                await cache.latest_computed_at("u2"),
            )

        assert run(scenario()) == (t0, t0 + timedelta(hours=1), None)

    def test_values_filtered_by_tag(self, cache):
        async def scenario():
            await cache.set(cache.make_key("u1", "a", "b", "rank"), "ranked")
            await cache.set(cache.make_key("u1", "a", "b"), "window")
            return await cache.values("u1", tag="rank"), sorted(await cache.values("u1"))

        assert run(scenario()) == (["ranked"], ["ranked", "window"])
