"""Tests for core/cache.py: TTL memoization with tag invalidation."""
import asyncio

import pytest
import redis

from rms.core.cache import CacheTag, MemoryBackend, StatsCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class Counting:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return {"calls": self.calls}


class BrokenBackend:
    def get(self, key):
        raise redis.ConnectionError("down")

    def generations(self, tags):
        raise redis.ConnectionError("down")

    def set(self, key, value, ttl_seconds, tags, expected=None):
        raise redis.ConnectionError("down")

    def invalidate(self, tags):
        raise redis.ConnectionError("down")


def run(coro):
    return asyncio.run(coro)


class TestMemoryBackend:
    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        backend.set("k", {"v": 1}, 10, ["surveys"])
        clock.now += 9.9
        assert backend.get("k") == {"v": 1}
        clock.now += 0.2
        assert backend.get("k") is None

    def test_invalidate_only_drops_tagged_keys(self):
        backend = MemoryBackend()
        backend.set("a", {"v": 1}, 60, ["surveys"])
        backend.set("b", {"v": 2}, 60, ["users"])
        assert backend.invalidate(["surveys"]) == 1
        assert backend.get("a") is None
        assert backend.get("b") == {"v": 2}

    def test_set_drops_expired_entries_and_their_tags(self):
        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        for i in range(3):
            backend.set(f"dashboard:{i}", {"i": i}, 10, ["dashboard-stats"])
        clock.now += 11
        backend.set("fresh", {"i": 99}, 10, ["dashboard-stats"])
        assert list(backend._entries) == ["fresh"]
        assert dict(backend._tags) == {"dashboard-stats": {"fresh"}}

    def test_stale_generation_refuses_the_write(self):
        backend = MemoryBackend()
        assert backend.set("a", {"v": 1}, 60, ["surveys"], expected=[0]) is True
        backend.invalidate(["surveys"])
        assert backend.generations(["surveys", "users"]) == [1, 0]
        assert backend.set("b", {"v": 2}, 60, ["surveys"], expected=[0]) is False
        assert backend.get("b") is None


class TestStatsCache:
    def test_hit_skips_compute(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)
        compute = Counting()
        assert run(cache.get_cached(compute, "k")) == {"calls": 1}
        assert run(cache.get_cached(compute, "k")) == {"calls": 1}
        assert compute.calls == 1

    def test_async_compute_is_awaited(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)

        async def compute():
            return {"ok": True}

        assert run(cache.get_cached(compute, "k")) == {"ok": True}

    def test_invalidation_forces_recompute(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)
        compute = Counting()
        run(cache.get_cached(compute, "k", tags=[CacheTag.SURVEYS]))
        cache.invalidate([CacheTag.SURVEYS])
        assert run(cache.get_cached(compute, "k", tags=[CacheTag.SURVEYS])) == {"calls": 2}

    def test_unrelated_tag_keeps_entry(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)
        compute = Counting()
        run(cache.get_cached(compute, "k", tags=[CacheTag.SURVEYS]))
        cache.invalidate([CacheTag.USERS])
        assert run(cache.get_cached(compute, "k", tags=[CacheTag.SURVEYS])) == {"calls": 1}

    def test_invalidation_while_computing_is_not_cached(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)
        state = {"v": 1}

        def compute_then_write():
            value = dict(state)
            # a writer lands while the aggregate is being computed
            state["v"] = 2
            cache.invalidate([CacheTag.SURVEYS])
            return value

        assert run(cache.get_cached(compute_then_write, "k", tags=[CacheTag.SURVEYS])) == {"v": 1}
        assert run(cache.get_cached(lambda: dict(state), "k", tags=[CacheTag.SURVEYS])) == {"v": 2}

    def test_expiry_forces_recompute(self):
        clock = FakeClock()
        cache = StatsCache(MemoryBackend(clock=clock), ttl_seconds=30)
        compute = Counting()
        run(cache.get_cached(compute, "k"))
        clock.now += 31
        assert run(cache.get_cached(compute, "k")) == {"calls": 2}

    def test_fallback_is_returned_and_not_stored(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)

        def boom():
            raise RuntimeError("store unreachable")

        value, is_fallback = run(cache.get_with_fallback(boom, "k", fallback={"mock": True}))
        assert value == {"mock": True}
        assert is_fallback is True

        value, is_fallback = run(cache.get_with_fallback(Counting(), "k", fallback={"mock": True}))
        assert value == {"calls": 1}
        assert is_fallback is False

    def test_compute_errors_propagate_without_fallback(self):
        cache = StatsCache(MemoryBackend(), ttl_seconds=60)

        def boom():
            raise RuntimeError("store unreachable")

        with pytest.raises(RuntimeError):
            run(cache.get_cached(boom, "k"))

    def test_backend_errors_degrade_to_recompute(self):
        cache = StatsCache(BrokenBackend(), ttl_seconds=60)
        compute = Counting()
        assert run(cache.get_cached(compute, "k")) == {"calls": 1}
        assert run(cache.get_cached(compute, "k")) == {"calls": 2}
        assert cache.invalidate([CacheTag.SURVEYS]) == 0


class TestRedisClient:
    def test_unreachable_redis_is_not_pinged_every_call(self, monkeypatch):
        from rms.core import redis as redis_client

        attempts = []

        def refuse(url):
            attempts.append(url)
            raise redis.ConnectionError("refused")

        monkeypatch.setattr(redis_client, "_client", None)
        monkeypatch.setattr(redis_client, "_retry_at", 0.0)
        monkeypatch.setattr(redis_client, "_connect", refuse)

        assert redis_client.get_redis("redis://cache:6379/0") is None
        assert redis_client.get_redis("redis://cache:6379/0") is None
        assert attempts == ["redis://cache:6379/0"]
        assert redis_client.redis_status() == "unavailable"

    def test_from_settings_falls_back_to_memory(self, monkeypatch):
        from rms.core import cache as cache_module

        monkeypatch.setattr(cache_module, "get_redis", lambda: None)
        assert isinstance(StatsCache.from_settings().backend, MemoryBackend)
