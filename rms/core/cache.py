from __future__ import annotations

import enum
import inspect
import json
import logging
import threading
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import redis
from redis import Redis

from rms.core.config import settings
from rms.core.redis import get_redis

logger = logging.getLogger("rms.cache")

Value = dict[str, Any]
Compute = Callable[[], Union[Value, Awaitable[Value]]]


class CacheTag(str, enum.Enum):
    """Invalidation domains. Writers publish one of these after a successful write."""

    ADMIN_STATS = "admin-stats"
    DASHBOARD_STATS = "dashboard-stats"
    SURVEY_DATA = "survey-data"
    SURVEYS = "surveys"
    PARTNER_MAPPINGS = "partner-mappings"
    USERS = "users"


def _tag_value(tag) -> str:
    return tag.value if isinstance(tag, CacheTag) else str(tag)


class MemoryBackend:
    """Process-local backend. Used when Redis is not reachable, and in tests.

    Every invalidation bumps a per-tag generation; `set` with `expected`
    generations stores nothing if any of them moved in the meantime.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._entries: dict[str, tuple[float, Value]] = {}
        self._tags: dict[str, set[str]] = defaultdict(set)
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Value]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def generations(self, tags: Iterable[str]) -> list[int]:
        with self._lock:
            return [self._generations.get(tag, 0) for tag in tags]

    def _prune(self, now: float) -> None:
        for key in [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]:
            del self._entries[key]
        for tag in list(self._tags):
            self._tags[tag].intersection_update(self._entries)
            if not self._tags[tag]:
                del self._tags[tag]

    def set(
        self,
        key: str,
        value: Value,
        ttl_seconds: int,
        tags: Iterable[str],
        expected: Optional[list[int]] = None,
    ) -> bool:
        tags = list(tags)
        with self._lock:
            if expected is not None and [self._generations.get(t, 0) for t in tags] != list(expected):
                return False
            now = self.clock()
            self._prune(now)
            self._entries[key] = (now + ttl_seconds, value)
            for tag in tags:
                self._tags[tag].add(key)
        return True

    def invalidate(self, tags: Iterable[str]) -> int:
        dropped = 0
        with self._lock:
            for tag in tags:
                self._generations[tag] = self._generations.get(tag, 0) + 1
                for key in self._tags.pop(tag, set()):
                    if self._entries.pop(key, None) is not None:
                        dropped += 1
        return dropped


class RedisBackend:
    """Shared backend.

    Values live under `<prefix>v:<key>`, tag membership in `<prefix>t:<tag>`
    sets and invalidation counters in `<prefix>g:<tag>`.
    """

    def __init__(self, client: Redis, prefix: str = "rms:cache:"):
        self.client = client
        self.prefix = prefix

    def _vkey(self, key: str) -> str:
        return f"{self.prefix}v:{key}"

    def _tkey(self, tag: str) -> str:
        return f"{self.prefix}t:{tag}"

    def _gkey(self, tag: str) -> str:
        return f"{self.prefix}g:{tag}"

    def get(self, key: str) -> Optional[Value]:
        raw = self.client.get(self._vkey(key))
        if raw is None:
            return None
        return json.loads(raw)

    def generations(self, tags: Iterable[str]) -> list[int]:
        gkeys = [self._gkey(t) for t in tags]
        if not gkeys:
            return []
        return [int(v or 0) for v in self.client.mget(gkeys)]

    def set(
        self,
        key: str,
        value: Value,
        ttl_seconds: int,
        tags: Iterable[str],
        expected: Optional[list[int]] = None,
    ) -> bool:
        tags = list(tags)
        vkey = self._vkey(key)
        gkeys = [self._gkey(t) for t in tags]
        with self.client.pipeline() as pipe:
            try:
                if expected is not None and gkeys:
                    # EXEC aborts if an invalidation bumps a counter after this point
                    pipe.watch(*gkeys)
                    if [int(v or 0) for v in pipe.mget(gkeys)] != list(expected):
                        return False
                pipe.multi()
                pipe.setex(vkey, ttl_seconds, json.dumps(value))
                for tag in tags:
                    pipe.sadd(self._tkey(tag), vkey)
                pipe.execute()
            except redis.WatchError:
                return False
        return True

    def invalidate(self, tags: Iterable[str]) -> int:
        dropped = 0
        for tag in tags:
            self.client.incr(self._gkey(tag))
            tkey = self._tkey(tag)
            members = list(self.client.smembers(tkey))
            if members:
                dropped += int(self.client.delete(*members))
            self.client.delete(tkey)
        return dropped


class StatsCache:
    """Time-bounded memoization of expensive aggregate computations.

    An entry is served while it is younger than its TTL and none of its tags
    have been invalidated since it was stored. A value whose tags were
    invalidated while it was being computed is returned to its caller but
    not stored. Backend errors degrade to a recompute; they never fail the
    caller.
    """

    def __init__(self, backend=None, ttl_seconds: int | None = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self.ttl_seconds = int(ttl_seconds or settings.STATS_CACHE_TTL_SECONDS)

    @classmethod
    def from_settings(cls) -> "StatsCache":
        r = get_redis()
        backend = RedisBackend(r) if r is not None else MemoryBackend()
        logger.info("Stats cache backend: %s", type(backend).__name__)
        return cls(backend, ttl_seconds=settings.STATS_CACHE_TTL_SECONDS)

    def _read(self, key: str) -> Optional[Value]:
        try:
            return self.backend.get(key)
        except (redis.RedisError, ValueError) as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None

    def _generations(self, tags: list[str]) -> Optional[list[int]]:
        try:
            return list(self.backend.generations(tags))
        except redis.RedisError as exc:
            logger.warning("Reading cache generations for %s failed: %s", tags, exc)
            return None

    def _write(self, key: str, value: Value, ttl_seconds: int, tags: list[str], expected: Optional[list[int]]) -> None:
        if expected is None:
            return
        try:
            stored = self.backend.set(key, value, ttl_seconds, tags, expected=expected)
        except (redis.RedisError, TypeError) as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
            return
        if not stored:
            logger.debug("Not caching %s: %s invalidated while it was computed", key, tags)

    async def get_cached(
        self,
        compute_fn: Compute,
        key: str,
        ttl_seconds: int | None = None,
        tags: Iterable = (),
    ) -> Value:
        names = [_tag_value(t) for t in tags]
        hit = self._read(key)
        if hit is not None:
            return hit

        expected = self._generations(names)
        value = compute_fn()
        if inspect.isawaitable(value):
            value = await value

        self._write(key, value, int(ttl_seconds or self.ttl_seconds), names, expected)
        return value

    async def get_with_fallback(
        self,
        compute_fn: Compute,
        key: str,
        fallback: Value,
        ttl_seconds: int | None = None,
        tags: Iterable = (),
    ) -> tuple[Value, bool]:
        """Like get_cached, but a failing computation returns `fallback` (never stored).

        Returns (value, is_fallback).
        """
        try:
            return await self.get_cached(compute_fn, key, ttl_seconds=ttl_seconds, tags=tags), False
        except Exception:
            logger.exception("Computing %s failed; serving fallback snapshot", key)
            return fallback, True

    def invalidate(self, tags: Iterable) -> int:
        names = [_tag_value(t) for t in tags]
        try:
            dropped = self.backend.invalidate(names)
        except redis.RedisError as exc:
            logger.warning("Cache invalidation failed for %s: %s", names, exc)
            dropped = 0
        logger.debug("Invalidated %s: %d entries dropped", names, dropped)
        return dropped
