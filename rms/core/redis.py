from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import redis
from redis import Redis

from rms.core.config import settings

logger = logging.getLogger("rms.redis")

_client: Optional[Redis] = None
_retry_at: float = 0.0
_lock = threading.Lock()


def _connect(url: str) -> Redis:
    timeout = settings.REDIS_SOCKET_TIMEOUT_SECONDS
    client = redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )
    client.ping()
    return client


def get_redis(url: Optional[str] = None) -> Optional[Redis]:
    """Shared Redis client, or None while Redis is unreachable.

    After a failed ping the next attempt waits REDIS_RETRY_SECONDS, so a
    missing Redis costs one timeout per window instead of one per call.
    """
    global _client, _retry_at
    if _client is not None:
        return _client
    with _lock:
        if _client is not None:
            return _client
        if time.monotonic() < _retry_at:
            return None
        try:
            _client = _connect(url or settings.REDIS_URL)
            logger.info("Connected to Redis")
        except redis.RedisError as exc:
            logger.warning("Redis unavailable: %s", exc)
            _retry_at = time.monotonic() + settings.REDIS_RETRY_SECONDS
            return None
    return _client


def redis_status() -> str:
    if _client is None:
        return "unavailable"
    try:
        _client.ping()
    except redis.RedisError:
        return "unreachable"
    return "ok"
