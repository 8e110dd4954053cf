"""Shared key/value store used for cached counters and rate-limit windows.

Production deployments use Redis so every worker process sees the same
values. The in-memory store keeps the same contract for tests and
single-process development.
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Final, Protocol

import redis

from forum_stage.core.settings import Settings, settings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Operations the post action services need from the shared cache."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def list_range(self, key: str) -> list[str]: ...

    def list_push_trim(self, key: str, value: str, max_len: int, ttl_seconds: int) -> None: ...

    def list_pop_head(self, key: str) -> None: ...


class RedisStore:
    """Redis-backed implementation of :class:`KeyValueStore`."""

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        return cls(redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> str | None:
        value = self._redis.get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._redis.set(key, value, ex=ttl_seconds)

    def delete(self, key: str) -> None:
        self._redis.delete(key)

    def list_range(self, key: str) -> list[str]:
        return [str(item) for item in self._redis.lrange(key, 0, -1)]

    def list_push_trim(self, key: str, value: str, max_len: int, ttl_seconds: int) -> None:
        # Set value and expiry atomically
        pipe = self._redis.pipeline()
        pipe.lpush(key, value)
        pipe.ltrim(key, 0, max_len - 1)
        pipe.expire(key, int(ttl_seconds))
        pipe.execute()

    def list_pop_head(self, key: str) -> None:
        self._redis.lpop(key)


class MemoryStore:
    """Process-local store with TTL support, guarded by a lock."""

    def __init__(self) -> None:
        self._values: dict[str, tuple[object, float | None]] = {}
        self._lock = Lock()

    def _live(self, key: str) -> object | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if expiry is not None and expiry < time.time():
            self._values.pop(key, None)
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            value = self._live(key)
            return value if isinstance(value, str) else None

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expiry = time.time() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._values[key] = (str(value), expiry)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def list_range(self, key: str) -> list[str]:
        with self._lock:
            value = self._live(key)
            return list(value) if isinstance(value, list) else []

    def list_push_trim(self, key: str, value: str, max_len: int, ttl_seconds: int) -> None:
        with self._lock:
            current = self._live(key)
            items = list(current) if isinstance(current, list) else []
            items.insert(0, value)
            self._values[key] = (items[:max_len], time.time() + ttl_seconds)

    def list_pop_head(self, key: str) -> None:
        with self._lock:
            current = self._live(key)
            if isinstance(current, list) and current:
                current.pop(0)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()


class FlaggedCountCache:
    """Cached number of posts waiting in the flag queue.

    Written by whichever request last recomputed the total; readers accept
    a value that may be a few requests stale.
    """

    KEY: Final[str] = "posts_flagged_count"

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def read(self) -> int:
        value = self._store.get(self.KEY)
        try:
            return int(value) if value is not None else 0
        except ValueError:
            logger.warning("Ignoring malformed %s value: %r", self.KEY, value)
            return 0

    def write(self, total: int) -> None:
        self._store.set(self.KEY, str(int(total)))

    def invalidate(self) -> None:
        self._store.delete(self.KEY)


_STORE: KeyValueStore | None = None


def build_store(config: Settings) -> KeyValueStore:
    """Create the store selected by ``CACHE_BACKEND``."""
    if config.cache_backend == "memory":
        return MemoryStore()
    return RedisStore.from_url(config.redis_url)


def get_store() -> KeyValueStore:
    """Return the process-wide key/value store."""
    global _STORE
    if _STORE is None:
        _STORE = build_store(settings)
    return _STORE
