"""Concrete cache backends."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable
from typing import Dict
from typing import Optional
from typing import Tuple

import redis

from chatsync.core.interfaces import CacheBackend

logger = logging.getLogger(__name__)


class RedisCacheBackend(CacheBackend):
    """Backend talking to a Redis server with ``SET ... EX`` expiry."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str, socket_timeout: float = 2.0) -> "RedisCacheBackend":
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        logger.info(f"Redis cache configured: {redis_url}")
        return cls(client)

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._client.set(key, value, ex=ttl_seconds)

    def delete(self, *keys: str) -> None:
        if keys:
            self._client.delete(*keys)

    def ping(self) -> bool:
        return bool(self._client.ping())

    def close(self) -> None:
        self._client.close()


class InMemoryCacheBackend(CacheBackend):
    """Process-local TTL dictionary for tests and single-process dev."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (self._clock() + ttl_seconds, value)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def ping(self) -> bool:
        return True

    def keys(self):
        """Snapshot of live keys (test helper)."""
        now = self._clock()
        with self._lock:
            return {k for k, (expires_at, _) in self._data.items() if now < expires_at}
