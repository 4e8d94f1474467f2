"""Best-effort JSON cache facade.

The cache is advisory: every backend failure is logged and swallowed so a
dead Redis only costs latency, never correctness.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from typing import Callable
from typing import Optional
from typing import TypeVar

from chatsync.cache.keys import TTLClass
from chatsync.cache.keys import TTLPolicy
from chatsync.core.interfaces import CacheBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Cache:
    def __init__(self, backend: Optional[CacheBackend] = None, ttl: Optional[TTLPolicy] = None):
        self.backend = backend
        self.ttl = ttl or TTLPolicy()

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    # Primitive operations ---------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value or *None* on miss / error."""
        if self.backend is None:
            return None
        try:
            raw = self.backend.get(key)
        except Exception as e:  # noqa: BLE001 – cache is best-effort
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping undecodable cache entry {key}")
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl_class: TTLClass) -> None:
        if self.backend is None:
            return
        try:
            self.backend.set(key, json.dumps(value), self.ttl.seconds(ttl_class))
        except Exception as e:  # noqa: BLE001 – cache is best-effort
            logger.warning(f"Cache set failed for {key}: {e}")

    def delete(self, *keys: str) -> None:
        if self.backend is None or not keys:
            return
        try:
            self.backend.delete(*keys)
        except Exception as e:  # noqa: BLE001 – cache is best-effort
            logger.warning(f"Cache delete failed for {', '.join(keys)}: {e}")

    # Read-through ------------------------------------------------------

    def get_or_set(
        self,
        key: str,
        ttl_class: TTLClass,
        loader: Callable[[], Optional[T]],
        dump: Callable[[T], Any],
        load: Callable[[Any], T],
    ) -> Optional[T]:
        """Return the cached value for *key* or load, store and return it.

        *None* from *loader* is returned but never stored.
        """
        cached = self.get(key)
        if cached is not None:
            try:
                return load(cached)
            except Exception as e:  # noqa: BLE001 – stale schema in cache
                logger.warning(f"Discarding unreadable cache entry {key}: {e}")
                self.delete(key)

        value = loader()
        if value is not None:
            self.set(key, dump(value), ttl_class)
        return value

    # Lifecycle ---------------------------------------------------------

    def available(self) -> bool:
        if self.backend is None:
            return False
        try:
            return self.backend.ping()
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Cache ping failed: {e}")
            return False

    def close(self) -> None:
        if self.backend is None:
            return
        try:
            self.backend.close()
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Cache close failed: {e}")
