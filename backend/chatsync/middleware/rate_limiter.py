"""Simple in-memory rate limiter for the sync endpoints."""

import threading
import time
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

from chatsync.errors import RateLimitExceeded


class SimpleRateLimiter:
    """In-memory rate limiter with sliding window, keyed by user id.

    Users with no request inside the window are dropped, at most once per
    window, so the table only holds recently active users.
    """

    def __init__(self, limit: int, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        # user_id -> request timestamps inside the window
        self._requests: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        cutoff = now - self.window_seconds
        idle = [user_id for user_id, stamps in self._requests.items() if not stamps or stamps[-1] <= cutoff]
        for user_id in idle:
            del self._requests[user_id]

    def is_allowed(self, user_id: str) -> bool:
        """Record a request and report whether it fits under the limit."""
        now = self._clock()
        with self._lock:
            self._sweep(now)

            cutoff = now - self.window_seconds
            user_requests = [ts for ts in self._requests.get(user_id, ()) if ts > cutoff]

            if len(user_requests) >= self.limit:
                self._requests[user_id] = user_requests
                return False

            user_requests.append(now)
            self._requests[user_id] = user_requests
            return True

    def get_retry_after(self, user_id: str) -> Optional[int]:
        """Seconds until the next request is allowed (for 429 header)."""
        with self._lock:
            user_requests = self._requests.get(user_id)
            if not user_requests:
                return None
            oldest_in_window = user_requests[0]
        retry_after = int(oldest_in_window + self.window_seconds - self._clock())
        return max(1, retry_after)

    def check(self, user_id: str) -> None:
        """Raise :class:`RateLimitExceeded` when *user_id* is over its quota."""
        if not self.is_allowed(user_id):
            raise RateLimitExceeded(self.get_retry_after(user_id))

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()
