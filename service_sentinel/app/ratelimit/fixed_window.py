"""
Fixed-window rate limiter for the Sentinel gateway.

Each key (a service name, or ``agent:<name>``) owns one bucket holding a
count and the instant its window started. A window lasts 60 seconds and is
reset by the first request that arrives after it expired. This is a fixed
window, not a sliding one: a burst straddling a window boundary can admit up
to ``2 * limit`` requests in a short span.

Buckets are created lazily and never evicted. The key space is bounded by
configuration size (services plus agents), so memory stays bounded as long
as that holds.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from shared.logging import get_logger

WINDOW_MS = 60_000


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class RateBucket:
    """Request count for one key within the current window."""

    count: int
    window_start: float


class RateWindow:
    """In-process fixed-window request counter keyed by service or agent."""

    def __init__(self, clock: Optional[Callable[[], float]] = None, window_ms: int = WINDOW_MS):
        self.clock = clock if clock is not None else monotonic_ms
        self.window_ms = window_ms
        self.logger = get_logger("sentinel.rate_window")
        self._buckets: Dict[str, RateBucket] = {}
        self._lock = threading.Lock()

    def allow(self, key: str, limit_per_minute: Optional[int]) -> bool:
        """Count one request against ``key``; return False when over the limit.

        Denied requests are not counted. No limit (None or <= 0) always allows
        and creates no bucket.
        """
        if not limit_per_minute or limit_per_minute <= 0:
            return True

        with self._lock:
            now = self.clock()
            bucket = self._buckets.get(key)

            if bucket is None or now - bucket.window_start >= self.window_ms:
                self._buckets[key] = RateBucket(count=1, window_start=now)
                return True

            if bucket.count >= limit_per_minute:
                self.logger.warning(
                    "Rate limit exceeded",
                    key=key,
                    current_count=bucket.count,
                    limit=limit_per_minute,
                )
                return False

            bucket.count += 1
            return True

    def get_bucket(self, key: str) -> Optional[RateBucket]:
        """Return a copy of the bucket for ``key``, if one exists."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return None
            return RateBucket(count=bucket.count, window_start=bucket.window_start)

    def __len__(self) -> int:
        return len(self._buckets)
