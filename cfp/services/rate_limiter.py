"""In-memory rate limiting for auth and setup endpoints."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict

# sweep idle buckets once this many keys are tracked
_SWEEP_THRESHOLD = 10000


@dataclass
class _Bucket:
    timestamps: Deque[float] = field(default_factory=deque)


class InMemoryRateLimiter:
    """Sliding-window limiter. State is per process; not shared between instances."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}

    def _prune(self, key: str, now: float, window_seconds: int) -> _Bucket:
        bucket = self._buckets.setdefault(key, _Bucket())
        cutoff = now - window_seconds
        while bucket.timestamps and bucket.timestamps[0] <= cutoff:
            bucket.timestamps.popleft()
        return bucket

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        with self._lock:
            if len(self._buckets) > _SWEEP_THRESHOLD:
                self._sweep(now, window_seconds)
            bucket = self._prune(key, now, window_seconds)
            if len(bucket.timestamps) >= limit:
                return False
            bucket.timestamps.append(now)
            return True

    def remaining(self, key: str, limit: int, window_seconds: int) -> int:
        with self._lock:
            bucket = self._prune(key, time.time(), window_seconds)
            return max(0, limit - len(bucket.timestamps))

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    def _sweep(self, now: float, window_seconds: int) -> None:
        cutoff = now - window_seconds
        idle = [k for k, b in self._buckets.items() if not b.timestamps or b.timestamps[-1] <= cutoff]
        for key in idle:
            del self._buckets[key]


rate_limiter = InMemoryRateLimiter()
