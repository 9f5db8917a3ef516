"""
Per-process rate limiting.

- `allow_rate`: token bucket keyed by an arbitrary string (import uploads)
- `FixedWindowRateLimiter`: requests per client per window (`/api/**` middleware)
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class _Bucket:
    tokens: float
    updated: float


_buckets: dict[str, _Bucket] = {}
_buckets_lock = threading.Lock()


def allow_rate(key: str, capacity: int, refill_per_sec: float, clock: Callable[[], float] = time.monotonic) -> bool:
    now = clock()
    with _buckets_lock:
        bucket = _buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(capacity), updated=now)
            _buckets[key] = bucket
        else:
            elapsed = max(0.0, now - bucket.updated)
            bucket.tokens = min(float(capacity), bucket.tokens + elapsed * refill_per_sec)
            bucket.updated = now

        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            return True
        return False


def reset_rate_buckets() -> None:
    with _buckets_lock:
        _buckets.clear()


@dataclass
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch seconds


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int = 100,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = 300,
    ):
        self.limit = limit
        self.window = window_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._clients: dict[str, list] = {}  # key -> [window_start, count]
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateDecision:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)
            entry = self._clients.get(key)
            if entry is None or now - entry[0] > self.window:
                entry = [now, 0]
                self._clients[key] = entry
            entry[1] += 1
            count = entry[1]
            reset_at = int(entry[0] + self.window + 0.999)

        return RateDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=reset_at,
        )

    def _sweep(self, now: float) -> None:
        for key in [k for k, (start, _c) in self._clients.items() if now - start > self.window]:
            del self._clients[key]
        self._last_sweep = now

    def cleanup(self) -> None:
        with self._lock:
            self._sweep(self._clock())

    def reset(self) -> None:
        with self._lock:
            self._clients.clear()
