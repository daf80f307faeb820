"""
Simple in-process rate limiting utilities.

The nearby-search endpoint is rate limited per seeker so a client cannot scrape the
editor map by sweeping centers and radii. Limits are per process (best-effort);
a multi-worker deployment should put a shared limiter in front of the API.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


@dataclass
class TokenBucketRateLimiter:
    """Token bucket limiter for N events per minute (non-blocking)."""

    max_per_minute: float
    burst: float | None = None

    def __post_init__(self) -> None:
        rpm = float(self.max_per_minute)
        if rpm <= 0:
            raise ValueError("max_per_minute must be > 0")
        self._capacity = float(self.burst) if self.burst is not None else rpm
        self._tokens = self._capacity
        self._refill_per_sec = rpm / 60.0
        self._last = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last
        if elapsed <= 0:
            return
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_per_sec)
        self._last = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Take `tokens` if available and return True; otherwise leave the bucket untouched."""
        need = float(tokens)
        if need <= 0:
            return True
        self._refill()
        if self._tokens >= need:
            self._tokens -= need
            return True
        return False

    def retry_after_seconds(self, tokens: float = 1.0) -> float:
        self._refill()
        missing = max(0.0, float(tokens) - self._tokens)
        return missing / self._refill_per_sec

    def is_full(self) -> bool:
        """True when the bucket has refilled to capacity (indistinguishable from a new one)."""
        self._refill()
        return self._tokens >= self._capacity


@dataclass
class KeyedRateLimiter:
    """One token bucket per key (e.g. per authenticated user id).

    Every `sweep_every` acquisitions, buckets that have refilled completely are dropped,
    so idle users do not accumulate.
    """

    max_per_minute: float
    burst: float | None = None
    sweep_every: int = 256
    _calls: int = field(default=0, init=False, repr=False)
    _buckets: dict[str, TokenBucketRateLimiter] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucketRateLimiter(max_per_minute=self.max_per_minute, burst=self.burst)
                self._buckets[key] = bucket
            allowed = bucket.try_acquire()
            self._calls += 1
            if self._calls % self.sweep_every == 0:
                self._sweep()
            return allowed

    def _sweep(self) -> None:
        idle = [key for key, bucket in self._buckets.items() if bucket.is_full()]
        for key in idle:
            del self._buckets[key]

    def retry_after_seconds(self, key: str) -> float:
        with self._lock:
            bucket = self._buckets.get(key)
            return bucket.retry_after_seconds() if bucket else 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
