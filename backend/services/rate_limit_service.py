from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from config import settings
from services.errors import TooManyRequests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    endpoint: str
    limit: int
    window_seconds: int


class InMemoryRateLimiter:
    """Sliding-window hit counter keyed by endpoint and caller.

    Keys whose newest hit has aged out of their window are swept at most once
    per ``sweep_interval`` seconds, so one-off callers do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: float = 1.0) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._windows: dict[str, int] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def check(self, *, key: str, limit: int, window_seconds: int) -> tuple[bool, int, int]:
        now = self._clock()
        window = max(int(window_seconds), 1)
        max_hits = max(int(limit), 1)
        with self._lock:
            self._sweep(now)
            bucket = self._hits.get(key) or deque()
            cutoff = now - window
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if len(bucket) >= max_hits:
                retry_after = int(max(bucket[0] + window - now, 1))
                return False, retry_after, 0
            bucket.append(now)
            self._hits[key] = bucket
            self._windows[key] = window
            remaining = max(max_hits - len(bucket), 0)
            return True, 0, remaining

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        expired = [
            key
            for key, bucket in self._hits.items()
            if not bucket or bucket[-1] <= now - self._windows.get(key, 0)
        ]
        for key in expired:
            self._hits.pop(key, None)
            self._windows.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._windows.clear()


_RATE_LIMITER = InMemoryRateLimiter()


def _hash_scope(scope_key: str) -> str:
    raw = (scope_key or "").encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:24]


def enforce_rate_limit(*, rule: RateLimitRule, scope_key: str, message: str | None = None) -> None:
    """Raise ``TooManyRequests`` once ``scope_key`` exceeds ``rule`` on its endpoint."""
    if not settings.RATE_LIMIT_ENABLED:
        return
    allowed, retry_after, _remaining = _RATE_LIMITER.check(
        key=f"{rule.endpoint}:{scope_key}",
        limit=rule.limit,
        window_seconds=rule.window_seconds,
    )
    if not allowed:
        logger.warning(
            "Rate limit hit on %s (scope=%s, retry_after=%ss)",
            rule.endpoint,
            _hash_scope(scope_key),
            retry_after,
        )
        raise TooManyRequests(message, retry_after=retry_after)


def reset_rate_limits() -> None:
    _RATE_LIMITER.reset()
