"""Sliding-window request limiter for outbound provider calls."""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

import structlog

from exceptions import RateLimitError

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Reject calls once any window (burst, minute, hour, day) is full."""

    def __init__(
        self,
        *,
        per_minute: int = 60,
        per_hour: int = 1000,
        per_day: int = 10000,
        burst: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        # name -> (window seconds, limit)
        self.windows: Dict[str, Tuple[float, int]] = {
            "burst": (1.0, burst),
            "minute": (60.0, per_minute),
            "hour": (3600.0, per_hour),
            "day": (86400.0, per_day),
        }
        self._calls: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        horizon = max(span for span, _ in self.windows.values())
        while self._calls and now - self._calls[0] >= horizon:
            self._calls.popleft()

    def _count_since(self, cutoff: float) -> int:
        count = 0
        for ts in reversed(self._calls):
            if ts <= cutoff:
                break
            count += 1
        return count

    def acquire(self) -> None:
        """Record a call or raise ``RateLimitError`` naming the full window."""
        now = self._clock()
        self._prune(now)
        for name, (span, limit) in self.windows.items():
            if self._count_since(now - span) >= limit:
                logger.warning("rate_limit_exceeded", window=name, limit=limit)
                raise RateLimitError(f"Rate limit exceeded: {limit} requests per {name}")
        self._calls.append(now)

    def remaining(self) -> Dict[str, int]:
        now = self._clock()
        self._prune(now)
        return {
            name: max(0, limit - self._count_since(now - span))
            for name, (span, limit) in self.windows.items()
        }

    def reset(self) -> None:
        self._calls.clear()
