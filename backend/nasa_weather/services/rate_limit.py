from __future__ import annotations

import math
from dataclasses import dataclass, field
from time import monotonic
from typing import Callable, NamedTuple


class RateLimitDecision(NamedTuple):
    allowed: bool
    remaining: int
    retry_after: int


@dataclass
class FixedWindowRateLimiter:
    """Per-client request counter over fixed windows, held in process memory.

    A client's window opens on its first request and admits ``max_requests``
    until ``window_seconds`` have passed.
    """

    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = field(default=monotonic)
    prune_threshold: int = 10_000
    _windows: dict[str, tuple[float, int]] = field(default_factory=dict, init=False, repr=False)

    def hit(self, key: str) -> RateLimitDecision:
        now = self.clock()
        if len(self._windows) > self.prune_threshold:
            self._prune(now)

        started_at, count = self._windows.get(key, (now, 0))
        if now - started_at >= self.window_seconds:
            started_at, count = now, 0

        retry_after = max(1, math.ceil(started_at + self.window_seconds - now))
        if count >= self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

        count += 1
        self._windows[key] = (started_at, count)
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count, retry_after=retry_after)

    def _prune(self, now: float) -> None:
        expired = [key for key, (started_at, _) in self._windows.items() if now - started_at >= self.window_seconds]
        for key in expired:
            del self._windows[key]
