"""Sliding-window request counter keyed by tenant."""

import time
from collections import deque
from typing import Callable


class SlidingWindowRateLimiter:
    """Allows at most ``max_requests`` per ``window_sec`` for each key.

    ``allows`` only looks; ``record`` consumes budget. The gate checks
    first and records only once every other check has passed, so a
    rejected request never spends budget.
    """

    def __init__(
        self,
        max_requests: int,
        window_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max = max_requests
        self._window = window_sec
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}

    def _prune(self, key: str, now: float) -> deque[float]:
        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= self._window:
            hits.popleft()
        return hits

    def allows(self, key: str) -> bool:
        return len(self._prune(key, self._clock())) < self._max

    def record(self, key: str) -> None:
        now = self._clock()
        self._prune(key, now).append(now)

    def remaining(self, key: str) -> int:
        return max(0, self._max - len(self._prune(key, self._clock())))

    def reset(self, key: str) -> None:
        self._hits.pop(key, None)
