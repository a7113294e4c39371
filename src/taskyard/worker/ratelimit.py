"""Sliding-window limiter on job starts.

At most `max_starts` claims are allowed within any window of
`window_seconds`. The limiter is local to one worker process.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class ClaimRateLimiter:
    """Sliding-window rate limiter for job claims.

    Example:
        limiter = ClaimRateLimiter(max_starts=10, window_seconds=1.0)
        if limiter.try_acquire():
            job = await queue.claim(worker_id)
    """

    def __init__(
        self,
        max_starts: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_starts < 1:
            msg = "max_starts must be at least 1"
            raise ValueError(msg)
        if window_seconds <= 0:
            msg = "window_seconds must be positive"
            raise ValueError(msg)
        self.max_starts = max_starts
        self.window_seconds = window_seconds
        self._clock = clock
        self._starts: deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= self.window_seconds:
            self._starts.popleft()

    def try_acquire(self) -> bool:
        """Record a start if the window has room. Returns False otherwise."""
        now = self._clock()
        self._evict(now)
        if len(self._starts) >= self.max_starts:
            return False
        self._starts.append(now)
        return True

    def release_last(self) -> None:
        """Give back the most recent start (the claim found no job)."""
        if self._starts:
            self._starts.pop()

    def seconds_until_available(self) -> float:
        """Time until the next start is allowed (0 if allowed now)."""
        now = self._clock()
        self._evict(now)
        if len(self._starts) < self.max_starts:
            return 0.0
        return max(self._starts[0] + self.window_seconds - now, 0.0)

    @property
    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._starts)
