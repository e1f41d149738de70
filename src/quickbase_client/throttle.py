import asyncio
import collections
import time
from typing import Union

from .types import ThrottleConfig


class SlidingWindowThrottle:
    """Client-side limiter for QuickBase's "N requests per window per token" rule.

    Optional: the server enforces the limit with 429s anyway; this just avoids
    hitting them.
    """

    def __init__(self, requests_per_window: int = 100, window: float = 10.0):
        if requests_per_window <= 0:
            raise ValueError("requests_per_window must be > 0")
        self.requests_per_window = requests_per_window
        self.window = window
        self._timestamps: collections.deque[float] = collections.deque()

    def _now(self) -> float:
        return time.monotonic()

    def _evict(self, now: float) -> None:
        start = now - self.window
        while self._timestamps and self._timestamps[0] <= start:
            self._timestamps.popleft()

    async def acquire(self) -> None:
        while True:
            now = self._now()
            self._evict(now)
            if len(self._timestamps) < self.requests_per_window:
                self._timestamps.append(now)
                return
            # wait for the oldest request to leave the window, then recheck
            await asyncio.sleep(self._timestamps[0] + self.window - now)

    def window_count(self) -> int:
        self._evict(self._now())
        return len(self._timestamps)

    def remaining(self) -> int:
        return max(0, self.requests_per_window - self.window_count())

    def reset(self) -> None:
        self._timestamps.clear()


class NoOpThrottle:
    async def acquire(self) -> None:
        return None

    def window_count(self) -> int:
        return 0

    def remaining(self) -> float:
        return float("inf")

    def reset(self) -> None:
        pass


Throttle = Union[SlidingWindowThrottle, NoOpThrottle]


def coerce_throttle(throttle: Union[object, None]) -> Throttle:
    """Turn None | ThrottleConfig | int | throttle instance into a throttle.

    Accepted inputs:
      - None            -> NoOpThrottle
      - ThrottleConfig  -> SlidingWindowThrottle with its settings
      - int             -> SlidingWindowThrottle(n) over the default 10s window
      - anything with an async ``acquire()`` (returned as-is)
    """
    if throttle is None:
        return NoOpThrottle()
    if isinstance(throttle, ThrottleConfig):
        return SlidingWindowThrottle(throttle.requests_per_window, throttle.window)
    if isinstance(throttle, bool):
        raise TypeError("throttle must be None, ThrottleConfig, int, or a throttle object")
    if isinstance(throttle, int):
        return SlidingWindowThrottle(throttle)
    if callable(getattr(throttle, "acquire", None)):
        return throttle
    raise TypeError("throttle must be None, ThrottleConfig, int, or a throttle object")
