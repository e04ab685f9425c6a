"""Per-connection send throttle using a sliding window."""

import time
from collections import defaultdict
from typing import Callable, Dict, List


class SendThrottle:
    """
    Sliding window limiter keyed by socket id.

    Each accepted send records a timestamp; a send is refused once the
    window already holds `limit` timestamps.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._sends: Dict[str, List[float]] = defaultdict(list)

    def allow(self, key: str) -> bool:
        """Record a send for `key` if under the limit."""
        now = self._clock()
        window_start = now - self.window_seconds

        recent = [ts for ts in self._sends[key] if ts > window_start]
        if len(recent) >= self.limit:
            self._sends[key] = recent
            return False

        recent.append(now)
        self._sends[key] = recent
        return True

    def forget(self, key: str):
        self._sends.pop(key, None)

    def clear(self):
        self._sends.clear()
