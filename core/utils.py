"""
Utility helpers used across the app.
"""

import threading
import time
from collections import deque
from typing import Deque


class FPSCounter:
    """Frames per second over the last N frame intervals."""

    def __init__(self, rolling_size: int = 30) -> None:
        self._last_time: float | None = None
        self._intervals: Deque[float] = deque(maxlen=rolling_size)

    def tick(self) -> float:
        """Call once per frame. Returns the rolling FPS."""
        now = time.perf_counter()
        if self._last_time is not None:
            self._intervals.append(now - self._last_time)
        self._last_time = now
        total = sum(self._intervals)
        return len(self._intervals) / total if total > 0 else 0.0

    def reset(self) -> None:
        self._last_time = None
        self._intervals.clear()


class ThreadAffinity:
    """Remembers the creating thread; check() fails when called from any other."""

    def __init__(self) -> None:
        self._ident = threading.get_ident()

    def is_current(self) -> bool:
        return threading.get_ident() == self._ident

    def check(self, what: str) -> None:
        if not self.is_current():
            raise RuntimeError(
                f"{what} called from thread {threading.get_ident()}, "
                f"owner is {self._ident}"
            )
