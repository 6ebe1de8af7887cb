"""Minimum-interval request pacing for source adapters."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class Pacer:
    """Releases callers no faster than one per ``min_interval`` seconds.

    The first call to :meth:`wait` returns immediately. Each later call
    sleeps for whatever remains of the interval since the previous
    release. ``clock`` and ``sleep`` are injectable so tests can drive
    the pacer without real time passing.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_release: float | None = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the next slot is free. Returns seconds slept."""
        with self._lock:
            slept = 0.0
            now = self._clock()
            if self._last_release is not None:
                remaining = self._last_release + self.min_interval - now
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
                    now = max(self._clock(), self._last_release + self.min_interval)
            self._last_release = now
            return slept


class NullPacer(Pacer):
    """A pacer that never waits."""

    def __init__(self) -> None:
        super().__init__(0.0)

    def wait(self) -> float:
        return 0.0
