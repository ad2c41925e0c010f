"""Repaint coalescing for the interactive scene."""

import logging
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_FRAME_MS = 16

# (delay_seconds, callback) -> handle with .cancel()
TimerFactory = Callable[[float, Callable[[], None]], Any]


class RepaintScheduler:
    """
    At most one pending repaint per frame.

    Without a timer factory the owner drives it by calling flush(); with one,
    the timer fires the repaint. Either way nothing runs after cancel()/close().
    """

    def __init__(
        self,
        repaint: Callable[[], None],
        frame_ms: float = DEFAULT_FRAME_MS,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory | None = None,
    ):
        self.repaint = repaint
        self.frame_seconds = frame_ms / 1000
        self.clock = clock
        self.timer_factory = timer_factory
        self.requests = 0
        self.repaints = 0
        self._due: float | None = None
        self._timer = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._due is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def request(self):
        """Ask for a repaint. Requests inside one frame coalesce."""
        if self._closed:
            return
        self.requests += 1
        if self._due is not None:
            return
        self._due = self.clock() + self.frame_seconds
        if self.timer_factory is not None:
            self._timer = self.timer_factory(self.frame_seconds, self._fire)

    def flush(self, force: bool = False) -> bool:
        """Run the pending repaint if its frame is due (or force). Returns True if it ran."""
        if self._closed or self._due is None:
            return False
        if not force and self.clock() < self._due:
            return False
        self._run()
        return True

    def cancel(self):
        """Drop the pending repaint, if any."""
        self._due = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self):
        self.cancel()
        self._closed = True

    def _fire(self):
        if self._closed or self._due is None:
            return
        self._run()

    def _run(self):
        self._due = None
        self._timer = None
        self.repaints += 1
        self.repaint()

    def __enter__(self) -> "RepaintScheduler":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
