"""Manual clock for testing.

Provides a deterministic Clock whose time only moves when told to, so
ramp ticks, watchdog timeouts and schedule triggers can be stepped
through exactly.
"""

import heapq
import itertools
from collections.abc import Callable

from . import TimerHandle


class ManualClock:
    """Virtual clock advanced explicitly by tests.

    Nothing runs inside call_later or call_soon. Callbacks run when
    advance() or run_pending() reaches their due time, in (due time,
    insertion) order.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        """Initialize manual clock.

        Args:
            start_ms: Initial clock reading in milliseconds
        """
        self._now_ms = start_ms
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()

    def now_ms(self) -> float:
        """Return the current virtual time."""
        return self._now_ms

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Schedule callback at now + delay_ms."""
        handle = TimerHandle(callback, self._now_ms + max(0.0, delay_ms))
        heapq.heappush(self._heap, (handle.due_ms, next(self._counter), handle))
        return handle

    def call_soon(self, callback: Callable[[], None]) -> TimerHandle:
        """Schedule callback at the current time."""
        return self.call_later(0, callback)

    def advance(self, ms: float) -> int:
        """Move time forward, running every callback that comes due.

        Args:
            ms: Milliseconds to advance

        Returns:
            Number of callbacks run
        """
        target = self._now_ms + ms
        ran = 0
        while self._heap and self._heap[0][0] <= target:
            due, _, handle = heapq.heappop(self._heap)
            if not handle.pending:
                continue
            self._now_ms = max(self._now_ms, due)
            handle.run()
            ran += 1
        self._now_ms = target
        return ran

    def run_pending(self) -> int:
        """Run callbacks due at the current time without advancing."""
        return self.advance(0)

    @property
    def pending_count(self) -> int:
        """Number of handles still waiting to fire."""
        return sum(1 for _, _, handle in self._heap if handle.pending)

    @property
    def next_due_ms(self) -> float | None:
        """Due time of the earliest pending handle, if any."""
        pending = [due for due, _, handle in self._heap if handle.pending]
        return min(pending) if pending else None


__all__ = ["ManualClock"]
