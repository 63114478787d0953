"""Timing module for the interruption engine.

Every wait in the engine goes through a Clock: a cancellable timer that
hands its callback to a single dispatcher, so callbacks never run
concurrently with one another.

Usage:
    # Production: timers on threads, callbacks on one dispatcher thread
    clock = ThreadedClock()
    clock.start()

    # Testing: virtual time, advanced explicitly
    from minaret.timing.mock import ManualClock
"""

import threading
from collections.abc import Callable
from typing import Protocol


class TimerHandle:
    """A scheduled callback that can be cancelled.

    Cancelling drops the callback reference, so a handle that was already
    handed to the dispatcher is skipped instead of run.
    """

    def __init__(self, callback: Callable[[], None], due_ms: float) -> None:
        """Initialize handle.

        Args:
            callback: Function to run when the handle fires
            due_ms: Clock time at which the handle is due
        """
        self._callback: Callable[[], None] | None = callback
        self._due_ms = due_ms
        self._cancelled = False
        self._fired = False
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def due_ms(self) -> float:
        """Clock time at which the handle is due."""
        return self._due_ms

    @property
    def cancelled(self) -> bool:
        """Return True if the handle was cancelled before firing."""
        return self._cancelled

    @property
    def fired(self) -> bool:
        """Return True if the callback has run."""
        return self._fired

    @property
    def pending(self) -> bool:
        """Return True if the handle can still fire."""
        return not (self._cancelled or self._fired)

    def cancel(self) -> bool:
        """Cancel the handle.

        Returns:
            True if this call cancelled it, False if it had already fired
            or been cancelled.
        """
        with self._lock:
            if self._cancelled or self._fired:
                return False
            self._cancelled = True
            self._callback = None
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()
        return True

    def run(self) -> None:
        """Run the callback unless cancelled. Called by the dispatcher."""
        with self._lock:
            if self._cancelled or self._fired:
                return
            self._fired = True
            callback = self._callback
            self._callback = None
            self._timer = None
        if callback is not None:
            callback()

    def _attach_timer(self, timer: threading.Timer) -> None:
        self._timer = timer


class Clock(Protocol):
    """Interface for time and cancellable timers.

    Implementations must run callbacks one at a time.
    """

    def now_ms(self) -> float:
        """Return monotonic time in milliseconds."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback after delay_ms milliseconds.

        Args:
            delay_ms: Delay in milliseconds; negative values are treated as 0
            callback: Function to run on the dispatcher

        Returns:
            Handle that can cancel the callback
        """
        ...

    def call_soon(self, callback: Callable[[], None]) -> TimerHandle:
        """Run callback on the dispatcher as soon as possible."""
        ...


from .clock import ThreadedClock  # noqa: E402

__all__ = ["Clock", "ThreadedClock", "TimerHandle"]
