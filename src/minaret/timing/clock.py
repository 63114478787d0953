"""Threaded clock with a single dispatcher thread.

Timers are ``threading.Timer`` instances that only enqueue their handle.
One daemon thread pulls handles off the queue and runs them in order, so
every component callback runs on the same thread, one at a time.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable

from . import TimerHandle

logger = logging.getLogger(__name__)

DISPATCHER_JOIN_TIMEOUT_S: float = 2.0


class ThreadedClock:
    """Production clock backed by threading timers.

    Usage:
        clock = ThreadedClock()
        clock.start()
        handle = clock.call_later(3000, on_timeout)
        handle.cancel()
        clock.stop()

    Or as context manager:
        with ThreadedClock() as clock:
            ...
    """

    def __init__(self, name: str = "minaret-dispatcher") -> None:
        """Initialize clock.

        Args:
            name: Name of the dispatcher thread.
        """
        self._name = name
        self._queue: queue.Queue[TimerHandle | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        """Return True if the dispatcher thread is running."""
        return self._running

    def now_ms(self) -> float:
        """Return monotonic time in milliseconds."""
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback on the dispatcher after delay_ms milliseconds."""
        delay_ms = max(0.0, delay_ms)
        handle = TimerHandle(callback, self.now_ms() + delay_ms)
        if delay_ms == 0:
            self._queue.put(handle)
            return handle

        timer = threading.Timer(delay_ms / 1000.0, self._queue.put, args=(handle,))
        timer.daemon = True
        handle._attach_timer(timer)
        timer.start()
        return handle

    def call_soon(self, callback: Callable[[], None]) -> TimerHandle:
        """Run callback on the dispatcher as soon as possible."""
        return self.call_later(0, callback)

    def start(self) -> None:
        """Start the dispatcher thread.

        This method is idempotent.
        """
        with self._lock:
            if self._running:
                return
            self._running = True
            self._thread = threading.Thread(
                target=self._dispatch_loop,
                daemon=True,
                name=self._name,
            )
            self._thread.start()
            logger.debug("Dispatcher started")

    def stop(self) -> None:
        """Stop the dispatcher thread after the queued callbacks run.

        Timers still armed keep their threads but their handles are never
        dispatched.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._queue.put(None)
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=DISPATCHER_JOIN_TIMEOUT_S)
        logger.debug("Dispatcher stopped")

    def _dispatch_loop(self) -> None:
        """Run queued handles one at a time until stopped."""
        while True:
            handle = self._queue.get()
            if handle is None:
                break
            try:
                handle.run()
            except Exception:
                logger.exception("Unhandled error in dispatched callback")

    def __enter__(self) -> ThreadedClock:
        """Context manager entry - starts the dispatcher."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - stops the dispatcher."""
        self.stop()


__all__ = ["ThreadedClock"]
