"""Polling adapter for state-only signal sources.

Some sources (speech synthesis, certain players) expose a boolean but no
events. PollingSignal reads the boolean on a fixed interval and
publishes only the changes.
"""

import logging
from collections.abc import Callable

from ..timing import Clock, TimerHandle
from .edge import ManualSignal

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS: int = 100


class PollingSignal:
    """Signal derived by polling a reader function.

    Usage:
        speaking = PollingSignal(lambda: synth.speaking, clock)
        speaking.subscribe(on_change)
        speaking.start()
    """

    def __init__(
        self,
        read: Callable[[], bool],
        clock: Clock,
        interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> None:
        """Initialize polling signal.

        Args:
            read: Returns the current state of the source
            clock: Clock to schedule polls on
            interval_ms: Milliseconds between polls
        """
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be > 0, got {interval_ms}")
        self._read = read
        self._clock = clock
        self._interval_ms = interval_ms
        self._signal = ManualSignal()
        self._handle: TimerHandle | None = None

    @property
    def is_running(self) -> bool:
        """Return True if polling is active."""
        return self._handle is not None

    @property
    def value(self) -> bool:
        """Last published value."""
        return self._signal.value

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register for value changes."""
        return self._signal.subscribe(callback)

    def start(self) -> None:
        """Start polling. Idempotent."""
        if self._handle is not None:
            return
        self._handle = self._clock.call_later(self._interval_ms, self._poll)

    def stop(self) -> None:
        """Stop polling. Idempotent."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _poll(self) -> None:
        try:
            value = bool(self._read())
        except Exception as e:
            logger.warning(f"Signal read failed, keeping last value: {e}")
            value = self._signal.value

        self._signal.set(value)
        if self._handle is not None:
            self._handle = self._clock.call_later(self._interval_ms, self._poll)


__all__ = ["DEFAULT_POLL_INTERVAL_MS", "PollingSignal"]
