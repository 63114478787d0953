"""Edge detection and push-style signals."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class EdgeDetector:
    """Turns a stream of boolean states into rising and falling edges.

    Repeated states are ignored, so a source that reports "stalled" on
    every poll produces one rising edge.
    """

    def __init__(
        self,
        on_rise: Callable[[], None] | None = None,
        on_fall: Callable[[], None] | None = None,
        initial: bool = False,
    ) -> None:
        """Initialize detector.

        Args:
            on_rise: Called on an inactive -> active transition
            on_fall: Called on an active -> inactive transition
            initial: State assumed before the first update
        """
        self._on_rise = on_rise
        self._on_fall = on_fall
        self._state = initial

    @property
    def state(self) -> bool:
        """Last observed state."""
        return self._state

    def update(self, value: bool) -> bool:
        """Feed a new state.

        Args:
            value: Observed state

        Returns:
            True if the state changed
        """
        value = bool(value)
        if value == self._state:
            return False
        self._state = value
        if value:
            if self._on_rise is not None:
                self._on_rise()
        elif self._on_fall is not None:
            self._on_fall()
        return True


class ManualSignal:
    """Push-style signal.

    Adapters for native event sources call set() from their event
    handlers. Subscribers are only told about changes.
    """

    def __init__(self, initial: bool = False) -> None:
        """Initialize signal.

        Args:
            initial: Starting value
        """
        self._value = initial
        self._subscribers: list[Callable[[bool], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> bool:
        """Current value."""
        return self._value

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register for value changes."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def set(self, value: bool) -> None:
        """Publish a new value; no-op if unchanged."""
        with self._lock:
            value = bool(value)
            if value == self._value:
                return
            self._value = value
            subscribers = self._subscribers.copy()

        for callback in subscribers:
            callback(value)


__all__ = ["EdgeDetector", "ManualSignal"]
