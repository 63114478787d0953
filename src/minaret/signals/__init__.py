"""Signal module for the interruption engine.

External boolean signals (stream stalled, speech in progress) are
consumed as edges. Sources with native events push through ManualSignal;
sources that only expose state are wrapped in PollingSignal.
"""

from collections.abc import Callable
from typing import Protocol


class Signal(Protocol):
    """Interface for an observable boolean signal."""

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register for value changes.

        Args:
            callback: Called with the new value on every change

        Returns:
            Function that removes the subscription
        """
        ...


from .edge import EdgeDetector, ManualSignal  # noqa: E402
from .polling import DEFAULT_POLL_INTERVAL_MS, PollingSignal  # noqa: E402

__all__ = [
    "DEFAULT_POLL_INTERVAL_MS",
    "EdgeDetector",
    "ManualSignal",
    "PollingSignal",
    "Signal",
]
