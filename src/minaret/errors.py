"""Error types for the interruption engine.

None of these are fatal to the hosting process. They are raised at the
call site, caught by the component that owns the step, logged and
recovered from locally.
"""


class MinaretError(Exception):
    """Base exception for interruption engine errors."""

    pass


class SchedulingError(MinaretError):
    """Raised when an event list cannot be scheduled.

    Covers empty lists, lists with no triggering events and malformed
    events (unknown time of day, missing name).
    """

    pass


class PlaybackCallbackError(MinaretError):
    """Raised when an external playback call fails.

    Wraps whatever the collaborator raised (or the exception its future
    resolved with) as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        state: str | None = None,
    ) -> None:
        """Initialize playback callback error.

        Args:
            message: Error message.
            operation: Name of the failed collaborator call (e.g. "pause").
            state: Sequence state the call was made from, if any.
        """
        super().__init__(message)
        self.operation = operation
        self.state = state


class InterruptTimeoutError(MinaretError):
    """Interrupt content ran out its assumed duration without signalling.

    This is informational: the sequencer treats it as completion.
    """

    def __init__(self, message: str, assumed_duration_ms: int) -> None:
        """Initialize timeout error.

        Args:
            message: Error message.
            assumed_duration_ms: The duration that elapsed.
        """
        super().__init__(message)
        self.assumed_duration_ms = assumed_duration_ms


__all__ = [
    "InterruptTimeoutError",
    "MinaretError",
    "PlaybackCallbackError",
    "SchedulingError",
]
