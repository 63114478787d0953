"""Audio channel protocols and command normalisation.

Defines the narrow interfaces the engine consumes. Playback backends
(Spotify, local files, streams) implement these outside the engine.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, Protocol

from ..errors import PlaybackCallbackError

logger = logging.getLogger(__name__)

MIN_VOLUME: float = 0.0
MAX_VOLUME: float = 100.0


class VolumeSink(Protocol):
    """Anything whose volume can be set, 0-100."""

    @property
    def name(self) -> str:
        """Channel identifier, unique per audio output."""
        ...

    def set_volume(self, volume: float) -> None:
        """Apply a volume level.

        Args:
            volume: Volume in the range 0-100

        Raises:
            Exception: If the backend rejects the change
        """
        ...


class AudioChannel(VolumeSink, Protocol):
    """Interface for a controllable playback channel.

    Queries are synchronous. Commands may return None when done, return a
    Future that completes (or fails) later, or raise.
    """

    @property
    def is_playing(self) -> bool:
        """Return True if audio is currently playing."""
        ...

    def get_volume(self) -> float:
        """Return the current volume, 0-100."""
        ...

    def play(self) -> "Future[Any] | None":
        """Start playback from the current position."""
        ...

    def pause(self) -> "Future[Any] | None":
        """Pause playback, keeping the position."""
        ...

    def resume(self) -> "Future[Any] | None":
        """Resume paused playback."""
        ...

    def stop(self) -> "Future[Any] | None":
        """Hard stop: pause and rewind to the start."""
        ...


class LoopingChannel(AudioChannel, Protocol):
    """Channel that can be loaded with a looping source (fallback audio)."""

    def load(self, uri: str, loop: bool = True) -> None:
        """Load a source, replacing the current one.

        Args:
            uri: Location of the audio source
            loop: Whether playback restarts at the end
        """
        ...


class InterruptPlayer(Protocol):
    """Plays the interrupt content (Azan, optionally preceded by an announcement)."""

    def play_interrupt_audio(self, event_name: str) -> "Future[Any] | None":
        """Start interrupt content for the named event.

        Args:
            event_name: Name of the triggering event (e.g. "Fajr")

        Returns:
            Future resolved at the natural end of the content, or None if
            the backend cannot signal it.
        """
        ...

    def stop(self) -> None:
        """Stop interrupt content immediately."""
        ...


class AlternatePlayer(Protocol):
    """Plays alternate content after an interruption (e.g. Quran recitation)."""

    def play_alternate(self) -> "Future[Any] | None":
        """Start alternate content.

        Returns:
            Future resolved at the natural end of the content, or None.
        """
        ...


def clamp_volume(volume: float) -> float:
    """Clamp a volume into the 0-100 range."""
    return max(MIN_VOLUME, min(MAX_VOLUME, volume))


def call_command(
    operation: str,
    command: Callable[..., Any],
    *args: Any,
) -> "Future[Any]":
    """Invoke a collaborator command and normalise its outcome.

    A synchronous raise, a failed future and a cancelled future all end
    up as a PlaybackCallbackError on the returned future.

    Args:
        operation: Name used in error messages (e.g. "pause")
        command: The collaborator callable
        *args: Arguments for the callable

    Returns:
        Future that completes when the command has finished
    """
    try:
        result = command(*args)
    except Exception as e:
        future: Future[Any] = Future()
        future.set_exception(wrap_failure(operation, e))
        return future

    if not isinstance(result, Future):
        future = Future()
        future.set_result(result)
        return future

    return relay_outcome(operation, result)


def relay_outcome(operation: str, source: "Future[Any]") -> "Future[Any]":
    """Mirror a collaborator's future, normalising failures.

    Args:
        operation: Name used in error messages
        source: Future returned by the collaborator

    Returns:
        Future with the same result, or a PlaybackCallbackError if the
        source failed or was cancelled
    """
    future: Future[Any] = Future()

    def _relay(done: "Future[Any]") -> None:
        if done.cancelled():
            future.set_exception(
                PlaybackCallbackError(f"{operation} was cancelled", operation=operation)
            )
            return
        error = done.exception()
        if error is not None:
            future.set_exception(wrap_failure(operation, error))
        else:
            future.set_result(done.result())

    source.add_done_callback(_relay)
    return future


def wrap_failure(operation: str, error: BaseException) -> PlaybackCallbackError:
    """Wrap a collaborator failure as a PlaybackCallbackError."""
    if isinstance(error, PlaybackCallbackError):
        return error
    wrapped = PlaybackCallbackError(f"{operation} failed: {error}", operation=operation)
    wrapped.__cause__ = error
    return wrapped


__all__ = [
    "AlternatePlayer",
    "AudioChannel",
    "InterruptPlayer",
    "LoopingChannel",
    "MAX_VOLUME",
    "MIN_VOLUME",
    "VolumeSink",
    "call_command",
    "clamp_volume",
    "relay_outcome",
    "wrap_failure",
]
