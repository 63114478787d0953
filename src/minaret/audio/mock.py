"""Mock audio collaborators for testing.

Provides recording implementations of AudioChannel, InterruptPlayer and
AlternatePlayer that can be used without any real playback backend.
They also back the CLI's --mock-audio mode.
"""

import logging
from concurrent.futures import Future
from typing import Any

from .channel import clamp_volume

logger = logging.getLogger(__name__)


class MockAudioChannel:
    """Mock playback channel.

    Records every command and volume change for later verification.
    Implements the AudioChannel and LoopingChannel protocols.
    """

    def __init__(
        self,
        name: str = "main",
        volume: float = 80.0,
        playing: bool = False,
    ) -> None:
        """Initialize mock channel.

        Args:
            name: Channel identifier
            volume: Initial volume, 0-100
            playing: Whether the channel starts out playing
        """
        self.name = name
        self._volume = clamp_volume(volume)
        self._playing = playing
        self._position_reset = False
        self._source: str | None = None
        self._loop = False
        self._calls: list[str] = []
        self._volume_history: list[float] = []
        self._fail_on: dict[str, Exception] = {}

    def fail_on(self, operation: str, error: Exception | None = None) -> None:
        """Make a command raise from now on.

        Args:
            operation: Command name ("pause", "set_volume", ...)
            error: Exception to raise (defaults to RuntimeError)
        """
        self._fail_on[operation] = error or RuntimeError(f"{operation} rejected")

    def _record(self, operation: str) -> None:
        self._calls.append(operation)
        error = self._fail_on.get(operation)
        if error is not None:
            raise error

    @property
    def is_playing(self) -> bool:
        """Return True if 'playing'."""
        return self._playing

    def get_volume(self) -> float:
        """Return the current volume."""
        return self._volume

    def set_volume(self, volume: float) -> None:
        """Record and apply a volume change."""
        self._record("set_volume")
        self._volume = clamp_volume(volume)
        self._volume_history.append(self._volume)
        logger.debug(f"[{self.name}] volume -> {self._volume:.1f}")

    def play(self) -> None:
        """Start mock playback."""
        self._record("play")
        self._playing = True
        self._position_reset = False
        logger.info(f"[{self.name}] play")

    def pause(self) -> None:
        """Pause mock playback."""
        self._record("pause")
        self._playing = False
        logger.info(f"[{self.name}] pause")

    def resume(self) -> None:
        """Resume mock playback."""
        self._record("resume")
        self._playing = True
        logger.info(f"[{self.name}] resume")

    def stop(self) -> None:
        """Stop mock playback and rewind."""
        self._record("stop")
        self._playing = False
        self._position_reset = True
        logger.info(f"[{self.name}] stop")

    def load(self, uri: str, loop: bool = True) -> None:
        """Record the loaded source."""
        self._record("load")
        self._source = uri
        self._loop = loop

    @property
    def calls(self) -> list[str]:
        """Get the ordered list of commands received."""
        return self._calls.copy()

    @property
    def volume_history(self) -> list[float]:
        """Get every volume applied, in order."""
        return self._volume_history.copy()

    @property
    def position_reset(self) -> bool:
        """Return True if the last stop rewound the channel."""
        return self._position_reset

    @property
    def source(self) -> str | None:
        """Get the loaded source URI."""
        return self._source

    @property
    def loop(self) -> bool:
        """Return True if the loaded source loops."""
        return self._loop

    def clear(self) -> None:
        """Clear recorded commands and volume history."""
        self._calls.clear()
        self._volume_history.clear()


class MockInterruptPlayer:
    """Mock interrupt content player.

    By default returns a Future per call that the test completes with
    finish() or fail(). With signals_completion=False it returns None, as
    a backend that cannot report the natural end would.
    """

    def __init__(self, signals_completion: bool = True) -> None:
        """Initialize mock player.

        Args:
            signals_completion: Whether play_interrupt_audio returns a Future
        """
        self._signals_completion = signals_completion
        self._played: list[str] = []
        self._current: Future[Any] | None = None
        self._error: Exception | None = None
        self._stop_count = 0

    def raise_on_play(self, error: Exception) -> None:
        """Make the next play_interrupt_audio call raise."""
        self._error = error

    def play_interrupt_audio(self, event_name: str) -> "Future[Any] | None":
        """Record the event and start 'playing'."""
        self._played.append(event_name)
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        logger.info(f"Playing interrupt content for {event_name}")
        if not self._signals_completion:
            return None
        self._current = Future()
        return self._current

    def stop(self) -> None:
        """Stop interrupt content."""
        self._stop_count += 1

    def finish(self) -> None:
        """Signal the natural end of the current content."""
        if self._current is not None and not self._current.done():
            self._current.set_result(None)

    def fail(self, error: Exception) -> None:
        """Fail the current content."""
        if self._current is not None and not self._current.done():
            self._current.set_exception(error)

    @property
    def played(self) -> list[str]:
        """Get names of events content was played for."""
        return self._played.copy()

    @property
    def stop_count(self) -> int:
        """Get number of times stop was called."""
        return self._stop_count


class MockAlternatePlayer:
    """Mock alternate content player."""

    def __init__(self, channel: MockAudioChannel | None = None) -> None:
        """Initialize mock player.

        Args:
            channel: Channel to mark as playing when alternate content starts
        """
        self._channel = channel
        self._play_count = 0
        self._error: Exception | None = None

    def raise_on_play(self, error: Exception) -> None:
        """Make the next play_alternate call raise."""
        self._error = error

    def play_alternate(self) -> None:
        """Record alternate playback."""
        self._play_count += 1
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        if self._channel is not None:
            self._channel.play()

    @property
    def play_count(self) -> int:
        """Get number of times alternate content was started."""
        return self._play_count


__all__ = ["MockAlternatePlayer", "MockAudioChannel", "MockInterruptPlayer"]
