"""Buffering watchdog with fallback audio.

Watches a stream's stalled/resumed signal. A stall that outlasts the
buffer timeout crossfades to a looping fallback track; when the stream
resumes, it crossfades back. Short stalls never trigger anything.

Scheduled interruptions take precedence: while the suppression check
returns True (a sequence is fading or paused), a stall timeout does not
start the fallback. If the stream is still stalled once the sequence
is back in IDLE, on_sequence_idle() starts it then.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, replace
from typing import Any

from ..audio import AudioChannel, LoopingChannel, call_command
from ..config import WatchdogConfig
from ..fade import CrossfadeEngine, CrossfadeJob, RampOutcome
from ..signals import EdgeDetector, Signal
from ..timing import Clock, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class FallbackState:
    """Watchdog state.

    is_fallback_active implies a stall was seen at some point, or the
    fallback was forced.
    """

    is_buffering: bool = False
    is_fallback_active: bool = False
    buffering_source: str | None = None
    forced: bool = False


@dataclass(frozen=True)
class FallbackTrack:
    """Identity of the looping emergency track."""

    name: str
    uri: str
    is_default: bool = True


class BufferingWatchdog:
    """Timeout-based stall detector driving a fallback crossfade.

    Usage:
        watchdog = BufferingWatchdog(stream, fallback, crossfades, clock)
        watchdog.monitor(stream_stalled_signal, "spotify")
    """

    def __init__(
        self,
        primary: AudioChannel,
        fallback: LoopingChannel,
        crossfades: CrossfadeEngine,
        clock: Clock,
        config: WatchdogConfig | None = None,
        on_fallback_triggered: Callable[[], None] | None = None,
        on_stream_restored: Callable[[], None] | None = None,
        is_suppressed: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize watchdog.

        Args:
            primary: The monitored stream channel
            fallback: Channel that plays the looping fallback track
            crossfades: Shared crossfade engine
            clock: Clock for the buffer timeout
            config: Watchdog settings (defaults if None)
            on_fallback_triggered: Called when the fallback starts
            on_stream_restored: Called once the stream is back
            is_suppressed: Returns True while another component owns
                the stream (a scheduled interruption)
        """
        self._primary = primary
        self._fallback = fallback
        self._crossfades = crossfades
        self._clock = clock
        self._config = config or WatchdogConfig()
        self._on_fallback_triggered = on_fallback_triggered
        self._on_stream_restored = on_stream_restored
        self._is_suppressed = is_suppressed or (lambda: False)

        self._state = FallbackState()
        self._timeout: TimerHandle | None = None
        self._deferred = False
        self._original_volume: float = 0.0
        self._activate_job: CrossfadeJob | None = None
        self._restore_job: CrossfadeJob | None = None
        self._track = self._default_track()
        self._load_track()

    @property
    def state(self) -> FallbackState:
        """Snapshot of the watchdog state."""
        return replace(self._state)

    @property
    def is_fallback_active(self) -> bool:
        """Return True while the fallback track is (or is becoming) audible."""
        return self._state.is_fallback_active

    @property
    def track(self) -> FallbackTrack:
        """The configured fallback track."""
        return self._track

    @property
    def timeout_armed(self) -> bool:
        """Return True while a stall timeout is pending."""
        return self._timeout is not None

    def monitor(self, signal: Signal, source: str) -> Callable[[], None]:
        """Watch a stalled/resumed signal.

        Args:
            signal: True while the stream is stalled
            source: Label for logs and state (e.g. "spotify")

        Returns:
            Function that stops monitoring
        """
        edges = EdgeDetector(
            on_rise=lambda: self.notify_stalled(source),
            on_fall=lambda: self.notify_resumed(source),
        )
        logger.info(f"Monitoring {source} for buffering")
        return signal.subscribe(lambda stalled: self._clock.call_soon(lambda: edges.update(stalled)))

    def notify_stalled(self, source: str) -> None:
        """Handle a stall edge: arm the buffer timeout."""
        logger.info(f"{source} started buffering")
        self._state.is_buffering = True
        self._state.buffering_source = source
        if not self._config.enabled:
            return
        self._deferred = False
        self._cancel_timeout()
        self._timeout = self._clock.call_later(self._config.buffer_timeout_ms, self._on_timeout)

    def notify_resumed(self, source: str) -> None:
        """Handle a resume edge: disarm the timeout, restore if needed."""
        logger.info(f"{source} resumed playing")
        self._state.is_buffering = False
        self._state.buffering_source = None
        self._deferred = False
        self._cancel_timeout()
        if self._state.is_fallback_active and not self._state.forced:
            self._restore()

    def on_sequence_idle(self) -> None:
        """Act on a stall timeout that expired during an interruption.

        If the stream is still stalled, switch to the fallback now.
        """
        if not self._deferred:
            return
        self._deferred = False
        if not self._state.is_buffering or self._state.is_fallback_active:
            return
        logger.warning(
            f"{self._state.buffering_source} still buffering after the interruption, "
            "switching to fallback"
        )
        self._activate(forced=False)

    def force_fallback(self) -> None:
        """Switch to the fallback track regardless of the stall signal."""
        if self._state.is_fallback_active and self._restore_job is None:
            return
        self._cancel_timeout()
        self._activate(forced=True)

    def stop_fallback(self) -> None:
        """Switch back to the stream regardless of the stall signal."""
        if not self._state.is_fallback_active:
            return
        self._cancel_timeout()
        self._restore()

    def set_fallback_track(self, name: str, uri: str) -> None:
        """Use a custom fallback track.

        Persisting the choice is up to the caller.
        """
        self._track = FallbackTrack(name=name, uri=uri, is_default=False)
        self._load_track()

    def reset_fallback_track(self) -> None:
        """Go back to the configured default fallback track."""
        self._track = self._default_track()
        self._load_track()

    def shutdown(self) -> None:
        """Disarm the timeout and stop any crossfade in flight."""
        self._deferred = False
        self._cancel_timeout()
        for job in (self._activate_job, self._restore_job):
            if job is not None:
                job.cancel()

    def _default_track(self) -> FallbackTrack:
        return FallbackTrack(
            name=self._config.fallback_track_name,
            uri=self._config.fallback_track_uri,
        )

    def _load_track(self) -> None:
        try:
            self._fallback.load(self._track.uri, loop=True)
        except Exception as e:
            logger.error(f"Failed to load fallback track {self._track.uri}: {e}")
            return
        logger.info(f"Fallback track: {self._track.name}")
        if self._state.is_fallback_active:
            call_command("play", self._fallback.play)

    def _cancel_timeout(self) -> None:
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None

    def _on_timeout(self) -> None:
        self._timeout = None
        if self._is_suppressed():
            logger.warning(
                f"{self._state.buffering_source} stalled during a scheduled interruption, "
                "deferring fallback until it ends"
            )
            self._deferred = True
            return
        if self._state.is_fallback_active and self._restore_job is None:
            return
        logger.warning(
            f"{self._state.buffering_source} buffering exceeded "
            f"{self._config.buffer_timeout_ms}ms, switching to fallback"
        )
        self._activate(forced=False)

    def _activate(self, forced: bool) -> None:
        if self._restore_job is not None:
            # Stalled again while restoring: keep the volume captured before.
            self._restore_job.cancel()
            self._restore_job = None
        else:
            try:
                self._original_volume = self._primary.get_volume()
            except Exception as e:
                logger.error(f"Cannot read {self._primary.name} volume, fallback aborted: {e}")
                return

        self._state.is_fallback_active = True
        self._state.forced = forced

        try:
            self._fallback.set_volume(0)
        except Exception as e:
            logger.warning(f"Could not silence fallback before start: {e}")
        started = call_command("play", self._fallback.play)
        started.add_done_callback(
            lambda done: self._clock.call_soon(lambda: self._on_fallback_started(done))
        )

        if self._on_fallback_triggered is not None:
            self._on_fallback_triggered()

    def _on_fallback_started(self, done: "Future[Any]") -> None:
        if not self._state.is_fallback_active or self._restore_job is not None:
            return
        if done.exception() is not None:
            logger.error(f"Fallback track failed to start: {done.exception()}")
            self._state.is_fallback_active = False
            self._state.forced = False
            return

        job = self._crossfades.crossfade(
            self._primary,
            self._fallback,
            self._original_volume,
            self._config.crossfade_ms,
        )
        self._activate_job = job
        job.future.add_done_callback(lambda d: self._log_failure("Fallback crossfade", d))

    def _restore(self) -> None:
        if self._restore_job is not None:
            return
        logger.info("Restoring stream from fallback")
        if self._activate_job is not None:
            self._activate_job.cancel()
            self._activate_job = None

        try:
            self._primary.set_volume(0)
            if not self._primary.is_playing:
                call_command("play", self._primary.play)
        except Exception as e:
            logger.warning(f"Could not prepare {self._primary.name} for restore: {e}")

        job = self._crossfades.crossfade(
            self._fallback,
            self._primary,
            self._original_volume,
            self._config.crossfade_ms,
        )
        self._restore_job = job
        job.future.add_done_callback(
            lambda d: self._clock.call_soon(lambda: self._on_restored(job, d))
        )

    def _on_restored(self, job: CrossfadeJob, done: "Future[RampOutcome]") -> None:
        if self._restore_job is not job:
            return
        self._restore_job = None
        if done.exception() is not None:
            logger.error(f"Restore crossfade failed: {done.exception()}")
            return
        if done.result() is not RampOutcome.COMPLETED:
            return

        self._state.is_fallback_active = False
        self._state.forced = False
        logger.info("Stream restored")
        if self._on_stream_restored is not None:
            self._on_stream_restored()

    @staticmethod
    def _log_failure(what: str, done: "Future[RampOutcome]") -> None:
        if done.exception() is not None:
            logger.error(f"{what} failed: {done.exception()}")


__all__ = ["BufferingWatchdog", "FallbackState", "FallbackTrack"]
