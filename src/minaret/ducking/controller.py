"""Ducking controller.

Briefly lowers a channel's volume while a foreground event (spoken
announcement, TTS) is active and brings it back afterwards.

Semantics:
    - Rising edge: capture the current volume, ramp down to
      duck_level% of it over fade_out_ms.
    - Falling edge: wait grace_ms (absorbs signal flutter), then ramp
      back to the captured volume over fade_in_ms.
    - duck() while ducked and restore() while not ducked are no-ops.

Volume changes go through the shared RampEngine, so a duck started
during another fade on the same channel replaces that fade.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass

from ..audio import AudioChannel
from ..config import DuckingConfig
from ..fade import RampEngine, RampJob, RampOutcome
from ..signals import EdgeDetector, Signal
from ..timing import Clock, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class DuckState:
    """Ducking state.

    original_volume is only meaningful while is_ducking is True.
    """

    is_ducking: bool = False
    original_volume: float = 0.0


class DuckingController:
    """Edge-triggered duck/restore on one channel.

    Usage:
        controller = DuckingController(channel, ramps, clock)
        unsubscribe = controller.observe(speech_signal)
        # or drive it directly
        controller.duck()
        controller.restore()
    """

    def __init__(
        self,
        channel: AudioChannel,
        ramps: RampEngine,
        clock: Clock,
        config: DuckingConfig | None = None,
    ) -> None:
        """Initialize ducking controller.

        Args:
            channel: Channel whose volume is ducked
            ramps: Shared ramp engine
            clock: Clock for the grace window
            config: Ducking settings (defaults if None)
        """
        self._channel = channel
        self._ramps = ramps
        self._clock = clock
        self._config = config or DuckingConfig()
        self._state = DuckState()
        self._restore_job: RampJob | None = None
        self._grace: TimerHandle | None = None
        self._edges = EdgeDetector(on_rise=self._on_rise, on_fall=self._on_fall)

    @property
    def state(self) -> DuckState:
        """Snapshot of the current ducking state."""
        return DuckState(self._state.is_ducking, self._state.original_volume)

    @property
    def is_ducking(self) -> bool:
        """Return True while the channel is ducked or restoring."""
        return self._state.is_ducking

    @property
    def is_restoring(self) -> bool:
        """Return True while the restore ramp is running."""
        return self._restore_job is not None and not self._restore_job.done

    def duck(self) -> None:
        """Lower the channel volume. Idempotent."""
        if not self._config.enabled:
            return
        self._cancel_grace()

        if self._state.is_ducking:
            if not self.is_restoring:
                return
            # Foreground came back mid-restore: go back down from where we
            # are without re-capturing (the current volume is not original).
            self._restore_job = None
            self._fade_to_duck_level()
            return

        try:
            original = self._channel.get_volume()
        except Exception as e:
            logger.error(f"Cannot duck {self._channel.name}, get_volume failed: {e}")
            return

        self._state = DuckState(is_ducking=True, original_volume=original)
        logger.info(f"Ducking {self._channel.name} from {original:.1f}")
        self._fade_to_duck_level()

    def restore(self) -> None:
        """Bring the channel back to its pre-duck volume. Idempotent."""
        self._cancel_grace()
        if not self._state.is_ducking or self.is_restoring:
            return

        logger.info(f"Restoring {self._channel.name} to {self._state.original_volume:.1f}")
        job = self._ramps.ramp(
            self._channel,
            self._current_volume(),
            self._state.original_volume,
            self._config.fade_in_ms,
        )
        self._restore_job = job
        job.future.add_done_callback(lambda done: self._on_restored(job, done))

    def observe(self, signal: Signal) -> Callable[[], None]:
        """Follow a foreground-active signal.

        Args:
            signal: Boolean signal, True while the foreground event runs

        Returns:
            Function that stops observing
        """
        return signal.subscribe(
            lambda active: self._clock.call_soon(lambda: self._edges.update(active))
        )

    def reset(self) -> None:
        """Forget the ducked state without touching the volume."""
        self._cancel_grace()
        self._restore_job = None
        self._state = DuckState()

    def _on_rise(self) -> None:
        self.duck()

    def _on_fall(self) -> None:
        self._cancel_grace()
        self._grace = self._clock.call_later(self._config.grace_ms, self._on_grace_elapsed)

    def _on_grace_elapsed(self) -> None:
        self._grace = None
        self.restore()

    def _cancel_grace(self) -> None:
        if self._grace is not None:
            self._grace.cancel()
            self._grace = None

    def _fade_to_duck_level(self) -> None:
        target = self._config.duck_level / 100 * self._state.original_volume
        self._ramps.ramp(
            self._channel,
            self._current_volume(),
            target,
            self._config.fade_out_ms,
        )

    def _current_volume(self) -> float:
        try:
            return self._channel.get_volume()
        except Exception as e:
            logger.warning(f"get_volume failed on {self._channel.name}: {e}")
            return self._state.original_volume

    def _on_restored(self, job: RampJob, done: "Future[RampOutcome]") -> None:
        if self._restore_job is not job:
            return
        self._restore_job = None
        if done.exception() is not None:
            logger.error(f"Restore failed on {self._channel.name}: {done.exception()}")
        elif done.result() is RampOutcome.CANCELLED:
            # Another writer took the channel; it owns the volume now.
            logger.info(f"Restore on {self._channel.name} superseded")
        self._state = DuckState()


__all__ = ["DuckState", "DuckingController"]
