"""Interruption engine facade.

Wires the scheduler, sequencer, watchdog and ducking controller to one
clock and one RampEngine, so every volume change on a channel goes
through the same last-writer-wins ramp registry.

All methods must run on the clock's dispatcher. With a ThreadedClock,
call them through clock.call_soon().
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from .audio import AlternatePlayer, AudioChannel, InterruptPlayer, LoopingChannel
from .config import (
    DuckingConfig,
    MinaretConfig,
    RampConfig,
    ScheduleSettings,
    WatchdogConfig,
)
from .ducking import DuckingController, DuckState
from .errors import MinaretError, PlaybackCallbackError
from .fade import CrossfadeEngine, RampEngine
from .resilience import BufferingWatchdog, FallbackState
from .schedule import PrayerEvent, PrayerEventScheduler, TriggerPlan, events_from_times
from .sequence import AbortRequested, InterruptSequencer, SequenceState
from .signals import PollingSignal, Signal
from .timing import Clock

logger = logging.getLogger(__name__)


class InterruptionEngine:
    """Prayer-time interruption engine.

    Usage:
        engine = InterruptionEngine.from_config(config, channel, azan_player, clock)
        clock.call_soon(engine.start)
        ...
        clock.call_soon(engine.trigger_sequence_now)
    """

    def __init__(
        self,
        playback: AudioChannel,
        interrupt_player: InterruptPlayer,
        clock: Clock,
        settings: ScheduleSettings | None = None,
        alternate_player: AlternatePlayer | None = None,
        fallback: LoopingChannel | None = None,
        ramp_config: RampConfig | None = None,
        watchdog_config: WatchdogConfig | None = None,
        ducking_config: DuckingConfig | None = None,
        wall_clock: Callable[[], datetime] = datetime.now,
        on_state_change: Callable[[SequenceState], None] | None = None,
        on_error: Callable[[PlaybackCallbackError], None] | None = None,
        on_fallback_triggered: Callable[[], None] | None = None,
        on_stream_restored: Callable[[], None] | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            playback: Main playback channel
            interrupt_player: Plays the interrupt content
            clock: Clock shared by every component
            settings: Schedule settings (defaults if None)
            alternate_player: Plays alternate content after the interrupt
            fallback: Looping channel for the buffering fallback track;
                without one, stream monitoring is unavailable
            ramp_config: Ramp settings
            watchdog_config: Buffering watchdog settings
            ducking_config: Ducking settings
            wall_clock: Returns the current local time
            on_state_change: Called with each new sequence state
            on_error: Called with each playback failure during a sequence
            on_fallback_triggered: Called when the fallback track starts
            on_stream_restored: Called when the stream is back
        """
        self._clock = clock
        self._settings = settings or ScheduleSettings()
        self._events: tuple[PrayerEvent, ...] = ()
        self._on_state_change = on_state_change

        self._ramps = RampEngine(clock, step_count=(ramp_config or RampConfig()).step_count)
        self._crossfades = CrossfadeEngine(self._ramps)

        self._sequencer = InterruptSequencer(
            playback,
            interrupt_player,
            self._ramps,
            clock,
            settings=self._settings,
            alternate_player=alternate_player,
            on_state_change=self._on_sequence_state,
            on_error=on_error,
        )
        self._scheduler = PrayerEventScheduler(
            clock,
            on_trigger=self._sequencer.on_timer,
            on_manual_trigger=self._sequencer.trigger_now,
            wall_clock=wall_clock,
        )
        self._sequencer.attach_scheduler(self._scheduler)

        self._watchdog: BufferingWatchdog | None = None
        if fallback is not None:
            self._watchdog = BufferingWatchdog(
                playback,
                fallback,
                self._crossfades,
                clock,
                config=watchdog_config,
                on_fallback_triggered=on_fallback_triggered,
                on_stream_restored=on_stream_restored,
                is_suppressed=lambda: self._sequencer.is_active,
            )

        self._ducking_config = ducking_config or DuckingConfig()
        self._ducking = DuckingController(playback, self._ramps, clock, self._ducking_config)

    @classmethod
    def from_config(
        cls,
        config: MinaretConfig,
        playback: AudioChannel,
        interrupt_player: InterruptPlayer,
        clock: Clock,
        **kwargs,
    ) -> "InterruptionEngine":
        """Build an engine from loaded configuration.

        The configured prayer times become the initial events; call
        start() to arm the scheduler for them.

        Args:
            config: Loaded configuration
            playback: Main playback channel
            interrupt_player: Plays the interrupt content
            clock: Shared clock
            **kwargs: Further constructor arguments (players, hooks)

        Returns:
            Configured InterruptionEngine

        Raises:
            SchedulingError: If a configured prayer time is malformed
        """
        engine = cls(
            playback,
            interrupt_player,
            clock,
            settings=config.schedule,
            ramp_config=config.ramp,
            watchdog_config=config.watchdog,
            ducking_config=config.ducking,
            **kwargs,
        )
        engine._events = tuple(
            events_from_times(config.prayer_times.times, config.prayer_times.excluded)
        )
        return engine

    @property
    def clock(self) -> Clock:
        """The shared clock."""
        return self._clock

    @property
    def events(self) -> tuple[PrayerEvent, ...]:
        """Current prayer events."""
        return self._events

    @property
    def settings(self) -> ScheduleSettings:
        """Current schedule settings."""
        return self._settings

    @property
    def state(self) -> SequenceState:
        """Current sequence state."""
        return self._sequencer.state

    @property
    def next_trigger(self) -> TriggerPlan | None:
        """The armed trigger, if any."""
        return self._scheduler.next_trigger

    @property
    def fallback_state(self) -> FallbackState | None:
        """Watchdog state, or None without a fallback channel."""
        return self._watchdog.state if self._watchdog is not None else None

    @property
    def duck_state(self) -> DuckState:
        """Ducking state."""
        return self._ducking.state

    @property
    def sequencer(self) -> InterruptSequencer:
        """The interruption state machine."""
        return self._sequencer

    @property
    def scheduler(self) -> PrayerEventScheduler:
        """The trigger scheduler."""
        return self._scheduler

    @property
    def watchdog(self) -> BufferingWatchdog | None:
        """The buffering watchdog, if a fallback channel was given."""
        return self._watchdog

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> TriggerPlan | None:
        """Arm the scheduler for the current events and settings."""
        return self.schedule_sequence(self._events, self._settings)

    def schedule_sequence(
        self,
        events: Iterable[PrayerEvent],
        settings: ScheduleSettings | None = None,
    ) -> TriggerPlan | None:
        """Replace events (and optionally settings) and re-arm.

        Args:
            events: The day's events
            settings: New schedule settings, or None to keep the current ones

        Returns:
            The armed plan, or None if nothing was armed
        """
        self._events = tuple(events)
        if settings is not None:
            self._settings = settings
            self._sequencer.update_settings(settings)
        return self._scheduler.schedule(self._events, self._settings)

    def cancel_scheduled(self) -> bool:
        """Disarm the pending trigger."""
        return self._scheduler.cancel_scheduled()

    def trigger_sequence_now(self, label: str = "Test") -> None:
        """Run a sequence right away. Rejected if one is in progress."""
        self._scheduler.trigger_sequence_now(label)

    def stop_sequence(self, reason: str = "stopped") -> None:
        """Abort the running sequence; the scheduler is re-armed."""
        self._sequencer.abort(reason)

    def update_events(self, events: Iterable[PrayerEvent]) -> bool:
        """Replace the events, rescheduling only if they changed.

        Returns:
            True if the events changed and the scheduler was re-armed.
        """
        events = tuple(events)
        if events == self._events:
            return False
        logger.info("Prayer events changed, rescheduling")
        self.schedule_sequence(events)
        return True

    def update_settings(self, settings: ScheduleSettings) -> bool:
        """Replace the settings, rescheduling only if they changed.

        Returns:
            True if the settings changed and the scheduler was re-armed.
        """
        if settings == self._settings:
            return False
        logger.info("Schedule settings changed, rescheduling")
        self.schedule_sequence(self._events, settings)
        return True

    # ------------------------------------------------------------------
    # Stream resilience
    # ------------------------------------------------------------------

    def monitor_stream(self, signal: Signal, source: str) -> Callable[[], None]:
        """Watch a stalled/resumed signal for the playback channel.

        Returns:
            Function that stops monitoring

        Raises:
            MinaretError: If the engine has no fallback channel
        """
        return self._require_watchdog().monitor(signal, source)

    def force_fallback(self) -> None:
        """Switch to the fallback track regardless of buffering."""
        self._require_watchdog().force_fallback()

    def stop_fallback(self) -> None:
        """Switch back from the fallback track."""
        self._require_watchdog().stop_fallback()

    def set_fallback_track(self, name: str, uri: str) -> None:
        """Use a custom fallback track."""
        self._require_watchdog().set_fallback_track(name, uri)

    def reset_fallback_track(self) -> None:
        """Go back to the default fallback track."""
        self._require_watchdog().reset_fallback_track()

    def _on_sequence_state(self, state: SequenceState) -> None:
        if state == SequenceState.IDLE and self._watchdog is not None:
            self._watchdog.on_sequence_idle()
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _require_watchdog(self) -> BufferingWatchdog:
        if self._watchdog is None:
            raise MinaretError("No fallback channel configured")
        return self._watchdog

    # ------------------------------------------------------------------
    # Ducking
    # ------------------------------------------------------------------

    def duck(self) -> None:
        """Lower the playback volume for a foreground event."""
        self._ducking.duck()

    def restore(self) -> None:
        """Bring the playback volume back after ducking."""
        self._ducking.restore()

    def observe_foreground(self, signal: Signal) -> Callable[[], None]:
        """Duck automatically while a foreground-active signal is True.

        Returns:
            Function that stops observing
        """
        return self._ducking.observe(signal)

    def observe_foreground_state(self, read: Callable[[], bool]) -> Callable[[], None]:
        """Duck automatically while a polled foreground flag is True.

        For sources that expose a boolean but no change events. The flag
        is read every ducking poll_interval_ms.

        Args:
            read: Returns True while the foreground audio is active

        Returns:
            Function that stops polling and observing
        """
        signal = PollingSignal(read, self._clock, self._ducking_config.poll_interval_ms)
        unsubscribe = self._ducking.observe(signal)
        signal.start()

        def stop() -> None:
            signal.stop()
            unsubscribe()

        return stop

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Disarm every timer and stop anything in flight."""
        self._scheduler.cancel_scheduled()
        self._sequencer.attach_scheduler(None)
        if self._watchdog is not None:
            self._watchdog.shutdown()
        self._sequencer.handle(AbortRequested("shutdown"))
        self._ducking.reset()
        self._ramps.cancel_all()
        logger.info("Interruption engine shut down")


__all__ = ["InterruptionEngine"]
