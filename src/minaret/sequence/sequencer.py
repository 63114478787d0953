"""Interrupt sequencer.

Drives one interruption from start to finish:

    IDLE -> FADING_OUT -> PAUSED_AWAITING_INTERRUPT
         -> PLAYING_INTERRUPT_CONTENT -> POST_INTERRUPT_DELAY
         -> POST_ACTION -> IDLE

Every input (a scheduled trigger, a manual trigger, a finished ramp or
collaborator call, an expired wait, an abort) is a SequenceEvent handled
one at a time by handle(). Awaited steps report back through the clock,
tagged with the run and state they were started from, so a result that
arrives after the sequence has moved on is dropped.
"""

import logging
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..audio import (
    AlternatePlayer,
    AudioChannel,
    InterruptPlayer,
    call_command,
    relay_outcome,
    wrap_failure,
)
from ..config import MusicStopMode, PostAction, ScheduleSettings
from ..errors import InterruptTimeoutError, PlaybackCallbackError
from ..fade import RampEngine, RampJob, RampOutcome
from ..schedule.events import PrayerEvent
from ..timing import Clock, TimerHandle
from .states import (
    AbortRequested,
    CallbackResolved,
    ManualTrigger,
    SequenceEvent,
    SequenceState,
    TimerFired,
)

if TYPE_CHECKING:
    from ..schedule.scheduler import PrayerEventScheduler

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    """Bookkeeping for the sequence in progress."""

    run_id: int
    event_name: str
    settings: ScheduleSettings
    was_playing: bool
    volume_before: float


class InterruptSequencer:
    """State machine for scheduled and manual interruptions.

    Only one sequence runs at a time. A trigger that arrives while a
    sequence is in progress is rejected and logged, never queued. Any
    failing collaborator call ends the sequence early; whatever happens,
    the sequence ends in IDLE and the scheduler is re-armed.

    Usage:
        sequencer = InterruptSequencer(channel, azan_player, ramps, clock, settings)
        scheduler = PrayerEventScheduler(clock, on_trigger=sequencer.on_timer)
        sequencer.attach_scheduler(scheduler)
    """

    def __init__(
        self,
        playback: AudioChannel,
        interrupt_player: InterruptPlayer,
        ramps: RampEngine,
        clock: Clock,
        settings: ScheduleSettings | None = None,
        alternate_player: AlternatePlayer | None = None,
        scheduler: "PrayerEventScheduler | None" = None,
        on_state_change: Callable[[SequenceState], None] | None = None,
        on_error: Callable[[PlaybackCallbackError], None] | None = None,
    ) -> None:
        """Initialize sequencer.

        Args:
            playback: Channel that is faded out, paused and resumed
            interrupt_player: Plays the interrupt content
            ramps: Shared ramp engine
            clock: Clock for waits and for delivering step results
            settings: Schedule settings (defaults if None)
            alternate_player: Plays alternate content for PostAction.ALTERNATE
            scheduler: Re-armed whenever a sequence ends
            on_state_change: Called with each new state
            on_error: Called with each playback failure
        """
        self._playback = playback
        self._interrupt_player = interrupt_player
        self._ramps = ramps
        self._clock = clock
        self._settings = settings or ScheduleSettings()
        self._alternate_player = alternate_player
        self._scheduler = scheduler
        self._on_state_change = on_state_change
        self._on_error = on_error

        self._state = SequenceState.IDLE
        self._run: _Run | None = None
        self._run_counter = 0
        self._next_steps: dict[str, Callable[[Any], None]] = {}
        self._timer: TimerHandle | None = None
        self._ramp_job: RampJob | None = None

        self._pending: deque[SequenceEvent] = deque()
        self._dispatching = False

    @property
    def state(self) -> SequenceState:
        """Current state."""
        return self._state

    @property
    def is_active(self) -> bool:
        """Return True while a sequence is in progress."""
        return self._state != SequenceState.IDLE

    @property
    def was_playing_before(self) -> bool | None:
        """Whether playback was running when the current sequence started."""
        return self._run.was_playing if self._run is not None else None

    @property
    def current_event_name(self) -> str | None:
        """Name of the event the current sequence is for."""
        return self._run.event_name if self._run is not None else None

    @property
    def settings(self) -> ScheduleSettings:
        """Settings the next sequence will use."""
        return self._settings

    def update_settings(self, settings: ScheduleSettings) -> None:
        """Replace the settings. A running sequence keeps its own copy."""
        self._settings = settings

    def attach_scheduler(self, scheduler: "PrayerEventScheduler | None") -> None:
        """Set the scheduler to re-arm when a sequence ends (None to detach)."""
        self._scheduler = scheduler

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def on_timer(self, event: PrayerEvent) -> None:
        """Scheduler callback: start the sequence for an event."""
        self.handle(TimerFired(event))

    def trigger_now(self, label: str = "Test") -> None:
        """Start a sequence by hand."""
        self.handle(ManualTrigger(label))

    def abort(self, reason: str = "aborted") -> None:
        """Stop the running sequence and return to IDLE."""
        self._clock.call_soon(lambda: self.handle(AbortRequested(reason)))

    def handle(self, event: SequenceEvent) -> None:
        """Process an event, plus any events raised while processing it.

        Must be called on the clock's dispatcher.
        """
        self._pending.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                self._process(self._pending.popleft())
        finally:
            self._dispatching = False

    def _process(self, event: SequenceEvent) -> None:
        if isinstance(event, TimerFired):
            self._start(event.event.name)
        elif isinstance(event, ManualTrigger):
            self._start(event.label)
        elif isinstance(event, CallbackResolved):
            self._resolve(event)
        elif isinstance(event, AbortRequested):
            self._abort(event.reason)
        else:
            logger.warning(f"Ignoring unknown sequence event: {event!r}")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _start(self, event_name: str) -> None:
        if self.is_active:
            logger.warning(
                f"Interruption for {event_name} rejected: sequence for "
                f"{self.current_event_name} already in progress ({self._state.name})"
            )
            return

        settings = self._settings
        self._run_counter += 1
        try:
            was_playing = bool(self._playback.is_playing)
            volume_before = self._playback.get_volume() if was_playing else 0.0
        except Exception as e:
            self._run = _Run(self._run_counter, event_name, settings, False, 0.0)
            self._transition(SequenceState.FADING_OUT)
            self._fail(wrap_failure("is_playing", e))
            return

        self._run = _Run(self._run_counter, event_name, settings, was_playing, volume_before)
        logger.info(
            f"Starting interruption for {event_name} "
            f"(playing={was_playing}, volume={volume_before:.0f})"
        )
        self._transition(SequenceState.FADING_OUT)

        if not was_playing:
            self._enter_paused()
            return

        if settings.stop_mode == MusicStopMode.FADE and settings.fade_out_ms > 0:
            self._ramp_job = self._ramps.ramp(
                self._playback, volume_before, 0, settings.fade_out_ms
            )
            self._await(self._ramp_job.future, "fade_out", self._after_fade_out)
        else:
            self._pause()

    def _after_fade_out(self, outcome: RampOutcome) -> None:
        self._ramp_job = None
        if outcome == RampOutcome.CANCELLED:
            logger.warning("Fade-out was overridden by another ramp, pausing anyway")
        self._pause()

    def _pause(self) -> None:
        self._await(
            call_command("pause", self._playback.pause),
            "pause",
            lambda _: self._enter_paused(),
        )

    def _enter_paused(self) -> None:
        run = self._current_run()
        self._transition(SequenceState.PAUSED_AWAITING_INTERRUPT)

        try:
            completion = self._interrupt_player.play_interrupt_audio(run.event_name)
        except Exception as e:
            self._fail(wrap_failure("play_interrupt_audio", e))
            return

        self._transition(SequenceState.PLAYING_INTERRUPT_CONTENT)
        duration_ms = run.settings.assumed_interrupt_duration_ms
        if isinstance(completion, Future):
            # Whichever comes first, completion or the assumed duration, moves on
            self._await(
                relay_outcome("play_interrupt_audio", completion),
                "interrupt_content",
                lambda _: self._enter_post_delay(),
            )
            self._wait(
                duration_ms,
                "interrupt_timeout",
                lambda _: self._on_assumed_end(duration_ms, signalled=True),
            )
            return

        logger.info(
            f"Interrupt player gives no completion signal, assuming {duration_ms}ms"
        )
        self._wait(
            duration_ms,
            "assumed_duration",
            lambda _: self._on_assumed_end(duration_ms, signalled=False),
        )

    def _on_assumed_end(self, duration_ms: int, signalled: bool) -> None:
        timeout = InterruptTimeoutError(
            f"Interrupt content for {self.current_event_name} assumed finished "
            f"after {duration_ms}ms",
            assumed_duration_ms=duration_ms,
        )
        if signalled:
            logger.warning(f"No completion signal from the interrupt player: {timeout}")
        else:
            logger.info(str(timeout))
        self._enter_post_delay()

    def _enter_post_delay(self) -> None:
        run = self._current_run()
        self._transition(SequenceState.POST_INTERRUPT_DELAY)
        self._wait(
            run.settings.post_action_delay_ms,
            "post_action_delay",
            lambda _: self._enter_post_action(),
        )

    def _enter_post_action(self) -> None:
        run = self._current_run()
        self._transition(SequenceState.POST_ACTION)
        action = run.settings.post_action

        if action == PostAction.RESUME:
            if not run.was_playing:
                logger.info("Nothing was playing before, not resuming")
                self._finish()
                return
            self._await(
                call_command("resume", self._playback.resume),
                "resume",
                lambda _: self._fade_in(run.volume_before, after_pause=True),
            )
        elif action == PostAction.ALTERNATE:
            self._play_alternate(run)
        else:
            logger.info("Post action is silence")
            self._finish()

    def _play_alternate(self, run: _Run) -> None:
        if self._alternate_player is None:
            self._fail(
                PlaybackCallbackError(
                    "No alternate player configured", operation="play_alternate"
                )
            )
            return
        try:
            if run.settings.stop_mode == MusicStopMode.FADE:
                self._playback.set_volume(0)
        except Exception as e:
            self._fail(wrap_failure("set_volume", e))
            return
        try:
            completion = self._alternate_player.play_alternate()
        except Exception as e:
            self._fail(wrap_failure("play_alternate", e))
            return

        if isinstance(completion, Future):
            completion.add_done_callback(_log_alternate_outcome)

        target = run.volume_before if run.was_playing else run.settings.default_volume
        self._fade_in(target, after_pause=False)

    def _fade_in(self, target: float, after_pause: bool) -> None:
        settings = self._current_run().settings
        if settings.stop_mode == MusicStopMode.IMMEDIATE:
            if after_pause:
                # Volume was never lowered
                self._finish()
                return
            duration_ms = 0
        else:
            duration_ms = settings.fade_in_ms

        job = self._ramps.ramp(self._playback, 0, target, duration_ms)
        if job.done:
            self._after_fade_in(job.future)
            return
        self._ramp_job = job
        self._await(job.future, "fade_in", lambda _: self._finish())

    def _after_fade_in(self, future: "Future[RampOutcome]") -> None:
        error = future.exception()
        if error is not None:
            self._fail(wrap_failure("fade_in", error))
        else:
            self._finish()

    # ------------------------------------------------------------------
    # Awaiting
    # ------------------------------------------------------------------

    def _await(
        self,
        future: "Future[Any]",
        step: str,
        then: Callable[[Any], None],
    ) -> None:
        """Continue with then(result) once future is done, on the dispatcher."""
        run_id, state = self._current_run().run_id, self._state
        self._next_steps[step] = then

        def _deliver(done: "Future[Any]") -> None:
            if done.cancelled():
                event = CallbackResolved(
                    run_id,
                    state,
                    step,
                    error=PlaybackCallbackError(f"{step} was cancelled", operation=step),
                )
            else:
                error = done.exception()
                result = done.result() if error is None else None
                event = CallbackResolved(run_id, state, step, error=error, result=result)
            self._clock.call_soon(lambda: self.handle(event))

        future.add_done_callback(_deliver)

    def _wait(self, delay_ms: int, step: str, then: Callable[[Any], None]) -> None:
        """Continue with then(None) after delay_ms."""
        run_id, state = self._current_run().run_id, self._state
        self._next_steps[step] = then
        self._timer = self._clock.call_later(
            delay_ms, lambda: self.handle(CallbackResolved(run_id, state, step))
        )

    def _resolve(self, event: CallbackResolved) -> None:
        run = self._run
        if run is None or event.run_id != run.run_id or event.state != self._state:
            logger.debug(f"Dropping stale result of {event.step}")
            return

        then = self._next_steps.pop(event.step, None)
        self._next_steps.clear()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if event.error is not None:
            self._fail(wrap_failure(event.step, event.error))
            return
        if then is not None:
            then(event.result)

    # ------------------------------------------------------------------
    # Endings
    # ------------------------------------------------------------------

    def _fail(self, error: PlaybackCallbackError) -> None:
        if error.state is None:
            error.state = self._state.name
        logger.error(
            f"Interruption for {self.current_event_name} failed in {self._state.name}: {error}"
        )
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("Error hook raised")
        self._finish()

    def _abort(self, reason: str) -> None:
        if not self.is_active:
            logger.debug(f"Abort ({reason}) ignored, no sequence in progress")
            return

        logger.info(f"Aborting interruption for {self.current_event_name}: {reason}")
        if self._state == SequenceState.PLAYING_INTERRUPT_CONTENT:
            try:
                self._interrupt_player.stop()
            except Exception as e:
                logger.error(f"Failed to stop interrupt content: {e}")
        self._finish()

    def _finish(self) -> None:
        """Return to IDLE and re-arm the scheduler, whatever happened."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._ramp_job is not None:
            self._ramp_job.cancel()
            self._ramp_job = None
        self._next_steps.clear()

        name = self.current_event_name
        self._run = None
        self._transition(SequenceState.IDLE)
        logger.info(f"Interruption for {name} finished")

        if self._scheduler is not None:
            try:
                self._scheduler.reschedule()
            except Exception:
                logger.exception("Failed to re-arm the scheduler")

    def _transition(self, state: SequenceState) -> None:
        if state == self._state:
            return
        logger.info(f"Sequence state: {self._state.name} -> {state.name}")
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("State change hook raised")

    def _current_run(self) -> _Run:
        if self._run is None:
            raise RuntimeError("No sequence in progress")
        return self._run


def _log_alternate_outcome(future: "Future[Any]") -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Alternate content failed: {error}")


__all__ = ["InterruptSequencer"]
