"""Integration tests for the interruption flow.

End-to-end tests for a scheduled prayer-time interruption, driven
through InterruptionEngine with the test profile.
"""

import threading
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from minaret.audio.mock import MockAlternatePlayer, MockAudioChannel, MockInterruptPlayer
from minaret.config import PostAction
from minaret.config.loader import load_config
from minaret.engine import InterruptionEngine
from minaret.sequence import SequenceState
from minaret.timing import ThreadedClock
from minaret.timing.mock import ManualClock

pytestmark = pytest.mark.integration


class WallClock:
    """Local time that follows a ManualClock from a fixed start."""

    def __init__(self, clock: ManualClock, start: datetime) -> None:
        self._clock = clock
        self._start = start

    def __call__(self) -> datetime:
        return self._start + timedelta(milliseconds=self._clock.now_ms())


class TestScheduledInterruption:
    """Scheduled interruption with the test profile."""

    def test_fajr_interrupts_and_resumes(self) -> None:
        """Verify a scheduled Fajr interruption runs end to end.

        Scenario: music playing at 80 at 05:00, Fajr at 05:15, lead
        2 minutes. At 05:13 the music fades out and pauses, the Azan
        plays, and afterwards the music resumes at 80. The scheduler is
        then armed for Dhuhr.
        """
        config = load_config(profile="test")
        clock = ManualClock()
        channel = MockAudioChannel(volume=80, playing=True)
        player = MockInterruptPlayer()
        states: list[SequenceState] = []
        engine = InterruptionEngine.from_config(
            config,
            channel,
            player,
            clock,
            wall_clock=WallClock(clock, datetime(2026, 3, 1, 5, 0)),
            on_state_change=states.append,
        )

        plan = engine.start()
        assert plan.event.name == "Fajr"

        clock.advance(13 * 60_000)
        assert engine.state == SequenceState.FADING_OUT

        clock.advance(config.schedule.fade_out_ms)
        assert engine.state == SequenceState.PLAYING_INTERRUPT_CONTENT
        assert channel.get_volume() == 0.0
        assert player.played == ["Fajr"]

        player.finish()
        clock.run_pending()
        clock.advance(config.schedule.post_action_delay_ms)
        clock.advance(config.schedule.fade_in_ms)

        assert engine.state == SequenceState.IDLE
        assert channel.get_volume() == 80.0
        assert channel.is_playing is True
        assert states[-1] == SequenceState.IDLE
        assert engine.next_trigger.event.name == "Dhuhr"

    def test_alternate_after_isha(self) -> None:
        """Verify alternate content follows the interrupt when configured."""
        config = load_config(profile="test")
        settings = replace(config.schedule, post_action=PostAction.ALTERNATE)
        clock = ManualClock()
        channel = MockAudioChannel(volume=50, playing=False)
        alternate = MockAlternatePlayer(channel)
        engine = InterruptionEngine.from_config(
            replace(config, schedule=settings),
            channel,
            MockInterruptPlayer(signals_completion=False),
            clock,
            alternate_player=alternate,
            wall_clock=WallClock(clock, datetime(2026, 3, 1, 19, 43)),
        )

        engine.start()
        clock.run_pending()
        clock.advance(settings.assumed_interrupt_duration_ms)
        clock.advance(settings.post_action_delay_ms)
        clock.advance(settings.fade_in_ms)

        assert alternate.play_count == 1
        assert channel.is_playing is True
        assert channel.get_volume() == float(settings.default_volume)
        assert engine.next_trigger.event.name == "Fajr"

    def test_interrupt_failure_rearms(self) -> None:
        """Verify a failed Azan still re-arms the scheduler."""
        config = load_config(profile="test")
        clock = ManualClock()
        channel = MockAudioChannel(volume=80, playing=True)
        player = MockInterruptPlayer()
        player.raise_on_play(RuntimeError("audio device busy"))
        errors = []
        engine = InterruptionEngine.from_config(
            config,
            channel,
            player,
            clock,
            wall_clock=WallClock(clock, datetime(2026, 3, 1, 5, 13)),
            on_error=errors.append,
        )

        engine.start()
        clock.run_pending()
        clock.advance(config.schedule.fade_out_ms)

        assert engine.state == SequenceState.IDLE
        assert len(errors) == 1
        assert engine.next_trigger.event.name == "Dhuhr"


class TestThreadedClock:
    """The same flow on real threads."""

    def test_manual_trigger_completes(self) -> None:
        """Verify a manual interruption returns to IDLE on the dispatcher."""
        config = load_config(profile="test")
        channel = MockAudioChannel(volume=80, playing=True)
        finished = threading.Event()
        seen: list[SequenceState] = []

        def on_state_change(state: SequenceState) -> None:
            seen.append(state)
            if state == SequenceState.IDLE:
                finished.set()

        with ThreadedClock() as clock:
            engine = InterruptionEngine.from_config(
                config,
                channel,
                MockInterruptPlayer(signals_completion=False),
                clock,
                on_state_change=on_state_change,
            )
            clock.call_soon(engine.start)
            clock.call_soon(engine.trigger_sequence_now)

            assert finished.wait(5.0)

            stopped = threading.Event()

            def shutdown() -> None:
                engine.shutdown()
                stopped.set()

            clock.call_soon(shutdown)
            assert stopped.wait(2.0)

        assert seen[0] == SequenceState.FADING_OUT
        assert SequenceState.POST_ACTION in seen
        assert channel.get_volume() == 80.0
