"""Unit tests for the interrupt sequencer."""

import logging
from dataclasses import replace
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from minaret.audio.mock import MockAlternatePlayer, MockAudioChannel, MockInterruptPlayer
from minaret.config import MusicStopMode, PostAction, ScheduleSettings
from minaret.errors import PlaybackCallbackError
from minaret.fade import RampEngine
from minaret.schedule import PrayerEvent, PrayerEventScheduler
from minaret.sequence import CallbackResolved, InterruptSequencer, SequenceState
from minaret.timing.mock import ManualClock

FAJR = PrayerEvent("Fajr", 315)
DHUHR = PrayerEvent("Dhuhr", 750)


class SequencerHarness:
    """Sequencer wired to mocks on a manual clock."""

    def __init__(
        self,
        settings: ScheduleSettings | None = None,
        playing: bool = True,
        volume: float = 80,
        signals_completion: bool = True,
        with_alternate: bool = False,
    ) -> None:
        self.clock = ManualClock()
        self.channel = MockAudioChannel(volume=volume, playing=playing)
        self.player = MockInterruptPlayer(signals_completion=signals_completion)
        self.alternate = MockAlternatePlayer(self.channel) if with_alternate else None
        self.scheduler = MagicMock()
        self.states: list[SequenceState] = []
        self.errors: list[PlaybackCallbackError] = []
        self.sequencer = InterruptSequencer(
            self.channel,
            self.player,
            RampEngine(self.clock),
            self.clock,
            settings=settings,
            alternate_player=self.alternate,
            scheduler=self.scheduler,
            on_state_change=self.states.append,
            on_error=self.errors.append,
        )

    @property
    def state(self) -> SequenceState:
        return self.sequencer.state

    def finish_interrupt(self) -> None:
        self.player.finish()
        self.clock.run_pending()


class TestResumeFlow:
    """Tests for the default fade / resume sequence."""

    def test_full_sequence(self) -> None:
        """Verify fade out, interrupt, delay, resume and fade in."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        assert h.state == SequenceState.FADING_OUT
        assert h.sequencer.was_playing_before is True

        h.clock.advance(5000)
        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT
        assert h.channel.get_volume() == 0.0
        assert h.channel.is_playing is False
        assert h.player.played == ["Fajr"]

        h.finish_interrupt()
        assert h.state == SequenceState.POST_INTERRUPT_DELAY

        h.clock.advance(30000)
        assert h.state == SequenceState.POST_ACTION
        assert h.channel.is_playing is True

        h.clock.advance(3000)
        assert h.state == SequenceState.IDLE
        assert h.channel.get_volume() == 80.0
        h.scheduler.reschedule.assert_called_once()
        assert h.errors == []

    def test_state_order(self) -> None:
        """Verify every state is visited in order."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(33000)

        assert h.states == [
            SequenceState.FADING_OUT,
            SequenceState.PAUSED_AWAITING_INTERRUPT,
            SequenceState.PLAYING_INTERRUPT_CONTENT,
            SequenceState.POST_INTERRUPT_DELAY,
            SequenceState.POST_ACTION,
            SequenceState.IDLE,
        ]

    def test_pause_comes_after_fade(self) -> None:
        """Verify pause is issued only once the volume reached 0."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        h.clock.advance(4999)
        assert "pause" not in h.channel.calls

        h.clock.advance(1)
        assert h.channel.calls[-1] == "pause"

    def test_nothing_playing_skips_pause_and_resume(self) -> None:
        """Verify idle playback is neither paused nor resumed."""
        h = SequencerHarness(playing=False)

        h.sequencer.on_timer(FAJR)
        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT

        h.finish_interrupt()
        h.clock.advance(30000)

        assert h.state == SequenceState.IDLE
        assert h.channel.calls == []

    def test_assumed_duration(self) -> None:
        """Verify a player without a completion signal runs the assumed time."""
        h = SequencerHarness(signals_completion=False)

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.clock.advance(179_999)
        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT

        h.clock.advance(1)
        assert h.state == SequenceState.POST_INTERRUPT_DELAY
        assert h.errors == []

    def test_missing_completion_times_out(self, caplog: pytest.LogCaptureFixture) -> None:
        """Verify content that never signals completion still ends the sequence."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.clock.advance(179_999)
        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT

        with caplog.at_level(logging.WARNING, logger="minaret.sequence.sequencer"):
            h.clock.advance(1)
        assert h.state == SequenceState.POST_INTERRUPT_DELAY
        assert "No completion signal" in caplog.text

        h.clock.advance(33000)
        assert h.state == SequenceState.IDLE
        assert h.channel.get_volume() == 80.0
        assert h.errors == []
        h.scheduler.reschedule.assert_called_once()

        h.finish_interrupt()
        h.clock.advance(60000)
        assert h.state == SequenceState.IDLE
        h.scheduler.reschedule.assert_called_once()

    def test_completion_disarms_timeout(self) -> None:
        """Verify completion before the assumed duration wins the race."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.clock.advance(1000)
        h.finish_interrupt()
        h.clock.advance(200_000)

        assert h.state == SequenceState.IDLE
        assert h.states.count(SequenceState.POST_INTERRUPT_DELAY) == 1
        assert h.states.count(SequenceState.POST_ACTION) == 1
        h.scheduler.reschedule.assert_called_once()

    def test_running_sequence_keeps_its_settings(self) -> None:
        """Verify settings changes apply to the next sequence only."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        h.sequencer.update_settings(ScheduleSettings(post_action=PostAction.SILENCE))
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(33000)

        assert h.channel.get_volume() == 80.0
        assert h.sequencer.settings.post_action == PostAction.SILENCE


class TestMutualExclusion:
    """Tests for rejecting overlapping triggers."""

    def test_second_trigger_rejected(self, caplog: pytest.LogCaptureFixture) -> None:
        """Verify a trigger during a sequence is dropped and logged."""
        h = SequencerHarness()

        with caplog.at_level(logging.WARNING, logger="minaret.sequence.sequencer"):
            h.sequencer.on_timer(FAJR)
            h.sequencer.trigger_now("Test")

        assert "rejected" in caplog.text
        assert h.sequencer.current_event_name == "Fajr"

        h.clock.advance(5000)
        assert h.player.played == ["Fajr"]

    def test_new_sequence_after_idle(self) -> None:
        """Verify a trigger is accepted again once back in IDLE."""
        h = SequencerHarness(settings=ScheduleSettings(post_action=PostAction.SILENCE))

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(30000)
        assert h.state == SequenceState.IDLE

        h.sequencer.trigger_now("Test")
        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT
        assert h.player.played == ["Fajr", "Test"]


class TestFailures:
    """Tests for collaborator failures."""

    def test_interrupt_start_failure(self) -> None:
        """Verify a failing interrupt start ends in IDLE without resuming."""
        h = SequencerHarness()
        h.player.raise_on_play(RuntimeError("no audio device"))

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)

        assert h.state == SequenceState.IDLE
        assert len(h.errors) == 1
        assert h.errors[0].operation == "play_interrupt_audio"
        assert h.errors[0].state == "PAUSED_AWAITING_INTERRUPT"
        assert isinstance(h.errors[0].__cause__, RuntimeError)
        assert "resume" not in h.channel.calls
        h.scheduler.reschedule.assert_called_once()

    def test_interrupt_content_failure(self) -> None:
        """Verify content that fails mid-way ends the sequence."""
        h = SequencerHarness()

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.player.fail(OSError("stream dropped"))
        h.clock.run_pending()

        assert h.state == SequenceState.IDLE
        assert h.errors[0].operation == "play_interrupt_audio"
        assert h.errors[0].state == "PLAYING_INTERRUPT_CONTENT"

    def test_pause_failure(self) -> None:
        """Verify a rejected pause skips the interrupt."""
        h = SequencerHarness()
        h.channel.fail_on("pause")

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)

        assert h.state == SequenceState.IDLE
        assert h.errors[0].operation == "pause"
        assert h.player.played == []

    def test_fade_out_failure(self) -> None:
        """Verify a rejected volume change ends the sequence."""
        h = SequencerHarness()
        h.channel.fail_on("set_volume")

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)

        assert h.state == SequenceState.IDLE
        assert h.errors[0].operation == "set_volume"

    def test_resume_failure(self) -> None:
        """Verify a rejected resume still returns to IDLE."""
        h = SequencerHarness()
        h.channel.fail_on("resume")

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(30000)

        assert h.state == SequenceState.IDLE
        assert h.errors[0].operation == "resume"
        assert h.errors[0].state == "POST_ACTION"

    def test_error_hook_failure_is_contained(self) -> None:
        """Verify a raising error hook does not block the reset."""
        h = SequencerHarness()
        h.sequencer._on_error = MagicMock(side_effect=ValueError("hook"))
        h.player.raise_on_play(RuntimeError("boom"))

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)

        assert h.state == SequenceState.IDLE
        h.scheduler.reschedule.assert_called_once()


class TestPostActions:
    """Tests for alternate and silence post actions."""

    def test_alternate_fades_in_to_previous_volume(self) -> None:
        """Verify alternate content fades in to the pre-interrupt volume."""
        h = SequencerHarness(
            settings=ScheduleSettings(post_action=PostAction.ALTERNATE),
            with_alternate=True,
        )

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(30000)
        assert h.alternate.play_count == 1
        assert h.state == SequenceState.POST_ACTION

        h.clock.advance(3000)
        assert h.state == SequenceState.IDLE
        assert h.channel.get_volume() == 80.0
        assert h.channel.is_playing is True

    def test_alternate_uses_default_volume(self) -> None:
        """Verify the default volume is used when nothing was playing."""
        h = SequencerHarness(
            settings=ScheduleSettings(post_action=PostAction.ALTERNATE, default_volume=60),
            playing=False,
            volume=30,
            with_alternate=True,
        )

        h.sequencer.on_timer(FAJR)
        h.finish_interrupt()
        h.clock.advance(33000)

        assert h.channel.get_volume() == 60.0

    def test_alternate_without_player(self) -> None:
        """Verify a missing alternate player is reported as a failure."""
        h = SequencerHarness(settings=ScheduleSettings(post_action=PostAction.ALTERNATE))

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(30000)

        assert h.state == SequenceState.IDLE
        assert h.errors[0].operation == "play_alternate"

    def test_silence_leaves_playback_stopped(self) -> None:
        """Verify silence ends the sequence without resuming."""
        h = SequencerHarness(settings=ScheduleSettings(post_action=PostAction.SILENCE))

        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)
        h.finish_interrupt()
        h.clock.advance(30000)

        assert h.state == SequenceState.IDLE
        assert h.channel.is_playing is False
        assert h.channel.get_volume() == 0.0
        assert "resume" not in h.channel.calls


class TestImmediateMode:
    """Tests for MusicStopMode.IMMEDIATE."""

    def test_no_volume_changes(self) -> None:
        """Verify immediate mode pauses and resumes without fading."""
        h = SequencerHarness(settings=ScheduleSettings(stop_mode=MusicStopMode.IMMEDIATE))

        h.sequencer.on_timer(FAJR)
        h.clock.run_pending()
        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT

        h.finish_interrupt()
        h.clock.advance(30000)

        assert h.state == SequenceState.IDLE
        assert h.channel.volume_history == []
        assert h.channel.calls == ["pause", "resume"]

    def test_zero_fade_out_pauses_directly(self) -> None:
        """Verify a zero fade-out skips the ramp."""
        h = SequencerHarness(settings=ScheduleSettings(fade_out_ms=0))

        h.sequencer.on_timer(FAJR)
        h.clock.run_pending()

        assert h.state == SequenceState.PLAYING_INTERRUPT_CONTENT
        assert h.channel.calls == ["pause"]


class TestAbort:
    """Tests for aborting a running sequence."""

    def test_abort_stops_interrupt_content(self) -> None:
        """Verify abort stops the content and late completion is ignored."""
        h = SequencerHarness()
        h.sequencer.on_timer(FAJR)
        h.clock.advance(5000)

        h.sequencer.abort("user request")
        h.clock.run_pending()
        assert h.state == SequenceState.IDLE
        assert h.player.stop_count == 1

        h.finish_interrupt()
        h.clock.advance(60000)
        assert h.state == SequenceState.IDLE
        h.scheduler.reschedule.assert_called_once()

    def test_abort_during_fade_out(self) -> None:
        """Verify abort cancels the fade and its pending steps."""
        h = SequencerHarness()
        h.sequencer.on_timer(FAJR)
        h.clock.advance(1000)

        h.sequencer.abort()
        h.clock.advance(10000)

        assert h.state == SequenceState.IDLE
        assert "pause" not in h.channel.calls
        assert h.player.played == []

    def test_abort_when_idle(self) -> None:
        """Verify abort with nothing running does nothing."""
        h = SequencerHarness()

        h.sequencer.abort()
        h.clock.run_pending()

        assert h.states == []
        h.scheduler.reschedule.assert_not_called()

    def test_stale_result_is_dropped(self) -> None:
        """Verify a result for another run or state is ignored."""
        h = SequencerHarness()
        h.sequencer.on_timer(FAJR)

        h.sequencer.handle(CallbackResolved(run_id=99, state=SequenceState.FADING_OUT, step="fade_out"))
        h.sequencer.handle(
            CallbackResolved(run_id=1, state=SequenceState.POST_ACTION, step="resume")
        )

        assert h.state == SequenceState.FADING_OUT


class TestWithScheduler:
    """Tests with a real scheduler attached."""

    def test_failure_rearms_next_event(self) -> None:
        """Verify a failed interruption re-arms for the next event."""
        clock = ManualClock()
        wall = {"now": datetime(2026, 3, 1, 5, 13)}
        channel = MockAudioChannel(volume=80, playing=True)
        player = MockInterruptPlayer()
        player.raise_on_play(RuntimeError("no audio device"))
        sequencer = InterruptSequencer(channel, player, RampEngine(clock), clock)
        scheduler = PrayerEventScheduler(
            clock, on_trigger=sequencer.on_timer, wall_clock=lambda: wall["now"]
        )
        sequencer.attach_scheduler(scheduler)

        scheduler.schedule([FAJR, DHUHR], ScheduleSettings())
        clock.run_pending()
        assert sequencer.state == SequenceState.FADING_OUT

        wall["now"] = datetime(2026, 3, 1, 5, 13, 5)
        clock.advance(5000)

        assert sequencer.state == SequenceState.IDLE
        assert player.played == ["Fajr"]
        assert scheduler.next_trigger.event == DHUHR

    def test_sequence_end_rearms_tomorrow(self) -> None:
        """Verify a single-event day re-arms for the next day."""
        clock = ManualClock()
        wall = {"now": datetime(2026, 3, 1, 5, 13)}
        settings = replace(ScheduleSettings(), post_action=PostAction.SILENCE)
        channel = MockAudioChannel(volume=80, playing=True)
        player = MockInterruptPlayer()
        sequencer = InterruptSequencer(channel, player, RampEngine(clock), clock, settings)
        scheduler = PrayerEventScheduler(
            clock, on_trigger=sequencer.on_timer, wall_clock=lambda: wall["now"]
        )
        sequencer.attach_scheduler(scheduler)

        scheduler.schedule([FAJR], settings)
        clock.advance(5000)
        player.finish()
        clock.run_pending()
        wall["now"] = datetime(2026, 3, 1, 5, 13, 35)
        clock.advance(30000)

        assert sequencer.state == SequenceState.IDLE
        plan = scheduler.next_trigger
        assert plan.event == FAJR
        assert plan.minutes_until_event == 1442
