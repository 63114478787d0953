"""Unit tests for the buffering watchdog."""

from unittest.mock import MagicMock

import pytest

from minaret.audio.mock import MockAudioChannel
from minaret.config import WatchdogConfig
from minaret.fade import CrossfadeEngine, RampEngine
from minaret.resilience import BufferingWatchdog, FallbackTrack
from minaret.signals import ManualSignal
from minaret.timing.mock import ManualClock


class WatchdogHarness:
    """Watchdog wired to mock channels on a manual clock."""

    def __init__(self, config: WatchdogConfig | None = None, suppressed: bool = False) -> None:
        self.clock = ManualClock()
        self.stream = MockAudioChannel("stream", volume=70, playing=True)
        self.fallback = MockAudioChannel("fallback", volume=0)
        self.on_fallback = MagicMock()
        self.on_restored = MagicMock()
        self.suppressed = suppressed
        self.watchdog = BufferingWatchdog(
            self.stream,
            self.fallback,
            CrossfadeEngine(RampEngine(self.clock)),
            self.clock,
            config=config,
            on_fallback_triggered=self.on_fallback,
            on_stream_restored=self.on_restored,
            is_suppressed=lambda: self.suppressed,
        )


class TestStallDetection:
    """Tests for the stall timeout."""

    def test_short_stall_never_activates(self) -> None:
        """Verify a stall resolved before the timeout leaves fallback off."""
        h = WatchdogHarness()

        h.watchdog.notify_stalled("stream")
        h.clock.advance(1000)
        assert h.watchdog.state.is_fallback_active is False
        h.watchdog.notify_resumed("stream")
        h.clock.advance(5000)

        assert h.watchdog.state.is_fallback_active is False
        assert h.watchdog.timeout_armed is False
        h.on_fallback.assert_not_called()

    def test_long_stall_activates_at_timeout(self) -> None:
        """Verify fallback starts at the timeout and the crossfade follows."""
        h = WatchdogHarness()

        h.watchdog.notify_stalled("stream")
        h.clock.advance(2999)
        assert h.watchdog.state.is_fallback_active is False

        h.clock.advance(1)
        state = h.watchdog.state
        assert state.is_fallback_active is True
        assert state.is_buffering is True
        assert state.buffering_source == "stream"
        assert h.fallback.is_playing is True
        h.on_fallback.assert_called_once()

        h.clock.advance(500)
        assert h.fallback.get_volume() == 70.0
        assert h.stream.get_volume() == 0.0
        assert h.stream.position_reset is True

    def test_fallback_loads_default_track(self) -> None:
        """Verify the fallback channel is loaded with the looping track."""
        h = WatchdogHarness()

        assert h.fallback.source == "audio/azan-default.mp3"
        assert h.fallback.loop is True
        assert h.watchdog.track == FallbackTrack("Ambient Silence", "audio/azan-default.mp3")

    def test_disabled_watchdog_never_arms(self) -> None:
        """Verify a disabled watchdog only tracks the buffering flag."""
        h = WatchdogHarness(WatchdogConfig(enabled=False))

        h.watchdog.notify_stalled("stream")
        h.clock.advance(10000)

        assert h.watchdog.state.is_buffering is True
        assert h.watchdog.state.is_fallback_active is False

    def test_suppressed_during_interruption(self) -> None:
        """Verify a running interruption keeps the fallback off."""
        h = WatchdogHarness(suppressed=True)

        h.watchdog.notify_stalled("stream")
        h.clock.advance(5000)

        assert h.watchdog.state.is_fallback_active is False
        h.on_fallback.assert_not_called()

    def test_stall_outlasting_interruption_falls_back(self) -> None:
        """Verify a stall that expired during an interruption is acted on afterwards."""
        h = WatchdogHarness(suppressed=True)

        h.watchdog.notify_stalled("stream")
        h.clock.advance(5000)
        h.suppressed = False
        h.watchdog.on_sequence_idle()
        h.clock.advance(500)

        assert h.watchdog.state.is_fallback_active is True
        assert h.fallback.get_volume() == 70.0
        h.on_fallback.assert_called_once()

    def test_resume_during_interruption_clears_deferred_stall(self) -> None:
        """Verify a stream that recovered before the interruption ended stays put."""
        h = WatchdogHarness(suppressed=True)

        h.watchdog.notify_stalled("stream")
        h.clock.advance(5000)
        h.watchdog.notify_resumed("stream")
        h.suppressed = False
        h.watchdog.on_sequence_idle()
        h.clock.advance(500)

        assert h.watchdog.state.is_fallback_active is False
        h.on_fallback.assert_not_called()

    def test_idle_without_expired_stall_does_nothing(self) -> None:
        """Verify on_sequence_idle ignores a stall still inside its timeout."""
        h = WatchdogHarness()

        h.watchdog.notify_stalled("stream")
        h.clock.advance(1000)
        h.watchdog.on_sequence_idle()

        assert h.watchdog.state.is_fallback_active is False
        assert h.watchdog.timeout_armed is True

    def test_fallback_play_failure(self) -> None:
        """Verify a fallback that cannot start is marked inactive again."""
        h = WatchdogHarness()
        h.fallback.fail_on("play")

        h.watchdog.notify_stalled("stream")
        h.clock.advance(3000)

        assert h.watchdog.state.is_fallback_active is False
        assert h.stream.get_volume() == 70.0


class TestRecovery:
    """Tests for restoring the stream."""

    def test_resume_restores_stream(self) -> None:
        """Verify a resume edge crossfades back at the original volume."""
        h = WatchdogHarness()
        h.watchdog.notify_stalled("stream")
        h.clock.advance(3500)

        h.watchdog.notify_resumed("stream")
        assert h.stream.is_playing is True
        h.clock.advance(500)

        assert h.watchdog.state.is_fallback_active is False
        assert h.stream.get_volume() == 70.0
        assert h.fallback.get_volume() == 0.0
        assert h.fallback.is_playing is False
        h.on_restored.assert_called_once()

    def test_stall_again_while_restoring(self) -> None:
        """Verify a new stall mid-restore keeps the first captured volume."""
        h = WatchdogHarness(WatchdogConfig(buffer_timeout_ms=100))
        h.watchdog.notify_stalled("stream")
        h.clock.advance(700)
        h.watchdog.notify_resumed("stream")
        h.clock.advance(200)

        h.watchdog.notify_stalled("stream")
        h.clock.advance(100)
        h.clock.advance(500)

        assert h.watchdog.state.is_fallback_active is True
        assert h.fallback.get_volume() == 70.0
        h.on_restored.assert_not_called()


class TestManualControl:
    """Tests for force_fallback and stop_fallback."""

    def test_force_and_stop(self) -> None:
        """Verify manual control uses the same crossfade path."""
        h = WatchdogHarness()

        h.watchdog.force_fallback()
        h.clock.advance(500)
        assert h.watchdog.state.is_fallback_active is True
        assert h.watchdog.state.forced is True
        assert h.fallback.get_volume() == 70.0

        h.watchdog.stop_fallback()
        h.clock.advance(500)
        assert h.watchdog.state.is_fallback_active is False
        assert h.stream.get_volume() == 70.0

    def test_resume_edge_keeps_forced_fallback(self) -> None:
        """Verify a forced fallback ignores resume edges."""
        h = WatchdogHarness()
        h.watchdog.force_fallback()
        h.clock.advance(500)

        h.watchdog.notify_stalled("stream")
        h.watchdog.notify_resumed("stream")
        h.clock.advance(1000)

        assert h.watchdog.state.is_fallback_active is True

    def test_stop_without_fallback_is_noop(self) -> None:
        """Verify stop_fallback does nothing when inactive."""
        h = WatchdogHarness()
        h.watchdog.stop_fallback()
        h.clock.advance(1000)

        assert h.stream.calls == []


class TestFallbackTrack:
    """Tests for the fallback track identity."""

    def test_set_and_reset(self) -> None:
        """Verify custom tracks load and reset goes back to the default."""
        h = WatchdogHarness()

        h.watchdog.set_fallback_track("Rain", "file:///music/rain.mp3")
        assert h.watchdog.track.is_default is False
        assert h.fallback.source == "file:///music/rain.mp3"

        h.watchdog.reset_fallback_track()
        assert h.watchdog.track.is_default is True
        assert h.fallback.source == "audio/azan-default.mp3"

    def test_switching_track_while_active_keeps_playing(self) -> None:
        """Verify a new track starts right away if the fallback is audible."""
        h = WatchdogHarness()
        h.watchdog.force_fallback()
        h.clock.advance(500)
        h.fallback.clear()

        h.watchdog.set_fallback_track("Rain", "file:///music/rain.mp3")

        assert h.fallback.calls == ["load", "play"]


class TestMonitor:
    """Tests for monitor() with a stall signal."""

    def test_signal_edges_drive_watchdog(self) -> None:
        """Verify the stall signal arms and disarms the timeout."""
        h = WatchdogHarness()
        stalled = ManualSignal()
        h.watchdog.monitor(stalled, "spotify")

        stalled.set(True)
        h.clock.run_pending()
        assert h.watchdog.timeout_armed is True
        assert h.watchdog.state.buffering_source == "spotify"

        stalled.set(False)
        h.clock.run_pending()
        assert h.watchdog.timeout_armed is False

    @pytest.mark.parametrize("timeout_ms", [300, 3000])
    def test_configured_timeout(self, timeout_ms: int) -> None:
        """Verify the configured timeout is honoured."""
        h = WatchdogHarness(WatchdogConfig(buffer_timeout_ms=timeout_ms))
        stalled = ManualSignal()
        h.watchdog.monitor(stalled, "stream")

        stalled.set(True)
        h.clock.run_pending()
        h.clock.advance(timeout_ms - 1)
        assert h.watchdog.state.is_fallback_active is False
        h.clock.advance(1)
        assert h.watchdog.state.is_fallback_active is True
