"""Configuration module for the interruption engine.

This module provides the typed configuration sections, configuration
loading and profile management.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol


class PostAction(Enum):
    """What happens once the interrupt content and post delay are over."""

    RESUME = "resume"  # Resume what was playing before
    SILENCE = "silence"  # Leave playback stopped
    ALTERNATE = "alternate"  # Start alternate content (e.g. Quran)


class MusicStopMode(Enum):
    """How playback is stopped and restarted around the interrupt."""

    FADE = "fade"
    IMMEDIATE = "immediate"


@dataclass(frozen=True)
class ScheduleSettings:
    """Settings for scheduled interruptions.

    Read-only to the engine. Build a new instance (dataclasses.replace)
    and hand it to the engine to change anything; the engine cancels and
    reschedules atomically.

    Fields:
        enabled: Whether scheduled interruptions fire at all.
        minutes_before: Lead time before the event the sequence starts.
        fade_out_ms: Fade-out duration before pausing.
        fade_in_ms: Fade-in duration after resuming.
        post_action: What to do after the interrupt content.
        post_action_delay_ms: Wait between interrupt content and post action.
        stop_mode: Fade around the interrupt, or stop/start immediately.
        assumed_interrupt_duration_ms: How long interrupt content may run
            without a completion signal before the sequence moves on.
        default_volume: Fade-in target for alternate content when nothing
            was playing before the interrupt.
    """

    enabled: bool = True
    minutes_before: int = 2
    fade_out_ms: int = 5000
    fade_in_ms: int = 3000
    post_action: PostAction = PostAction.RESUME
    post_action_delay_ms: int = 30000
    stop_mode: MusicStopMode = MusicStopMode.FADE
    assumed_interrupt_duration_ms: int = 180000
    default_volume: int = 80

    def __post_init__(self) -> None:
        if isinstance(self.post_action, str):
            object.__setattr__(self, "post_action", PostAction(self.post_action))
        if isinstance(self.stop_mode, str):
            object.__setattr__(self, "stop_mode", MusicStopMode(self.stop_mode))
        if not 0 <= self.minutes_before < 24 * 60:
            raise ValueError(f"minutes_before must be 0-1439, got {self.minutes_before}")
        for name in (
            "fade_out_ms",
            "fade_in_ms",
            "post_action_delay_ms",
            "assumed_interrupt_duration_ms",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if not 0 <= self.default_volume <= 100:
            raise ValueError(f"default_volume must be 0-100, got {self.default_volume}")


@dataclass
class PrayerTimesConfig:
    """Static prayer times, used when no upstream source is wired in."""

    times: dict[str, str] = field(
        default_factory=lambda: {
            "Fajr": "05:15",
            "Sunrise": "06:45",
            "Dhuhr": "12:30",
            "Asr": "15:45",
            "Maghrib": "18:15",
            "Isha": "19:45",
        }
    )
    excluded: list[str] = field(default_factory=lambda: ["Sunrise"])


@dataclass
class RampConfig:
    """Volume ramp configuration."""

    step_count: int = 20


@dataclass
class WatchdogConfig:
    """Buffering watchdog configuration."""

    enabled: bool = True
    buffer_timeout_ms: int = 3000
    crossfade_ms: int = 500
    fallback_track_name: str = "Ambient Silence"
    fallback_track_uri: str = "audio/azan-default.mp3"


@dataclass
class DuckingConfig:
    """Ducking configuration."""

    enabled: bool = True
    duck_level: int = 20  # Percent of the original volume while ducked
    fade_out_ms: int = 500
    fade_in_ms: int = 300
    grace_ms: int = 200
    poll_interval_ms: int = 100

    def __post_init__(self) -> None:
        if not 0 <= self.duck_level <= 100:
            raise ValueError(f"duck_level must be 0-100, got {self.duck_level}")
        if self.grace_ms < 0:
            raise ValueError(f"grace_ms must be >= 0, got {self.grace_ms}")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class MinaretConfig:
    """Main interruption engine configuration."""

    schedule: ScheduleSettings = field(default_factory=ScheduleSettings)
    prayer_times: PrayerTimesConfig = field(default_factory=PrayerTimesConfig)
    ramp: RampConfig = field(default_factory=RampConfig)
    watchdog: WatchdogConfig = field(default_factory=WatchdogConfig)
    ducking: DuckingConfig = field(default_factory=DuckingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigLoader(Protocol):
    """Protocol for configuration loading."""

    def load(self, path: Path) -> MinaretConfig:
        """Load configuration from file path."""
        ...

    def load_profile(self, profile: str) -> MinaretConfig:
        """Load configuration by profile name (dev, prod, test)."""
        ...

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        ...


# Public API
__all__ = [
    "ConfigLoader",
    "DuckingConfig",
    "LoggingConfig",
    "MinaretConfig",
    "MusicStopMode",
    "PostAction",
    "PrayerTimesConfig",
    "RampConfig",
    "ScheduleSettings",
    "WatchdogConfig",
]
