"""Audio module for the interruption engine.

Provides the collaborator interfaces the engine drives (playback
channels, interrupt and alternate content players) and helpers for
treating their outcomes uniformly.

Usage:
    # Backends implement the protocols
    class SpotifyChannel:  # AudioChannel
        ...

    # For testing, use mock implementations
    from minaret.audio.mock import MockAudioChannel, MockInterruptPlayer
"""

from .channel import (
    MAX_VOLUME,
    MIN_VOLUME,
    AlternatePlayer,
    AudioChannel,
    InterruptPlayer,
    LoopingChannel,
    VolumeSink,
    call_command,
    clamp_volume,
    relay_outcome,
    wrap_failure,
)

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
