"""Fade module: volume ramps and crossfades.

Usage:
    ramps = RampEngine(clock, step_count=20)
    ramps.ramp(channel, 80, 0, 5000)

    crossfades = CrossfadeEngine(ramps)
    crossfades.crossfade(stream, fallback, stream.get_volume(), 500)
"""

from .crossfade import DEFAULT_CROSSFADE_MS, CrossfadeEngine, CrossfadeJob
from .ramp import DEFAULT_STEP_COUNT, RampEngine, RampJob, RampOutcome

__all__ = [
    "CrossfadeEngine",
    "CrossfadeJob",
    "DEFAULT_CROSSFADE_MS",
    "DEFAULT_STEP_COUNT",
    "RampEngine",
    "RampJob",
    "RampOutcome",
]
