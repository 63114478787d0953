"""Resilience module: stall detection and fallback audio."""

from .watchdog import BufferingWatchdog, FallbackState, FallbackTrack

__all__ = ["BufferingWatchdog", "FallbackState", "FallbackTrack"]
