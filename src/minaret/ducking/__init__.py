"""Ducking module: short volume dips for foreground events."""

from .controller import DuckingController, DuckState

__all__ = ["DuckState", "DuckingController"]
