"""Sequence module: the interruption state machine."""

from .sequencer import InterruptSequencer
from .states import (
    AbortRequested,
    CallbackResolved,
    ManualTrigger,
    SequenceEvent,
    SequenceState,
    TimerFired,
)

__all__ = [
    "AbortRequested",
    "CallbackResolved",
    "InterruptSequencer",
    "ManualTrigger",
    "SequenceEvent",
    "SequenceState",
    "TimerFired",
]
