"""Interrupt sequence states and the events that drive them."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from ..schedule.events import PrayerEvent


class SequenceState(Enum):
    """State machine for one interruption."""

    IDLE = auto()  # Nothing in progress, scheduler armed
    FADING_OUT = auto()  # Fading out / pausing current playback
    PAUSED_AWAITING_INTERRUPT = auto()  # Playback stopped, starting interrupt content
    PLAYING_INTERRUPT_CONTENT = auto()  # Azan playing
    POST_INTERRUPT_DELAY = auto()  # Waiting before the post action
    POST_ACTION = auto()  # Resume / alternate / silence


@dataclass(frozen=True)
class TimerFired:
    """The scheduler's timer fired for an event."""

    event: PrayerEvent


@dataclass(frozen=True)
class ManualTrigger:
    """A sequence was requested by hand (test button, CLI)."""

    label: str = "Test"


@dataclass(frozen=True)
class CallbackResolved:
    """An awaited step finished.

    Attributes:
        run_id: Sequence run the step belongs to.
        state: State the step was started from.
        step: Step name, for logs.
        error: Failure, or None on success.
        result: Step result on success.
    """

    run_id: int
    state: SequenceState
    step: str
    error: BaseException | None = None
    result: Any = None


@dataclass(frozen=True)
class AbortRequested:
    """Stop the running sequence and go back to idle."""

    reason: str = "aborted"


SequenceEvent = TimerFired | ManualTrigger | CallbackResolved | AbortRequested


__all__ = [
    "AbortRequested",
    "CallbackResolved",
    "ManualTrigger",
    "SequenceEvent",
    "SequenceState",
    "TimerFired",
]
