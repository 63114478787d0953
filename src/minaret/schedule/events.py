"""Prayer events.

A day's events are produced upstream (prayer-time calculation is not
part of this package) and replaced wholesale when they change.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ..errors import SchedulingError

MINUTES_PER_DAY: int = 24 * 60

# Events that are shown but never interrupt playback
DEFAULT_NON_TRIGGERING = frozenset({"Sunrise"})

_CLOCK_TIME = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


@dataclass(frozen=True)
class PrayerEvent:
    """A named daily event.

    Attributes:
        name: Event name (e.g. "Fajr").
        time_of_day: Minutes since local midnight, 0-1439.
        triggers: False for events that never start an interruption.
    """

    name: str
    time_of_day: int
    triggers: bool = True

    @classmethod
    def parse(cls, name: str, clock_time: str, triggers: bool = True) -> "PrayerEvent":
        """Build an event from an "HH:MM" string.

        Raises:
            SchedulingError: If the time is not a valid 24-hour clock time
        """
        match = _CLOCK_TIME.match(clock_time)
        if match is None:
            raise SchedulingError(f"Invalid time for {name}: {clock_time!r}")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise SchedulingError(f"Invalid time for {name}: {clock_time!r}")
        return cls(name=name, time_of_day=hours * 60 + minutes, triggers=triggers)

    @property
    def clock_time(self) -> str:
        """Time of day as "HH:MM"."""
        return f"{self.time_of_day // 60:02d}:{self.time_of_day % 60:02d}"


def events_from_times(
    times: Mapping[str, str],
    excluded: Iterable[str] = DEFAULT_NON_TRIGGERING,
) -> list[PrayerEvent]:
    """Build a day's events from a name -> "HH:MM" mapping.

    Args:
        times: Event times keyed by name
        excluded: Names that never trigger an interruption

    Returns:
        Events in mapping order

    Raises:
        SchedulingError: If any time is malformed
    """
    excluded_names = {name.lower() for name in excluded}
    return [
        PrayerEvent.parse(name, clock_time, triggers=name.lower() not in excluded_names)
        for name, clock_time in times.items()
    ]


def validate_events(events: Iterable[PrayerEvent]) -> list[PrayerEvent]:
    """Check an event list and return its triggering events.

    Raises:
        SchedulingError: If the list is empty, holds a malformed event or
            has no triggering events
    """
    events = list(events)
    if not events:
        raise SchedulingError("No prayer events to schedule")

    for event in events:
        if not isinstance(event, PrayerEvent):
            raise SchedulingError(f"Not a prayer event: {event!r}")
        if not event.name or not event.name.strip():
            raise SchedulingError(f"Prayer event without a name: {event!r}")
        if (
            not isinstance(event.time_of_day, int)
            or isinstance(event.time_of_day, bool)
            or not 0 <= event.time_of_day < MINUTES_PER_DAY
        ):
            raise SchedulingError(
                f"Invalid time of day for {event.name}: {event.time_of_day!r}"
            )

    triggering = [event for event in events if event.triggers]
    if not triggering:
        raise SchedulingError("None of the prayer events trigger an interruption")
    return triggering


__all__ = [
    "DEFAULT_NON_TRIGGERING",
    "MINUTES_PER_DAY",
    "PrayerEvent",
    "events_from_times",
    "validate_events",
]
