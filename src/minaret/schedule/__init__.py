"""Schedule module: prayer events and the next-trigger timer."""

from .events import (
    DEFAULT_NON_TRIGGERING,
    MINUTES_PER_DAY,
    PrayerEvent,
    events_from_times,
    validate_events,
)
from .scheduler import (
    MAX_TRIGGER_DELAY_MS,
    PrayerEventScheduler,
    TriggerPlan,
    compute_next_trigger,
)

__all__ = [
    "DEFAULT_NON_TRIGGERING",
    "MAX_TRIGGER_DELAY_MS",
    "MINUTES_PER_DAY",
    "PrayerEvent",
    "PrayerEventScheduler",
    "TriggerPlan",
    "compute_next_trigger",
    "events_from_times",
    "validate_events",
]
