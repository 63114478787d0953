"""Prayer event scheduler.

Computes when the next interruption starts and arms one cancellable
timer for it. The scheduler never re-arms itself: whoever runs the
interruption calls schedule() (or reschedule()) again once it is over,
and callers call it again whenever the events or settings change.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..config import ScheduleSettings
from ..errors import SchedulingError
from ..timing import Clock, TimerHandle
from .events import MINUTES_PER_DAY, PrayerEvent, validate_events

logger = logging.getLogger(__name__)

MS_PER_MINUTE: int = 60 * 1000
MAX_TRIGGER_DELAY_MS: int = MINUTES_PER_DAY * MS_PER_MINUTE


@dataclass(frozen=True)
class TriggerPlan:
    """When the next interruption starts.

    Attributes:
        event: The event the interruption is for.
        minutes_until_event: Whole minutes from now to the event.
        delay_ms: Milliseconds from now until the sequence starts.
        starts_at: Local wall-clock minute the sequence starts in.
    """

    event: PrayerEvent
    minutes_until_event: int
    delay_ms: int
    starts_at: datetime

    @property
    def minutes_until_trigger(self) -> int:
        """Whole minutes until the sequence starts."""
        return self.delay_ms // MS_PER_MINUTE


def minutes_since_midnight(now: datetime) -> int:
    """Local wall-clock minutes since midnight."""
    return now.hour * 60 + now.minute


def compute_next_trigger(
    events: Iterable[PrayerEvent],
    now: datetime,
    minutes_before: int,
    allow_immediate: bool = True,
) -> TriggerPlan | None:
    """Find the next interruption.

    Each triggering event is considered today (or tomorrow, if its time
    has passed or is this very minute) and on the following cycle. An
    occurrence whose lead window already started is skipped, as is one
    more than 24 hours away; the earliest remaining start wins. A start
    time in the current minute fires immediately.

    Args:
        events: The day's events
        now: Current local time
        minutes_before: Lead time before each event
        allow_immediate: If False, a start time in the current minute is
            skipped too

    Returns:
        The plan, or None if no occurrence qualifies

    Raises:
        SchedulingError: If the event list is empty or malformed
    """
    triggering = validate_events(events)
    now_minutes = minutes_since_midnight(now)
    seconds_ms = now.second * 1000 + now.microsecond // 1000
    this_minute = now.replace(second=0, microsecond=0)

    best: TriggerPlan | None = None
    for event in triggering:
        minutes_until = (event.time_of_day - now_minutes) % MINUTES_PER_DAY
        if minutes_until <= 0:
            minutes_until += MINUTES_PER_DAY

        for occurrence in (minutes_until, minutes_until + MINUTES_PER_DAY):
            lead_minutes = occurrence - minutes_before
            if lead_minutes < 0 or (lead_minutes == 0 and not allow_immediate):
                continue
            delay_ms = 0 if lead_minutes == 0 else lead_minutes * MS_PER_MINUTE - seconds_ms
            if delay_ms > MAX_TRIGGER_DELAY_MS:
                continue
            if best is None or (delay_ms, occurrence) < (best.delay_ms, best.minutes_until_event):
                best = TriggerPlan(
                    event=event,
                    minutes_until_event=occurrence,
                    delay_ms=delay_ms,
                    starts_at=this_minute + timedelta(minutes=lead_minutes),
                )

    return best


class PrayerEventScheduler:
    """Arms a single timer for the next interruption.

    Usage:
        scheduler = PrayerEventScheduler(clock, on_trigger=sequencer.on_timer)
        scheduler.schedule(events, settings)
    """

    def __init__(
        self,
        clock: Clock,
        on_trigger: Callable[[PrayerEvent], None],
        on_manual_trigger: Callable[[str], None] | None = None,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize scheduler.

        Args:
            clock: Clock that runs the trigger timer
            on_trigger: Called with the event when its timer fires
            on_manual_trigger: Called with a label by trigger_sequence_now()
            wall_clock: Returns the current local time
        """
        self._clock = clock
        self._on_trigger = on_trigger
        self._on_manual_trigger = on_manual_trigger
        self._wall_clock = wall_clock
        self._events: tuple[PrayerEvent, ...] = ()
        self._settings: ScheduleSettings | None = None
        self._handle: TimerHandle | None = None
        self._plan: TriggerPlan | None = None
        self._last_error: str | None = None
        self._last_started: datetime | None = None

    @property
    def events(self) -> tuple[PrayerEvent, ...]:
        """Events passed to the last schedule() call."""
        return self._events

    @property
    def settings(self) -> ScheduleSettings | None:
        """Settings passed to the last schedule() call."""
        return self._settings

    @property
    def next_trigger(self) -> TriggerPlan | None:
        """The armed plan, if any."""
        return self._plan if self.is_armed else None

    @property
    def is_armed(self) -> bool:
        """Return True if a trigger timer is pending."""
        return self._handle is not None and self._handle.pending

    def schedule(
        self,
        events: Iterable[PrayerEvent],
        settings: ScheduleSettings,
    ) -> TriggerPlan | None:
        """Cancel any armed timer and arm one for the next interruption.

        Scheduling errors are logged (once per distinct error) and leave
        the scheduler unarmed; they are not raised.

        Args:
            events: The day's events
            settings: Current schedule settings

        Returns:
            The armed plan, or None if nothing was armed
        """
        self.cancel_scheduled()
        self._events = tuple(events)
        self._settings = settings

        if not settings.enabled:
            logger.info("Scheduled interruptions disabled")
            return None

        try:
            now = self._wall_clock()
            plan = compute_next_trigger(
                self._events,
                now,
                settings.minutes_before,
                # A sequence that ended within its own start minute must not re-fire
                allow_immediate=now.replace(second=0, microsecond=0) != self._last_started,
            )
        except SchedulingError as e:
            self._report(e)
            return None
        self._last_error = None

        if plan is None:
            logger.info("No upcoming prayer event within the next 24 hours")
            return None

        self._plan = plan
        self._handle = self._clock.call_later(plan.delay_ms, lambda: self._fire(plan))
        logger.info(
            f"Scheduling interruption for {plan.event.name} ({plan.event.clock_time}) "
            f"in {plan.delay_ms // MS_PER_MINUTE} minutes"
        )
        return plan

    def reschedule(self) -> TriggerPlan | None:
        """Schedule again with the last events and settings."""
        if self._settings is None:
            return None
        return self.schedule(self._events, self._settings)

    def cancel_scheduled(self) -> bool:
        """Disarm the pending trigger.

        Returns:
            True if a pending trigger was cancelled.
        """
        handle, self._handle = self._handle, None
        self._plan = None
        if handle is None:
            return False
        cancelled = handle.cancel()
        if cancelled:
            logger.debug("Scheduled interruption cancelled")
        return cancelled

    def trigger_sequence_now(self, label: str = "Test") -> None:
        """Request a sequence right away, outside the schedule."""
        if self._on_manual_trigger is None:
            logger.warning("Manual trigger requested but no handler is wired")
            return
        self._clock.call_soon(lambda: self._on_manual_trigger(label))

    def _fire(self, plan: TriggerPlan) -> None:
        self._handle = None
        self._plan = None
        self._last_started = plan.starts_at
        logger.info(f"Interruption due for {plan.event.name}")
        self._on_trigger(plan.event)

    def _report(self, error: SchedulingError) -> None:
        message = str(error)
        if message != self._last_error:
            logger.error(f"Cannot schedule interruption: {message}")
            self._last_error = message


__all__ = [
    "MAX_TRIGGER_DELAY_MS",
    "MS_PER_MINUTE",
    "PrayerEventScheduler",
    "TriggerPlan",
    "compute_next_trigger",
    "minutes_since_midnight",
]
