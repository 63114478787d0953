"""Volume ramp engine.

Interpolates a channel's volume linearly over a fixed number of steps.
A channel has at most one live ramp: starting a new one cancels the
previous one (last writer wins), so ducking and the interruption
sequence can never fight over the same volume.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from enum import Enum

from ..audio import VolumeSink, clamp_volume
from ..errors import PlaybackCallbackError
from ..timing import Clock, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_STEP_COUNT: int = 20


class RampOutcome(Enum):
    """How a ramp ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RampJob:
    """A single volume ramp on one channel.

    The job's future resolves exactly once, with a RampOutcome, or with a
    PlaybackCallbackError if the channel rejected a volume change.
    """

    def __init__(
        self,
        sink: VolumeSink,
        from_volume: float,
        to_volume: float,
        duration_ms: int,
        step_count: int,
        started_ms: float,
    ) -> None:
        """Initialize job.

        Args:
            sink: Channel receiving the volume updates
            from_volume: Starting volume, 0-100
            to_volume: Target volume, 0-100
            duration_ms: Total ramp duration
            step_count: Number of volume updates
            started_ms: Clock time the ramp started
        """
        self.sink = sink
        self.from_volume = clamp_volume(from_volume)
        self.to_volume = clamp_volume(to_volume)
        self.duration_ms = duration_ms
        self.step_count = step_count
        self.started_ms = started_ms
        self.step = 0
        self.last_volume: float | None = None
        self.future: Future[RampOutcome] = Future()
        self._handle: TimerHandle | None = None
        self._cancel_hook: Callable[["RampJob"], bool] | None = None

    @property
    def channel(self) -> str:
        """Name of the channel being ramped."""
        return self.sink.name

    @property
    def step_interval_ms(self) -> float:
        """Milliseconds between volume updates."""
        return self.duration_ms / self.step_count

    @property
    def done(self) -> bool:
        """Return True once the job has resolved."""
        return self.future.done()

    def volume_at(self, step: int) -> float:
        """Volume applied at the given step (1-based)."""
        if step >= self.step_count:
            return self.to_volume
        fraction = step / self.step_count
        return clamp_volume(self.from_volume + (self.to_volume - self.from_volume) * fraction)

    def cancel(self) -> bool:
        """Stop further ticks; the channel keeps the last applied volume.

        Returns:
            True if the job was live and is now cancelled.
        """
        if self._cancel_hook is None:
            return False
        return self._cancel_hook(self)

    def _resolve(self, outcome: RampOutcome) -> None:
        if not self.future.done():
            self.future.set_result(outcome)

    def _reject(self, error: PlaybackCallbackError) -> None:
        if not self.future.done():
            self.future.set_exception(error)


class RampEngine:
    """Runs volume ramps on the shared clock.

    Usage:
        ramps = RampEngine(clock)
        job = ramps.ramp(channel, 80, 0, 5000)
        job.future.add_done_callback(on_faded)
    """

    def __init__(self, clock: Clock, step_count: int = DEFAULT_STEP_COUNT) -> None:
        """Initialize ramp engine.

        Args:
            clock: Clock that schedules the ticks
            step_count: Volume updates per ramp, regardless of duration
        """
        if step_count < 1:
            raise ValueError(f"step_count must be >= 1, got {step_count}")
        self._clock = clock
        self._step_count = step_count
        self._live: dict[str, RampJob] = {}

    @property
    def step_count(self) -> int:
        """Volume updates per ramp."""
        return self._step_count

    def live_job(self, channel: str) -> RampJob | None:
        """Return the live ramp on a channel, if any."""
        return self._live.get(channel)

    def ramp(
        self,
        sink: VolumeSink,
        from_volume: float,
        to_volume: float,
        duration_ms: int,
    ) -> RampJob:
        """Start ramping a channel's volume.

        Any live ramp on the same channel is cancelled first. A zero
        duration applies the target immediately and resolves before
        returning.

        Args:
            sink: Channel to ramp
            from_volume: Starting volume
            to_volume: Target volume
            duration_ms: Ramp duration in milliseconds

        Returns:
            The new RampJob
        """
        self.cancel(sink.name)

        job = RampJob(
            sink=sink,
            from_volume=from_volume,
            to_volume=to_volume,
            duration_ms=max(0, duration_ms),
            step_count=self._step_count,
            started_ms=self._clock.now_ms(),
        )
        job._cancel_hook = self._cancel_job

        if job.duration_ms == 0:
            job.step = job.step_count
            if self._apply(job, job.to_volume):
                job._resolve(RampOutcome.COMPLETED)
            return job

        logger.debug(
            f"Ramp on {job.channel}: {job.from_volume:.1f} -> {job.to_volume:.1f} "
            f"over {job.duration_ms}ms"
        )
        self._live[job.channel] = job
        job._handle = self._clock.call_later(job.step_interval_ms, lambda: self._tick(job))
        return job

    def cancel(self, channel: str) -> bool:
        """Cancel the live ramp on a channel.

        Returns:
            True if a live ramp was cancelled.
        """
        job = self._live.get(channel)
        if job is None:
            return False
        return self._cancel_job(job)

    def cancel_all(self) -> None:
        """Cancel every live ramp."""
        for job in list(self._live.values()):
            self._cancel_job(job)

    def _cancel_job(self, job: RampJob) -> bool:
        if job.done:
            return False
        self._release(job)
        logger.debug(f"Ramp on {job.channel} cancelled at step {job.step}/{job.step_count}")
        job._resolve(RampOutcome.CANCELLED)
        return True

    def _release(self, job: RampJob) -> None:
        if job._handle is not None:
            job._handle.cancel()
            job._handle = None
        if self._live.get(job.channel) is job:
            del self._live[job.channel]

    def _apply(self, job: RampJob, volume: float) -> bool:
        try:
            job.sink.set_volume(volume)
        except Exception as e:
            self._release(job)
            error = PlaybackCallbackError(
                f"set_volume failed on {job.channel}: {e}", operation="set_volume"
            )
            error.__cause__ = e
            logger.error(str(error))
            job._reject(error)
            return False
        job.last_volume = volume
        return True

    def _tick(self, job: RampJob) -> None:
        if job.done:
            return
        job._handle = None
        job.step += 1
        if not self._apply(job, job.volume_at(job.step)):
            return

        if job.step >= job.step_count:
            self._release(job)
            job._resolve(RampOutcome.COMPLETED)
            return

        due_ms = job.started_ms + job.step_interval_ms * (job.step + 1)
        job._handle = self._clock.call_later(due_ms - self._clock.now_ms(), lambda: self._tick(job))


__all__ = ["DEFAULT_STEP_COUNT", "RampEngine", "RampJob", "RampOutcome"]
