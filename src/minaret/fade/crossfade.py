"""Crossfade engine.

Fades one channel out while fading another in, as two ramps on the same
step cadence. On natural completion the outgoing channel is hard-stopped
and both endpoints are forced exactly; on cancellation both channels
keep whatever volume they last received.
"""

import logging
from concurrent.futures import Future
from typing import Any

from ..audio import AudioChannel, call_command, clamp_volume
from ..errors import PlaybackCallbackError
from .ramp import RampEngine, RampJob, RampOutcome

logger = logging.getLogger(__name__)

DEFAULT_CROSSFADE_MS: int = 500


class CrossfadeJob:
    """A pair of ramps resolved together."""

    def __init__(
        self,
        outgoing: AudioChannel | None,
        incoming: AudioChannel | None,
        target_volume: float,
    ) -> None:
        """Initialize job.

        Args:
            outgoing: Channel fading to silence, if any
            incoming: Channel fading up, if any
            target_volume: Final volume of the incoming channel
        """
        self.outgoing = outgoing
        self.incoming = incoming
        self.target_volume = clamp_volume(target_volume)
        self.outgoing_ramp: RampJob | None = None
        self.incoming_ramp: RampJob | None = None
        self.future: Future[RampOutcome] = Future()
        self._settling = False

    @property
    def done(self) -> bool:
        """Return True once the crossfade has resolved."""
        return self.future.done()

    def cancel(self) -> bool:
        """Cancel both ramps; channels freeze at their last volume.

        Returns:
            True if anything was still running.
        """
        cancelled = False
        for ramp in (self.outgoing_ramp, self.incoming_ramp):
            if ramp is not None and ramp.cancel():
                cancelled = True
        return cancelled


class CrossfadeEngine:
    """Synchronises two ramps into a crossfade.

    Both ramps come from the shared RampEngine, so a crossfade also
    cancels (and can be cancelled by) any other ramp on either channel.
    """

    def __init__(self, ramps: RampEngine) -> None:
        """Initialize crossfade engine.

        Args:
            ramps: Shared ramp engine
        """
        self._ramps = ramps

    @property
    def ramps(self) -> RampEngine:
        """The underlying ramp engine."""
        return self._ramps

    def crossfade(
        self,
        outgoing: AudioChannel | None,
        incoming: AudioChannel | None,
        target_volume: float,
        duration_ms: int = DEFAULT_CROSSFADE_MS,
    ) -> CrossfadeJob:
        """Crossfade from outgoing to incoming.

        Args:
            outgoing: Channel to fade out and stop (None to only fade in)
            incoming: Channel to fade up (None to only fade out)
            target_volume: Volume the incoming channel ends at
            duration_ms: Crossfade duration

        Returns:
            CrossfadeJob whose future resolves with a RampOutcome
        """
        job = CrossfadeJob(outgoing, incoming, target_volume)
        out_name = outgoing.name if outgoing is not None else "-"
        in_name = incoming.name if incoming is not None else "-"
        logger.info(
            f"Crossfade {out_name} -> {in_name} "
            f"(target {job.target_volume:.1f}, {duration_ms}ms)"
        )

        try:
            if outgoing is not None:
                job.outgoing_ramp = self._ramps.ramp(
                    outgoing, outgoing.get_volume(), 0, duration_ms
                )
            if incoming is not None:
                job.incoming_ramp = self._ramps.ramp(
                    incoming, incoming.get_volume(), job.target_volume, duration_ms
                )
        except Exception as e:
            job.cancel()
            error = PlaybackCallbackError(f"get_volume failed: {e}", operation="get_volume")
            error.__cause__ = e
            job.future.set_exception(error)
            return job

        ramps = [r for r in (job.outgoing_ramp, job.incoming_ramp) if r is not None]
        if not ramps:
            job.future.set_result(RampOutcome.COMPLETED)
            return job

        for ramp in ramps:
            ramp.future.add_done_callback(lambda _done: self._on_ramp_done(job))
        return job

    def fade_out(self, channel: AudioChannel, duration_ms: int) -> CrossfadeJob:
        """Fade a channel to silence, then hard-stop it."""
        return self.crossfade(channel, None, 0, duration_ms)

    def fade_in(
        self,
        channel: AudioChannel,
        target_volume: float,
        duration_ms: int,
    ) -> CrossfadeJob:
        """Fade a channel up from silence to target_volume."""
        try:
            channel.set_volume(0)
        except Exception as e:
            job = CrossfadeJob(None, channel, target_volume)
            error = PlaybackCallbackError(f"set_volume failed: {e}", operation="set_volume")
            error.__cause__ = e
            job.future.set_exception(error)
            return job
        return self.crossfade(None, channel, target_volume, duration_ms)

    def _on_ramp_done(self, job: CrossfadeJob) -> None:
        ramps = [r for r in (job.outgoing_ramp, job.incoming_ramp) if r is not None]

        # One side ending early (cancelled or failed) takes the other with it.
        for ramp in ramps:
            if ramp.done and not self._completed(ramp):
                job.cancel()
                break

        if job._settling or not all(r.done for r in ramps):
            return
        job._settling = True

        failure = next(
            (r.future.exception() for r in ramps if r.future.exception() is not None),
            None,
        )
        if failure is not None:
            job.future.set_exception(failure)
            return
        if not all(self._completed(r) for r in ramps):
            logger.info("Crossfade cancelled mid-flight")
            job.future.set_result(RampOutcome.CANCELLED)
            return

        self._finish(job)

    def _finish(self, job: CrossfadeJob) -> None:
        """Force exact endpoints after a natural completion."""
        try:
            if job.incoming is not None:
                job.incoming.set_volume(job.target_volume)
            if job.outgoing is not None:
                job.outgoing.set_volume(0)
        except Exception as e:
            error = PlaybackCallbackError(f"set_volume failed: {e}", operation="set_volume")
            error.__cause__ = e
            job.future.set_exception(error)
            return

        if job.outgoing is None:
            job.future.set_result(RampOutcome.COMPLETED)
            return

        stopped = call_command("stop", job.outgoing.stop)

        def _after_stop(done: "Future[Any]") -> None:
            error = done.exception()
            if error is not None:
                job.future.set_exception(error)
            else:
                job.future.set_result(RampOutcome.COMPLETED)

        stopped.add_done_callback(_after_stop)

    @staticmethod
    def _completed(ramp: RampJob) -> bool:
        return (
            ramp.done
            and ramp.future.exception() is None
            and ramp.future.result() is RampOutcome.COMPLETED
        )


__all__ = ["CrossfadeEngine", "CrossfadeJob", "DEFAULT_CROSSFADE_MS"]
