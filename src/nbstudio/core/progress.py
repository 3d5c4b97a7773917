"""Simulated progress for long-running generation requests.

The remote image API gives no progress feedback, so the client shows a
simulated one.  :class:`ProgressEstimator` maps wall-clock time onto a
sequence of :class:`~nbstudio.core.phases.Phase` objects and produces a
percentage, an active phase index, and an estimate of the seconds remaining.

The last one or two phases of a sequence form the *final window*.  Until the
caller signals that the real operation has finished, simulated time is
clamped at the start of the final window, so the bar never claims to be done
while the request is still in flight.  When completion is signalled, the
start time is rebased so that elapsed time sits exactly at the final-window
boundary and the simulation runs on through the final window to 100%, after
which ``on_complete`` fires once.

State machine::

    IDLE -> RUNNING_PRE_FINAL -> RUNNING_FINAL -> COMPLETED
                 |                    |
                 +------ stop() ------+--> ABANDONED

A new ``start()`` always begins a brand-new run.

Timing
------
Recomputation is driven by a repeating timer on a single-threaded scheduler
(the running asyncio loop by default).  Every tick recomputes from the clock
rather than adding a fixed increment, so late or skipped ticks do not skew
the result.  Both the clock and the scheduler can be injected, which is how
the tests drive the estimator deterministically.

Usage
-----
::

    estimator = ProgressEstimator(on_complete=show_result, on_update=render)
    estimator.start(SINGLE_EDIT_PHASES)
    try:
        result = await client.generate(...)
    finally:
        estimator.signal_real_completion()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from nbstudio.core.phases import Phase

logger = logging.getLogger(__name__)

# Number of trailing phases reserved for the "wrapping up" animation.
FINAL_WINDOW_MAX_PHASES = 2

DEFAULT_TICK_INTERVAL_MS = 100


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class InvalidPhaseSequenceError(ValueError):
    """Raised when a phase sequence cannot drive a progress estimate."""


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with asyncio's ``call_later`` signature."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class EstimatorState(str, Enum):
    IDLE = "idle"
    RUNNING_PRE_FINAL = "running_pre_final"
    RUNNING_FINAL = "running_final"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Observable output of the estimator at one instant."""

    state: EstimatorState
    progress_percent: float = 0.0
    current_phase_index: int = 0
    estimated_seconds_remaining: float = 0.0
    phase: Phase | None = None


def validate_phases(phases: Iterable[Phase]) -> tuple[Phase, ...]:
    """Check that a phase sequence can drive an estimate.

    Individual phases may be zero-length (a degenerate final window is
    allowed), but the sequence as a whole must have a positive duration.

    Args:
        phases: Ordered phases.

    Returns:
        The phases as a tuple.

    Raises:
        InvalidPhaseSequenceError: If the sequence is empty, contains
            duplicate ids or negative durations, or sums to zero.
    """
    sequence = tuple(phases)
    if not sequence:
        raise InvalidPhaseSequenceError("Phase sequence must not be empty")

    seen: set[str] = set()
    for phase in sequence:
        if phase.id in seen:
            raise InvalidPhaseSequenceError(f"Duplicate phase id: {phase.id!r}")
        seen.add(phase.id)
        if phase.estimated_duration_ms < 0:
            raise InvalidPhaseSequenceError(
                f"Phase {phase.id!r} has a negative duration ({phase.estimated_duration_ms})"
            )

    if sum(phase.estimated_duration_ms for phase in sequence) <= 0:
        raise InvalidPhaseSequenceError("Total phase duration must be greater than zero")

    return sequence


@dataclass
class _EstimationRun:
    """Mutable state of one activation.  Never reused across activations."""

    phases: tuple[Phase, ...]
    scheduler: Scheduler
    total_duration_ms: float
    final_window_start_index: int
    final_window_duration_ms: float
    pre_final_budget_ms: float
    start_ms: float
    completion_requested: bool = False
    completed: bool = False
    progress_percent: float = 0.0
    current_phase_index: int = 0
    timer: TimerHandle | None = None

    @classmethod
    def create(cls, phases: tuple[Phase, ...], scheduler: Scheduler, now_ms: float) -> _EstimationRun:
        total = sum(phase.estimated_duration_ms for phase in phases)
        window_count = min(FINAL_WINDOW_MAX_PHASES, len(phases))
        window_start = len(phases) - window_count
        window_duration = sum(phase.estimated_duration_ms for phase in phases[window_start:])
        return cls(
            phases=phases,
            scheduler=scheduler,
            total_duration_ms=total,
            final_window_start_index=window_start,
            final_window_duration_ms=window_duration,
            pre_final_budget_ms=total - window_duration,
            start_ms=now_ms,
        )

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class ProgressEstimator:
    """Timer-driven progress simulation over a sequence of phases.

    Args:
        on_complete: Called exactly once per run, after
            :meth:`signal_real_completion` and once progress reaches 100.
        on_update: Optional observer called with a :class:`ProgressSnapshot`
            every time the estimate is recomputed.
        clock_ms: Returns the current time in milliseconds.  Defaults to
            :func:`time.monotonic` scaled to milliseconds.
        scheduler: Object providing ``call_later(delay_s, callback, *args)``.
            Defaults to the running asyncio event loop at ``start()`` time.
        tick_interval_ms: Recompute cadence.
    """

    def __init__(
        self,
        on_complete: Callable[[], None] | None = None,
        *,
        on_update: Callable[[ProgressSnapshot], None] | None = None,
        clock_ms: Callable[[], float] | None = None,
        scheduler: Scheduler | None = None,
        tick_interval_ms: float = DEFAULT_TICK_INTERVAL_MS,
    ) -> None:
        if tick_interval_ms <= 0:
            raise ValueError(f"tick_interval_ms must be positive, got {tick_interval_ms}")
        self._on_complete = on_complete
        self._on_update = on_update
        self._clock_ms = clock_ms or _monotonic_ms
        self._scheduler = scheduler
        self._tick_interval_s = tick_interval_ms / 1000.0

        self._run: _EstimationRun | None = None
        self._snapshot = ProgressSnapshot(state=EstimatorState.IDLE)

    # -- Observable outputs -------------------------------------------------

    @property
    def state(self) -> EstimatorState:
        return self._snapshot.state

    @property
    def progress_percent(self) -> float:
        return self._snapshot.progress_percent

    @property
    def current_phase_index(self) -> int:
        return self._snapshot.current_phase_index

    @property
    def estimated_seconds_remaining(self) -> float:
        return self._snapshot.estimated_seconds_remaining

    @property
    def is_running(self) -> bool:
        return self._run is not None

    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    # -- Mutators -----------------------------------------------------------

    def start(self, phases: Iterable[Phase]) -> None:
        """Begin a new run over ``phases``, abandoning any active run.

        Raises:
            InvalidPhaseSequenceError: If the sequence is malformed.
            RuntimeError: If no scheduler was injected and no asyncio event
                loop is running.
        """
        sequence = validate_phases(phases)
        scheduler = self._scheduler or asyncio.get_running_loop()

        if self._run is not None:
            self.stop()

        run = _EstimationRun.create(sequence, scheduler, self._now_ms())
        self._run = run
        logger.info(
            "Progress run started (%d phases, %.0f ms total, final window %.0f ms)",
            len(sequence),
            run.total_duration_ms,
            run.final_window_duration_ms,
        )
        self._recompute(run)
        if run is self._run:
            self._schedule(run)

    def signal_real_completion(self) -> None:
        """Unlock the final window because the real operation has finished.

        Rebases the run's start time so that elapsed time equals the
        pre-final budget at this instant.  Further calls have no effect.  If
        the final window has zero length, ``on_complete`` fires before this
        method returns.
        """
        run = self._run
        if run is None:
            logger.debug("Completion signalled with no active run; ignoring")
            return
        if run.completion_requested:
            return

        run.start_ms = self._now_ms() - run.pre_final_budget_ms
        run.completion_requested = True
        logger.debug("Completion signalled; rebased start to %.1f ms", run.start_ms)

        self._recompute(run)
        if run is not self._run:
            return
        if run.final_window_duration_ms == 0:
            # Nothing left to animate; do not depend on a second clock read.
            run.progress_percent = 100.0
        self._finish_if_done(run)

    def stop(self) -> None:
        """Abandon the active run without firing ``on_complete``.

        Cancels the pending timer.  Safe to call repeatedly and when idle.
        """
        run = self._run
        if run is None:
            return
        run.cancel_timer()
        self._run = None
        self._snapshot = ProgressSnapshot(state=EstimatorState.ABANDONED)
        logger.info("Progress run abandoned")

    # -- Internals ----------------------------------------------------------

    def _now_ms(self) -> float:
        return self._clock_ms()

    def _schedule(self, run: _EstimationRun) -> None:
        run.timer = run.scheduler.call_later(self._tick_interval_s, self._tick, run)

    def _tick(self, run: _EstimationRun) -> None:
        # A tick scheduled for a run that has since been stopped or replaced.
        if run is not self._run:
            return
        run.timer = None

        self._recompute(run)
        if run is not self._run:
            return
        if self._finish_if_done(run):
            return
        self._schedule(run)

    def _effective_elapsed(self, run: _EstimationRun) -> float:
        elapsed = max(0.0, self._now_ms() - run.start_ms)
        if run.completion_requested:
            return elapsed
        return min(elapsed, run.pre_final_budget_ms)

    def _phase_index(self, run: _EstimationRun, effective_elapsed: float) -> int:
        # Last phase whose cumulative start is <= effective elapsed time.
        index = 0
        phase_start = 0.0
        for i, phase in enumerate(run.phases):
            if phase_start > effective_elapsed:
                break
            index = i
            phase_start += phase.estimated_duration_ms

        if not run.completion_requested:
            index = min(index, max(run.final_window_start_index - 1, 0))
        return index

    def _recompute(self, run: _EstimationRun) -> None:
        effective = self._effective_elapsed(run)

        progress = min(100.0, 100.0 * effective / run.total_duration_ms)
        run.progress_percent = max(run.progress_percent, progress)
        run.current_phase_index = max(run.current_phase_index, self._phase_index(run, effective))
        remaining_s = max(0.0, run.total_duration_ms - effective) / 1000.0

        state = (
            EstimatorState.RUNNING_FINAL
            if run.completion_requested
            else EstimatorState.RUNNING_PRE_FINAL
        )
        self._snapshot = ProgressSnapshot(
            state=state,
            progress_percent=run.progress_percent,
            current_phase_index=run.current_phase_index,
            estimated_seconds_remaining=remaining_s,
            phase=run.phases[run.current_phase_index],
        )
        logger.debug(
            "Progress %.1f%% (phase %d, %.1fs left)",
            run.progress_percent,
            run.current_phase_index,
            remaining_s,
        )
        if self._on_update is not None:
            self._on_update(self._snapshot)

    def _finish_if_done(self, run: _EstimationRun) -> bool:
        if not run.completion_requested or run.progress_percent < 100.0 or run.completed:
            return False

        run.completed = True
        run.cancel_timer()
        self._run = None
        self._snapshot = ProgressSnapshot(
            state=EstimatorState.COMPLETED,
            progress_percent=100.0,
            current_phase_index=len(run.phases) - 1,
            estimated_seconds_remaining=0.0,
            phase=run.phases[-1],
        )
        logger.info("Progress run completed")
        if self._on_complete is not None:
            self._on_complete()
        return True
