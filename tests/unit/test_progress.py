"""Unit tests for nbstudio.core.progress — the simulated progress estimator.

All tests drive the estimator with the ``scheduler`` fixture from conftest,
a fake clock/scheduler pair advanced in whole milliseconds.
"""

from __future__ import annotations

import asyncio

import pytest

from nbstudio.core.phases import PHASE_SEQUENCES, Phase
from nbstudio.core.progress import (
    EstimatorState,
    InvalidPhaseSequenceError,
    ProgressEstimator,
    validate_phases,
)


def make_estimator(scheduler, on_complete=None, on_update=None) -> ProgressEstimator:
    return ProgressEstimator(
        on_complete=on_complete,
        on_update=on_update,
        clock_ms=scheduler.clock_ms,
        scheduler=scheduler,
        tick_interval_ms=100,
    )


class CompletionCounter:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


# ---------------------------------------------------------------------------
# Phase validation.
# ---------------------------------------------------------------------------


class TestValidatePhases:
    """Test validate_phases — sequence sanity checks."""

    def test_empty_sequence_rejected(self):
        """An empty sequence cannot drive an estimate."""
        with pytest.raises(InvalidPhaseSequenceError, match="must not be empty"):
            validate_phases([])

    def test_duplicate_ids_rejected(self):
        """Phase ids must be unique within a sequence."""
        with pytest.raises(InvalidPhaseSequenceError, match="Duplicate"):
            validate_phases([Phase("a", "A", 100), Phase("a", "A again", 100)])

    def test_negative_duration_rejected(self):
        with pytest.raises(InvalidPhaseSequenceError, match="negative"):
            validate_phases([Phase("a", "A", 100), Phase("b", "B", -1)])

    def test_zero_total_rejected(self):
        """A sequence whose durations sum to zero is rejected."""
        with pytest.raises(InvalidPhaseSequenceError, match="greater than zero"):
            validate_phases([Phase("a", "A", 0), Phase("b", "B", 0)])

    def test_zero_length_final_phases_allowed(self):
        """Individual zero-length phases are fine when the total is positive."""
        phases = validate_phases([Phase("a", "A", 1000), Phase("b", "B", 0)])
        assert len(phases) == 2

    def test_is_a_value_error(self):
        assert issubclass(InvalidPhaseSequenceError, ValueError)

    def test_start_validates(self, scheduler):
        """start() rejects malformed sequences and stays idle."""
        estimator = make_estimator(scheduler)
        with pytest.raises(InvalidPhaseSequenceError):
            estimator.start([])
        assert estimator.state is EstimatorState.IDLE
        assert scheduler.pending == []


# ---------------------------------------------------------------------------
# Concrete three-phase scenario.
# ---------------------------------------------------------------------------


class TestThreePhaseScenario:
    """Test the a/b/c sequence of three 1000 ms phases."""

    def test_starts_at_zero(self, scheduler, three_phases):
        """Right after start, progress is 0 on the first phase."""
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        assert estimator.progress_percent == pytest.approx(0.0)
        assert estimator.current_phase_index == 0
        assert estimator.state is EstimatorState.RUNNING_PRE_FINAL
        assert estimator.estimated_seconds_remaining == pytest.approx(3.0)

    def test_parks_at_pre_final_budget(self, scheduler, three_phases):
        """Without a completion signal, progress parks at one third."""
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)

        scheduler.advance(500)
        assert estimator.progress_percent == pytest.approx(100 / 6)

        scheduler.advance(500)
        assert estimator.progress_percent == pytest.approx(100 / 3)

        scheduler.advance(4000)
        assert estimator.progress_percent == pytest.approx(100 / 3)
        assert estimator.current_phase_index == 0
        assert estimator.estimated_seconds_remaining == pytest.approx(2.0)

    def test_completion_runs_through_final_window(self, scheduler, three_phases):
        """Signalling at 5000 ms then waiting 2000 ms reaches 100% once."""
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.start(three_phases)

        scheduler.advance(5000)
        estimator.signal_real_completion()
        assert estimator.progress_percent == pytest.approx(100 / 3)
        assert estimator.state is EstimatorState.RUNNING_FINAL
        assert done.count == 0

        scheduler.advance(1000)
        assert estimator.progress_percent == pytest.approx(200 / 3)
        assert estimator.current_phase_index == 2

        scheduler.advance(1000)
        assert estimator.progress_percent == 100.0
        assert estimator.current_phase_index == 2
        assert estimator.state is EstimatorState.COMPLETED
        assert done.count == 1

    def test_enters_final_window_only_after_signal(self, scheduler, three_phases):
        """The phase index moves into the final window after the rebase."""
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        scheduler.advance(3000)
        assert estimator.current_phase_index == 0

        estimator.signal_real_completion()
        assert estimator.current_phase_index == 1


# ---------------------------------------------------------------------------
# General properties.
# ---------------------------------------------------------------------------


class TestMonotonicity:
    """Progress never decreases, including across the rebase."""

    @pytest.mark.parametrize("signal_at_ms", [0, 50, 1000, 4321, 9000, 20000])
    def test_non_decreasing(self, scheduler, signal_at_ms):
        samples: list[float] = []
        estimator = make_estimator(
            scheduler, on_update=lambda snapshot: samples.append(snapshot.progress_percent)
        )
        estimator.start(PHASE_SEQUENCES["edit"])

        scheduler.advance(signal_at_ms)
        estimator.signal_real_completion()
        scheduler.advance(10_000)

        assert samples == sorted(samples)
        assert samples[-1] == 100.0

    def test_signal_before_budget_elapsed_jumps_forward(self, scheduler, three_phases):
        """An early completion rebases forward; progress never moves back."""
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        scheduler.advance(200)
        before = estimator.progress_percent

        estimator.signal_real_completion()
        assert estimator.progress_percent >= before
        assert estimator.progress_percent == pytest.approx(100 / 3)


class TestPreCompletionCeiling:
    """Without a completion signal, progress stays below the final window."""

    @pytest.mark.parametrize("mode", sorted(PHASE_SEQUENCES))
    def test_ceiling_for_every_mode(self, scheduler, mode):
        phases = PHASE_SEQUENCES[mode]
        total = sum(phase.estimated_duration_ms for phase in phases)
        final_window = sum(phase.estimated_duration_ms for phase in phases[-2:])
        ceiling = 100 * (total - final_window) / total

        estimator = make_estimator(scheduler)
        estimator.start(phases)
        scheduler.advance(10 * 60 * 1000)

        assert estimator.progress_percent <= ceiling + 1e-9
        assert estimator.progress_percent < 100.0
        assert estimator.current_phase_index < len(phases) - 2

    def test_single_phase_parks_at_zero(self, scheduler):
        """A one-phase sequence is entirely final window."""
        estimator = make_estimator(scheduler)
        estimator.start([Phase("only", "Only", 1000)])
        scheduler.advance(5000)
        assert estimator.progress_percent == 0.0

        estimator.signal_real_completion()
        scheduler.advance(1000)
        assert estimator.progress_percent == 100.0


class TestCompletion:
    """Reaching 100% and firing on_complete."""

    @pytest.mark.parametrize("mode", sorted(PHASE_SEQUENCES))
    def test_reachable_after_final_window(self, scheduler, mode):
        """Immediate completion plus the final-window duration reaches 100%."""
        phases = PHASE_SEQUENCES[mode]
        final_window = sum(phase.estimated_duration_ms for phase in phases[-2:])
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)

        estimator.start(phases)
        estimator.signal_real_completion()
        scheduler.advance(int(final_window) + 100)

        assert estimator.progress_percent == 100.0
        assert done.count == 1
        assert not estimator.is_running

    def test_no_double_fire(self, scheduler, three_phases):
        """Repeated signals and extra ticks fire on_complete only once."""
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.start(three_phases)

        estimator.signal_real_completion()
        estimator.signal_real_completion()
        scheduler.advance(5000)
        estimator.signal_real_completion()
        scheduler.advance(5000)

        assert done.count == 1
        assert scheduler.pending == []

    def test_repeated_signal_does_not_rebase_again(self, scheduler, three_phases):
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        estimator.signal_real_completion()
        scheduler.advance(500)
        progress = estimator.progress_percent

        scheduler.now += 10_000  # no tick fires
        estimator.signal_real_completion()
        assert estimator.progress_percent == progress

    def test_degenerate_final_window_completes_synchronously(self, scheduler):
        """Zero-length final phases complete inside signal_real_completion()."""
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.start([Phase("work", "Work", 1000), Phase("x", "X", 0), Phase("y", "Y", 0)])
        scheduler.advance(300)

        estimator.signal_real_completion()

        assert done.count == 1
        assert estimator.progress_percent == 100.0
        assert estimator.state is EstimatorState.COMPLETED
        assert scheduler.pending == []

    @pytest.mark.parametrize(
        "now_ms, duration_ms",
        [
            (844577429.6735231, 15159.330104403109),
            (1234567.891, 2500.25),
            (987654321.123456, 0.1),
        ],
    )
    def test_degenerate_final_window_with_fractional_clock(self, scheduler, now_ms, duration_ms):
        """Fractional clock readings still complete synchronously."""
        done = CompletionCounter()
        estimator = ProgressEstimator(
            on_complete=done,
            clock_ms=lambda: now_ms,
            scheduler=scheduler,
            tick_interval_ms=100,
        )
        estimator.start(
            [Phase("work", "Work", duration_ms), Phase("x", "X", 0), Phase("y", "Y", 0)]
        )

        estimator.signal_real_completion()

        assert done.count == 1
        assert estimator.progress_percent == 100.0
        assert estimator.state is EstimatorState.COMPLETED

    def test_signal_without_run_is_ignored(self, scheduler):
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.signal_real_completion()
        assert estimator.state is EstimatorState.IDLE
        assert done.count == 0

    def test_completion_snapshot(self, scheduler, three_phases):
        """The final snapshot points at the last phase with no time left."""
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        estimator.signal_real_completion()
        scheduler.advance(2000)

        snapshot = estimator.snapshot()
        assert snapshot.state is EstimatorState.COMPLETED
        assert snapshot.phase == three_phases[-1]
        assert snapshot.estimated_seconds_remaining == 0.0


class TestStop:
    """Abandoning a run."""

    def test_stop_before_completion_is_silent(self, scheduler, three_phases):
        """After stop(), on_complete never fires and nothing else changes."""
        done = CompletionCounter()
        updates = []
        estimator = make_estimator(scheduler, on_complete=done, on_update=updates.append)
        estimator.start(three_phases)
        scheduler.advance(500)

        estimator.stop()
        seen = len(updates)
        snapshot = estimator.snapshot()

        estimator.signal_real_completion()
        scheduler.advance(10_000)

        assert done.count == 0
        assert len(updates) == seen
        assert estimator.snapshot() == snapshot
        assert snapshot.state is EstimatorState.ABANDONED
        assert scheduler.pending == []

    def test_stop_after_signal_is_silent(self, scheduler, three_phases):
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.start(three_phases)
        estimator.signal_real_completion()
        scheduler.advance(1000)

        estimator.stop()
        scheduler.advance(5000)
        assert done.count == 0

    def test_stop_is_idempotent(self, scheduler, three_phases):
        estimator = make_estimator(scheduler)
        estimator.stop()
        assert estimator.state is EstimatorState.IDLE

        estimator.start(three_phases)
        estimator.stop()
        estimator.stop()
        assert estimator.state is EstimatorState.ABANDONED

    def test_stop_after_completion_keeps_completed(self, scheduler, three_phases):
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        estimator.signal_real_completion()
        scheduler.advance(2000)

        estimator.stop()
        assert estimator.state is EstimatorState.COMPLETED


class TestRestart:
    """Each start() begins a fresh run."""

    def test_restart_abandons_previous_run(self, scheduler, three_phases):
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.start(three_phases)
        scheduler.advance(800)

        estimator.start([Phase("x", "X", 400), Phase("y", "Y", 400), Phase("z", "Z", 400)])
        assert estimator.progress_percent == 0.0
        assert len(scheduler.pending) == 1

        estimator.signal_real_completion()
        scheduler.advance(1000)
        assert done.count == 1

    def test_restart_after_completion(self, scheduler, three_phases):
        done = CompletionCounter()
        estimator = make_estimator(scheduler, on_complete=done)
        estimator.start(three_phases)
        estimator.signal_real_completion()
        scheduler.advance(2000)

        estimator.start(three_phases)
        assert estimator.state is EstimatorState.RUNNING_PRE_FINAL
        assert estimator.progress_percent == 0.0
        assert estimator.current_phase_index == 0

        estimator.signal_real_completion()
        scheduler.advance(2000)
        assert done.count == 2


class TestScheduling:
    """Timer plumbing."""

    def test_ticks_every_interval(self, scheduler, three_phases):
        updates = []
        estimator = make_estimator(scheduler, on_update=updates.append)
        estimator.start(three_phases)
        scheduler.advance(1000)
        # One recompute at start plus one per 100 ms tick.
        assert len(updates) == 11

    def test_only_one_pending_timer(self, scheduler, three_phases):
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        for _ in range(5):
            scheduler.advance(250)
            assert len(scheduler.pending) == 1

    def test_late_tick_recomputes_from_clock(self, scheduler, three_phases):
        """Skipped ticks do not skew the estimate."""
        estimator = make_estimator(scheduler)
        estimator.start(three_phases)
        scheduler.now = 750
        scheduler.advance(0)
        assert estimator.progress_percent == pytest.approx(25.0)

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            ProgressEstimator(tick_interval_ms=0)

    def test_start_without_loop_raises(self, three_phases):
        """Without an injected scheduler, start() needs a running loop."""
        estimator = ProgressEstimator()
        with pytest.raises(RuntimeError):
            estimator.start(three_phases)

    def test_default_scheduler_is_running_loop(self):
        """With no injected scheduler the asyncio loop drives the ticks."""
        phases = [Phase("a", "A", 20), Phase("b", "B", 20), Phase("c", "C", 20)]

        async def scenario() -> float:
            finished = asyncio.Event()
            estimator = ProgressEstimator(on_complete=finished.set, tick_interval_ms=5)
            estimator.start(phases)
            await asyncio.sleep(0.05)
            estimator.signal_real_completion()
            await asyncio.wait_for(finished.wait(), timeout=2)
            return estimator.progress_percent

        assert asyncio.run(scenario()) == 100.0
