"""Unit tests for the run registry."""

from __future__ import annotations

import pytest

from templator_core.registry import RunRegistry
from templator_schemas.primitives import PHASE_ORDER, PhaseName, PhaseStatus, RunStatus


class _FakeTimer:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _registry(retention_s: float = 60.0) -> tuple[RunRegistry, _FakeTimer]:
    timer = _FakeTimer()
    return RunRegistry(retention_s=retention_s, timer=timer), timer


@pytest.mark.unit
class TestRegistration:
    """Tests for registering runs."""

    def test_register_returns_token_and_initial_snapshot(self) -> None:
        """A new run starts at the first phase with nothing done."""
        registry, _ = _registry()
        token = registry.register("run-1", list(PHASE_ORDER))

        assert token is not None
        assert token.pipeline_id == "run-1"
        snapshot = registry.snapshot("run-1")
        assert snapshot is not None
        assert snapshot.status == RunStatus.RUNNING
        assert snapshot.current_phase == PhaseName.INPUT_PROCESSING
        assert snapshot.current_phase_index == 0
        assert snapshot.percent_complete == 0.0
        assert {entry.status for entry in snapshot.phases} == {PhaseStatus.PENDING}

    def test_running_id_cannot_register_twice(self) -> None:
        """A running id is exclusive until it finishes."""
        registry, _ = _registry()
        assert registry.register("run-1", list(PHASE_ORDER)) is not None
        assert registry.register("run-1", list(PHASE_ORDER)) is None

        registry.finish("run-1", RunStatus.COMPLETED)
        assert registry.register("run-1", list(PHASE_ORDER)) is not None

    def test_unknown_run_has_no_snapshot(self) -> None:
        """Queries for unknown ids return None."""
        registry, _ = _registry()
        assert registry.snapshot("missing") is None
        assert registry.phase_started("missing", PhaseName.GENERATION) is None


@pytest.mark.unit
class TestTransitions:
    """Tests for phase and run transitions."""

    def test_percent_complete_follows_phase_weights(self) -> None:
        """Finished phases add their weight, running ones their unit ratio."""
        registry, timer = _registry()
        registry.register("run-1", list(PHASE_ORDER))

        registry.phase_started("run-1", PhaseName.INPUT_PROCESSING)
        timer.now += 2.0
        registry.phase_finished(
            "run-1", PhaseName.INPUT_PROCESSING, PhaseStatus.COMPLETED
        )
        registry.phase_started("run-1", PhaseName.GENERATION)
        snapshot = registry.units_progressed("run-1", PhaseName.GENERATION, 1, 2)

        assert snapshot is not None
        assert snapshot.current_phase == PhaseName.GENERATION
        assert snapshot.percent_complete == 27.5
        assert snapshot.phases[0].duration_s == 2.0
        assert snapshot.phases[1].units_completed == 1
        assert snapshot.phases[1].units_total == 2
        assert snapshot.eta_s == 8.0

    def test_units_are_clamped_to_total(self) -> None:
        """Completed units never exceed the reported total."""
        registry, _ = _registry()
        registry.register("run-1", list(PHASE_ORDER))
        registry.phase_started("run-1", PhaseName.GENERATION)

        snapshot = registry.units_progressed("run-1", PhaseName.GENERATION, 7, 3)

        assert snapshot is not None
        assert snapshot.phases[1].units_completed == 3

    def test_skipped_phase_advances_cursor(self) -> None:
        """Skipping moves the current phase to the next pending one."""
        registry, _ = _registry()
        registry.register("run-1", list(PHASE_ORDER))

        snapshot = registry.phase_finished(
            "run-1", PhaseName.INPUT_PROCESSING, PhaseStatus.SKIPPED
        )

        assert snapshot is not None
        assert snapshot.current_phase == PhaseName.GENERATION
        assert snapshot.phases[0].completed_at is None

    def test_failed_phase_keeps_cursor(self) -> None:
        """The failing phase stays current in the terminal snapshot."""
        registry, _ = _registry()
        registry.register("run-1", list(PHASE_ORDER))
        registry.phase_started("run-1", PhaseName.GENERATION)
        registry.phase_finished("run-1", PhaseName.GENERATION, PhaseStatus.FAILED)

        snapshot = registry.finish("run-1", RunStatus.FAILED)

        assert snapshot is not None
        assert snapshot.status == RunStatus.FAILED
        assert snapshot.current_phase == PhaseName.GENERATION
        assert snapshot.completed_at is not None
        assert snapshot.eta_s is None

    def test_attempts_are_recorded(self) -> None:
        """The attempt counter tracks the latest attempt."""
        registry, _ = _registry()
        registry.register("run-1", list(PHASE_ORDER))
        registry.phase_started("run-1", PhaseName.GENERATION)

        snapshot = registry.attempt_started("run-1", PhaseName.GENERATION, 2)

        assert snapshot is not None
        assert snapshot.phases[1].attempts == 2


@pytest.mark.unit
class TestCancellation:
    """Tests for cancellation requests."""

    def test_cancel_only_succeeds_once_for_running_runs(self) -> None:
        """Repeated or late requests return False."""
        registry, _ = _registry()
        token = registry.register("run-1", list(PHASE_ORDER))
        assert token is not None

        assert registry.cancel("run-1")
        assert not registry.cancel("run-1")
        assert token.cancelled
        snapshot = registry.snapshot("run-1")
        assert snapshot is not None
        assert snapshot.cancel_requested

        registry.finish("run-1", RunStatus.CANCELLED)
        assert not registry.cancel("run-1")
        assert not registry.cancel("missing")

    def test_running_ids_lists_active_runs(self) -> None:
        """Finished runs are not active."""
        registry, _ = _registry()
        registry.register("run-1", list(PHASE_ORDER))
        registry.register("run-2", list(PHASE_ORDER))
        registry.finish("run-1", RunStatus.COMPLETED)

        assert registry.running_ids() == ["run-2"]


@pytest.mark.unit
class TestRetention:
    """Tests for lazy eviction of finished runs."""

    def test_finished_run_is_evicted_after_retention(self) -> None:
        """Snapshots stay queryable for the retention window only."""
        registry, timer = _registry(retention_s=60.0)
        registry.register("run-1", list(PHASE_ORDER))
        registry.finish("run-1", RunStatus.COMPLETED)

        timer.now += 59.0
        assert registry.snapshot("run-1") is not None
        timer.now += 1.0
        assert registry.snapshot("run-1") is None

    def test_running_runs_are_never_evicted(self) -> None:
        """Only terminal runs expire."""
        registry, timer = _registry(retention_s=1.0)
        registry.register("run-1", list(PHASE_ORDER))

        timer.now += 1000.0

        assert registry.snapshot("run-1") is not None

    def test_elapsed_stops_at_finish(self) -> None:
        """Elapsed time is frozen once the run ends."""
        registry, timer = _registry()
        registry.register("run-1", list(PHASE_ORDER))
        timer.now += 5.0
        registry.finish("run-1", RunStatus.COMPLETED)
        timer.now += 10.0

        snapshot = registry.snapshot("run-1")

        assert snapshot is not None
        assert snapshot.elapsed_s == 5.0
