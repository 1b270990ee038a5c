"""Concurrency-safe registry of run progress and cancellation tokens."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from templator_core.cancellation import CancellationToken
from templator_core.ports.phase import now_timestamp
from templator_schemas.primitives import (
    TERMINAL_RUN_STATUSES,
    PhaseName,
    PhaseStatus,
    RunStatus,
    Timestamp,
)
from templator_schemas.progress import (
    PhaseProgress,
    ProgressSnapshot,
    compute_percent_complete,
    estimate_eta,
)

_FINISHED_PHASE_STATUSES = frozenset({
    PhaseStatus.COMPLETED,
    PhaseStatus.DEGRADED,
    PhaseStatus.FAILED,
    PhaseStatus.SKIPPED,
})


@dataclass(slots=True)
class _PhaseState:
    phase: PhaseName
    status: PhaseStatus = PhaseStatus.PENDING
    attempts: int = 0
    units_completed: int | None = None
    units_total: int | None = None
    started_at: Timestamp | None = None
    completed_at: Timestamp | None = None
    started_mono: float | None = None
    duration_s: float | None = None


@dataclass(slots=True)
class _RunState:
    pipeline_id: str
    token: CancellationToken
    phases: list[_PhaseState]
    started_at: Timestamp
    started_mono: float
    updated_at: Timestamp
    status: RunStatus = RunStatus.RUNNING
    current_index: int | None = 0
    completed_at: Timestamp | None = None
    finished_mono: float | None = None
    index: dict[PhaseName, int] = field(default_factory=dict)


class RunRegistry:
    """Progress and cancellation state for every run of one orchestrator.

    All reads and writes happen under a single lock, so progress queries and
    cancellation requests observe either the state before or after a
    transition, never a partial one. Nothing awaits while the lock is held.

    Finished runs keep their terminal snapshot for ``retention_s`` seconds and
    are evicted lazily on the next registry access after that.
    """

    def __init__(
        self,
        *,
        retention_s: float = 3600.0,
        timer: Callable[[], float] | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            retention_s: Seconds a finished run stays queryable.
            timer: Monotonic time source.
            clock: Timestamp provider.
        """
        self._retention_s = retention_s
        self._timer = timer or time.monotonic
        self._clock = clock or now_timestamp
        self._lock = threading.Lock()
        self._runs: dict[str, _RunState] = {}

    def register(
        self, pipeline_id: str, phases: list[PhaseName]
    ) -> CancellationToken | None:
        """Register a new running run.

        Args:
            pipeline_id: Run identifier.
            phases: Phases in declared order.

        Returns:
            CancellationToken | None: Token for the run, or None if a run with
            the same id is still running.
        """
        with self._lock:
            self._evict_expired()
            existing = self._runs.get(pipeline_id)
            if existing is not None and existing.status == RunStatus.RUNNING:
                return None
            token = CancellationToken(pipeline_id)
            now = self._clock()
            self._runs[pipeline_id] = _RunState(
                pipeline_id=pipeline_id,
                token=token,
                phases=[_PhaseState(phase=phase) for phase in phases],
                started_at=now,
                started_mono=self._timer(),
                updated_at=now,
                current_index=0 if phases else None,
                index={phase: position for position, phase in enumerate(phases)},
            )
            return token

    def snapshot(self, pipeline_id: str) -> ProgressSnapshot | None:
        """Return the current snapshot for a run.

        Returns:
            ProgressSnapshot | None: Snapshot, or None if unknown or evicted.
        """
        with self._lock:
            self._evict_expired()
            state = self._runs.get(pipeline_id)
            return self._build_snapshot(state) if state is not None else None

    def phase_started(
        self, pipeline_id: str, phase: PhaseName
    ) -> ProgressSnapshot | None:
        """Mark a phase as running.

        Returns:
            ProgressSnapshot | None: Snapshot after the transition.
        """
        with self._lock:
            state = self._runs.get(pipeline_id)
            if state is None:
                return None
            position = state.index[phase]
            entry = state.phases[position]
            entry.status = PhaseStatus.RUNNING
            entry.started_at = self._clock()
            entry.started_mono = self._timer()
            state.current_index = position
            return self._touch(state)

    def attempt_started(
        self, pipeline_id: str, phase: PhaseName, attempt: int
    ) -> ProgressSnapshot | None:
        """Record the attempt number a running phase is on.

        Returns:
            ProgressSnapshot | None: Snapshot after the update.
        """
        with self._lock:
            state = self._runs.get(pipeline_id)
            if state is None:
                return None
            state.phases[state.index[phase]].attempts = attempt
            return self._touch(state)

    def units_progressed(
        self, pipeline_id: str, phase: PhaseName, completed: int, total: int
    ) -> ProgressSnapshot | None:
        """Record sub-unit progress inside a running phase.

        Returns:
            ProgressSnapshot | None: Snapshot after the update.
        """
        with self._lock:
            state = self._runs.get(pipeline_id)
            if state is None:
                return None
            entry = state.phases[state.index[phase]]
            entry.units_total = max(total, 0)
            entry.units_completed = min(max(completed, 0), entry.units_total)
            return self._touch(state)

    def phase_finished(
        self, pipeline_id: str, phase: PhaseName, status: PhaseStatus
    ) -> ProgressSnapshot | None:
        """Record a phase reaching a final status and advance the cursor.

        Args:
            pipeline_id: Run identifier.
            phase: Phase that finished.
            status: Completed, degraded, failed or skipped.

        Returns:
            ProgressSnapshot | None: Snapshot after the transition.
        """
        with self._lock:
            state = self._runs.get(pipeline_id)
            if state is None:
                return None
            position = state.index[phase]
            entry = state.phases[position]
            entry.status = status
            if status != PhaseStatus.SKIPPED:
                entry.completed_at = self._clock()
                if entry.started_mono is not None:
                    entry.duration_s = self._timer() - entry.started_mono
            if status != PhaseStatus.FAILED:
                state.current_index = self._next_pending(state, position)
            return self._touch(state)

    def finish(self, pipeline_id: str, status: RunStatus) -> ProgressSnapshot | None:
        """Move a run to a terminal status.

        Returns:
            ProgressSnapshot | None: Terminal snapshot.
        """
        with self._lock:
            state = self._runs.get(pipeline_id)
            if state is None:
                return None
            state.status = status
            state.completed_at = self._clock()
            state.finished_mono = self._timer()
            if status == RunStatus.COMPLETED:
                state.current_index = None
            return self._touch(state)

    def cancel(self, pipeline_id: str) -> bool:
        """Request cancellation of a running run.

        Returns:
            bool: True only for the first request against a running run.
        """
        with self._lock:
            self._evict_expired()
            state = self._runs.get(pipeline_id)
            if state is None or state.status != RunStatus.RUNNING:
                return False
            if not state.token.cancel():
                return False
            self._touch(state)
            return True

    def running_ids(self) -> list[str]:
        """Identifiers of runs that have not finished."""
        with self._lock:
            return [
                pipeline_id
                for pipeline_id, state in self._runs.items()
                if state.status == RunStatus.RUNNING
            ]

    def _touch(self, state: _RunState) -> ProgressSnapshot:
        state.updated_at = self._clock()
        return self._build_snapshot(state)

    def _next_pending(self, state: _RunState, position: int) -> int | None:
        for candidate in range(position + 1, len(state.phases)):
            if state.phases[candidate].status not in _FINISHED_PHASE_STATUSES:
                return candidate
        return None

    def _evict_expired(self) -> None:
        now = self._timer()
        expired = [
            pipeline_id
            for pipeline_id, state in self._runs.items()
            if state.status in TERMINAL_RUN_STATUSES
            and state.finished_mono is not None
            and now - state.finished_mono >= self._retention_s
        ]
        for pipeline_id in expired:
            del self._runs[pipeline_id]

    def _build_snapshot(self, state: _RunState) -> ProgressSnapshot:
        phases = [
            PhaseProgress(
                phase=PhaseName(entry.phase),
                status=PhaseStatus(entry.status),
                attempts=entry.attempts,
                units_completed=entry.units_completed,
                units_total=entry.units_total,
                started_at=entry.started_at,
                completed_at=entry.completed_at,
                duration_s=entry.duration_s,
            )
            for entry in state.phases
        ]
        end = state.finished_mono if state.finished_mono is not None else self._timer()
        current = state.current_index
        return ProgressSnapshot(
            pipeline_id=state.pipeline_id,
            status=RunStatus(state.status),
            current_phase=PhaseName(state.phases[current].phase)
            if current is not None
            else None,
            current_phase_index=current,
            phases=phases,
            percent_complete=compute_percent_complete(phases),
            eta_s=estimate_eta(phases)
            if state.status == RunStatus.RUNNING
            else None,
            elapsed_s=max(0.0, end - state.started_mono),
            cancel_requested=state.token.cancelled,
            started_at=state.started_at,
            updated_at=state.updated_at,
            completed_at=state.completed_at,
        )
