"""Progress tracking schemas for pipeline runs."""

from __future__ import annotations

from pydantic import Field, model_validator

from templator_schemas.base import BaseSchema
from templator_schemas.primitives import (
    EventName,
    PhaseName,
    PhaseStatus,
    PipelineId,
    RunStatus,
    Timestamp,
)

PHASE_WEIGHTS: dict[PhaseName, float] = {
    PhaseName.INPUT_PROCESSING: 10.0,
    PhaseName.GENERATION: 35.0,
    PhaseName.QUALITY_ASSURANCE: 25.0,
    PhaseName.ENHANCEMENT: 20.0,
    PhaseName.PACKAGING: 10.0,
}
DEFAULT_PHASE_WEIGHT = 10.0

_DONE_STATUSES = frozenset({
    PhaseStatus.COMPLETED,
    PhaseStatus.DEGRADED,
    PhaseStatus.SKIPPED,
})


class PhaseProgress(BaseSchema):
    """Progress for a single phase of a run."""

    phase: PhaseName = Field(..., description="Phase name")
    status: PhaseStatus = Field(..., description="Phase status")
    attempts: int = Field(0, ge=0, description="Attempts started so far")
    units_completed: int | None = Field(
        None, ge=0, description="Sub-units finished inside the phase"
    )
    units_total: int | None = Field(None, ge=0, description="Sub-units in the phase")
    started_at: Timestamp | None = Field(None, description="Phase start timestamp")
    completed_at: Timestamp | None = Field(None, description="Phase end timestamp")
    duration_s: float | None = Field(None, ge=0, description="Phase duration")

    @model_validator(mode="after")
    def validate_units(self) -> PhaseProgress:
        """Ensure completed units never exceed the total.

        Returns:
            PhaseProgress: Validated phase progress.

        Raises:
            ValueError: If units_completed exceeds units_total.
        """
        if (
            self.units_completed is not None
            and self.units_total is not None
            and self.units_completed > self.units_total
        ):
            raise ValueError("units_completed must not exceed units_total")
        return self


class ProgressSnapshot(BaseSchema):
    """Point-in-time view of a run, as returned by progress queries."""

    pipeline_id: PipelineId = Field(..., description="Run identifier")
    status: RunStatus = Field(..., description="Run status")
    current_phase: PhaseName | None = Field(None, description="Active phase")
    current_phase_index: int | None = Field(
        None, ge=0, description="Index of the active phase in declared order"
    )
    phases: list[PhaseProgress] = Field(
        default_factory=list, description="Per-phase progress"
    )
    percent_complete: float = Field(
        0.0, ge=0, le=100, description="Weighted completion percentage"
    )
    eta_s: float | None = Field(None, ge=0, description="Estimated seconds left")
    elapsed_s: float = Field(0.0, ge=0, description="Seconds since the run started")
    cancel_requested: bool = Field(False, description="Cancellation was requested")
    started_at: Timestamp = Field(..., description="Run start timestamp")
    updated_at: Timestamp = Field(..., description="Last mutation timestamp")
    completed_at: Timestamp | None = Field(None, description="Run end timestamp")


class ProgressUpdate(BaseSchema):
    """Progress update streamed to progress sinks."""

    pipeline_id: PipelineId = Field(..., description="Run identifier")
    event: EventName = Field(..., description="Event that triggered the update")
    timestamp: Timestamp = Field(..., description="Update timestamp")
    phase: PhaseName | None = Field(None, description="Phase if applicable")
    message: str | None = Field(None, description="Human-readable note")
    snapshot: ProgressSnapshot = Field(..., description="Run state after the event")


def compute_percent_complete(phases: list[PhaseProgress]) -> float:
    """Compute weighted completion across phases.

    Finished and skipped phases count fully; a running phase counts by its
    sub-unit ratio when it reports one.

    Args:
        phases: Per-phase progress records.

    Returns:
        float: Completion percentage in [0, 100].
    """
    total_weight = 0.0
    done_weight = 0.0
    for entry in phases:
        weight = PHASE_WEIGHTS.get(PhaseName(entry.phase), DEFAULT_PHASE_WEIGHT)
        total_weight += weight
        if entry.status in _DONE_STATUSES:
            done_weight += weight
        elif (
            entry.status == PhaseStatus.RUNNING
            and entry.units_total
            and entry.units_completed is not None
        ):
            done_weight += weight * entry.units_completed / entry.units_total
    if total_weight == 0:
        return 0.0
    return round(min(100.0, done_weight / total_weight * 100), 2)


def estimate_eta(phases: list[PhaseProgress]) -> float | None:
    """Estimate remaining seconds from the mean duration of finished phases.

    Args:
        phases: Per-phase progress records.

    Returns:
        float | None: Estimated seconds left, or None before any phase finished.
    """
    durations = [
        entry.duration_s
        for entry in phases
        if entry.duration_s is not None and entry.status != PhaseStatus.SKIPPED
    ]
    if not durations:
        return None
    remaining = sum(
        1
        for entry in phases
        if entry.status in {PhaseStatus.PENDING, PhaseStatus.RUNNING}
    )
    return round(sum(durations) / len(durations) * remaining, 3)
