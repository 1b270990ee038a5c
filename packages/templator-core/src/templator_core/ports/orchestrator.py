"""Sink protocols and log builders for pipeline orchestration."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from templator_schemas.events import PhaseEvent, RunEvent, SectionEvent
from templator_schemas.logs import LogEntry
from templator_schemas.phases import GeneratedSection
from templator_schemas.pipeline import PipelineErrorInfo
from templator_schemas.primitives import (
    JsonValue,
    LogLevel,
    PhaseName,
    PipelineId,
    RunStatus,
    Timestamp,
)
from templator_schemas.progress import ProgressUpdate


@runtime_checkable
class LogSinkProtocol(Protocol):
    """Protocol for emitting structured log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Persist or forward a log entry."""
        raise NotImplementedError


@runtime_checkable
class ProgressSinkProtocol(Protocol):
    """Protocol for emitting progress updates."""

    async def emit_progress(self, update: ProgressUpdate) -> None:
        """Persist or forward a progress update."""
        raise NotImplementedError


def _error_data(error: PipelineErrorInfo) -> dict[str, JsonValue]:
    data: dict[str, JsonValue] = {"error_code": error.code, "error": error.message}
    if error.details is not None:
        data.update(error.details.model_dump(exclude_none=True))
    return data


def build_run_started_log(
    timestamp: Timestamp, pipeline_id: PipelineId, phases: list[PhaseName]
) -> LogEntry:
    """Build a log entry for run start.

    Args:
        timestamp: ISO-8601 timestamp.
        pipeline_id: Pipeline run identifier.
        phases: Planned phases for the run.

    Returns:
        LogEntry: Structured run start log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=RunEvent.STARTED,
        pipeline_id=pipeline_id,
        phase=None,
        message="Run started",
        data={"phases": [str(phase) for phase in phases]},
    )


def build_run_rejected_log(
    timestamp: Timestamp, pipeline_id: PipelineId | None, error: PipelineErrorInfo
) -> LogEntry:
    """Build a log entry for a request rejected before any phase ran.

    Args:
        timestamp: ISO-8601 timestamp.
        pipeline_id: Pipeline identifier if one could be read.
        error: Request validation error.

    Returns:
        LogEntry: Structured rejection log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR,
        event=RunEvent.REJECTED,
        pipeline_id=pipeline_id or None,
        phase=None,
        message=f"Request rejected: {error.message}",
        data=_error_data(error),
    )


def build_run_finished_log(
    timestamp: Timestamp,
    pipeline_id: PipelineId,
    status: RunStatus,
    *,
    total_time_s: float,
    error: PipelineErrorInfo | None = None,
) -> LogEntry:
    """Build a log entry for a run reaching a terminal status.

    Args:
        timestamp: ISO-8601 timestamp.
        pipeline_id: Pipeline run identifier.
        status: Terminal run status.
        total_time_s: Run wall time.
        error: Failure details for failed or cancelled runs.

    Returns:
        LogEntry: Structured run completion log entry.
    """
    event = {
        RunStatus.COMPLETED: RunEvent.COMPLETED,
        RunStatus.CANCELLED: RunEvent.CANCELLED,
    }.get(RunStatus(status), RunEvent.FAILED)
    data: dict[str, JsonValue] = {"status": status, "total_time_s": total_time_s}
    if error is not None:
        data.update(_error_data(error))
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO if error is None else LogLevel.ERROR,
        event=event,
        pipeline_id=pipeline_id,
        phase=None,
        message=f"Run {status}",
        data=data,
    )


def build_phase_log(
    timestamp: Timestamp,
    pipeline_id: PipelineId,
    phase: PhaseName,
    event: PhaseEvent,
    *,
    message: str | None = None,
    level: LogLevel = LogLevel.INFO,
    data: dict[str, JsonValue] | None = None,
) -> LogEntry:
    """Build a log entry for a phase lifecycle event.

    Args:
        timestamp: ISO-8601 timestamp.
        pipeline_id: Pipeline run identifier.
        phase: Phase name.
        event: Phase lifecycle event.
        message: Optional message override.
        level: Log level.
        data: Structured event data.

    Returns:
        LogEntry: Structured phase log entry.
    """
    default_message = f"{phase} {str(event).removeprefix('phase_')}"
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=event,
        pipeline_id=pipeline_id,
        phase=PhaseName(phase),
        message=message or default_message,
        data=data,
    )


def build_phase_retry_log(
    timestamp: Timestamp,
    pipeline_id: PipelineId,
    phase: PhaseName,
    *,
    attempt: int,
    max_attempts: int,
    error: str,
    delay_s: float | None,
) -> LogEntry:
    """Build a log entry for a failed attempt.

    Args:
        timestamp: ISO-8601 timestamp.
        pipeline_id: Pipeline run identifier.
        phase: Phase name.
        attempt: 1-based attempt that failed.
        max_attempts: Total attempts allowed.
        error: Attempt failure message.
        delay_s: Backoff before the next attempt, None if none follows.

    Returns:
        LogEntry: Structured retry log entry.
    """
    return build_phase_log(
        timestamp,
        pipeline_id,
        phase,
        PhaseEvent.RETRY,
        message=f"{phase} attempt {attempt}/{max_attempts} failed: {error}",
        level=LogLevel.WARN,
        data={
            "attempt": attempt,
            "max_attempts": max_attempts,
            "error": error,
            "delay_s": delay_s,
        },
    )


def build_section_regenerated_log(
    timestamp: Timestamp, section: GeneratedSection, *, duration_s: float
) -> LogEntry:
    """Build a log entry for a standalone section regeneration.

    Returns:
        LogEntry: Structured regeneration log entry, a warning when the
            placeholder was used.
    """
    outcome = "replaced by placeholder" if section.fallback_used else "regenerated"
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN if section.fallback_used else LogLevel.INFO,
        event=SectionEvent.REGENERATED,
        pipeline_id=None,
        phase=PhaseName.GENERATION,
        message=f"Section {section.section_id} {outcome}",
        data={
            "section_id": section.section_id,
            "fallback_used": section.fallback_used,
            "quality_score": section.quality_score,
            "fields": len(section.editable_fields),
            "duration_s": duration_s,
        },
    )
