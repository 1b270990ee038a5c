"""Event names emitted to log and progress sinks."""

from __future__ import annotations

from enum import StrEnum


class RunEvent(StrEnum):
    """Run-level lifecycle events."""

    STARTED = "run_started"
    COMPLETED = "run_completed"
    FAILED = "run_failed"
    CANCELLED = "run_cancelled"
    REJECTED = "run_rejected"


class PhaseEvent(StrEnum):
    """Phase-level lifecycle events."""

    STARTED = "phase_started"
    COMPLETED = "phase_completed"
    FAILED = "phase_failed"
    SKIPPED = "phase_skipped"
    RETRY = "phase_retry"
    FALLBACK = "phase_fallback"
    PROGRESS = "phase_progress"


class SectionEvent(StrEnum):
    """Sub-unit events raised inside a phase."""

    FALLBACK = "section_fallback"
    ENHANCED = "section_enhanced"
    REGENERATED = "section_regenerated"
