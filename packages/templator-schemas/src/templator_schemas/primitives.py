"""Primitive types and enums shared across templator schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import Field

ISO_8601_PATTERN = (
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d+)?"
    r"(?:Z|[+-]\d{2}:\d{2})$"
)
EVENT_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"
MIME_IMAGE_PREFIX = "image/"

type PipelineId = Annotated[str, Field(max_length=128)]
type SectionId = Annotated[str, Field(min_length=1, max_length=128)]
type FieldId = Annotated[str, Field(min_length=1, max_length=160)]
type Timestamp = Annotated[str, Field(pattern=ISO_8601_PATTERN)]
type EventName = Annotated[str, Field(pattern=EVENT_NAME_PATTERN)]
type Score = Annotated[float, Field(ge=0, le=100)]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]


class PhaseName(StrEnum):
    """Pipeline phase names in execution order."""

    INPUT_PROCESSING = "input_processing"
    GENERATION = "generation"
    QUALITY_ASSURANCE = "quality_assurance"
    ENHANCEMENT = "enhancement"
    PACKAGING = "packaging"


PHASE_ORDER: tuple[PhaseName, ...] = (
    PhaseName.INPUT_PROCESSING,
    PhaseName.GENERATION,
    PhaseName.QUALITY_ASSURANCE,
    PhaseName.ENHANCEMENT,
    PhaseName.PACKAGING,
)


class RunStatus(StrEnum):
    """Overall run status values."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_RUN_STATUSES = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.CANCELLED,
})


class PhaseStatus(StrEnum):
    """Phase execution status values."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


class LogLevel(StrEnum):
    """Log level values for JSONL logs."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogSinkType(StrEnum):
    """Supported log sink types."""

    CONSOLE = "console"
    FILE = "file"
    NOOP = "noop"


class BackoffStrategy(StrEnum):
    """Delay strategies applied between retry attempts."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class ExhaustionPolicy(StrEnum):
    """What the orchestrator does once a phase spends its retry budget."""

    ABORT = "abort"
    FALLBACK = "fallback"


class ExportFormat(StrEnum):
    """Target module formats."""

    HUBSPOT = "hubspot"
    HTML = "html"


class SectionType(StrEnum):
    """Layout roles a design section can play."""

    HEADER = "header"
    HERO = "hero"
    CONTENT = "content"
    FEATURES = "features"
    FOOTER = "footer"
    NAVIGATION = "navigation"
    SIDEBAR = "sidebar"


class ComplexityLevel(StrEnum):
    """Coarse design complexity buckets."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FieldType(StrEnum):
    """Editable field kinds in generated modules."""

    TEXT = "text"
    RICHTEXT = "richtext"
    IMAGE = "image"
    URL = "url"
    CHOICE = "choice"


class IssueSeverity(StrEnum):
    """Severity levels for quality issues and validation findings."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(StrEnum):
    """Categories for quality issues and validation findings."""

    MARKUP = "markup"
    ACCESSIBILITY = "accessibility"
    STYLING = "styling"
    EDITABILITY = "editability"
    GENERATION = "generation"


class ComplianceLevel(StrEnum):
    """Overall compliance bands derived from quality scores."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class EnhancementType(StrEnum):
    """Kinds of improvements applied during enhancement."""

    CORRECTION = "correction"
    REFINEMENT = "refinement"
