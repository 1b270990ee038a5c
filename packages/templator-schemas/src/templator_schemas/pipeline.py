"""Pipeline request and result schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import Field, SerializeAsAny, field_validator, model_validator

from templator_schemas.base import BaseSchema
from templator_schemas.exit_codes import resolve_exit_code
from templator_schemas.primitives import (
    ExportFormat,
    JsonValue,
    PhaseName,
    PipelineId,
    RunStatus,
    Timestamp,
)
from templator_schemas.responses import ErrorDetails, ErrorResponse

MAX_DESIGN_BYTES = 10 * 1024 * 1024


class DesignUpload(BaseSchema):
    """Raw uploaded design image."""

    kind: Literal["upload"] = Field("upload", description="Payload discriminator")
    data: bytes = Field(..., description="Raw image bytes")
    file_name: str = Field(..., description="Original file name")
    mime_type: str = Field(..., description="Declared mime type")


class DesignDataUrl(BaseSchema):
    """Design image already encoded as a base64 data URL."""

    kind: Literal["data_url"] = Field("data_url", description="Payload discriminator")
    data_url: str = Field(..., description="data:<mime>;base64,<payload>")
    file_name: str = Field(..., description="Original file name")


type DesignPayload = Annotated[
    DesignUpload | DesignDataUrl, Field(discriminator="kind")
]


class RequestOptions(BaseSchema):
    """Caller-selected knobs for a single run."""

    model_id: str | None = Field(
        None, description="Model selector, null for the deployment default"
    )
    quality_threshold: float = Field(
        75.0, ge=0, le=100, description="Quality bar as a fraction or percentage"
    )
    max_retries: int | None = Field(
        None, ge=0, description="Retries per phase, null for the deployment default"
    )
    enable_enhancement: bool = Field(True, description="Run the enhancement phase")
    export_format: ExportFormat = Field(
        ExportFormat.HUBSPOT, description="Target module format"
    )

    @field_validator("export_format", mode="before")
    @classmethod
    def _coerce_format(cls, value: object) -> ExportFormat:
        if isinstance(value, str) and not isinstance(value, ExportFormat):
            return ExportFormat(value)
        return value  # type: ignore[return-value]

    @property
    def threshold_percent(self) -> float:
        """Quality threshold on the 0-100 scale.

        Values up to 1.0 are read as fractions.
        """
        if self.quality_threshold <= 1:
            return self.quality_threshold * 100
        return self.quality_threshold


class RequestContext(BaseSchema):
    """Caller identity attached to a run."""

    user_id: str | None = Field(None, description="Requesting user")
    session_id: str | None = Field(None, description="Requesting session")
    created_at: Timestamp | None = Field(None, description="Request creation time")


class PipelineRequest(BaseSchema):
    """Request to convert one design into a module."""

    pipeline_id: PipelineId = Field(..., description="Unique run identifier")
    design: DesignPayload = Field(..., description="Design image payload")
    options: RequestOptions = Field(
        default_factory=RequestOptions, description="Run options"
    )
    context: RequestContext = Field(
        default_factory=RequestContext, description="Caller context"
    )


class PipelineErrorCode(StrEnum):
    """Error codes for pipeline failures, one per cause."""

    INVALID_REQUEST = "invalid_request"
    PHASE_VALIDATION_FAILED = "phase_validation_failed"
    PHASE_EXHAUSTED = "phase_exhausted"
    CANCELLED = "cancelled"
    UNEXPECTED_ERROR = "unexpected_error"


class PipelineErrorDetails(BaseSchema):
    """Structured error details for pipeline failures."""

    phase: PhaseName | None = Field(None, description="Phase where it happened")
    field: str | None = Field(None, description="Offending field if applicable")
    reason: str | None = Field(None, description="Short machine-friendly reason")
    attempts: int | None = Field(None, ge=0, description="Attempts made")
    last_error: str | None = Field(None, description="Last attempt error message")


class PipelineErrorInfo(BaseSchema):
    """Error information attached to phase and pipeline results."""

    code: PipelineErrorCode = Field(..., description="Pipeline error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: PipelineErrorDetails | None = Field(None, description="Error details")

    @field_validator("code", mode="before")
    @classmethod
    def _coerce_code(cls, value: object) -> PipelineErrorCode:
        if isinstance(value, str) and not isinstance(value, PipelineErrorCode):
            return PipelineErrorCode(value)
        return value  # type: ignore[return-value]

    def to_error_response(self) -> ErrorResponse:
        """Convert pipeline error info to an API error response.

        Returns:
            ErrorResponse: API error response payload.
        """
        details = None
        if self.details is not None:
            provided = self.details.last_error or self.details.reason
            details = ErrorDetails(field=self.details.field, provided=provided)
        code = f"pipeline.{self.code}"
        return ErrorResponse(
            code=code,
            message=self.message,
            details=details,
            exit_code=int(resolve_exit_code(code)),
        )


class PhaseResult(BaseSchema):
    """Outcome of one attempted phase."""

    phase: PhaseName = Field(..., description="Phase name")
    success: bool = Field(..., description="Whether the phase produced output")
    output: SerializeAsAny[BaseSchema] | None = Field(
        None, description="Phase output payload"
    )
    error: PipelineErrorInfo | None = Field(None, description="Failure details")
    quality_score: float | None = Field(None, description="Phase-defined quality")
    warnings: list[str] = Field(default_factory=list, description="Soft problems")
    metadata: dict[str, JsonValue] = Field(
        default_factory=dict, description="Phase metadata"
    )
    execution_time_s: float = Field(..., ge=0, description="Wall time for the phase")
    retry_count: int = Field(0, ge=0, description="Failed attempts before the last")
    fallback_used: bool = Field(False, description="Output is a fallback substitute")
    started_at: Timestamp = Field(..., description="Phase start timestamp")
    completed_at: Timestamp = Field(..., description="Phase end timestamp")

    @model_validator(mode="after")
    def validate_error_presence(self) -> PhaseResult:
        """Ensure error is present exactly when the phase failed.

        Returns:
            PhaseResult: Validated phase result.

        Raises:
            ValueError: If success and error disagree.
        """
        if self.success == (self.error is not None):
            raise ValueError("error must be set iff success is false")
        return self


class PipelineResult(BaseSchema):
    """Aggregated outcome of one run."""

    success: bool = Field(..., description="Whether every phase succeeded")
    pipeline_id: PipelineId = Field(..., description="Run identifier")
    status: RunStatus = Field(..., description="Terminal run status")
    phases: list[PhaseResult] = Field(
        default_factory=list, description="Attempted phases in declared order"
    )
    skipped_phases: list[PhaseName] = Field(
        default_factory=list, description="Phases skipped by options or config"
    )
    total_execution_time_s: float = Field(..., ge=0, description="Run wall time")
    error: PipelineErrorInfo | None = Field(None, description="Run failure")
    final_output: SerializeAsAny[BaseSchema] | None = Field(
        None, description="Last phase output on success"
    )
    degraded: bool = Field(False, description="A phase fell back to its substitute")
    warnings_count: int = Field(0, ge=0, description="Warnings across all phases")
    phase_times: dict[str, float] = Field(
        default_factory=dict, description="Execution seconds by phase name"
    )

    @model_validator(mode="after")
    def validate_outcome(self) -> PipelineResult:
        """Ensure error and final output match the success flag.

        Returns:
            PipelineResult: Validated pipeline result.

        Raises:
            ValueError: If success, error and final output disagree.
        """
        if self.success == (self.error is not None):
            raise ValueError("error must be set iff success is false")
        if self.success != (self.final_output is not None):
            raise ValueError("final_output must be set iff success is true")
        return self
