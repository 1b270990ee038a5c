"""Error taxonomy raised inside the pipeline core.

Phases raise these inward; the orchestrator converts every kind into a
uniform ``PipelineErrorInfo`` on the returned result.
"""

from __future__ import annotations

from typing import ClassVar

from templator_schemas.pipeline import (
    PipelineErrorCode,
    PipelineErrorDetails,
    PipelineErrorInfo,
)
from templator_schemas.primitives import PhaseName


class PipelineError(Exception):
    """Base error carrying structured pipeline error info."""

    code: ClassVar[PipelineErrorCode] = PipelineErrorCode.UNEXPECTED_ERROR
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        phase: PhaseName | str | None = None,
        field: str | None = None,
        reason: str | None = None,
        attempts: int | None = None,
        last_error: str | None = None,
    ) -> None:
        """Build the structured error info and initialize the exception."""
        details = PipelineErrorDetails(
            phase=PhaseName(phase) if phase is not None else None,
            field=field,
            reason=reason,
            attempts=attempts,
            last_error=last_error,
        )
        self.info = PipelineErrorInfo(code=self.code, message=message, details=details)
        super().__init__(message)

    @classmethod
    def from_info(cls, info: PipelineErrorInfo) -> PipelineError:
        """Rebuild an exception around existing error info.

        Returns:
            PipelineError: Exception carrying ``info`` unchanged.
        """
        error = cls(info.message)
        error.info = info
        return error


class RequestValidationError(PipelineError):
    """Malformed pipeline request; no phase runs."""

    code = PipelineErrorCode.INVALID_REQUEST


class PhaseValidationError(PipelineError):
    """Phase input rejected; fatal for the attempt and never retried."""

    code = PipelineErrorCode.PHASE_VALIDATION_FAILED


class PhaseExecutionError(PipelineError):
    """Transient phase failure, retried up to the phase budget."""

    code = PipelineErrorCode.PHASE_EXHAUSTED
    retryable = True


class PhaseExhaustedError(PipelineError):
    """A phase spent its retry budget without producing output."""

    code = PipelineErrorCode.PHASE_EXHAUSTED


class CancellationError(PipelineError):
    """Run stopped cooperatively at a checkpoint."""

    code = PipelineErrorCode.CANCELLED


class UnexpectedPipelineError(PipelineError):
    """Anything not anticipated by the other error kinds."""

    code = PipelineErrorCode.UNEXPECTED_ERROR
