"""Protocols and error types for templator-core."""

from templator_core.ports.errors import (
    CancellationError,
    PhaseExecutionError,
    PhaseExhaustedError,
    PhaseValidationError,
    PipelineError,
    RequestValidationError,
    UnexpectedPipelineError,
)
from templator_core.ports.orchestrator import (
    LogSinkProtocol,
    ProgressSinkProtocol,
    build_phase_log,
    build_phase_retry_log,
    build_run_finished_log,
    build_run_rejected_log,
    build_run_started_log,
    build_section_regenerated_log,
)
from templator_core.ports.phase import (
    PhaseContext,
    PhaseProtocol,
    ProgressCallback,
    now_timestamp,
)
from templator_core.ports.services import (
    ErrorCorrectionServiceProtocol,
    GenerationServiceProtocol,
    PackagingServiceProtocol,
    RefinementServiceProtocol,
    SectionRegeneratorProtocol,
    ValidationServiceProtocol,
)
from templator_core.ports.storage import (
    LogStoreProtocol,
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)

__all__ = [
    "CancellationError",
    "ErrorCorrectionServiceProtocol",
    "GenerationServiceProtocol",
    "LogSinkProtocol",
    "LogStoreProtocol",
    "PackagingServiceProtocol",
    "PhaseContext",
    "PhaseExecutionError",
    "PhaseExhaustedError",
    "PhaseProtocol",
    "PhaseValidationError",
    "PipelineError",
    "ProgressCallback",
    "ProgressSinkProtocol",
    "RefinementServiceProtocol",
    "RequestValidationError",
    "SectionRegeneratorProtocol",
    "StorageError",
    "StorageErrorCode",
    "StorageErrorDetails",
    "StorageErrorInfo",
    "UnexpectedPipelineError",
    "ValidationServiceProtocol",
    "build_phase_log",
    "build_phase_retry_log",
    "build_run_finished_log",
    "build_run_rejected_log",
    "build_run_started_log",
    "build_section_regenerated_log",
    "now_timestamp",
]
