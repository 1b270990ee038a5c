"""templator-core: Core pipeline logic for templator."""

from templator_core.cancellation import CancellationToken
from templator_core.fanout import FanOutPool, UnitOutcome
from templator_core.orchestrator import PipelineOrchestrator, resolve_exhaustion
from templator_core.phases import (
    BasePhase,
    EnhancementPhase,
    GenerationPhase,
    InputProcessingPhase,
    PackagingPhase,
    QualityAssurancePhase,
    build_default_phases,
)
from templator_core.ports import (
    CancellationError,
    LogSinkProtocol,
    PhaseContext,
    PhaseExecutionError,
    PhaseExhaustedError,
    PhaseProtocol,
    PhaseValidationError,
    PipelineError,
    ProgressSinkProtocol,
    RequestValidationError,
    UnexpectedPipelineError,
)
from templator_core.registry import RunRegistry
from templator_core.retry import RetryOutcome, RetryPolicy

VERSION = "0.1.0"
__version__ = VERSION

__all__ = [
    "VERSION",
    "BasePhase",
    "CancellationError",
    "CancellationToken",
    "EnhancementPhase",
    "FanOutPool",
    "GenerationPhase",
    "InputProcessingPhase",
    "LogSinkProtocol",
    "PackagingPhase",
    "PhaseContext",
    "PhaseExecutionError",
    "PhaseExhaustedError",
    "PhaseProtocol",
    "PhaseValidationError",
    "PipelineError",
    "PipelineOrchestrator",
    "ProgressSinkProtocol",
    "QualityAssurancePhase",
    "RequestValidationError",
    "RetryOutcome",
    "RetryPolicy",
    "RunRegistry",
    "UnexpectedPipelineError",
    "UnitOutcome",
    "build_default_phases",
    "resolve_exhaustion",
]
