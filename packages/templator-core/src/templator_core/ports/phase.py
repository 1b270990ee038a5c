"""Phase execution contract shared by every pipeline stage."""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

from templator_core.ports.orchestrator import LogSinkProtocol
from templator_schemas.base import BaseSchema
from templator_schemas.logs import LogEntry
from templator_schemas.pipeline import RequestOptions
from templator_schemas.primitives import (
    JsonValue,
    LogLevel,
    PhaseName,
    Timestamp,
)

if TYPE_CHECKING:
    from templator_core.cancellation import CancellationToken

InputT_contra = TypeVar("InputT_contra", bound=BaseSchema, contravariant=True)
OutputT = TypeVar("OutputT", bound=BaseSchema)

type ProgressCallback = Callable[[PhaseName, int, int], Awaitable[None]]


def now_timestamp() -> Timestamp:
    """Return the current UTC time as an ISO-8601 string with a Z suffix."""
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class PhaseContext:
    """Per-attempt view of a run handed to phase methods."""

    pipeline_id: str
    phase: PhaseName
    options: RequestOptions
    token: CancellationToken
    attempt: int = 1
    payload: BaseSchema | None = None
    max_parallel: int = 4
    log_sink: LogSinkProtocol | None = None
    progress_callback: ProgressCallback | None = None
    clock: Callable[[], Timestamp] = now_timestamp

    @property
    def quality_threshold(self) -> float:
        """Request quality threshold on the 0-100 scale."""
        return self.options.threshold_percent

    def checkpoint(self) -> None:
        """Raise CancellationError if the run was cancelled."""
        self.token.raise_if_cancelled(self.phase)

    def for_attempt(self, attempt: int) -> PhaseContext:
        """Return a copy of the context for another attempt."""
        return dataclasses.replace(self, attempt=attempt)

    async def log(
        self,
        event: str,
        message: str,
        *,
        level: LogLevel = LogLevel.INFO,
        data: dict[str, JsonValue] | None = None,
    ) -> None:
        """Emit a structured log entry tagged with the run and phase."""
        if self.log_sink is None:
            return
        await self.log_sink.emit_log(
            LogEntry(
                timestamp=self.clock(),
                level=level,
                event=event,
                pipeline_id=self.pipeline_id,
                phase=self.phase,
                message=message,
                data=data,
            )
        )

    async def report_progress(self, completed: int, total: int) -> None:
        """Report sub-unit progress inside the phase."""
        if self.progress_callback is None:
            return
        await self.progress_callback(self.phase, completed, total)


@runtime_checkable
class PhaseProtocol(Protocol[InputT_contra, OutputT]):
    """Lifecycle every pipeline stage implements.

    ``execute`` must not retry on its own; whole-phase retry belongs to the
    orchestrator. It may degrade individual sub-units while others succeed.
    """

    @property
    def name(self) -> PhaseName:
        """Phase name, used for config lookup and result tagging."""
        ...

    def is_enabled(self, options: RequestOptions) -> bool:
        """Whether request options allow the phase to run."""
        ...

    def validate_input(self, payload: InputT_contra, context: PhaseContext) -> None:
        """Reject structurally invalid input.

        Raises:
            PhaseValidationError: If the payload cannot be processed.
        """
        ...

    async def execute(self, payload: InputT_contra, context: PhaseContext) -> OutputT:
        """Transform the payload into the phase output.

        Raises:
            PhaseExecutionError: On a transient failure.
        """
        ...

    def calculate_quality_score(self, output: OutputT) -> float:
        """Pure quality score of the output."""
        ...

    def get_warnings(self, output: OutputT) -> list[str]:
        """Pure list of soft problems in the output."""
        ...

    def get_metadata(self, output: OutputT) -> dict[str, JsonValue]:
        """Pure key-value metadata describing the output."""
        ...

    def create_fallback_result(self, context: PhaseContext) -> OutputT:
        """Minimal schema-valid substitute output."""
        ...
