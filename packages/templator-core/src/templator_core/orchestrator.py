"""Pipeline orchestrator driving the ordered phases of each run."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from templator_core.cancellation import DEFAULT_CANCEL_REASON, CancellationToken
from templator_core.ports.errors import (
    CancellationError,
    PhaseExhaustedError,
    PhaseValidationError,
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
from templator_core.ports.phase import PhaseContext, PhaseProtocol, now_timestamp
from templator_core.ports.services import SectionRegeneratorProtocol
from templator_core.registry import RunRegistry
from templator_core.retry import AttemptFailure, RetryOutcome, RetryPolicy, Sleeper
from templator_schemas.base import BaseSchema
from templator_schemas.config import PhaseConfig, PipelineConfig
from templator_schemas.events import PhaseEvent, RunEvent
from templator_schemas.logs import LogEntry
from templator_schemas.phases import GeneratedSection
from templator_schemas.pipeline import (
    PhaseResult,
    PipelineErrorCode,
    PipelineErrorInfo,
    PipelineRequest,
    PipelineResult,
)
from templator_schemas.primitives import (
    ExhaustionPolicy,
    JsonValue,
    LogLevel,
    PhaseName,
    PhaseStatus,
    PipelineId,
    RunStatus,
    SectionType,
    Timestamp,
)
from templator_schemas.progress import ProgressSnapshot, ProgressUpdate

type AnyPhase = PhaseProtocol[Any, Any]

_MIN_DURATION_S = 1e-9
_MAX_ID_LENGTH = 128


def resolve_exhaustion(
    policy: ExhaustionPolicy | str, outcome: RetryOutcome[Any]
) -> ExhaustionPolicy:
    """Decide what to do with a phase whose attempts did not succeed.

    Cancelled and fatal outcomes always abort. Otherwise the configured
    per-phase policy applies.

    Args:
        policy: Configured exhaustion policy for the phase.
        outcome: Retry outcome of the phase.

    Returns:
        ExhaustionPolicy: ABORT or FALLBACK.
    """
    if outcome.cancelled or outcome.fatal:
        return ExhaustionPolicy.ABORT
    return ExhaustionPolicy(policy)


@dataclass(slots=True)
class _PhaseTiming:
    started: float
    started_at: Timestamp


@dataclass(slots=True)
class _RunAccumulator:
    pipeline_id: PipelineId
    started: float
    results: list[PhaseResult] = field(default_factory=list)
    skipped: list[PhaseName] = field(default_factory=list)
    last_output: BaseSchema | None = None
    degraded: bool = False
    current_phase: PhaseName | None = None
    current_timing: _PhaseTiming | None = None


class PipelineOrchestrator:
    """Run requests through a fixed, ordered list of phases.

    Phases of one run execute sequentially and each output feeds the next
    phase. Independent runs proceed concurrently; they share only the run
    registry. ``execute_pipeline`` always returns a ``PipelineResult``.
    """

    def __init__(
        self,
        phases: Sequence[AnyPhase],
        *,
        config: PipelineConfig | None = None,
        registry: RunRegistry | None = None,
        log_sink: LogSinkProtocol | None = None,
        progress_sink: ProgressSinkProtocol | None = None,
        clock: Callable[[], Timestamp] | None = None,
        timer: Callable[[], float] | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            phases: Phase implementations in execution order.
            config: Pipeline configuration; defaults apply when omitted.
            registry: Run registry; a private one is created when omitted.
            log_sink: Optional log sink.
            progress_sink: Optional progress sink.
            clock: Optional timestamp provider.
            timer: Optional monotonic timer used for durations.
            sleep: Optional backoff sleep override.

        Raises:
            ValueError: If phases are empty or contain duplicate names.
        """
        if not phases:
            raise ValueError("phases must not be empty")
        names = [PhaseName(phase.name) for phase in phases]
        if len(set(names)) != len(names):
            raise ValueError("phase names must be unique")
        self._phases = list(phases)
        self._config = config or PipelineConfig()
        self._clock = clock or now_timestamp
        self._timer = timer or time.perf_counter
        self._registry = registry or RunRegistry(
            retention_s=self._config.retention_s, clock=self._clock
        )
        self._log_sink = log_sink
        self._progress_sink = progress_sink
        self._sleep = sleep

    @property
    def phase_names(self) -> list[PhaseName]:
        """Configured phases in execution order."""
        return [PhaseName(phase.name) for phase in self._phases]

    def get_progress(self, pipeline_id: str) -> ProgressSnapshot | None:
        """Return the progress snapshot for a run.

        Returns:
            ProgressSnapshot | None: Snapshot, or None if the id was never
            submitted or its finished record was evicted.
        """
        return self._registry.snapshot(pipeline_id)

    def cancel_pipeline(self, pipeline_id: str) -> bool:
        """Request cooperative cancellation of a running run.

        Returns:
            bool: True iff the run is running and was not already cancelled.
        """
        return self._registry.cancel(pipeline_id)

    def active_pipelines(self) -> list[str]:
        """Identifiers of runs still executing."""
        return self._registry.running_ids()

    def shutdown(self) -> int:
        """Cancel every running run.

        Returns:
            int: Number of runs that received a cancellation request.
        """
        cancelled = [
            pipeline_id
            for pipeline_id in self.active_pipelines()
            if self.cancel_pipeline(pipeline_id)
        ]
        return len(cancelled)

    async def regenerate_section(
        self,
        section_id: str,
        *,
        image_data_url: str | None = None,
        custom_prompt: str | None = None,
        name: str | None = None,
        section_type: SectionType = SectionType.CONTENT,
        model_id: str | None = None,
    ) -> GeneratedSection:
        """Regenerate one section through the generation phase.

        Runs outside any pipeline run, so no progress is recorded. The
        result is logged with the ``section_regenerated`` event.

        Args:
            section_id: Section to regenerate; kept on the result.
            image_data_url: Section image; the placeholder is returned
                without one.
            custom_prompt: Extra instructions for the model.
            name: Display name; derived from the id when omitted.
            section_type: Layout role of the section.
            model_id: Model override.

        Returns:
            GeneratedSection: Regenerated section, or the placeholder when
            generation failed.

        Raises:
            RequestValidationError: If the id is blank or too long, or no
                configured phase can regenerate sections.
        """
        section_id = section_id.strip()
        if not section_id or len(section_id) > _MAX_ID_LENGTH:
            raise RequestValidationError(
                f"section_id must be 1-{_MAX_ID_LENGTH} characters",
                field="section_id",
                reason="invalid",
            )
        regenerator = next(
            (
                phase
                for phase in self._phases
                if phase.name == PhaseName.GENERATION
                and isinstance(phase, SectionRegeneratorProtocol)
            ),
            None,
        )
        if regenerator is None:
            raise RequestValidationError(
                "No configured phase can regenerate sections",
                phase=PhaseName.GENERATION,
                reason="unsupported",
            )
        started = self._timer()
        section = await regenerator.regenerate_section(
            section_id,
            image_data_url=image_data_url,
            custom_prompt=custom_prompt,
            name=name,
            section_type=section_type,
            model_id=model_id,
        )
        await self._emit_log(
            build_section_regenerated_log(
                self._clock(),
                section,
                duration_s=max(self._timer() - started, _MIN_DURATION_S),
            )
        )
        return section

    async def execute_pipeline(
        self, request: PipelineRequest | Mapping[str, object]
    ) -> PipelineResult:
        """Execute every enabled phase for one request.

        Args:
            request: Pipeline request, or a mapping validated into one.

        Returns:
            PipelineResult: Aggregated result; failures are reported in it.

        Raises:
            asyncio.CancelledError: If the calling task itself is cancelled.
        """
        started = self._timer()
        try:
            parsed = self._parse_request(request)
        except RequestValidationError as exc:
            return await self._reject(_raw_pipeline_id(request), exc.info, started)

        token = self._registry.register(parsed.pipeline_id, self.phase_names)
        if token is None:
            error = RequestValidationError(
                f"Pipeline {parsed.pipeline_id} is already running",
                field="pipeline_id",
                reason="duplicate_run",
            )
            return await self._reject(parsed.pipeline_id, error.info, started)

        run = _RunAccumulator(pipeline_id=parsed.pipeline_id, started=started)
        try:
            await self._emit_log(
                build_run_started_log(self._clock(), run.pipeline_id, self.phase_names)
            )
            await self._emit_progress(
                run.pipeline_id,
                RunEvent.STARTED,
                self._registry.snapshot(run.pipeline_id),
            )
            return await self._run_phases(parsed, token, run)
        except asyncio.CancelledError:
            self._registry.finish(run.pipeline_id, RunStatus.CANCELLED)
            raise
        except Exception as exc:
            error = UnexpectedPipelineError(
                f"Unexpected error: {str(exc) or type(exc).__name__}",
                phase=run.current_phase,
                reason=type(exc).__name__,
            )
            # Sinks may be the failing component, so this path does not emit.
            self._record_interrupted_phase(run, error.info)
            self._registry.finish(run.pipeline_id, RunStatus.FAILED)
            return self._build_result(run, RunStatus.FAILED, error.info)

    def _parse_request(
        self, request: PipelineRequest | Mapping[str, object]
    ) -> PipelineRequest:
        if isinstance(request, PipelineRequest):
            parsed = request
        elif isinstance(request, Mapping):
            try:
                parsed = PipelineRequest.model_validate(dict(request), strict=False)
            except ValidationError as exc:
                first = exc.errors()[0]
                location = ".".join(str(part) for part in first["loc"])
                raise RequestValidationError(
                    f"Invalid request: {location}: {first['msg']}",
                    field=location or None,
                    reason="schema",
                ) from exc
        else:
            raise RequestValidationError(
                "Request must be a PipelineRequest or a mapping",
                reason="type",
            )
        if not parsed.pipeline_id.strip():
            raise RequestValidationError(
                "pipeline_id must not be empty", field="pipeline_id", reason="empty"
            )
        return parsed

    async def _run_phases(
        self,
        request: PipelineRequest,
        token: CancellationToken,
        run: _RunAccumulator,
    ) -> PipelineResult:
        payload: BaseSchema = request.design
        for phase in self._phases:
            name = PhaseName(phase.name)
            phase_config = self._config.phase_config(name)
            if not phase_config.enabled or not phase.is_enabled(request.options):
                run.skipped.append(name)
                snapshot = self._registry.phase_finished(
                    run.pipeline_id, name, PhaseStatus.SKIPPED
                )
                reason = "config" if not phase_config.enabled else "options"
                await self._emit_phase(
                    run.pipeline_id,
                    name,
                    PhaseEvent.SKIPPED,
                    snapshot,
                    data={"reason": reason},
                )
                continue

            if token.cancelled:
                error = CancellationError(
                    token.reason or DEFAULT_CANCEL_REASON,
                    phase=name,
                    reason="cancel_requested",
                )
                return await self._finish(run, RunStatus.CANCELLED, error.info)

            run.current_phase = name
            run.current_timing = None
            result = await self._run_phase(
                phase, name, payload, request, token, phase_config, run
            )
            run.results.append(result)
            if not result.success:
                error = result.error or UnexpectedPipelineError(
                    f"{name} failed without error details", phase=name
                ).info
                status = (
                    RunStatus.CANCELLED
                    if error.code == PipelineErrorCode.CANCELLED
                    else RunStatus.FAILED
                )
                return await self._finish(run, status, error)
            if result.output is not None:
                payload = result.output
                run.last_output = result.output
            run.degraded = run.degraded or result.fallback_used
        return await self._finish(run, RunStatus.COMPLETED, None)

    async def _run_phase(
        self,
        phase: AnyPhase,
        name: PhaseName,
        payload: BaseSchema,
        request: PipelineRequest,
        token: CancellationToken,
        phase_config: PhaseConfig,
        run: _RunAccumulator,
    ) -> PhaseResult:
        async def _on_units(
            phase_name: PhaseName, completed: int, total: int
        ) -> None:
            snapshot = self._registry.units_progressed(
                run.pipeline_id, phase_name, completed, total
            )
            await self._emit_progress(
                run.pipeline_id, PhaseEvent.PROGRESS, snapshot, phase=phase_name
            )

        context = PhaseContext(
            pipeline_id=run.pipeline_id,
            phase=name,
            options=request.options,
            token=token,
            payload=payload,
            max_parallel=self._config.concurrency_for(name).max_parallel_sections,
            log_sink=self._log_sink,
            progress_callback=_on_units,
            clock=self._clock,
        )
        timing = _PhaseTiming(started=self._timer(), started_at=self._clock())
        run.current_timing = timing
        snapshot = self._registry.phase_started(run.pipeline_id, name)
        await self._emit_phase(run.pipeline_id, name, PhaseEvent.STARTED, snapshot)

        try:
            phase.validate_input(payload, context)
        except PhaseValidationError as exc:
            return await self._phase_failed(run, name, timing, exc.info, attempts=0)

        policy = RetryPolicy(
            self._config.retry_for(name, max_retries=request.options.max_retries),
            phase=name,
            sleep=self._sleep,
        )

        async def _attempt(attempt: int) -> BaseSchema:
            self._registry.attempt_started(run.pipeline_id, name, attempt)
            return await phase.execute(payload, context.for_attempt(attempt))

        async def _on_failure(failure: AttemptFailure, max_attempts: int) -> None:
            await self._emit_log(
                build_phase_retry_log(
                    self._clock(),
                    run.pipeline_id,
                    name,
                    attempt=failure.attempt,
                    max_attempts=max_attempts,
                    error=failure.error.message,
                    delay_s=failure.delay_s,
                )
            )

        outcome = await policy.run(_attempt, token=token, on_failure=_on_failure)
        if outcome.succeeded and outcome.output is not None:
            return await self._phase_succeeded(
                run, phase, name, timing, context, outcome.output, outcome
            )

        last_error = outcome.error or UnexpectedPipelineError(
            f"{name} produced no output", phase=name
        ).info
        if outcome.cancelled or outcome.fatal:
            return await self._phase_failed(
                run, name, timing, last_error, attempts=outcome.attempts
            )

        exhausted = PhaseExhaustedError(
            f"{name} failed after {outcome.attempts} attempt(s): {last_error.message}",
            phase=name,
            attempts=outcome.attempts,
            last_error=last_error.message,
            reason=last_error.details.reason if last_error.details else None,
        ).info
        decision = resolve_exhaustion(phase_config.on_exhaustion, outcome)
        if decision == ExhaustionPolicy.ABORT:
            return await self._phase_failed(
                run, name, timing, exhausted, attempts=outcome.attempts
            )

        try:
            fallback = phase.create_fallback_result(context)
        except Exception as exc:
            failed = PhaseExhaustedError(
                f"{exhausted.message}; fallback failed: {exc}",
                phase=name,
                attempts=outcome.attempts,
                last_error=last_error.message,
                reason="fallback_failed",
            ).info
            return await self._phase_failed(
                run, name, timing, failed, attempts=outcome.attempts
            )
        return await self._phase_succeeded(
            run,
            phase,
            name,
            timing,
            context,
            fallback,
            outcome,
            fallback_error=last_error.message,
        )

    async def _phase_succeeded(
        self,
        run: _RunAccumulator,
        phase: AnyPhase,
        name: PhaseName,
        timing: _PhaseTiming,
        context: PhaseContext,
        output: BaseSchema,
        outcome: RetryOutcome[Any],
        *,
        fallback_error: str | None = None,
    ) -> PhaseResult:
        warnings: list[str] = []
        try:
            quality: float | None = float(phase.calculate_quality_score(output))
        except Exception as exc:
            quality = None
            warnings.append(f"{name} quality scoring failed: {exc}")
        warnings.extend(phase.get_warnings(output))
        if quality is not None and quality < context.quality_threshold:
            warnings.append(
                f"{name} quality {quality:.1f} is below threshold "
                f"{context.quality_threshold:.1f}"
            )
        metadata: dict[str, JsonValue] = dict(phase.get_metadata(output))
        metadata["attempts"] = outcome.attempts
        fallback_used = fallback_error is not None
        if fallback_used:
            warnings.insert(
                0, f"{name} failed, using fallback result: {fallback_error}"
            )
            metadata["fallback_used"] = True
            metadata["original_error"] = fallback_error

        result = PhaseResult(
            phase=name,
            success=True,
            output=output,
            quality_score=quality,
            warnings=warnings,
            metadata=metadata,
            execution_time_s=self._elapsed(timing),
            retry_count=outcome.retry_count,
            fallback_used=fallback_used,
            started_at=timing.started_at,
            completed_at=self._clock(),
        )
        status = PhaseStatus.DEGRADED if fallback_used else PhaseStatus.COMPLETED
        snapshot = self._registry.phase_finished(run.pipeline_id, name, status)
        event = PhaseEvent.FALLBACK if fallback_used else PhaseEvent.COMPLETED
        await self._emit_phase(
            run.pipeline_id,
            name,
            event,
            snapshot,
            level=LogLevel.WARN if fallback_used else LogLevel.INFO,
            data={
                "quality_score": quality,
                "retry_count": result.retry_count,
                "warnings": len(warnings),
                "execution_time_s": result.execution_time_s,
            },
        )
        return result

    async def _phase_failed(
        self,
        run: _RunAccumulator,
        name: PhaseName,
        timing: _PhaseTiming,
        error: PipelineErrorInfo,
        *,
        attempts: int,
    ) -> PhaseResult:
        result = PhaseResult(
            phase=name,
            success=False,
            error=error,
            metadata={"attempts": attempts},
            execution_time_s=self._elapsed(timing),
            retry_count=max(0, attempts - 1),
            started_at=timing.started_at,
            completed_at=self._clock(),
        )
        snapshot = self._registry.phase_finished(
            run.pipeline_id, name, PhaseStatus.FAILED
        )
        await self._emit_phase(
            run.pipeline_id,
            name,
            PhaseEvent.FAILED,
            snapshot,
            level=LogLevel.ERROR,
            message=f"{name} failed: {error.message}",
            data={"error_code": error.code, "attempts": attempts},
        )
        return result

    async def _finish(
        self,
        run: _RunAccumulator,
        status: RunStatus,
        error: PipelineErrorInfo | None,
    ) -> PipelineResult:
        snapshot = self._registry.finish(run.pipeline_id, status)
        result = self._build_result(run, status, error)
        await self._emit_log(
            build_run_finished_log(
                self._clock(),
                run.pipeline_id,
                status,
                total_time_s=result.total_execution_time_s,
                error=error,
            )
        )
        event = {
            RunStatus.COMPLETED: RunEvent.COMPLETED,
            RunStatus.CANCELLED: RunEvent.CANCELLED,
        }.get(status, RunEvent.FAILED)
        await self._emit_progress(run.pipeline_id, event, snapshot)
        return result

    def _build_result(
        self,
        run: _RunAccumulator,
        status: RunStatus,
        error: PipelineErrorInfo | None,
    ) -> PipelineResult:
        phase_total = sum(result.execution_time_s for result in run.results)
        success = status == RunStatus.COMPLETED and error is None
        return PipelineResult(
            success=success,
            pipeline_id=run.pipeline_id,
            status=RunStatus(status),
            phases=run.results,
            skipped_phases=run.skipped,
            total_execution_time_s=max(self._timer() - run.started, phase_total),
            error=error,
            final_output=run.last_output if success else None,
            degraded=run.degraded,
            warnings_count=sum(len(result.warnings) for result in run.results),
            phase_times={
                str(result.phase): result.execution_time_s for result in run.results
            },
        )

    def _record_interrupted_phase(
        self, run: _RunAccumulator, error: PipelineErrorInfo
    ) -> None:
        """Record the in-flight phase as failed when the run breaks off."""
        name = run.current_phase
        if name is None or (run.results and run.results[-1].phase == name):
            return
        timing = run.current_timing
        run.results.append(
            PhaseResult(
                phase=name,
                success=False,
                error=error,
                execution_time_s=(
                    self._elapsed(timing) if timing is not None else _MIN_DURATION_S
                ),
                started_at=timing.started_at if timing is not None else self._clock(),
                completed_at=self._clock(),
            )
        )
        self._registry.phase_finished(run.pipeline_id, name, PhaseStatus.FAILED)

    async def _reject(
        self, pipeline_id: str, error: PipelineErrorInfo, started: float
    ) -> PipelineResult:
        try:
            await self._emit_log(
                build_run_rejected_log(self._clock(), pipeline_id or None, error)
            )
        except Exception as exc:
            # The rejection result is returned even when the log sink fails.
            error = error.model_copy(
                update={"message": f"{error.message} (log sink failed: {exc!r})"}
            )
        return PipelineResult(
            success=False,
            pipeline_id=pipeline_id,
            status=RunStatus.FAILED,
            total_execution_time_s=max(0.0, self._timer() - started),
            error=error,
        )

    def _elapsed(self, timing: _PhaseTiming) -> float:
        return max(self._timer() - timing.started, _MIN_DURATION_S)

    async def _emit_phase(
        self,
        pipeline_id: PipelineId,
        phase: PhaseName,
        event: PhaseEvent,
        snapshot: ProgressSnapshot | None,
        *,
        level: LogLevel = LogLevel.INFO,
        message: str | None = None,
        data: dict[str, JsonValue] | None = None,
    ) -> None:
        entry = build_phase_log(
            self._clock(),
            pipeline_id,
            phase,
            event,
            message=message,
            level=level,
            data=data,
        )
        await self._emit_log(entry)
        await self._emit_progress(pipeline_id, event, snapshot, phase=phase)

    async def _emit_log(self, entry: LogEntry) -> None:
        if self._log_sink is None:
            return
        await self._log_sink.emit_log(entry)

    async def _emit_progress(
        self,
        pipeline_id: PipelineId,
        event: str,
        snapshot: ProgressSnapshot | None,
        *,
        phase: PhaseName | None = None,
    ) -> None:
        if self._progress_sink is None or snapshot is None:
            return
        await self._progress_sink.emit_progress(
            ProgressUpdate(
                pipeline_id=pipeline_id,
                event=event,
                timestamp=self._clock(),
                phase=phase,
                snapshot=snapshot,
            )
        )


def _raw_pipeline_id(request: object) -> str:
    if isinstance(request, PipelineRequest):
        value: object = request.pipeline_id
    elif isinstance(request, Mapping):
        value = request.get("pipeline_id")
    else:
        value = None
    return str(value).strip()[:_MAX_ID_LENGTH] if isinstance(value, str) else ""
