"""Configuration schemas for templator deployments."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import Field, field_validator, model_validator

from templator_schemas.base import BaseSchema
from templator_schemas.primitives import (
    PHASE_ORDER,
    BackoffStrategy,
    ExhaustionPolicy,
    LogSinkType,
    PhaseName,
)


class RetryConfig(BaseSchema):
    """Retry policy applied around each phase execution."""

    max_retries: int = Field(3, ge=0, description="Maximum retry attempts")
    backoff_s: float = Field(1.0, ge=0, description="Initial backoff in seconds")
    max_backoff_s: float = Field(
        30.0, ge=0, description="Maximum backoff delay in seconds"
    )
    strategy: BackoffStrategy = Field(
        BackoffStrategy.EXPONENTIAL, description="Backoff strategy (fixed|exponential)"
    )
    multiplier: float = Field(
        2.0, ge=1, description="Exponential growth factor between retries"
    )
    attempt_timeout_s: float | None = Field(
        None, gt=0, description="Optional deadline for a single attempt"
    )

    @field_validator("strategy", mode="before")
    @classmethod
    def _coerce_strategy(cls, value: object) -> BackoffStrategy:
        if isinstance(value, str) and not isinstance(value, BackoffStrategy):
            return BackoffStrategy(value)
        return value  # type: ignore[return-value]

    @model_validator(mode="after")
    def validate_backoff_cap(self) -> RetryConfig:
        """Ensure the backoff cap is not below the initial delay.

        Returns:
            RetryConfig: Validated retry configuration.

        Raises:
            ValueError: If max_backoff_s is smaller than backoff_s.
        """
        if self.max_backoff_s < self.backoff_s:
            raise ValueError("max_backoff_s must be >= backoff_s")
        return self


class ConcurrencyConfig(BaseSchema):
    """Concurrency settings for phase-internal fan-out."""

    max_parallel_sections: int = Field(
        4, ge=1, description="Max sections processed concurrently by one phase"
    )


class PhaseConfig(BaseSchema):
    """Configuration for a single pipeline phase."""

    phase: PhaseName = Field(..., description="Phase name")
    enabled: bool = Field(True, description="Whether the phase runs at all")
    retry: RetryConfig | None = Field(
        None, description="Retry override for this phase"
    )
    on_exhaustion: ExhaustionPolicy = Field(
        ExhaustionPolicy.ABORT,
        description="Policy once retries are spent (abort|fallback)",
    )
    concurrency: ConcurrencyConfig | None = Field(
        None, description="Fan-out override for this phase"
    )

    @field_validator("phase", mode="before")
    @classmethod
    def _coerce_phase(cls, value: object) -> PhaseName:
        if isinstance(value, str) and not isinstance(value, PhaseName):
            return PhaseName(value)
        return value  # type: ignore[return-value]

    @field_validator("on_exhaustion", mode="before")
    @classmethod
    def _coerce_policy(cls, value: object) -> ExhaustionPolicy:
        if isinstance(value, str) and not isinstance(value, ExhaustionPolicy):
            return ExhaustionPolicy(value)
        return value  # type: ignore[return-value]


def _default_phase_configs() -> list[PhaseConfig]:
    return [PhaseConfig(phase=phase) for phase in PHASE_ORDER]


class PipelineConfig(BaseSchema):
    """Orchestrator-wide execution settings."""

    phases: list[PhaseConfig] = Field(
        default_factory=_default_phase_configs,
        description="Per-phase settings",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description="Default retry policy"
    )
    concurrency: ConcurrencyConfig = Field(
        default_factory=ConcurrencyConfig, description="Default fan-out limits"
    )
    retention_s: float = Field(
        3600.0, ge=0, description="How long finished runs stay queryable"
    )

    @model_validator(mode="after")
    def validate_phases(self) -> PipelineConfig:
        """Ensure phase entries are unique and at least one is enabled.

        Returns:
            PipelineConfig: Validated pipeline configuration.

        Raises:
            ValueError: If phases are duplicated or all disabled.
        """
        names = [entry.phase for entry in self.phases]
        if len(set(names)) != len(names):
            raise ValueError("phase entries must be unique")
        if self.phases and not any(entry.enabled for entry in self.phases):
            raise ValueError("at least one phase must be enabled")
        return self

    def phase_config(self, phase: PhaseName | str) -> PhaseConfig:
        """Return the configuration for a phase, with defaults if unset.

        Args:
            phase: Phase to look up.

        Returns:
            PhaseConfig: Configured or default settings for the phase.
        """
        for entry in self.phases:
            if entry.phase == phase:
                return entry
        return PhaseConfig(phase=PhaseName(phase))

    def retry_for(
        self, phase: PhaseName | str, *, max_retries: int | None = None
    ) -> RetryConfig:
        """Resolve the retry policy for a phase.

        Args:
            phase: Phase to resolve.
            max_retries: Request-level override for the retry budget.

        Returns:
            RetryConfig: Effective retry policy.
        """
        retry = self.phase_config(phase).retry or self.retry
        if max_retries is None:
            return retry
        return retry.model_copy(update={"max_retries": max_retries})

    def concurrency_for(self, phase: PhaseName | str) -> ConcurrencyConfig:
        """Resolve the fan-out limits for a phase.

        Returns:
            ConcurrencyConfig: Effective concurrency settings.
        """
        return self.phase_config(phase).concurrency or self.concurrency


class ModelEndpointConfig(BaseSchema):
    """OpenAI-compatible endpoint used by the generative collaborators."""

    base_url: str = Field(
        "https://api.openai.com/v1", min_length=1, description="API base URL"
    )
    api_key_env: str = Field(
        "OPENAI_API_KEY", min_length=1, description="Environment variable for API key"
    )
    model_id: str = Field("gpt-4o", min_length=1, description="Default model")
    temperature: float = Field(0.2, ge=0, le=2, description="Sampling temperature")
    max_output_tokens: int = Field(4096, ge=1, description="Output token limit")
    timeout_s: float = Field(120.0, gt=0, description="Request timeout in seconds")
    refinement_iterations: int = Field(
        2, ge=1, description="Refinement passes allowed per section"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Ensure base URL uses http/https with a host.

        Args:
            value: Raw base URL string.

        Returns:
            str: Validated base URL.

        Raises:
            ValueError: If the URL is missing scheme/host.
        """
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("base_url must be an http/https URL with host")
        if parsed.path in {"", "/"}:
            return f"{value.rstrip('/')}/v1"
        return value


class LogSinkConfig(BaseSchema):
    """Configuration for a single log sink."""

    type: LogSinkType = Field(..., description="Log sink type (console|file|noop)")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> LogSinkType:
        if isinstance(value, str) and not isinstance(value, LogSinkType):
            return LogSinkType(value)
        return value  # type: ignore[return-value]


def _default_sinks() -> list[LogSinkConfig]:
    return [LogSinkConfig(type=LogSinkType.FILE)]


class LoggingConfig(BaseSchema):
    """Logging configuration for pipeline runs and CLI commands."""

    sinks: list[LogSinkConfig] = Field(
        default_factory=_default_sinks, min_length=1, description="Log sinks"
    )

    @model_validator(mode="after")
    def validate_sink_types(self) -> LoggingConfig:
        """Ensure log sink types are unique.

        Returns:
            LoggingConfig: Validated logging configuration.

        Raises:
            ValueError: If sink types are duplicated.
        """
        sink_types = [sink.type for sink in self.sinks]
        if len(set(sink_types)) != len(sink_types):
            raise ValueError("log sinks must not contain duplicates")
        return self


class OutputConfig(BaseSchema):
    """Filesystem locations for run artifacts."""

    output_dir: str = Field("out", min_length=1, description="Packaged modules")
    logs_dir: str = Field("logs", min_length=1, description="JSONL logs")
    progress_dir: str = Field(
        "logs/progress", min_length=1, description="Progress update streams"
    )


class TemplatorConfig(BaseSchema):
    """Root configuration loaded from templator.toml."""

    pipeline: PipelineConfig = Field(
        default_factory=PipelineConfig, description="Orchestrator settings"
    )
    endpoint: ModelEndpointConfig = Field(
        default_factory=ModelEndpointConfig, description="Model endpoint"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging sinks"
    )
    output: OutputConfig = Field(
        default_factory=OutputConfig, description="Artifact locations"
    )
