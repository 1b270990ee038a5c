"""Unit tests for configuration schema validation."""

import pytest
from pydantic import ValidationError

from templator_schemas.config import (
    ConcurrencyConfig,
    ModelEndpointConfig,
    PhaseConfig,
    PipelineConfig,
    RetryConfig,
    TemplatorConfig,
)
from templator_schemas.primitives import (
    PHASE_ORDER,
    BackoffStrategy,
    ExhaustionPolicy,
    LogSinkType,
    PhaseName,
)


def test_retry_config_rejects_cap_below_initial_backoff() -> None:
    """Ensure the backoff cap cannot undercut the first delay."""
    with pytest.raises(ValidationError, match="max_backoff_s"):
        RetryConfig(backoff_s=5.0, max_backoff_s=1.0)


def test_retry_config_coerces_strategy_strings() -> None:
    """Ensure strategies read from TOML strings are accepted."""
    config = RetryConfig(strategy="fixed")  # type: ignore[arg-type]
    assert config.strategy == BackoffStrategy.FIXED


def test_phase_config_coerces_names_and_policy() -> None:
    """Ensure phase names and policies accept plain strings."""
    config = PhaseConfig(
        phase="generation",  # type: ignore[arg-type]
        on_exhaustion="fallback",  # type: ignore[arg-type]
    )
    assert config.phase == PhaseName.GENERATION
    assert config.on_exhaustion == ExhaustionPolicy.FALLBACK


def test_pipeline_config_defaults_cover_every_phase() -> None:
    """Ensure the default config lists every phase, enabled, in order."""
    config = PipelineConfig()
    assert [entry.phase for entry in config.phases] == list(PHASE_ORDER)
    assert all(entry.enabled for entry in config.phases)


def test_pipeline_config_rejects_duplicate_phases() -> None:
    """Ensure a phase cannot be configured twice."""
    with pytest.raises(ValidationError, match="unique"):
        PipelineConfig(
            phases=[
                PhaseConfig(phase=PhaseName.GENERATION),
                PhaseConfig(phase=PhaseName.GENERATION, enabled=False),
            ]
        )


def test_pipeline_config_rejects_all_phases_disabled() -> None:
    """Ensure at least one phase stays enabled."""
    with pytest.raises(ValidationError, match="at least one phase"):
        PipelineConfig(
            phases=[PhaseConfig(phase=phase, enabled=False) for phase in PHASE_ORDER]
        )


def test_retry_for_prefers_phase_override_then_request() -> None:
    """Ensure retry resolution order is request, phase, then default."""
    override = RetryConfig(max_retries=1, backoff_s=0.5)
    config = PipelineConfig(
        phases=[PhaseConfig(phase=PhaseName.GENERATION, retry=override)]
    )

    assert config.retry_for(PhaseName.GENERATION) == override
    assert config.retry_for(PhaseName.PACKAGING) == config.retry
    resolved = config.retry_for(PhaseName.GENERATION, max_retries=0)
    assert resolved.max_retries == 0
    assert resolved.backoff_s == 0.5
    assert override.max_retries == 1


def test_phase_config_lookup_falls_back_to_defaults() -> None:
    """Ensure unconfigured phases resolve to default settings."""
    config = PipelineConfig(phases=[PhaseConfig(phase=PhaseName.GENERATION)])
    fallback = config.phase_config("enhancement")
    assert fallback.phase == PhaseName.ENHANCEMENT
    assert fallback.enabled
    assert fallback.on_exhaustion == ExhaustionPolicy.ABORT


def test_concurrency_for_uses_phase_override() -> None:
    """Ensure per-phase fan-out limits override the default."""
    config = PipelineConfig(
        phases=[
            PhaseConfig(
                phase=PhaseName.QUALITY_ASSURANCE,
                concurrency=ConcurrencyConfig(max_parallel_sections=1),
            )
        ],
        concurrency=ConcurrencyConfig(max_parallel_sections=6),
    )
    qa_limits = config.concurrency_for(PhaseName.QUALITY_ASSURANCE)
    assert qa_limits.max_parallel_sections == 1
    assert config.concurrency_for(PhaseName.GENERATION).max_parallel_sections == 6


@pytest.mark.parametrize(
    ("base_url", "expected"),
    [
        ("https://api.openai.com", "https://api.openai.com/v1"),
        ("http://localhost:11434/", "http://localhost:11434/v1"),
        ("https://openrouter.ai/api/v1", "https://openrouter.ai/api/v1"),
    ],
)
def test_endpoint_base_url_gets_api_path(base_url: str, expected: str) -> None:
    """Ensure bare hosts get the default API path."""
    assert ModelEndpointConfig(base_url=base_url).base_url == expected


@pytest.mark.parametrize("base_url", ["ftp://models.example.com", "not a url"])
def test_endpoint_rejects_invalid_base_url(base_url: str) -> None:
    """Ensure non-http base URLs are rejected."""
    with pytest.raises(ValidationError, match="base_url"):
        ModelEndpointConfig(base_url=base_url)


def test_templator_config_loads_from_toml_shaped_dict() -> None:
    """Ensure a nested dict like parsed TOML validates."""
    config = TemplatorConfig.model_validate(
        {
            "pipeline": {
                "retry": {"max_retries": 2, "strategy": "fixed"},
                "phases": [
                    {"phase": "generation"},
                    {"phase": "enhancement", "enabled": False},
                ],
            },
            "endpoint": {"model_id": "gpt-4o-mini"},
            "logging": {"sinks": [{"type": "console"}]},
        },
        strict=False,
    )

    assert config.pipeline.retry.max_retries == 2
    assert not config.pipeline.phase_config(PhaseName.ENHANCEMENT).enabled
    assert config.endpoint.model_id == "gpt-4o-mini"
    assert config.logging.sinks[0].type == LogSinkType.CONSOLE
    assert config.output.output_dir == "out"
