"""Unit tests for the retry policy."""

from __future__ import annotations

import asyncio

import pytest

from templator_core.cancellation import CancellationToken
from templator_core.ports.errors import (
    CancellationError,
    PhaseExecutionError,
    PhaseValidationError,
    UnexpectedPipelineError,
)
from templator_core.retry import AttemptFailure, RetryPolicy
from templator_schemas.config import RetryConfig
from templator_schemas.pipeline import PipelineErrorCode
from templator_schemas.primitives import BackoffStrategy, PhaseName


class _Sleeper:
    def __init__(self, token: CancellationToken | None = None) -> None:
        self.delays: list[float] = []
        self._token = token

    async def __call__(self, delay_s: float) -> bool:
        self.delays.append(delay_s)
        if self._token is not None:
            self._token.cancel("stop during backoff")
        return True


class _Flaky:
    """Operation failing with ``error`` for the first ``failures`` attempts."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or PhaseExecutionError("flaky", phase=PhaseName.GENERATION)
        self.attempts: list[int] = []

    async def __call__(self, attempt: int) -> str:
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.error
        return f"ok-{attempt}"


def _policy(sleeper: _Sleeper | None = None, **overrides: object) -> RetryPolicy:
    config = RetryConfig.model_validate(
        {"max_retries": 3, "backoff_s": 1.0, "max_backoff_s": 5.0, **overrides},
        strict=False,
    )
    return RetryPolicy(config, phase=PhaseName.GENERATION, sleep=sleeper or _Sleeper())


@pytest.mark.unit
class TestDelays:
    """Tests for backoff delays."""

    def test_exponential_delays_are_capped(self) -> None:
        """Delays double until the cap."""
        policy = _policy()
        assert [policy.delay_for(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]

    def test_fixed_delays_stay_constant(self) -> None:
        """Fixed strategy repeats the initial delay."""
        policy = _policy(strategy=BackoffStrategy.FIXED, backoff_s=0.5)
        assert [policy.delay_for(n) for n in range(1, 4)] == [0.5, 0.5, 0.5]

    def test_max_attempts_counts_first_try(self) -> None:
        """Retries come on top of the first attempt."""
        assert _policy(max_retries=0).max_attempts == 1
        assert _policy().max_attempts == 4


@pytest.mark.unit
@pytest.mark.asyncio
async def test_first_attempt_success() -> None:
    """A successful first attempt needs no retries."""
    operation = _Flaky(0)

    outcome = await _policy().run(operation, token=CancellationToken("run-1"))

    assert outcome.succeeded
    assert outcome.output == "ok-1"
    assert outcome.attempts == 1
    assert outcome.retry_count == 0
    assert outcome.failures == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retryable_failures_back_off_then_succeed() -> None:
    """Transient errors are retried with the configured delays."""
    sleeper = _Sleeper()
    operation = _Flaky(2)
    seen: list[tuple[AttemptFailure, int]] = []

    async def _record(failure: AttemptFailure, max_attempts: int) -> None:
        seen.append((failure, max_attempts))

    outcome = await _policy(sleeper).run(
        operation, token=CancellationToken("run-1"), on_failure=_record
    )

    assert outcome.output == "ok-3"
    assert outcome.retry_count == 2
    assert operation.attempts == [1, 2, 3]
    assert sleeper.delays == [1.0, 2.0]
    assert [failure.attempt for failure, _ in seen] == [1, 2]
    assert {max_attempts for _, max_attempts in seen} == {4}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_budget_exhaustion_returns_last_error() -> None:
    """The final failure carries no delay and ends the loop."""
    sleeper = _Sleeper()
    operation = _Flaky(10)

    outcome = await _policy(sleeper, max_retries=1).run(
        operation, token=CancellationToken("run-1")
    )

    assert not outcome.succeeded
    assert not outcome.fatal
    assert outcome.attempts == 2
    assert outcome.error is not None
    assert outcome.error.message == "flaky"
    assert outcome.failures[-1].delay_s is None
    assert sleeper.delays == [1.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_validation_errors_are_fatal() -> None:
    """Validation errors stop after one attempt."""
    operation = _Flaky(10, PhaseValidationError("bad", phase=PhaseName.GENERATION))

    outcome = await _policy().run(operation, token=CancellationToken("run-1"))

    assert outcome.fatal
    assert outcome.attempts == 1
    assert outcome.error is not None
    assert outcome.error.code == PipelineErrorCode.PHASE_VALIDATION_FAILED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_non_retryable_pipeline_errors_are_fatal() -> None:
    """Pipeline errors flagged non-retryable stop immediately."""
    operation = _Flaky(10, UnexpectedPipelineError("broken invariant"))

    outcome = await _policy().run(operation, token=CancellationToken("run-1"))

    assert outcome.fatal
    assert operation.attempts == [1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_arbitrary_exceptions_are_wrapped_and_retried() -> None:
    """Plain exceptions become retryable execution errors."""
    operation = _Flaky(1, RuntimeError("connection reset"))

    outcome = await _policy().run(operation, token=CancellationToken("run-1"))

    assert outcome.succeeded
    failure = outcome.failures[0]
    assert failure.retryable
    assert failure.error.code == PipelineErrorCode.PHASE_EXHAUSTED
    assert failure.error.message == "connection reset"
    assert failure.error.details is not None
    assert failure.error.details.reason == "RuntimeError"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_attempt_timeout_counts_as_failure() -> None:
    """Attempts over the deadline are retryable timeouts."""

    async def _slow(attempt: int) -> str:
        await asyncio.sleep(5)
        return "late"

    outcome = await _policy(max_retries=0, attempt_timeout_s=0.01).run(
        _slow, token=CancellationToken("run-1")
    )

    assert not outcome.succeeded
    assert outcome.error is not None
    assert outcome.error.details is not None
    assert outcome.error.details.reason == "timeout"
    assert outcome.error.message == "Attempt exceeded 0.01s deadline"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timeout_without_deadline_keeps_operation_message() -> None:
    """Timeouts raised by the operation itself are not blamed on a deadline."""
    operation = _Flaky(1, TimeoutError("upstream read timed out"))

    outcome = await _policy(max_retries=0).run(
        operation, token=CancellationToken("run-1")
    )

    assert outcome.error is not None
    assert outcome.error.message == "upstream read timed out"
    assert "deadline" not in outcome.error.message
    assert outcome.error.details is not None
    assert outcome.error.details.reason == "timeout"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_token_prevents_any_attempt() -> None:
    """No attempt starts once the token is set."""
    token = CancellationToken("run-1")
    token.cancel("user abort")
    operation = _Flaky(0)

    outcome = await _policy().run(operation, token=token)

    assert outcome.cancelled
    assert outcome.attempts == 0
    assert operation.attempts == []
    assert outcome.error is not None
    assert outcome.error.code == PipelineErrorCode.CANCELLED
    assert outcome.error.message == "user abort"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancellation_during_backoff_stops_retries() -> None:
    """Cancelling while waiting skips the next attempt."""
    token = CancellationToken("run-1")
    operation = _Flaky(10)

    outcome = await _policy(_Sleeper(token)).run(operation, token=token)

    assert outcome.cancelled
    assert operation.attempts == [1]
    assert outcome.error is not None
    assert outcome.error.message == "stop during backoff"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancellation_raised_by_operation_is_not_retried() -> None:
    """A checkpoint inside the operation ends the loop as cancelled."""
    operation = _Flaky(10, CancellationError("stopped", phase=PhaseName.GENERATION))

    outcome = await _policy().run(operation, token=CancellationToken("run-1"))

    assert outcome.cancelled
    assert not outcome.fatal
    assert operation.attempts == [1]
