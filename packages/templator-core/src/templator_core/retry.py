"""Bounded retry around a single phase execution."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from templator_core.cancellation import DEFAULT_CANCEL_REASON, CancellationToken
from templator_core.ports.errors import (
    CancellationError,
    PhaseExecutionError,
    PhaseValidationError,
    PipelineError,
)
from templator_schemas.config import RetryConfig
from templator_schemas.pipeline import PipelineErrorInfo
from templator_schemas.primitives import BackoffStrategy, PhaseName

type Sleeper = Callable[[float], Awaitable[bool]]


@dataclass(slots=True, frozen=True)
class AttemptFailure:
    """One failed attempt, as recorded by the retry policy."""

    attempt: int
    error: PipelineErrorInfo
    retryable: bool
    delay_s: float | None


@dataclass(slots=True)
class RetryOutcome[OutputT]:
    """Result of running an operation under a retry policy.

    Exactly one of ``output`` and ``error`` is set.
    """

    output: OutputT | None = None
    error: PipelineErrorInfo | None = None
    attempts: int = 0
    failures: list[AttemptFailure] = field(default_factory=list)
    cancelled: bool = False
    fatal: bool = False

    @property
    def succeeded(self) -> bool:
        """Whether an attempt produced output."""
        return self.error is None

    @property
    def retry_count(self) -> int:
        """Attempts made beyond the first."""
        return max(0, self.attempts - 1)


type AttemptCallback = Callable[[AttemptFailure, int], Awaitable[None]]


class RetryPolicy:
    """Run an operation up to ``max_retries + 1`` times with backoff.

    The policy never raises for phase errors; it returns the last failure and
    leaves the fallback decision to the caller.
    """

    def __init__(
        self,
        config: RetryConfig,
        *,
        phase: PhaseName | str | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize the retry policy.

        Args:
            config: Retry configuration.
            phase: Phase name used in error details.
            sleep: Optional sleep override returning False when interrupted.
        """
        self._config = config
        self._phase = phase
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        """Total attempts allowed."""
        return self._config.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """Backoff before the given retry.

        Args:
            retry_number: 1-based retry index (1 is the second attempt).

        Returns:
            float: Delay in seconds.
        """
        base = self._config.backoff_s
        if self._config.strategy == BackoffStrategy.FIXED:
            return base
        delay = base * self._config.multiplier ** (retry_number - 1)
        return min(delay, self._config.max_backoff_s)

    async def run[OutputT](
        self,
        operation: Callable[[int], Awaitable[OutputT]],
        *,
        token: CancellationToken,
        on_failure: AttemptCallback | None = None,
    ) -> RetryOutcome[OutputT]:
        """Execute the operation with bounded retry.

        Args:
            operation: Callable receiving the 1-based attempt number.
            token: Run cancellation token, checked between attempts.
            on_failure: Awaited after each failed attempt with the failure
                and the total attempt budget.

        Returns:
            RetryOutcome[OutputT]: Output or last failure with attempt data.
        """
        outcome: RetryOutcome[OutputT] = RetryOutcome()
        for attempt in range(1, self.max_attempts + 1):
            if token.cancelled:
                return self._cancelled(outcome, token)
            outcome.attempts = attempt
            try:
                outcome.output = await self._attempt(operation, attempt)
                outcome.error = None
                return outcome
            except CancellationError as exc:
                outcome.error = exc.info
                outcome.cancelled = True
                return outcome
            except PhaseValidationError as exc:
                failure = AttemptFailure(attempt, exc.info, False, None)
            except PipelineError as exc:
                failure = AttemptFailure(attempt, exc.info, exc.retryable, None)
            except TimeoutError as exc:
                error = PhaseExecutionError(
                    self._timeout_message(exc),
                    phase=self._phase,
                    reason="timeout",
                    attempts=attempt,
                )
                failure = AttemptFailure(attempt, error.info, True, None)
            except Exception as exc:
                error = PhaseExecutionError(
                    str(exc) or type(exc).__name__,
                    phase=self._phase,
                    reason=type(exc).__name__,
                    attempts=attempt,
                )
                failure = AttemptFailure(attempt, error.info, True, None)

            has_next = failure.retryable and attempt < self.max_attempts
            if has_next:
                failure = AttemptFailure(
                    attempt, failure.error, True, self.delay_for(attempt)
                )
            outcome.failures.append(failure)
            outcome.error = failure.error
            if on_failure is not None:
                await on_failure(failure, self.max_attempts)
            if not failure.retryable:
                outcome.fatal = True
                return outcome
            if not has_next:
                return outcome
            if not await self._wait(failure.delay_s or 0.0, token):
                return self._cancelled(outcome, token)
        return outcome

    async def _attempt[OutputT](
        self, operation: Callable[[int], Awaitable[OutputT]], attempt: int
    ) -> OutputT:
        timeout_s = self._config.attempt_timeout_s
        if timeout_s is None:
            return await operation(attempt)
        async with asyncio.timeout(timeout_s):
            return await operation(attempt)

    def _timeout_message(self, exc: TimeoutError) -> str:
        timeout_s = self._config.attempt_timeout_s
        if timeout_s is None:
            return str(exc) or "Attempt timed out"
        return f"Attempt exceeded {timeout_s}s deadline"

    async def _wait(self, delay_s: float, token: CancellationToken) -> bool:
        if self._sleep is not None:
            completed = await self._sleep(delay_s)
            return completed and not token.cancelled
        return await token.sleep(delay_s)

    def _cancelled[OutputT](
        self, outcome: RetryOutcome[OutputT], token: CancellationToken
    ) -> RetryOutcome[OutputT]:
        outcome.error = CancellationError(
            token.reason or DEFAULT_CANCEL_REASON,
            phase=self._phase,
            reason="cancel_requested",
        ).info
        outcome.cancelled = True
        return outcome
