"""Unit tests for cancellation tokens."""

from __future__ import annotations

import asyncio

import pytest

from templator_core.cancellation import DEFAULT_CANCEL_REASON, CancellationToken
from templator_core.ports.errors import CancellationError
from templator_schemas.pipeline import PipelineErrorCode
from templator_schemas.primitives import PhaseName


@pytest.mark.unit
class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_starts_unset(self) -> None:
        """New tokens are not cancelled."""
        token = CancellationToken("run-1")
        assert not token.cancelled
        assert token.reason is None
        token.raise_if_cancelled()

    def test_cancel_returns_true_once(self) -> None:
        """Only the first request sets the token."""
        token = CancellationToken("run-1")
        assert token.cancel("first")
        assert not token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_raise_if_cancelled_carries_phase(self) -> None:
        """The raised error names the checking phase."""
        token = CancellationToken("run-1")
        token.cancel()
        with pytest.raises(CancellationError) as excinfo:
            token.raise_if_cancelled(PhaseName.GENERATION)
        info = excinfo.value.info
        assert info.code == PipelineErrorCode.CANCELLED
        assert info.message == DEFAULT_CANCEL_REASON
        assert info.details is not None
        assert info.details.phase == PhaseName.GENERATION


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sleep_completes_without_cancellation() -> None:
    """Short sleeps run to completion."""
    token = CancellationToken("run-1", poll_interval_s=0.001)
    assert await token.sleep(0.005)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sleep_wakes_up_on_cancel() -> None:
    """Cancelling interrupts a long sleep."""
    token = CancellationToken("run-1", poll_interval_s=0.001)

    async def _cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel()

    canceller = asyncio.create_task(_cancel_soon())
    completed = await asyncio.wait_for(token.sleep(30), timeout=5)
    await canceller

    assert not completed
