"""Cooperative cancellation tokens for pipeline runs."""

from __future__ import annotations

import asyncio
import threading
import time

from templator_core.ports.errors import CancellationError
from templator_schemas.primitives import PhaseName

DEFAULT_CANCEL_REASON = "Pipeline cancelled"


class CancellationToken:
    """Thread-safe cancellation flag checked at run checkpoints.

    Cancellation never preempts in-flight work. Phases and the orchestrator
    poll the token between phases, between retry attempts and at sub-unit
    boundaries.
    """

    def __init__(self, pipeline_id: str, *, poll_interval_s: float = 0.05) -> None:
        """Initialize an unset token for a run.

        Args:
            pipeline_id: Run the token belongs to.
            poll_interval_s: Granularity of cancellable sleeps.
        """
        self.pipeline_id = pipeline_id
        self._poll_interval_s = poll_interval_s
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason given when cancelling, if any."""
        return self._reason

    def cancel(self, reason: str = DEFAULT_CANCEL_REASON) -> bool:
        """Request cancellation.

        Args:
            reason: Message recorded on the cancelled result.

        Returns:
            bool: True if this call set the token, False if it was already set.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    def raise_if_cancelled(self, phase: PhaseName | str | None = None) -> None:
        """Raise at a checkpoint when cancellation was requested.

        Args:
            phase: Phase doing the check, for the error details.

        Raises:
            CancellationError: If the token is set.
        """
        if self._event.is_set():
            raise CancellationError(
                self._reason or DEFAULT_CANCEL_REASON,
                phase=phase,
                reason="cancel_requested",
            )

    async def sleep(self, delay_s: float) -> bool:
        """Sleep for ``delay_s`` unless cancellation arrives first.

        Args:
            delay_s: Seconds to wait.

        Returns:
            bool: True if the full delay elapsed, False if cancelled.
        """
        deadline = time.monotonic() + delay_s
        while not self._event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            await asyncio.sleep(min(remaining, self._poll_interval_s))
        return False
