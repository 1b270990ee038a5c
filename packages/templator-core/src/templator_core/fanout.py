"""Scatter/gather over the independent sub-units of a phase."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import cast

from templator_core.ports.errors import CancellationError
from templator_core.ports.phase import PhaseContext


@dataclass(slots=True, frozen=True)
class UnitOutcome[ResultT]:
    """Result for one sub-unit, either produced or substituted."""

    value: ResultT
    error: str | None = None

    @property
    def fell_back(self) -> bool:
        """Whether the value is a fallback substitute."""
        return self.error is not None


class FanOutPool:
    """Run one task per sub-unit with bounded parallelism.

    A failing sub-unit is replaced by its fallback and never cancels its
    siblings. Results keep input order. Cancellation raised from a
    checkpoint propagates and stops the whole batch.
    """

    def __init__(self, max_parallel: int) -> None:
        """Initialize the pool.

        Args:
            max_parallel: Cap on concurrently running sub-units.

        Raises:
            ValueError: If max_parallel is not positive.
        """
        if max_parallel <= 0:
            raise ValueError("max_parallel must be positive")
        self._max_parallel = max_parallel

    async def gather[ItemT, ResultT](
        self,
        items: list[ItemT],
        worker: Callable[[ItemT], Awaitable[ResultT]],
        fallback: Callable[[ItemT, Exception], ResultT],
        context: PhaseContext,
    ) -> list[UnitOutcome[ResultT]]:
        """Process every item and collect outcomes in input order.

        Args:
            items: Sub-units to process.
            worker: Coroutine producing the result for one item.
            fallback: Builds a substitute when the worker fails.
            context: Phase context for checkpoints, logs and progress.

        Returns:
            list[UnitOutcome[ResultT]]: One outcome per item.
        """
        if not items:
            return []
        semaphore = asyncio.Semaphore(min(self._max_parallel, len(items)))
        results: list[UnitOutcome[ResultT] | None] = [None] * len(items)
        total = len(items)
        done = 0

        async def _run(index: int, item: ItemT) -> None:
            nonlocal done
            async with semaphore:
                context.checkpoint()
                try:
                    results[index] = UnitOutcome(await worker(item))
                except CancellationError:
                    raise
                except Exception as exc:
                    message = str(exc) or type(exc).__name__
                    results[index] = UnitOutcome(fallback(item, exc), message)
            done += 1
            await context.report_progress(done, total)

        try:
            async with asyncio.TaskGroup() as group:
                for index, item in enumerate(items):
                    group.create_task(_run(index, item))
        except* CancellationError as cancelled:
            raise cancelled.exceptions[0] from None

        return [cast(UnitOutcome[ResultT], result) for result in results]
