"""Window-based batch scheduling.

Items are split into windows of ``concurrency`` items in input order. Every
item of a window is executed concurrently and settles on its own; the next
window starts only after the whole current window has settled. At most
``concurrency`` executions are ever outstanding.

``run`` never raises for the batch as a whole: unexpected executor errors are
converted into ``failed`` outcomes. Cancelling the awaiting task still
propagates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from callqa_batch.core.lifecycle import CallState
from callqa_batch.core.types import ItemOutcome
from callqa_batch.pipeline.progress import ProgressTracker
from callqa_batch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from collections.abc import Iterable

    from callqa_batch.core.lifecycle import TransitionListener
    from callqa_batch.core.types import BatchResult, WorkItem
    from callqa_batch.pipeline.progress import ProgressReporter
    from callqa_batch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)


class ItemExecutor(Protocol):
    """Anything that can run a single work item to its outcome."""

    async def execute(
        self, item: WorkItem, listener: TransitionListener | None = None
    ) -> ItemOutcome: ...


class BatchScheduler:
    """Runs a batch of work items through an executor, window by window."""

    def __init__(self, *, telemetry: TelemetryContextProtocol | None = None) -> None:
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()

    async def run(
        self,
        items: Iterable[WorkItem],
        concurrency: int,
        executor: ItemExecutor,
        on_progress: ProgressReporter | None = None,
    ) -> BatchResult:
        """Execute ``items`` and return one outcome per item, in input order.

        Args:
            items: Work items with unique ids, all ``pending``.
            concurrency: Window size; values below 1 are treated as 1.
            executor: Runs one item to its outcome.
            on_progress: Receives stage and settle events as they happen.

        Returns:
            Outcomes re-ordered to match ``items``.
        """
        batch = list(items)
        if not batch:
            return []

        window_size = max(1, concurrency)
        tracker = ProgressTracker(len(batch), on_progress)
        outcomes: list[ItemOutcome | None] = [None] * len(batch)
        window_count = -(-len(batch) // window_size)
        logger.info(
            "Processing %d calls in %d windows of up to %d",
            len(batch),
            window_count,
            window_size,
        )

        for number, start in enumerate(range(0, len(batch), window_size), start=1):
            window = batch[start : start + window_size]
            with self._telemetry("scheduler.window", index=number, size=len(window)):
                await asyncio.gather(
                    *(
                        self._settle(start + offset, item, executor, tracker, outcomes)
                        for offset, item in enumerate(window)
                    )
                )
            logger.info(
                "Window %d/%d settled (%d/%d calls complete)",
                number,
                window_count,
                tracker.completed,
                tracker.total,
            )

        results = [o for o in outcomes if o is not None]
        failed = sum(1 for o in results if o.failed)
        self._telemetry.gauge("scheduler.failed", failed)
        logger.info(
            "Batch complete: %d calls, %d evaluated, %d failed",
            len(results),
            sum(1 for o in results if o.evaluated),
            failed,
        )
        return results

    async def _settle(
        self,
        index: int,
        item: WorkItem,
        executor: ItemExecutor,
        tracker: ProgressTracker,
        outcomes: list[ItemOutcome | None],
    ) -> None:
        try:
            outcome = await executor.execute(item, tracker.stage)
        except Exception as e:
            logger.error("Call %s failed unexpectedly: %s", item.id, e, exc_info=True)
            item.error = str(e)
            outcome = ItemOutcome(
                id=item.id,
                final_state=CallState.FAILED,
                data=item.results.copy(),
                error=str(e),
            )
        outcomes[index] = outcome
        tracker.settle(outcome)
