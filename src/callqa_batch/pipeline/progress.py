"""Per-item progress reporting for batch runs.

A ``ProgressTracker`` owns the batch-wide ``completed`` counter. It forwards
lifecycle transitions (``stage``) and terminal settlements (``settle``) to a
``ProgressReporter`` callback together with the item's best-available data,
so consumers can render results before the whole batch finishes.

``completed`` only ever grows and is incremented exactly once per item.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Protocol

from callqa_batch.core.lifecycle import CallState
from callqa_batch.core.types import ItemOutcome, ItemSnapshot

if TYPE_CHECKING:
    from callqa_batch.core.types import WorkItem

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class ProgressReporter(Protocol):
    """Callback receiving one progress event."""

    def __call__(
        self,
        item_id: str,
        status: str,
        completed: int,
        total: int,
        partial_item: ItemSnapshot | None,
    ) -> None: ...


class ProgressTracker:
    """Shared completion counter plus reporter fan-out for one batch."""

    __slots__ = ("_completed", "_reporter", "total")

    def __init__(self, total: int, reporter: ProgressReporter | None = None) -> None:
        if total < 0:
            raise ValueError("total must be >= 0")
        self.total = total
        self._reporter = reporter
        self._completed = 0

    @property
    def completed(self) -> int:
        return self._completed

    def stage(self, item: WorkItem, state: CallState) -> None:
        """Report a lifecycle transition. Usable as a transition listener.

        ``failed`` is left to ``settle`` so it is reported once, with the count.
        """
        if state is CallState.FAILED:
            return
        self._emit(item.id, str(state), item.snapshot())

    def settle(self, outcome: ItemOutcome) -> None:
        """Count ``outcome`` as complete and report it.

        Raises:
            RuntimeError: If every item of the batch has already settled.
        """
        if self._completed >= self.total:
            raise RuntimeError(f"All {self.total} items already settled")
        self._completed += 1
        status = STATUS_FAILED if outcome.final_state is CallState.FAILED else STATUS_COMPLETED
        snapshot = ItemSnapshot(
            id=outcome.id,
            state=outcome.final_state,
            data=outcome.data,
            error=outcome.error,
        )
        self._emit(outcome.id, status, snapshot)

    def _emit(self, item_id: str, status: str, snapshot: ItemSnapshot) -> None:
        if self._reporter is None:
            return
        try:
            self._reporter(item_id, status, self._completed, self.total, snapshot)
        except Exception as e:
            logger.error(
                "Progress reporter failed for item %s: %s", item_id, e, exc_info=True
            )


class LoggingProgressReporter:
    """Reporter that writes each event to a logger."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO):
        self._log = log or logger
        self._level = level

    def __call__(
        self,
        item_id: str,
        status: str,
        completed: int,
        total: int,
        partial_item: ItemSnapshot | None,
    ) -> None:
        self._log.log(
            self._level, "[%d/%d] call %s: %s", completed, total, item_id, status
        )
        if partial_item is not None and partial_item.error:
            self._log.log(self._level, "call %s error: %s", item_id, partial_item.error)


@dataclasses.dataclass(frozen=True, slots=True)
class ProgressEvent:
    item_id: str
    status: str
    completed: int
    total: int
    partial_item: ItemSnapshot | None


class RecordingProgressReporter:
    """Reporter that keeps every event in memory, in arrival order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(
        self,
        item_id: str,
        status: str,
        completed: int,
        total: int,
        partial_item: ItemSnapshot | None,
    ) -> None:
        self.events.append(
            ProgressEvent(item_id, status, completed, total, partial_item)
        )

    def for_item(self, item_id: str) -> list[ProgressEvent]:
        return [e for e in self.events if e.item_id == item_id]

    @property
    def settled(self) -> list[ProgressEvent]:
        """Events emitted when an item reached its terminal outcome."""
        return [e for e in self.events if e.status in (STATUS_COMPLETED, STATUS_FAILED)]
