"""Base protocol for pipeline stages."""

from typing import Protocol, TypeVar

from callqa_batch.core.exceptions import CallQAError
from callqa_batch.core.types import Result, WorkItem

T_Out = TypeVar("T_Out", covariant=True)
T_Error = TypeVar("T_Error", bound=CallQAError, covariant=True)


class BaseAsyncStage(Protocol[T_Out, T_Error]):
    """Protocol for asynchronous pipeline stages.

    Each stage performs one external step for a single work item and reports
    the outcome as data. Expected failures come back as ``Failure``; only
    programming errors escape as exceptions.
    """

    name: str

    async def handle(self, item: WorkItem) -> Result[T_Out, T_Error]:
        """Run the stage for ``item``.

        Args:
            item: The work item, carrying results of the stages before this one.

        Returns:
            A Result containing either the stage output or the stage error.
        """
        ...
