"""Runs the stages for a single call, in order, under the failure policy.

- Transcription failure is fatal: the item ends ``failed`` with the error and
  no later stage runs.
- Sentiment failure is swallowed: it is logged, no sentiment data is stored,
  the item falls back to ``transcribed`` and evaluation runs regardless.
- Evaluation failure (including an empty transcript) is not fatal: the item
  ends ``transcribed`` with its transcription and the evaluation error.
- A stage that raises instead of returning a ``Failure`` is treated as having
  failed, so the policy above still decides the final state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from callqa_batch.core.exceptions import CallQAError
from callqa_batch.core.lifecycle import CallLifecycle, CallState
from callqa_batch.core.types import Failure, ItemOutcome, Success
from callqa_batch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from callqa_batch.core.lifecycle import TransitionListener
    from callqa_batch.core.types import (
        Evaluation,
        Result,
        SentimentResult,
        TranscriptionResult,
        WorkItem,
    )
    from callqa_batch.pipeline.base import BaseAsyncStage
    from callqa_batch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)


class StageExecutor:
    """Drives one ``WorkItem`` through transcription, sentiment and evaluation."""

    def __init__(
        self,
        transcription: BaseAsyncStage[TranscriptionResult, CallQAError],
        sentiment: BaseAsyncStage[SentimentResult, CallQAError] | None = None,
        evaluation: BaseAsyncStage[Evaluation, CallQAError] | None = None,
        *,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self.transcription = transcription
        self.sentiment = sentiment
        self.evaluation = evaluation
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()

    async def execute(
        self, item: WorkItem, listener: TransitionListener | None = None
    ) -> ItemOutcome:
        """Run every configured stage for ``item`` and return its outcome.

        Raises:
            InvalidTransitionError: If ``item`` is not ``pending``.
        """
        lifecycle = CallLifecycle(item, (listener,) if listener is not None else ())
        with self._telemetry("executor.item", call_id=item.id):
            await self._transcribe(item, lifecycle)
            if lifecycle.state is CallState.TRANSCRIBED:
                await self._analyze_sentiment(item, lifecycle)
                await self._evaluate(item, lifecycle)
        return ItemOutcome(
            id=item.id,
            final_state=item.state,
            data=item.results.copy(),
            error=item.error,
        )

    async def _transcribe(self, item: WorkItem, lifecycle: CallLifecycle) -> None:
        lifecycle.transition(CallState.TRANSCRIBING)
        with self._telemetry("stage.transcription", call_id=item.id):
            result = await self._run_stage(self.transcription, item)
        match result:
            case Success(value=value):
                item.results.transcription = value
                lifecycle.transition(CallState.TRANSCRIBED)
            case Failure(error=error):
                item.error = str(error)
                logger.error("Transcription failed for call %s: %s", item.id, error)
                lifecycle.transition(CallState.FAILED)

    async def _analyze_sentiment(
        self, item: WorkItem, lifecycle: CallLifecycle
    ) -> None:
        if self.sentiment is None:
            return
        lifecycle.transition(CallState.ANALYZING_SENTIMENT)
        with self._telemetry("stage.sentiment", call_id=item.id):
            result = await self._run_stage(self.sentiment, item)
        match result:
            case Success(value=value):
                item.results.sentiment = value
            case Failure(error=error):
                # Not surfaced on the outcome; the item continues to evaluation.
                logger.warning(
                    "Sentiment analysis failed for call %s: %s", item.id, error
                )
                lifecycle.transition(CallState.TRANSCRIBED)
                return
        if self.evaluation is None:
            lifecycle.transition(CallState.TRANSCRIBED)

    async def _evaluate(self, item: WorkItem, lifecycle: CallLifecycle) -> None:
        if self.evaluation is None:
            return
        lifecycle.transition(CallState.EVALUATING)
        with self._telemetry("stage.evaluation", call_id=item.id):
            result = await self._run_stage(self.evaluation, item)
        match result:
            case Success(value=value):
                item.results.evaluation = value
                lifecycle.transition(CallState.EVALUATED)
            case Failure(error=error):
                item.error = str(error)
                logger.warning(
                    "Evaluation failed for call %s, keeping transcription: %s",
                    item.id,
                    error,
                )
                lifecycle.transition(CallState.TRANSCRIBED)

    async def _run_stage[T](
        self, stage: BaseAsyncStage[T, CallQAError], item: WorkItem
    ) -> Result[T, CallQAError]:
        """Run ``stage`` and turn an unexpected exception into a ``Failure``."""
        try:
            return await stage.handle(item)
        except CallQAError as e:
            return Failure(e)
        except Exception as e:
            logger.error(
                "Stage '%s' raised unexpectedly for call %s: %s",
                stage.name,
                item.id,
                e,
                exc_info=True,
            )
            return Failure(CallQAError(f"{stage.name} stage error: {e}"))
