"""Convenience helpers for running a batch end to end.

These functions wire configuration, services and stages into a
``StageExecutor`` and hand it to the ``BatchScheduler``, without changing
core behavior.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from callqa_batch.adapters import create_completion_service
from callqa_batch.config import FrozenConfig, resolve_config
from callqa_batch.pipeline.evaluation import EvaluationStage
from callqa_batch.pipeline.executor import StageExecutor
from callqa_batch.pipeline.invoker import ResilientInvoker
from callqa_batch.pipeline.scheduler import BatchScheduler
from callqa_batch.pipeline.sentiment import SentimentStage
from callqa_batch.pipeline.transcription import TranscriptionStage
from callqa_batch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from collections.abc import Iterable

    from callqa_batch.core.criteria import CriteriaConfig
    from callqa_batch.core.types import BatchResult, WorkItem
    from callqa_batch.pipeline.progress import ProgressReporter
    from callqa_batch.services import CompletionService, TranscribeService
    from callqa_batch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)


def build_executor(
    config: FrozenConfig,
    transcriber: TranscribeService,
    completion: CompletionService | None = None,
    criteria: CriteriaConfig | None = None,
    *,
    telemetry: TelemetryContextProtocol | None = None,
) -> StageExecutor:
    """Assemble the three stages from ``config``.

    Without a completion service (given or created from ``config.provider``)
    only transcription runs.
    """
    tele = telemetry or TelemetryContext()
    invoker = ResilientInvoker(
        max_retries=config.max_retries,
        base_delay=config.base_delay_seconds,
        telemetry=tele,
    )
    if completion is None:
        completion = create_completion_service(config)

    sentiment = evaluation = None
    if completion is not None:
        sentiment = SentimentStage(
            completion,
            invoker,
            max_retries=config.sentiment_max_retries,
            overall_max_retries=config.overall_sentiment_max_retries,
            overall_enabled=config.overall_sentiment_enabled,
            max_phrases=config.max_sentiment_phrases,
            max_segments=config.max_sentiment_segments,
        )
        evaluation = EvaluationStage(completion, invoker, criteria)
    else:
        logger.warning("No completion provider configured; only transcribing")

    return StageExecutor(
        TranscriptionStage(transcriber, invoker, config.transcription_options()),
        sentiment,
        evaluation,
        telemetry=tele,
    )


async def run_batch(
    items: Iterable[WorkItem],
    *,
    transcriber: TranscribeService,
    completion: CompletionService | None = None,
    config: FrozenConfig | None = None,
    criteria: CriteriaConfig | None = None,
    on_progress: ProgressReporter | None = None,
    telemetry: TelemetryContextProtocol | None = None,
) -> BatchResult:
    """Process ``items`` and return one outcome per item, in input order.

    Example:
        ```python
        items = [WorkItem(id=name, audio=path.read_bytes()) for name, path in calls]
        outcomes = await run_batch(items, transcriber=my_speech_service)
        ```
    """
    final_config = config if config is not None else resolve_config().to_frozen()
    executor = build_executor(
        final_config, transcriber, completion, criteria, telemetry=telemetry
    )
    scheduler = BatchScheduler(telemetry=telemetry)
    return await scheduler.run(
        items, final_config.concurrency, executor, on_progress=on_progress
    )
