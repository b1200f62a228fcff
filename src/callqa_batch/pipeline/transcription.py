"""Transcription stage of the pipeline."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from callqa_batch.core.exceptions import BusinessRuleError, CallQAError, ValidationError
from callqa_batch.core.types import (
    Failure,
    Result,
    Success,
    TranscriptionOptions,
    TranscriptionResult,
    WorkItem,
    clamp,
)
from callqa_batch.pipeline.base import BaseAsyncStage

if TYPE_CHECKING:
    from callqa_batch.pipeline.invoker import ResilientInvoker, RetryContext
    from callqa_batch.services import TranscribeService

logger = logging.getLogger(__name__)


def _is_transcription(result: Any) -> bool | ValidationError:
    if isinstance(result, TranscriptionResult):
        return True
    return ValidationError(
        f"Transcription service returned {type(result).__name__}, "
        "expected TranscriptionResult"
    )


class TranscriptionStage(BaseAsyncStage[TranscriptionResult, CallQAError]):
    """Turns a call recording into a transcript with timed phrases."""

    name = "transcription"

    def __init__(
        self,
        service: TranscribeService,
        invoker: ResilientInvoker,
        options: TranscriptionOptions | None = None,
        *,
        max_retries: int | None = None,
    ) -> None:
        self._service = service
        self._invoker = invoker
        self._options = options or TranscriptionOptions()
        self._max_retries = max_retries

    async def handle(self, item: WorkItem) -> Result[TranscriptionResult, CallQAError]:
        if item.audio is None:
            return Failure(BusinessRuleError(f"Call {item.id} has no audio to transcribe"))

        async def _request(_context: RetryContext) -> Any:
            return await self._service.transcribe(item.audio, self._options)

        try:
            result: TranscriptionResult = await self._invoker.call(
                _request,
                _is_transcription,
                max_retries=self._max_retries,
                expect_json=False,
                label=f"transcribe[{item.id}]",
            )
        except CallQAError as e:
            return Failure(e)

        result = dataclasses.replace(
            result, confidence=clamp(result.confidence, 0.0, 1.0)
        )
        logger.info(
            "Transcribed call %s: %d phrases, confidence %.2f",
            item.id,
            len(result.phrases),
            result.confidence,
        )
        return Success(result)
