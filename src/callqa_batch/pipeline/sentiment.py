"""Sentiment stage of the pipeline.

Produces a sentiment timeline from the transcribed phrases, then (optionally)
a second pass classifying the call as a whole. Model output is normalized
before it is stored:

- labels are mapped onto ``positive|neutral|negative``
- confidence is clamped to ``[0, 1]``
- ``start >= 0``; an end at or before the start becomes ``start + 1000``
- ends are clamped to the end of the conversation
- segments are sorted by start
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from callqa_batch.core.exceptions import BusinessRuleError, CallQAError
from callqa_batch.core.types import (
    Failure,
    Result,
    SentimentLabel,
    SentimentResult,
    SentimentSegment,
    Success,
    WorkItem,
    clamp,
    round_half_up,
)
from callqa_batch.pipeline.base import BaseAsyncStage
from callqa_batch.pipeline.prompts import (
    MAX_SENTIMENT_PHRASES,
    MAX_SENTIMENT_SEGMENTS,
    SENTIMENT_SHAPE,
    build_overall_sentiment_messages,
    build_sentiment_messages,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from callqa_batch.pipeline.invoker import ResilientInvoker, RetryContext
    from callqa_batch.services import CompletionService

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Sentiment analysis completed."
NO_CONVERSATION_SUMMARY = "No conversation available for sentiment analysis."
FALLBACK_WINDOW_MS = 1000


class RawSentimentSegment(BaseModel):
    """One segment as returned by the model, before normalization."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start_milliseconds: float | None = Field(default=None, alias="startMilliseconds")
    end_milliseconds: float | None = Field(default=None, alias="endMilliseconds")
    start: float | None = None
    end: float | None = None
    speaker: Any = None
    sentiment: str | None = None
    confidence: float | None = None
    summary: str | None = None
    rationale: str | None = None


class SentimentResponse(BaseModel):
    """Top-level sentiment timeline response."""

    model_config = ConfigDict(extra="ignore")

    summary: str | None = None
    segments: list[RawSentimentSegment] = Field(default_factory=list)


def _first_number(*values: float | None) -> float | None:
    for value in values:
        if value is not None and math.isfinite(value):
            return value
    return None


def normalize_segment(
    raw: RawSentimentSegment, conversation_end_ms: int
) -> SentimentSegment:
    """Convert one raw segment into a well-formed ``SentimentSegment``."""
    raw_start = _first_number(raw.start_milliseconds, raw.start)
    start = 0.0 if raw_start is None else raw_start
    raw_end = _first_number(raw.end_milliseconds, raw.end)
    end = start if raw_end is None else raw_end

    start_ms = max(0, round_half_up(start))
    end_ms = max(start_ms, round_half_up(end))
    if end_ms <= start_ms:
        end_ms = start_ms + FALLBACK_WINDOW_MS
    if conversation_end_ms > 0:
        end_ms = min(end_ms, conversation_end_ms)

    speaker = raw.speaker
    if isinstance(speaker, bool) or not isinstance(speaker, int | float):
        speaker = None
    elif not math.isfinite(speaker):
        speaker = None

    confidence = raw.confidence
    if confidence is not None:
        confidence = clamp(confidence, 0.0, 1.0) if math.isfinite(confidence) else None

    return SentimentSegment(
        start_ms=start_ms,
        end_ms=end_ms,
        sentiment=SentimentLabel.normalize(raw.sentiment or "neutral"),
        speaker=None if speaker is None else int(speaker),
        confidence=confidence,
        summary=raw.summary,
        rationale=raw.rationale,
    )


def normalize_segments(
    raw_segments: Iterable[RawSentimentSegment], conversation_end_ms: int
) -> tuple[SentimentSegment, ...]:
    segments = [normalize_segment(raw, conversation_end_ms) for raw in raw_segments]
    segments.sort(key=lambda s: s.start_ms)
    return tuple(segments)


class SentimentStage(BaseAsyncStage[SentimentResult, CallQAError]):
    """Builds a sentiment timeline and an overall call label."""

    name = "sentiment"

    def __init__(
        self,
        completion: CompletionService,
        invoker: ResilientInvoker,
        *,
        max_retries: int = 3,
        overall_max_retries: int = 2,
        overall_enabled: bool = True,
        max_phrases: int = MAX_SENTIMENT_PHRASES,
        max_segments: int = MAX_SENTIMENT_SEGMENTS,
    ) -> None:
        self._completion = completion
        self._invoker = invoker
        self._max_retries = max_retries
        self._overall_max_retries = overall_max_retries
        self._overall_enabled = overall_enabled
        self._max_phrases = max_phrases
        self._max_segments = max_segments

    async def handle(self, item: WorkItem) -> Result[SentimentResult, CallQAError]:
        transcription = item.results.transcription
        if transcription is None:
            return Failure(
                BusinessRuleError(f"Call {item.id} has no transcription to analyze")
            )
        if not transcription.phrases:
            return Success(SentimentResult(segments=(), summary=NO_CONVERSATION_SUMMARY))

        messages = build_sentiment_messages(
            transcription.phrases,
            transcription.locale or "en-US",
            max_phrases=self._max_phrases,
            max_segments=self._max_segments,
        )
        try:
            response = await self._invoker.call_model(
                self._complete_json,
                SentimentResponse,
                messages=messages,
                max_retries=self._max_retries,
                shape_hint=SENTIMENT_SHAPE,
                label=f"sentiment[{item.id}]",
            )
        except CallQAError as e:
            return Failure(e)

        segments = normalize_segments(
            response.segments, transcription.conversation_end_ms
        )
        summary = (response.summary or "").strip() or DEFAULT_SUMMARY
        overall = await self._overall(item) if self._overall_enabled else None
        logger.info(
            "Sentiment for call %s: %d segments, overall %s",
            item.id,
            len(segments),
            overall,
        )
        return Success(
            SentimentResult(segments=segments, summary=summary, overall=overall)
        )

    async def _complete_json(self, context: RetryContext) -> str:
        return await self._completion.complete(context.messages, expect_json=True)

    async def _complete_text(self, context: RetryContext) -> str:
        return await self._completion.complete(context.messages, expect_json=False)

    async def _overall(self, item: WorkItem) -> SentimentLabel:
        """Classify the whole call. Falls back to neutral on any failure."""
        transcript = item.results.transcript or ""
        if not transcript.strip():
            return SentimentLabel.NEUTRAL
        try:
            text = await self._invoker.call(
                self._complete_text,
                lambda r: isinstance(r, str),
                messages=build_overall_sentiment_messages(transcript, item.metadata),
                max_retries=self._overall_max_retries,
                expect_json=False,
                label=f"overall_sentiment[{item.id}]",
            )
        except CallQAError as e:
            logger.warning(
                "Overall sentiment for call %s failed, using neutral: %s", item.id, e
            )
            return SentimentLabel.NEUTRAL
        return SentimentLabel.normalize(text)
