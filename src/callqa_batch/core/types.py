"""Core data types that flow through the call pipeline.

Stage outputs are immutable dataclasses. ``WorkItem`` is the one mutable
record: it is created by the caller, mutated only by the stage executor while
the item is in flight, and handed back inside an ``ItemOutcome``.
"""

from __future__ import annotations

import dataclasses
import math
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
import typing

from callqa_batch.core.lifecycle import CallState

# --- Minimal guard helpers ---


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``."""
    return min(max(value, low), high)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


# --- Result wrappers ---

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful settled value."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A settled failure, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]

# --- Conversation ---

Role = typing.Literal["system", "user", "assistant"]


@dataclasses.dataclass(frozen=True, slots=True)
class ChatMessage:
    """A single message sent to a completion service."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        _require(
            condition=self.role in ("system", "user", "assistant"),
            message=f"unsupported role {self.role!r}",
            field_name="role",
        )
        _require(
            condition=isinstance(self.content, str),
            message="must be str",
            field_name="content",
            exc=TypeError,
        )


# --- Transcription ---


@dataclasses.dataclass(frozen=True, slots=True)
class TranscriptPhrase:
    """One recognized phrase with its position in the recording."""

    text: str
    offset_ms: int = 0
    duration_ms: int = 0
    speaker: int | None = None
    channel: int | None = None
    confidence: float | None = None
    locale: str | None = None

    @property
    def end_ms(self) -> int:
        return self.offset_ms + self.duration_ms


@dataclasses.dataclass(frozen=True, slots=True)
class TranscriptionOptions:
    """Options forwarded to the transcription service."""

    candidate_locales: tuple[str, ...] = ("en-US",)
    diarization: bool = False
    min_speakers: int = 1
    max_speakers: int = 2

    def __post_init__(self) -> None:
        _require(
            condition=1 <= self.min_speakers <= self.max_speakers,
            message="require 1 <= min_speakers <= max_speakers",
            field_name="speakers",
        )


@dataclasses.dataclass(frozen=True, slots=True)
class TranscriptionResult:
    """Output of the transcription service."""

    transcript: str
    confidence: float = 0.0
    phrases: tuple[TranscriptPhrase, ...] = ()
    locale: str | None = None
    duration_ms: int | None = None
    speaker_count: int | None = None

    @property
    def conversation_end_ms(self) -> int:
        """End offset of the latest phrase, or 0 without phrases."""
        return max((p.end_ms for p in self.phrases), default=0)


# --- Sentiment ---


class SentimentLabel(str, Enum):
    """Discrete sentiment labels."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"

    @classmethod
    def normalize(cls, value: object) -> SentimentLabel:
        """Map free-form model output onto exactly one label."""
        text = str(value or "").strip().lower()
        if "neg" in text:
            return cls.NEGATIVE
        if "pos" in text:
            return cls.POSITIVE
        return cls.NEUTRAL


@dataclasses.dataclass(frozen=True, slots=True)
class SentimentSegment:
    """A contiguous span of the call with a consistent sentiment."""

    start_ms: int
    end_ms: int
    sentiment: SentimentLabel
    speaker: int | None = None
    confidence: float | None = None
    summary: str | None = None
    rationale: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class SentimentResult:
    """Output of the sentiment stage."""

    segments: tuple[SentimentSegment, ...]
    summary: str
    overall: SentimentLabel | None = None


# --- Evaluation ---

InsightValue = str | float | bool | tuple[str, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class CriterionResult:
    """Score for one evaluation criterion."""

    criterion_id: int
    score: float
    passed: bool
    evidence: str = ""
    reasoning: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class Evaluation:
    """Output of the evaluation stage."""

    call_id: str
    total_score: float
    max_score: float
    percentage: int
    results: tuple[CriterionResult, ...]
    overall_feedback: str
    insights: typing.Mapping[str, typing.Mapping[str, InsightValue]] = (
        dataclasses.field(default_factory=lambda: MappingProxyType({}))
    )
    evaluated_at: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(UTC)
    )


# --- Work items and outcomes ---


@dataclasses.dataclass(slots=True)
class StageResults:
    """Stage outputs accumulated onto a work item as stages succeed."""

    transcription: TranscriptionResult | None = None
    sentiment: SentimentResult | None = None
    evaluation: Evaluation | None = None

    def copy(self) -> StageResults:
        return StageResults(self.transcription, self.sentiment, self.evaluation)

    @property
    def transcript(self) -> str | None:
        return self.transcription.transcript if self.transcription else None


@dataclasses.dataclass(slots=True)
class WorkItem:
    """A call recording travelling through the pipeline.

    Identity is by ``id``; ids must be unique within a batch.
    """

    id: str
    audio: typing.Any = None
    metadata: dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    state: CallState = CallState.PENDING
    results: StageResults = dataclasses.field(default_factory=StageResults)
    error: str | None = None

    def snapshot(self) -> ItemSnapshot:
        """Return an immutable view of the item's best-available data."""
        return ItemSnapshot(
            id=self.id,
            state=self.state,
            data=self.results.copy(),
            error=self.error,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ItemSnapshot:
    """Point-in-time copy of a work item, handed to progress reporters."""

    id: str
    state: CallState
    data: StageResults
    error: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ItemOutcome:
    """Terminal record for one input item."""

    id: str
    final_state: CallState
    data: StageResults
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.final_state is CallState.FAILED

    @property
    def evaluated(self) -> bool:
        return self.final_state is CallState.EVALUATED


BatchResult = list[ItemOutcome]
