"""Scripted fake services for pipeline tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
import json
from typing import Any

from callqa_batch.core.types import (
    ChatMessage,
    TranscriptionOptions,
    TranscriptionResult,
    TranscriptPhrase,
)
from callqa_batch.pipeline.prompts import (
    EVALUATION_SYSTEM_PROMPT,
    OVERALL_SENTIMENT_SYSTEM_PROMPT,
    SENTIMENT_SYSTEM_PROMPT,
)

type Scripted = Any  # a value to return or an Exception to raise


def make_transcription(
    text: str = "Agent: Hello, this is Ana from ABC. Customer: Hi.",
    *,
    confidence: float = 0.9,
    phrases: tuple[TranscriptPhrase, ...] | None = None,
) -> TranscriptionResult:
    if phrases is None:
        phrases = (
            TranscriptPhrase("Hello, this is Ana from ABC.", 0, 2_000, speaker=1),
            TranscriptPhrase("Hi.", 2_000, 1_000, speaker=2),
        )
    return TranscriptionResult(
        transcript=text, confidence=confidence, phrases=phrases, locale="en-US"
    )


def evaluation_json(
    scores: dict[int, float] | None = None,
    feedback: str = "Solid call.",
    **extra: Any,
) -> str:
    scores = scores if scores is not None else dict.fromkeys(range(1, 6), 10)
    return json.dumps(
        {
            "results": [
                {
                    "criterionId": cid,
                    "score": score,
                    "passed": True,
                    "evidence": "quote",
                    "reasoning": "because",
                }
                for cid, score in scores.items()
            ],
            "overallFeedback": feedback,
            **extra,
        }
    )


SENTIMENT_JSON = json.dumps(
    {
        "summary": "Calm call.",
        "segments": [
            {
                "startMilliseconds": 0,
                "endMilliseconds": 2000,
                "sentiment": "neutral",
                "confidence": 0.8,
            }
        ],
    }
)


class _Script:
    """Per-key queue of scripted results; the last entry repeats."""

    def __init__(self, entries: list[Scripted]) -> None:
        self._entries = list(entries)

    def next(self) -> Scripted:
        entry = self._entries[0] if len(self._entries) == 1 else self._entries.pop(0)
        if isinstance(entry, BaseException):
            raise entry
        return entry


class ScriptedTranscriber:
    """TranscribeService keyed by the item's ``audio`` value."""

    def __init__(
        self,
        scripts: dict[Any, list[Scripted]] | None = None,
        *,
        default: Scripted = None,
        delay: float = 0.0,
    ) -> None:
        self._scripts = {k: _Script(v) for k, v in (scripts or {}).items()}
        self._default = default if default is not None else make_transcription()
        self._delay = delay
        self.calls: dict[Any, int] = defaultdict(int)
        self.options: list[TranscriptionOptions] = []

    async def transcribe(
        self, audio: Any, options: TranscriptionOptions
    ) -> TranscriptionResult:
        self.calls[audio] += 1
        self.options.append(options)
        if self._delay:
            await asyncio.sleep(self._delay)
        script = self._scripts.get(audio)
        if script is None:
            return self._default
        return script.next()


class ScriptedCompletion:
    """CompletionService routing on the system prompt of the conversation."""

    def __init__(
        self,
        *,
        evaluation: list[Scripted] | None = None,
        sentiment: list[Scripted] | None = None,
        overall: list[Scripted] | None = None,
    ) -> None:
        self._scripts = {
            "evaluation": _Script(evaluation or [evaluation_json()]),
            "sentiment": _Script(sentiment or [SENTIMENT_JSON]),
            "overall": _Script(overall or ["positive"]),
        }
        self.requests: dict[str, list[tuple[ChatMessage, ...]]] = defaultdict(list)

    @staticmethod
    def kind_of(messages: tuple[ChatMessage, ...]) -> str:
        system = messages[0].content if messages else ""
        if system == EVALUATION_SYSTEM_PROMPT:
            return "evaluation"
        if system == SENTIMENT_SYSTEM_PROMPT:
            return "sentiment"
        if system == OVERALL_SENTIMENT_SYSTEM_PROMPT:
            return "overall"
        raise AssertionError(f"unexpected conversation: {system!r}")

    async def complete(
        self,
        messages: Any,
        *,
        expect_json: bool = True,
        max_retries: int = 0,
    ) -> str:
        msgs = tuple(messages)
        kind = self.kind_of(msgs)
        self.requests[kind].append(msgs)
        return self._scripts[kind].next()

    def count(self, kind: str) -> int:
        return len(self.requests[kind])
