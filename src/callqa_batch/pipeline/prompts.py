"""Prompt assembly for the sentiment and evaluation stages.

Builders are pure functions of their inputs; the active criteria and insight
categories arrive through an explicit ``CriteriaConfig``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from callqa_batch.core.types import ChatMessage, SentimentLabel

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from callqa_batch.core.criteria import CriteriaConfig, InsightCategory
    from callqa_batch.core.exceptions import ValidationError
    from callqa_batch.core.types import TranscriptPhrase

MAX_SENTIMENT_PHRASES = 200
MAX_SENTIMENT_SEGMENTS = 12

EVALUATION_SYSTEM_PROMPT = (
    "You are an expert call center quality assurance evaluator. "
    "You must return valid JSON only."
)
SENTIMENT_SYSTEM_PROMPT = (
    "You are an experienced contact-center sentiment analyst. Return valid JSON "
    "only using the specified schema and sentiment labels."
)
OVERALL_SENTIMENT_SYSTEM_PROMPT = (
    "You are an expert call center sentiment analyst. Return only the sentiment label."
)

SENTIMENT_SHAPE = """{
  "summary": "short overview highlighting key mood shifts",
  "segments": [
    {
      "startMilliseconds": number,
      "endMilliseconds": number,
      "speaker": number | null,
      "sentiment": "positive" | "neutral" | "negative",
      "confidence": number (0-1),
      "summary": "one sentence",
      "rationale": "brief explanation"
    }
  ]
}"""


def format_timestamp(ms: float) -> str:
    """Render milliseconds as ``mm:ss.cc``."""
    safe_ms = max(0, round(ms))
    total_seconds = safe_ms // 1000
    minutes, seconds = divmod(total_seconds, 60)
    centiseconds = (safe_ms % 1000) // 10
    return f"{minutes:02d}:{seconds:02d}.{centiseconds:02d}"


def corrective_instruction(error: ValidationError, shape_hint: str | None = None) -> str:
    """Build the follow-up message sent after a rejected response."""
    lines = [
        "Your previous response did not match the required shape.",
        f"Problem: {error}",
    ]
    if error.issues:
        lines.append("Issues:")
        lines.extend(f"- {issue}" for issue in error.issues[:20])
    if shape_hint:
        lines.append(f"Return only JSON matching this shape:\n{shape_hint}")
    else:
        lines.append("Return only valid JSON matching the requested schema.")
    lines.append("Do not include explanations, markdown formatting or code fences.")
    return "\n".join(lines)


def format_metadata(metadata: Mapping[str, Any]) -> str:
    """Render call metadata as a bullet list, skipping empty values."""
    lines = [
        f"- {_humanize(str(key))}: {value}"
        for key, value in metadata.items()
        if value is not None and value != ""
    ]
    return "\n".join(lines) if lines else "- (none provided)"


def _humanize(key: str) -> str:
    spaced = "".join(f" {c}" if c.isupper() else c for c in key).replace("_", " ")
    return spaced.strip().capitalize()


# --- Sentiment ---


def build_sentiment_timeline(
    phrases: Sequence[TranscriptPhrase], max_phrases: int = MAX_SENTIMENT_PHRASES
) -> str:
    """Number and timestamp the first ``max_phrases`` phrases."""
    trimmed = phrases[:max_phrases]
    lines = []
    for index, phrase in enumerate(trimmed, start=1):
        speaker = (
            f"speaker {phrase.speaker}"
            if phrase.speaker is not None
            else "unknown speaker"
        )
        channel = f"channel {phrase.channel}" if phrase.channel is not None else "mono"
        lines.append(
            f"{index}. [{format_timestamp(phrase.offset_ms)} - "
            f"{format_timestamp(phrase.end_ms)} | {speaker} | {channel}] {phrase.text}"
        )
    omitted = len(phrases) - len(trimmed)
    if omitted > 0:
        lines.append(f"...{omitted} additional lines omitted for brevity.")
    return "\n".join(lines)


def build_sentiment_messages(
    phrases: Sequence[TranscriptPhrase],
    locale: str,
    *,
    max_phrases: int = MAX_SENTIMENT_PHRASES,
    max_segments: int = MAX_SENTIMENT_SEGMENTS,
) -> tuple[ChatMessage, ...]:
    labels = ", ".join(label.value for label in SentimentLabel)
    prompt = f"""You are a senior contact-center sentiment analyst. Given the conversation below (language {locale}), identify contiguous segments where sentiment is consistent. Use only the following discrete labels: {labels}. Keep the number of segments reasonable (no more than {max_segments}).

Return strict JSON with the shape:
{SENTIMENT_SHAPE}
- start/end are inclusive-exclusive millisecond offsets.
- Merge consecutive sentences with similar mood.
- Do not overlap segments.
- If unsure, use "neutral" with low confidence.

Conversation timeline:
{build_sentiment_timeline(phrases, max_phrases)}

Analyze carefully and ensure the returned JSON is valid."""
    return (
        ChatMessage("system", SENTIMENT_SYSTEM_PROMPT),
        ChatMessage("user", prompt),
    )


def build_overall_sentiment_messages(
    transcript: str, metadata: Mapping[str, Any]
) -> tuple[ChatMessage, ...]:
    prompt = f"""Analyze the overall sentiment of this entire call conversation.

CALL METADATA:
{format_metadata(metadata)}

TRANSCRIPT:
{transcript}

Based on the complete conversation, classify the OVERALL sentiment of this call as one of:
- positive: The call went well, customer was satisfied, issues resolved positively
- neutral: The call was routine, professional, no strong emotions
- negative: The call was tense, customer was unhappy, unresolved complaints

Return ONLY a single word: positive, neutral, or negative"""
    return (
        ChatMessage("system", OVERALL_SENTIMENT_SYSTEM_PROMPT),
        ChatMessage("user", prompt),
    )


# --- Evaluation ---


def _format_criteria(config: CriteriaConfig) -> str:
    blocks = []
    for c in config.criteria:
        std = c.scoring_standard
        scoring = f"{std.passed:g} points if passed, {std.failed:g} if failed"
        if std.partial is not None:
            scoring += f", {std.partial:g} if partially met"
        blocks.append(
            f"{c.id}. {c.name} [{c.type}]\n"
            f"   Definition: {c.definition}\n"
            f"   Evaluation: {c.evaluation_criteria}\n"
            f"   Scoring: {scoring}\n"
            f"   Examples: {' | '.join(c.examples)}"
        )
    return "\n\n".join(blocks)


def _format_insight_field_spec(category: InsightCategory) -> str:
    parts = []
    for f in category.output_fields:
        spec = f.type.value
        if f.options:
            spec += f" one of {list(f.options)}"
        suffix = f" - {f.description}" if f.description else ""
        parts.append(f'    "{f.name}": <{spec}>{suffix}')
    return "\n".join(parts)


def _format_insights(categories: Iterable[InsightCategory]) -> str:
    blocks = [
        f'  "{cat.id}": {{  // {cat.name}: {cat.description}\n'
        f"{_format_insight_field_spec(cat)}\n  }}"
        for cat in categories
    ]
    return "\n".join(blocks)


def evaluation_shape(config: CriteriaConfig) -> str:
    """The exact JSON shape the evaluation response must follow."""
    shape = """{
  "results": [
    {
      "criterionId": 1,
      "score": 10,
      "passed": true,
      "evidence": "exact quote from transcript or description",
      "reasoning": "brief explanation"
    }
  ],
  "overallFeedback": "2-3 sentence summary\""""
    if config.insight_categories:
        shape += ',\n  "insights": {\n' + _format_insights(config.insight_categories) + "\n  }"
    return shape + "\n}"


def build_evaluation_messages(
    transcript: str,
    metadata: Mapping[str, Any],
    config: CriteriaConfig,
) -> tuple[ChatMessage, ...]:
    count = len(config.criteria)
    insights_note = ""
    if config.insight_categories:
        insights_note = (
            "\n\nAlso provide an insights object with one entry per insight "
            "category below, using exactly the listed field names and value types "
            "(tags are arrays of strings, enum values must be one of the options)."
        )
    prompt = f"""Analyze the following call transcript and evaluate it against the {count} quality criteria below.

CALL METADATA:
{format_metadata(metadata)}

TRANSCRIPT:
{transcript}

EVALUATION CRITERIA:
{_format_criteria(config)}

For each criterion, provide:
1. criterionId (one of the criterion numbers above)
2. score (according to the scoring standard)
3. passed (true if the full points were earned, false otherwise)
4. evidence (exact quote from transcript if found, or "Not found" if missing)
5. reasoning (brief explanation of why this score was given)

Also provide an overallFeedback string (2-3 sentences) highlighting key strengths and areas for improvement.{insights_note}

Return your evaluation as a valid JSON object with this exact structure:
{evaluation_shape(config)}

Be thorough, fair, and specific in your evaluation. Quote exact phrases when possible."""
    return (
        ChatMessage("system", EVALUATION_SYSTEM_PROMPT),
        ChatMessage("user", prompt),
    )
