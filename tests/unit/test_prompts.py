import pytest

from callqa_batch.core.criteria import CriteriaConfig
from callqa_batch.core.exceptions import ValidationError
from callqa_batch.core.types import TranscriptPhrase
from callqa_batch.pipeline.prompts import (
    EVALUATION_SYSTEM_PROMPT,
    build_evaluation_messages,
    build_overall_sentiment_messages,
    build_sentiment_messages,
    build_sentiment_timeline,
    corrective_instruction,
    evaluation_shape,
    format_metadata,
    format_timestamp,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("ms", "expected"),
    [(0, "00:00.00"), (1_234, "00:01.23"), (61_500, "01:01.50"), (-5, "00:00.00")],
)
def test_format_timestamp(ms, expected):
    assert format_timestamp(ms) == expected


def test_timeline_numbers_phrases_and_marks_omissions():
    phrases = [
        TranscriptPhrase("Hello", 0, 1_000, speaker=1, channel=0),
        TranscriptPhrase("Hi", 1_000, 500),
        TranscriptPhrase("Bye", 1_500, 500, speaker=2),
    ]
    timeline = build_sentiment_timeline(phrases, max_phrases=2)
    lines = timeline.splitlines()
    assert lines[0] == "1. [00:00.00 - 00:01.00 | speaker 1 | channel 0] Hello"
    assert lines[1] == "2. [00:01.00 - 00:01.50 | unknown speaker | mono] Hi"
    assert lines[2] == "...1 additional lines omitted for brevity."


def test_sentiment_messages_carry_locale_and_segment_limit():
    system, user = build_sentiment_messages(
        [TranscriptPhrase("Hola", 0, 100)], "es-MX", max_segments=4
    )
    assert system.role == "system"
    assert "language es-MX" in user.content
    assert "no more than 4" in user.content
    assert "positive, neutral, negative" in user.content


def test_metadata_is_humanized_and_empty_values_skipped():
    text = format_metadata({"agentName": "Ana", "queue": "", "call_id": 7, "x": None})
    assert text.splitlines() == ["- Agent name: Ana", "- Call id: 7"]
    assert format_metadata({}) == "- (none provided)"


def test_overall_prompt_includes_transcript_and_metadata():
    _, user = build_overall_sentiment_messages("Agent: hi", {"agent": "Ana"})
    assert "Agent: hi" in user.content
    assert "- Agent: Ana" in user.content


def test_evaluation_prompt_lists_every_criterion(criteria):
    system, user = build_evaluation_messages("Agent: hi", {}, criteria)
    assert system.content == EVALUATION_SYSTEM_PROMPT
    assert "against the 5 quality criteria" in user.content
    for criterion in criteria.criteria:
        assert f"{criterion.id}. {criterion.name}" in user.content
    assert "10 points if passed, 0 if failed, 5 if partially met" in user.content
    assert '"insights"' not in user.content


def test_evaluation_shape_describes_insight_fields():
    config = CriteriaConfig.from_dict(
        {
            "criteria": [{"id": 1, "name": "A", "scoringStandard": {"passed": 1}}],
            "insightCategories": [
                {
                    "id": "outcome",
                    "name": "Outcome",
                    "description": "How the call ended",
                    "fields": [
                        {"name": "status", "type": "enum", "options": ["paid", "refused"]},
                        {"name": "topics", "type": "tags"},
                    ],
                }
            ],
        }
    )
    shape = evaluation_shape(config)
    assert '"outcome": {  // Outcome: How the call ended' in shape
    assert "\"status\": <enum one of ['paid', 'refused']>" in shape
    assert '"topics": <tags>' in shape


def test_corrective_instruction_lists_issues_and_shape():
    error = ValidationError("bad", issues=[f"field{i}: wrong" for i in range(25)])
    text = corrective_instruction(error, '{"a": 1}')
    assert "Problem: bad" in text
    assert "- field19: wrong" in text
    assert "field20" not in text
    assert '{"a": 1}' in text


def test_corrective_instruction_without_shape_asks_for_schema():
    text = corrective_instruction(ValidationError("bad"))
    assert "requested schema" in text
    assert "Issues:" not in text


def test_metadata_keys_need_not_be_strings():
    assert format_metadata({2024: "Q1"}) == "- 2024: Q1"
