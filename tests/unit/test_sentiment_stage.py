import json

import pytest

from callqa_batch.core.exceptions import BusinessRuleError, RetryExhaustedError
from callqa_batch.core.types import Failure, SentimentLabel, Success, WorkItem
from callqa_batch.pipeline.sentiment import (
    DEFAULT_SUMMARY,
    NO_CONVERSATION_SUMMARY,
    RawSentimentSegment,
    SentimentStage,
    normalize_segment,
    normalize_segments,
)
from tests.fakes import ScriptedCompletion, make_transcription

pytestmark = pytest.mark.unit


def _item(transcription=None):
    item = WorkItem(id="c1", audio="a")
    item.results.transcription = (
        transcription if transcription is not None else make_transcription()
    )
    return item


def _raw(**fields):
    return RawSentimentSegment.model_validate(fields)


class TestNormalizeSegment:
    def test_end_at_or_before_start_gets_a_one_second_window(self):
        seg = normalize_segment(_raw(startMilliseconds=500, endMilliseconds=200), 0)
        assert (seg.start_ms, seg.end_ms) == (500, 1500)

    def test_negative_start_is_floored_at_zero(self):
        seg = normalize_segment(_raw(startMilliseconds=-300, endMilliseconds=800), 0)
        assert (seg.start_ms, seg.end_ms) == (0, 800)

    def test_end_is_clamped_to_conversation_end(self):
        seg = normalize_segment(_raw(startMilliseconds=0, endMilliseconds=9_000), 3_000)
        assert seg.end_ms == 3_000

    def test_alternate_start_end_keys_and_rounding(self):
        seg = normalize_segment(_raw(start=99.5, end=1200.4), 0)
        assert (seg.start_ms, seg.end_ms) == (100, 1200)

    def test_missing_times_default_to_zero_with_window(self):
        seg = normalize_segment(_raw(sentiment="positive"), 0)
        assert (seg.start_ms, seg.end_ms) == (0, 1000)

    @pytest.mark.parametrize(
        ("raw_label", "expected"),
        [
            ("Negative", SentimentLabel.NEGATIVE),
            ("very positive", SentimentLabel.POSITIVE),
            ("mixed", SentimentLabel.NEUTRAL),
            (None, SentimentLabel.NEUTRAL),
        ],
    )
    def test_labels_map_onto_three_values(self, raw_label, expected):
        assert normalize_segment(_raw(sentiment=raw_label), 0).sentiment is expected

    @pytest.mark.parametrize(("raw", "expected"), [(1.4, 1.0), (-0.2, 0.0), (0.6, 0.6)])
    def test_confidence_is_clamped(self, raw, expected):
        assert normalize_segment(_raw(confidence=raw), 0).confidence == expected

    @pytest.mark.parametrize(("raw", "expected"), [(2, 2), (1.0, 1), ("agent", None), (True, None)])
    def test_speaker_must_be_numeric(self, raw, expected):
        assert normalize_segment(_raw(speaker=raw), 0).speaker == expected

    def test_segments_are_sorted_by_start(self):
        segments = normalize_segments(
            [_raw(startMilliseconds=5_000), _raw(startMilliseconds=1_000)], 0
        )
        assert [s.start_ms for s in segments] == [1_000, 5_000]


@pytest.mark.asyncio
async def test_timeline_and_overall_label(invoker):
    completion = ScriptedCompletion(overall=["Overall: NEGATIVE."])
    result = await SentimentStage(completion, invoker).handle(_item())

    assert isinstance(result, Success)
    assert result.value.summary == "Calm call."
    assert result.value.overall is SentimentLabel.NEGATIVE
    assert len(result.value.segments) == 1
    assert result.value.segments[0].end_ms == 2_000


@pytest.mark.asyncio
async def test_overall_failure_falls_back_to_neutral(invoker):
    completion = ScriptedCompletion(overall=[ConnectionError("reset")])
    result = await SentimentStage(completion, invoker, overall_max_retries=1).handle(
        _item()
    )
    assert result.value.overall is SentimentLabel.NEUTRAL
    assert completion.count("overall") == 2


@pytest.mark.asyncio
async def test_overall_pass_can_be_disabled(invoker):
    completion = ScriptedCompletion()
    result = await SentimentStage(completion, invoker, overall_enabled=False).handle(
        _item()
    )
    assert result.value.overall is None
    assert completion.count("overall") == 0


@pytest.mark.asyncio
async def test_missing_summary_uses_default(invoker):
    completion = ScriptedCompletion(sentiment=[json.dumps({"segments": []})])
    result = await SentimentStage(completion, invoker).handle(_item())
    assert result.value.summary == DEFAULT_SUMMARY
    assert result.value.segments == ()


@pytest.mark.asyncio
async def test_no_phrases_skips_the_model(invoker):
    completion = ScriptedCompletion()
    result = await SentimentStage(completion, invoker).handle(
        _item(make_transcription("", phrases=()))
    )
    assert result.value.summary == NO_CONVERSATION_SUMMARY
    assert completion.requests == {}


@pytest.mark.asyncio
async def test_no_transcription_is_a_business_rule_failure(invoker):
    result = await SentimentStage(ScriptedCompletion(), invoker).handle(
        WorkItem(id="c1")
    )
    assert isinstance(result, Failure)
    assert isinstance(result.error, BusinessRuleError)


@pytest.mark.asyncio
async def test_malformed_timeline_is_retried_then_reported(invoker, sleeps):
    completion = ScriptedCompletion(sentiment=['{"segments": "nope"}'])
    result = await SentimentStage(completion, invoker, max_retries=2).handle(_item())

    assert isinstance(result.error, RetryExhaustedError)
    assert completion.count("sentiment") == 3
    # The last conversation carries both rejected replies and corrections
    assert len(completion.requests["sentiment"][-1]) == 6
    assert sleeps.delays == [1.0, 2.0]
