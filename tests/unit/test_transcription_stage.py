import pytest

from callqa_batch.core.exceptions import (
    BusinessRuleError,
    ConfigurationError,
    RetryExhaustedError,
    TransportError,
)
from callqa_batch.core.types import Failure, Success, TranscriptionOptions, WorkItem
from callqa_batch.pipeline.transcription import TranscriptionStage
from tests.fakes import ScriptedTranscriber, make_transcription

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_success_forwards_options_and_clamps_confidence(invoker):
    options = TranscriptionOptions(("en-US", "es-MX"), diarization=True, max_speakers=3)
    transcriber = ScriptedTranscriber(default=make_transcription(confidence=1.7))
    stage = TranscriptionStage(transcriber, invoker, options)

    result = await stage.handle(WorkItem(id="c1", audio=b"wav"))

    assert isinstance(result, Success)
    assert result.value.confidence == 1.0
    assert transcriber.options == [options]


@pytest.mark.asyncio
async def test_missing_audio_is_a_business_rule_failure(invoker):
    result = await TranscriptionStage(ScriptedTranscriber(), invoker).handle(
        WorkItem(id="c1")
    )
    assert isinstance(result, Failure)
    assert isinstance(result.error, BusinessRuleError)


@pytest.mark.asyncio
async def test_unexpected_result_type_is_retried(invoker):
    transcriber = ScriptedTranscriber({"a": [{"text": "raw dict"}, make_transcription()]})
    result = await TranscriptionStage(transcriber, invoker).handle(
        WorkItem(id="c1", audio="a")
    )
    assert isinstance(result, Success)
    assert transcriber.calls["a"] == 2


@pytest.mark.asyncio
async def test_exhausted_retries_surface_as_failure(invoker):
    transcriber = ScriptedTranscriber({"a": [TransportError("timeout")]})
    stage = TranscriptionStage(transcriber, invoker, max_retries=1)
    result = await stage.handle(WorkItem(id="c1", audio="a"))

    assert isinstance(result, Failure)
    assert isinstance(result.error, RetryExhaustedError)
    assert transcriber.calls["a"] == 2


@pytest.mark.asyncio
async def test_configuration_errors_are_not_retried(invoker):
    transcriber = ScriptedTranscriber({"a": [ConfigurationError("no speech key")]})
    result = await TranscriptionStage(transcriber, invoker).handle(
        WorkItem(id="c1", audio="a")
    )
    assert isinstance(result.error, ConfigurationError)
    assert transcriber.calls["a"] == 1
