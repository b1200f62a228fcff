from types import SimpleNamespace

import pytest

from callqa_batch.adapters import create_completion_service
from callqa_batch.adapters.gemini import DEFAULT_MODEL, GeminiCompletionService
from callqa_batch.config import FrozenConfig
from callqa_batch.core.exceptions import ConfigurationError, TransportError
from callqa_batch.core.types import ChatMessage

pytestmark = pytest.mark.unit


class FakeModels:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _client(result):
    models = FakeModels(result)
    return SimpleNamespace(aio=SimpleNamespace(models=models)), models


def test_system_messages_become_instruction_and_assistant_maps_to_model():
    system, contents = GeminiCompletionService.build_contents(
        [
            ChatMessage("system", "Be strict."),
            ChatMessage("user", "Score"),
            ChatMessage("assistant", "{}"),
        ]
    )
    assert system == "Be strict."
    assert [c.role for c in contents] == ["user", "model"]
    assert contents[1].parts[0].text == "{}"


@pytest.mark.asyncio
async def test_complete_requests_json_and_returns_text():
    client, models = _client(SimpleNamespace(text='{"ok": 1}'))
    service = GeminiCompletionService(api_key=None, client=client)

    text = await service.complete([ChatMessage("system", "S"), ChatMessage("user", "U")])

    assert text == '{"ok": 1}'
    (call,) = models.calls
    assert call["model"] == DEFAULT_MODEL
    assert call["config"].response_mime_type == "application/json"
    assert call["config"].system_instruction == "S"


@pytest.mark.asyncio
async def test_text_mode_and_custom_model():
    client, models = _client(SimpleNamespace(text="positive"))
    service = GeminiCompletionService(api_key=None, model="gemini-2.5-pro", client=client)
    await service.complete([ChatMessage("user", "U")], expect_json=False)
    assert models.calls[0]["model"] == "gemini-2.5-pro"
    assert models.calls[0]["config"].response_mime_type == "text/plain"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result", [RuntimeError("quota exceeded"), SimpleNamespace(text=None)]
)
async def test_failures_surface_as_transport_errors(result):
    client, _ = _client(result)
    with pytest.raises(TransportError):
        await GeminiCompletionService(api_key=None, client=client).complete(
            [ChatMessage("user", "U")]
        )


def test_missing_key_without_client_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        GeminiCompletionService(api_key=None)


def test_factory_builds_gemini_service():
    service = create_completion_service(
        FrozenConfig(provider="gemini", api_key="k", model="gemini-2.5-flash")
    )
    assert isinstance(service, GeminiCompletionService)
    assert service.model == "gemini-2.5-flash"
