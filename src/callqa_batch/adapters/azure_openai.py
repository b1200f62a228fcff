"""Azure OpenAI completion service over the Responses API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

import httpx

from callqa_batch.core.exceptions import ConfigurationError, TransportError
from callqa_batch.response.extraction import excerpt

if TYPE_CHECKING:
    from collections.abc import Sequence

    from callqa_batch.core.types import ChatMessage

logger = logging.getLogger(__name__)

type ReasoningEffort = Literal["minimal", "low", "medium", "high"]

JSON_ONLY_SUFFIX = (
    "\n\nIMPORTANT: You must respond with ONLY valid JSON. Do not include any "
    "explanatory text, markdown formatting, or code blocks. Output pure JSON only."
)
_REASONING_PREFIXES = ("o1", "o3", "o4", "gpt-5", "codex-mini")


def is_reasoning_model(deployment: str) -> bool:
    return deployment.lower().startswith(_REASONING_PREFIXES)


def resolve_reasoning_effort(deployment: str, effort: ReasoningEffort) -> ReasoningEffort:
    """Adjust ``effort`` to what the deployment accepts."""
    name = deployment.lower()
    if "gpt-5-pro" in name:
        return "high"
    if effort == "minimal" and not (name.startswith("gpt-5") and "codex" not in name):
        logger.warning("Model %s does not support 'minimal' effort, using 'low'", deployment)
        return "low"
    return effort


class AzureOpenAICompletionService:
    """``CompletionService`` backed by an Azure OpenAI deployment.

    Sends ``POST {endpoint}/openai/v1/responses`` with an ``api-key`` header.
    HTTP and network failures raise ``TransportError``; rejected credentials
    raise ``ConfigurationError``.
    """

    def __init__(
        self,
        *,
        endpoint: str | None,
        api_key: str | None,
        deployment: str | None,
        timeout: float = 120.0,
        reasoning_effort: ReasoningEffort = "low",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("endpoint", endpoint),
                ("api_key", api_key),
                ("model", deployment),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Azure OpenAI is not configured: missing {', '.join(missing)}"
            )
        self.endpoint = str(endpoint).rstrip("/")
        self._api_key = str(api_key)
        self.deployment = str(deployment)
        self.timeout = timeout
        self.reasoning_effort: ReasoningEffort = reasoning_effort
        self._http_client = http_client

    @property
    def url(self) -> str:
        return f"{self.endpoint}/openai/v1/responses"

    def build_request_body(
        self, messages: Sequence[ChatMessage], *, expect_json: bool
    ) -> dict[str, Any]:
        """Convert chat messages into a Responses API request body."""
        items: list[dict[str, Any]] = []
        for index, msg in enumerate(messages):
            text = msg.content
            if (
                expect_json
                and index == 0
                and msg.role == "system"
                and "json" not in text.lower()
            ):
                text += JSON_ONLY_SUFFIX
            part_type = "output_text" if msg.role == "assistant" else "input_text"
            items.append({"role": msg.role, "content": [{"type": part_type, "text": text}]})

        body: dict[str, Any] = {"model": self.deployment, "input": items}
        if expect_json:
            body["text"] = {"format": {"type": "json_object"}}
        if is_reasoning_model(self.deployment):
            body["reasoning"] = {
                "effort": resolve_reasoning_effort(self.deployment, self.reasoning_effort)
            }
        return body

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        expect_json: bool = True,
        max_retries: int = 0,  # noqa: ARG002
    ) -> str:
        """Send one completion request and return the response text.

        Retries are the caller's concern; ``max_retries`` is accepted for
        interface compatibility only.
        """
        body = self.build_request_body(messages, expect_json=expect_json)
        if self._http_client is not None:
            return await self._post(self._http_client, body)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._post(client, body)

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> str:
        headers = {"Content-Type": "application/json", "api-key": self._api_key}
        try:
            response = await client.post(self.url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Network error calling Azure OpenAI: {e}. "
                "Check your endpoint configuration and network connection."
            ) from e

        if response.status_code in (401, 403):
            raise ConfigurationError(
                f"Azure OpenAI rejected the credentials ({response.status_code}): "
                f"{excerpt(response.text)}"
            )
        if response.is_error:
            raise TransportError(
                f"Azure OpenAI API error ({response.status_code}): "
                f"{excerpt(response.text)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Azure OpenAI returned a non-JSON body") from e
        content = extract_output_text(data)
        if not content:
            raise TransportError("No content in API response")
        return content


def extract_output_text(data: Any) -> str:
    """Pull the assistant text out of a Responses API payload."""
    if not isinstance(data, dict):
        return ""
    if isinstance(data.get("output_text"), str) and data["output_text"]:
        return data["output_text"]
    for item in data.get("output") or ():
        if not isinstance(item, dict) or item.get("role") != "assistant":
            continue
        for part in item.get("content") or ():
            if isinstance(part, dict) and part.get("type") == "output_text":
                return str(part.get("text") or "")
        return ""
    return ""
