"""Gemini completion service using the ``google-genai`` async client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from google import genai
from google.genai import types

from callqa_batch.core.exceptions import ConfigurationError, TransportError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from callqa_batch.core.types import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


class GeminiCompletionService:
    """``CompletionService`` backed by the Gemini API.

    System messages become the system instruction; assistant messages are
    sent with the ``model`` role so corrective retries read as a dialogue.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ConfigurationError("Gemini is not configured: missing api_key")
        self.model = model or DEFAULT_MODEL
        self._client = client if client is not None else genai.Client(api_key=api_key)

    @staticmethod
    def build_contents(
        messages: Sequence[ChatMessage],
    ) -> tuple[str | None, list[types.Content]]:
        """Split messages into a system instruction and conversation contents."""
        system = "\n\n".join(m.content for m in messages if m.role == "system") or None
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in messages
            if m.role != "system"
        ]
        return system, contents

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        expect_json: bool = True,
        max_retries: int = 0,  # noqa: ARG002
    ) -> str:
        system, contents = self.build_contents(messages)
        config = types.GenerateContentConfig(
            system_instruction=system,
            response_mime_type="application/json" if expect_json else "text/plain",
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model, contents=contents, config=config
            )
        except Exception as e:
            raise TransportError(f"Gemini API call failed: {e}") from e

        try:
            text = response.text
        except (ValueError, AttributeError) as e:
            raise TransportError(f"Gemini response had no readable text: {e}") from e
        if not text:
            raise TransportError("No content in API response")
        return text
