"""External service contracts the pipeline depends on.

Both services are opaque with respect to wire format, authentication and
transport. The only requirements are that each call is independently
awaitable and that transient failures surface as ``TransportError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from callqa_batch.core.types import (
        ChatMessage,
        TranscriptionOptions,
        TranscriptionResult,
    )


@runtime_checkable
class TranscribeService(Protocol):
    """Speech-to-text for one recording."""

    async def transcribe(
        self, audio: Any, options: TranscriptionOptions
    ) -> TranscriptionResult: ...


@runtime_checkable
class CompletionService(Protocol):
    """Chat completion returning the raw response text."""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        expect_json: bool = True,
        max_retries: int = 0,
    ) -> str: ...
