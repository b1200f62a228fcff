"""Completion service adapters and the provider factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from callqa_batch.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from callqa_batch.config import FrozenConfig
    from callqa_batch.services import CompletionService


def create_completion_service(config: FrozenConfig) -> CompletionService | None:
    """Build the completion service selected by ``config.provider``.

    Returns None for provider ``none``; sentiment and evaluation are then
    skipped and items finish at ``transcribed``.

    Raises:
        ConfigurationError: If the provider is unknown or lacks credentials.
    """
    match config.provider:
        case "none":
            return None
        case "azure_openai":
            from callqa_batch.adapters.azure_openai import AzureOpenAICompletionService

            return AzureOpenAICompletionService(
                endpoint=config.endpoint,
                api_key=config.api_key,
                deployment=config.model,
                timeout=config.request_timeout_seconds,
                reasoning_effort=config.reasoning_effort,
            )
        case "gemini":
            from callqa_batch.adapters.gemini import GeminiCompletionService

            return GeminiCompletionService(api_key=config.api_key, model=config.model)
    raise ConfigurationError(f"Unknown completion provider: {config.provider!r}")


__all__ = ["create_completion_service"]
