"""Configuration schema and validation using Pydantic.

This module defines the settings schema that validates and coerces
configuration values from the environment, files and programmatic overrides
into the correct types with proper defaults.
"""

from typing import Annotated, Any, Literal, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

Provider = Literal["none", "azure_openai", "gemini"]
ReasoningEffort = Literal["minimal", "low", "medium", "high"]


class CallQASettings(BaseSettings):
    """Pydantic settings schema for batch call processing.

    Integrates with environment variables using the ``CALLQA_`` prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="CALLQA_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",  # CALLQA_PROFILE, CALLQA_TELEMETRY live beside the fields
    )

    # --- Completion provider ---

    provider: Provider = Field(
        default="none",
        description="Completion backend for sentiment and evaluation",
    )
    api_key: str | None = Field(default=None, description="Provider API key")
    endpoint: str | None = Field(
        default=None, description="Azure OpenAI resource endpoint"
    )
    model: str | None = Field(
        default=None, description="Deployment (Azure) or model (Gemini) name"
    )
    reasoning_effort: ReasoningEffort = Field(
        default="low", description="Effort for reasoning deployments"
    )
    request_timeout_seconds: float = Field(default=120.0, gt=0)

    # --- Scheduling and retries ---

    concurrency: int = Field(default=5, ge=1, description="Window size")
    max_retries: int = Field(default=3, ge=0)
    sentiment_max_retries: int = Field(default=3, ge=0)
    overall_sentiment_max_retries: int = Field(default=2, ge=0)
    base_delay_seconds: float = Field(default=1.0, ge=0)

    # --- Transcription ---

    # NoDecode: comma-separated env values reach split_locales undecoded
    candidate_locales: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("en-US",), min_length=1
    )
    diarization_enabled: bool = False
    min_speakers: int = Field(default=1, ge=1)
    max_speakers: int = Field(default=2, ge=1)

    # --- Sentiment ---

    max_sentiment_phrases: int = Field(default=200, ge=1)
    max_sentiment_segments: int = Field(default=12, ge=1)
    overall_sentiment_enabled: bool = True

    # --- Validation Rules ---

    @field_validator("candidate_locales", mode="before")
    @classmethod
    def split_locales(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v

    @model_validator(mode="after")
    def validate_speakers(self) -> Self:
        if self.min_speakers > self.max_speakers:
            raise ValueError(
                f"min_speakers ({self.min_speakers}) must not exceed "
                f"max_speakers ({self.max_speakers})"
            )
        return self

    @model_validator(mode="after")
    def validate_provider_credentials(self) -> Self:
        """Ensure the selected provider has what it needs to connect."""
        required: dict[str, tuple[str, ...]] = {
            "azure_openai": ("api_key", "endpoint", "model"),
            "gemini": ("api_key",),
        }
        missing = [f for f in required.get(self.provider, ()) if not getattr(self, f)]
        if missing:
            env_vars = ", ".join(f"CALLQA_{f.upper()}" for f in missing)
            raise ValueError(
                f"provider={self.provider} requires {', '.join(missing)}. "
                f"Set {env_vars}, provide them in a config file, "
                "or pass them programmatically."
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary of every field, in declaration order."""
        return {name: getattr(self, name) for name in type(self).model_fields}
