"""Core configuration data types.

Configuration follows the resolve-once, freeze-then-flow pattern: sources are
merged into a ``ResolvedConfig`` (values plus origins), which is frozen into a
``FrozenConfig`` that flows into the pipeline unchanged.
"""

from collections.abc import Mapping
import dataclasses
from dataclasses import dataclass
from typing import Any, Literal

from callqa_batch.config.schema import Provider, ReasoningEffort
from callqa_batch.core.types import TranscriptionOptions

# --- Source Tracking Types ---

ConfigOrigin = Literal["programmatic", "env", "file", "default"]
SourceMap = Mapping[str, ConfigOrigin]

SECRET_FIELDS = frozenset({"api_key"})


@dataclass(frozen=True)
class FrozenConfig:
    """Immutable configuration handed to the pipeline.

    Any attempt to modify this object raises ``FrozenInstanceError``.
    """

    provider: Provider = "none"
    api_key: str | None = None
    endpoint: str | None = None
    model: str | None = None
    reasoning_effort: ReasoningEffort = "low"
    request_timeout_seconds: float = 120.0
    concurrency: int = 5
    max_retries: int = 3
    sentiment_max_retries: int = 3
    overall_sentiment_max_retries: int = 2
    base_delay_seconds: float = 1.0
    candidate_locales: tuple[str, ...] = ("en-US",)
    diarization_enabled: bool = False
    min_speakers: int = 1
    max_speakers: int = 2
    max_sentiment_phrases: int = 200
    max_sentiment_segments: int = 12
    overall_sentiment_enabled: bool = True

    def transcription_options(self) -> TranscriptionOptions:
        return TranscriptionOptions(
            candidate_locales=self.candidate_locales,
            diarization=self.diarization_enabled,
            min_speakers=self.min_speakers,
            max_speakers=self.max_speakers,
        )

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        values = dataclasses.asdict(self)
        if redact:
            for name in SECRET_FIELDS:
                values[name] = "[REDACTED]" if values[name] else None
        return values

    def __str__(self) -> str:
        """String representation with redacted API key for safe logging."""
        body = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"FrozenConfig({body})"

    def __repr__(self) -> str:
        return self.__str__()


FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in dataclasses.fields(FrozenConfig))


@dataclass(frozen=True)
class ResolvedConfig:
    """Configuration after resolution from all sources, before freezing.

    Carries the origin of every field for audit output.
    """

    config: FrozenConfig
    origin: SourceMap

    def __getattr__(self, name: str) -> Any:
        if name in FIELD_NAMES:
            return getattr(self.config, name)
        raise AttributeError(name)

    def __str__(self) -> str:
        return f"ResolvedConfig({self.config}, origin={dict(self.origin)!r})"

    def __repr__(self) -> str:
        return self.__str__()

    def to_frozen(self) -> FrozenConfig:
        return self.config

    def with_overrides(self, **overrides: Any) -> "ResolvedConfig":
        """Return a re-validated copy with programmatic overrides applied.

        Unknown fields are ignored.

        Raises:
            ConfigurationError: If the overridden values do not validate.
        """
        from callqa_batch.config.resolver import validate_values

        known = {k: v for k, v in overrides.items() if k in FIELD_NAMES}
        values = {**self.config.to_dict(redact=False), **known}
        origin = {**self.origin, **dict.fromkeys(known, "programmatic")}
        return ResolvedConfig(config=validate_values(values), origin=origin)

    def audit(self) -> str:
        """Redacted report showing the origin of each field."""
        lines = []
        for name in FIELD_NAMES:
            origin = self.origin.get(name, "default")
            value = getattr(self.config, name)
            if name in SECRET_FIELDS:
                display = f"{origin}:<redacted>" if value else f"{origin}:None"
            elif origin == "env":
                display = f"env:CALLQA_{name.upper()}={value}"
            else:
                display = f"{origin}:{value}"
            lines.append(f"{name}: {display}")
        return "\n".join(lines)
