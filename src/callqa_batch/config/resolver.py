"""Configuration resolution with precedence handling.

Sources are merged in the order:
Programmatic > Environment > Project file > Home file > Defaults
"""

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from callqa_batch.config.file_loader import FileConfigLoader
from callqa_batch.config.schema import CallQASettings
from callqa_batch.config.types import (
    FIELD_NAMES,
    ConfigOrigin,
    FrozenConfig,
    ResolvedConfig,
)
from callqa_batch.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CALLQA_"
PROFILE_ENV_VAR = "CALLQA_PROFILE"


def validate_values(values: dict[str, Any]) -> FrozenConfig:
    """Validate merged values with the settings schema and freeze them.

    Raises:
        ConfigurationError: If any value is invalid.
    """
    try:
        # Merged values arrive as init kwargs and outrank the env source
        settings = CallQASettings.model_validate(values)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
    data = settings.to_dict()
    return FrozenConfig(**{name: data[name] for name in FIELD_NAMES})


def schema_defaults() -> dict[str, Any]:
    """Default value of every field, as declared by the schema."""
    return {
        name: field.get_default(call_default_factory=True)
        for name, field in CallQASettings.model_fields.items()
    }


def load_env_config() -> dict[str, str]:
    """Raw values of the ``CALLQA_*`` variables that are actually set."""
    values = {}
    for name in FIELD_NAMES:
        env_var = f"{ENV_PREFIX}{name.upper()}"
        if env_var in os.environ:
            values[name] = os.environ[env_var]
    return values


class ConfigResolver:
    """Resolves configuration from multiple sources with proper precedence."""

    def __init__(self, file_loader: FileConfigLoader | None = None) -> None:
        self.file_loader = file_loader or FileConfigLoader()

    def resolve(
        self,
        programmatic: dict[str, Any] | None = None,
        *,
        profile: str | None = None,
        project_root: Path | None = None,
    ) -> ResolvedConfig:
        """Merge every source and validate the result.

        Raises:
            ConfigurationError: If files are malformed or values are invalid.
        """
        if profile is None:
            profile = os.getenv(PROFILE_ENV_VAR)

        merged: dict[str, Any] = {}
        origin: dict[str, ConfigOrigin] = {}

        def apply(values: dict[str, Any], source: ConfigOrigin) -> None:
            for field, value in values.items():
                if field in FIELD_NAMES:  # Only override known fields
                    merged[field] = value
                    origin[field] = source
                else:
                    logger.debug("Ignoring unknown %s config field %r", source, field)

        apply(schema_defaults(), "default")
        apply(self.file_loader.load_home_config(profile=profile), "file")
        apply(
            self.file_loader.load_project_config(
                project_root=project_root, profile=profile
            ),
            "file",
        )
        apply(load_env_config(), "env")
        apply(programmatic or {}, "programmatic")

        config = validate_values(merged)
        logger.debug("Resolved configuration: %s", config)
        return ResolvedConfig(config=config, origin=origin)

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        return self.file_loader.list_available_profiles(project_root)
