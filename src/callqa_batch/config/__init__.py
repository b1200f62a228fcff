"""Configuration management for callqa-batch.

Resolve-once, freeze-then-flow:

- ``resolve_config()`` merges programmatic, environment, file and default
  values into a ``ResolvedConfig`` with per-field origins.
- ``ResolvedConfig.to_frozen()`` yields the immutable ``FrozenConfig`` that
  the pipeline consumes.
- ``config_scope()`` / ``config_override()`` change resolution for a block.
"""

from callqa_batch.config.api import list_available_profiles, resolve_config
from callqa_batch.config.file_loader import ConfigFileError, FileConfigLoader
from callqa_batch.config.resolver import ConfigResolver
from callqa_batch.config.schema import CallQASettings
from callqa_batch.config.scope import (
    config_override,
    config_scope,
    get_ambient_resolved_config,
)
from callqa_batch.config.types import (
    ConfigOrigin,
    FrozenConfig,
    ResolvedConfig,
    SourceMap,
)

__all__ = [
    "CallQASettings",
    "ConfigFileError",
    "ConfigOrigin",
    "ConfigResolver",
    "FileConfigLoader",
    "FrozenConfig",
    "ResolvedConfig",
    "SourceMap",
    "config_override",
    "config_scope",
    "get_ambient_resolved_config",
    "list_available_profiles",
    "resolve_config",
]
