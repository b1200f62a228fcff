"""Public API for the configuration system."""

from pathlib import Path
from typing import Any

from callqa_batch.config.resolver import ConfigResolver
from callqa_batch.config.scope import get_ambient_resolved_config
from callqa_batch.config.types import ResolvedConfig

_resolver = ConfigResolver()


def resolve_config(
    programmatic: dict[str, Any] | None = None,
    *,
    profile: str | None = None,
    project_root: Path | None = None,
) -> ResolvedConfig:
    """Resolve configuration from all sources with proper precedence.

    Precedence: Programmatic > Environment > Project file > Home file > Defaults.
    Inside a ``config_scope`` the scoped configuration replaces the file, env
    and default layers; programmatic overrides still apply on top.

    Args:
        programmatic: Overrides with the highest precedence. Unknown fields
            are ignored.
        profile: Profile to load from configuration files. Defaults to
            ``CALLQA_PROFILE`` when set.
        project_root: Directory to search for pyproject.toml. Defaults to the
            current directory and its parents.

    Raises:
        ConfigurationError: If files are malformed or values are invalid.

    Example:
        config = resolve_config({"concurrency": 2}).to_frozen()
    """
    ambient = get_ambient_resolved_config()
    if ambient is not None:
        return ambient.with_overrides(**programmatic) if programmatic else ambient
    return _resolver.resolve(
        programmatic=programmatic, profile=profile, project_root=project_root
    )


def list_available_profiles(project_root: Path | None = None) -> dict[str, list[str]]:
    """Profile names defined in the project and home configuration files."""
    return _resolver.list_available_profiles(project_root)
