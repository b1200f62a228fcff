"""File-based configuration loading with profile support.

Configuration is read from ``[tool.callqa_batch]`` in the nearest
``pyproject.toml`` and from ``~/.config/callqa_batch.toml``. Both support
named profiles under ``profiles.<name>``.
"""

from pathlib import Path
import tomllib
from typing import Any

from callqa_batch.core.exceptions import ConfigurationError

TOOL_SECTION = "callqa_batch"


class ConfigFileError(ConfigurationError):
    """Raised when configuration file loading fails."""

    def __init__(
        self, file_path: Path, message: str, cause: Exception | None = None
    ) -> None:
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(f"Config file error in {file_path}: {message}")


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open(mode="rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigFileError(path, f"Failed to parse TOML: {e}", cause=e) from e


def _select_profile(
    path: Path, section: dict[str, Any], profile: str | None
) -> dict[str, Any]:
    if profile:
        profiles = section.get("profiles", {})
        if profile not in profiles:
            raise ConfigFileError(
                path,
                f"Profile '{profile}' not found. Available profiles: {list(profiles)}",
            )
        return dict(profiles[profile])
    config = dict(section)
    config.pop("profiles", None)
    return config


class FileConfigLoader:
    """Loads configuration from TOML files with profile support."""

    def __init__(self, home_config_path: Path | None = None) -> None:
        self._home_config_path = home_config_path

    @property
    def home_config_path(self) -> Path:
        return self._home_config_path or Path.home() / ".config" / "callqa_batch.toml"

    def load_project_config(
        self, project_root: Path | None = None, profile: str | None = None
    ) -> dict[str, Any]:
        """Load ``[tool.callqa_batch]`` (or one of its profiles) from pyproject.toml.

        Returns:
            Configuration values; empty when no file or section exists.

        Raises:
            ConfigFileError: If the file cannot be parsed or the profile is missing.
        """
        pyproject_path = self.find_pyproject_toml(project_root)
        if pyproject_path is None:
            return {}
        section = _read_toml(pyproject_path).get("tool", {}).get(TOOL_SECTION, {})
        if not section:
            return {}
        return _select_profile(pyproject_path, section, profile)

    def load_home_config(self, profile: str | None = None) -> dict[str, Any]:
        """Load ``~/.config/callqa_batch.toml`` (or one of its profiles)."""
        path = self.home_config_path
        if not path.exists():
            return {}
        return _select_profile(path, _read_toml(path), profile)

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        """Profile names defined in the project and home files."""
        profiles: dict[str, list[str]] = {"project": [], "home": []}
        try:
            pyproject_path = self.find_pyproject_toml(project_root)
            if pyproject_path is not None:
                section = _read_toml(pyproject_path).get("tool", {}).get(TOOL_SECTION, {})
                profiles["project"] = list(section.get("profiles", {}))
            if self.home_config_path.exists():
                profiles["home"] = list(_read_toml(self.home_config_path).get("profiles", {}))
        except ConfigFileError:
            # Listing is best-effort; resolution reports parse errors
            pass
        return profiles

    @staticmethod
    def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
        """Find pyproject.toml by searching up the directory tree."""
        current = Path(start_dir or Path.cwd()).resolve()
        while True:
            candidate = current / "pyproject.toml"
            if candidate.exists():
                return candidate
            if current == current.parent:
                return None
            current = current.parent
