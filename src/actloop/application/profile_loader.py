"""
Profile Loader
==============

Loads and validates YAML engine profiles.

Responsibilities:
- Load profile YAML files from the packaged and custom directories
- Validate profiles against the Pydantic schema on load
- Provide built-in defaults when the ``dev`` profile is missing
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import structlog
import yaml

from actloop.core.domain.config_schema import (
    ConfigValidationError,
    EngineProfileSchema,
    validate_profile_config,
)

logger = structlog.get_logger(__name__)

DEFAULT_PROFILE = "dev"
DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"

# Minimal fallback config when no ``dev.yaml`` profile exists.
_FALLBACK_CONFIG: dict[str, Any] = {
    "engine": {"max_iterations": 20, "max_consecutive_errors": 3},
    "tools": ["clarify_requirements", "finish", "shell"],
    "persistence": {"type": "file", "work_dir": ".actloop"},
    "logging": {"level": "WARNING"},
}


class ProfileLoader:
    """Load and resolve YAML configuration profiles.

    Search order for a profile name: ``{config_dir}/{profile}.yaml``, then
    ``{config_dir}/custom/{profile}.yaml``. A name ending in ``.yaml`` or
    ``.yml`` is treated as a file path.

    Args:
        config_dir: Root directory containing profile YAML files.
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        self._config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._logger = logger.bind(component="profile_loader")

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def resolve_path(self, profile: str) -> Path:
        """Return the YAML file for ``profile``.

        Raises:
            FileNotFoundError: If no matching file exists.
        """
        if profile.endswith((".yaml", ".yml")):
            path = Path(profile)
            if not path.exists():
                raise FileNotFoundError(f"Profile not found: {path}")
            return path

        profile_path = self._config_dir / f"{profile}.yaml"
        if profile_path.exists():
            return profile_path

        custom_path = self._config_dir / "custom" / f"{profile}.yaml"
        if custom_path.exists():
            self._logger.debug("profile_using_custom", profile=profile, path=str(custom_path))
            return custom_path

        raise FileNotFoundError(f"Profile not found: {profile_path} or {custom_path}")

    def load(self, profile: str) -> EngineProfileSchema:
        """Load and validate a profile by name.

        Raises:
            FileNotFoundError: If no matching YAML file is found.
            ConfigValidationError: If the file is not valid YAML or fails
                schema validation.
        """
        profile_path = self.resolve_path(profile)
        try:
            with open(profile_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"Invalid YAML: {exc}", file_path=profile_path) from exc

        config = validate_profile_config(data, file_path=profile_path)
        self._logger.debug("profile_loaded", profile=profile, path=str(profile_path))
        return config

    def load_safe(self, profile: str = DEFAULT_PROFILE) -> EngineProfileSchema:
        """Load a profile; a missing ``dev`` profile falls back to defaults.

        Raises:
            FileNotFoundError: If any other profile is missing.
        """
        try:
            return self.load(profile)
        except FileNotFoundError:
            if profile != DEFAULT_PROFILE:
                raise
            self._logger.debug("profile_not_found_using_defaults", profile=profile)
            return validate_profile_config(copy.deepcopy(_FALLBACK_CONFIG))

    def available_profiles(self) -> list[str]:
        if not self._config_dir.exists():
            return []
        return sorted(path.stem for path in self._config_dir.glob("*.yaml"))
