"""Configuration models and utilities.

This module provides Pydantic models for validating and loading npm-script
configuration from YAML files, with support for environment variable
expansion.

Models:
    - NpmSettings: Per-root npm options (directories, binary, validation)
    - RootConfig: A workspace root and its optional overrides
    - Settings: Root configuration model

Functions:
    - expand_env_vars: Expand ${VAR} patterns in strings
    - expand_env_vars_in_dict: Recursively expand env vars in nested dicts
    - load_settings: Load and validate settings from a YAML file
    - find_settings_path: Locate settings.yml in the standard places
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PrivateAttr, ValidationError, field_validator, model_validator

from npmscript.workspace import FILE_SCHEME, WorkspaceRoot

SETTINGS_ENV_VAR = "NPMSCRIPT_SETTINGS"


class NpmSettings(BaseModel):
    """npm options, resolved per workspace root.

    Attributes:
        include_workspace_root: Scan the root directory itself.
        include_directories: Extra directories, relative to the root.
        run_silent: Pass --silent to every npm invocation.
        bin: Package manager binary name.
        validate_enabled: Validate installed modules against package.json.
        run_in_terminal: Hand commands to the terminal instead of tracking them.
        validation_delay: Debounce window for re-validation, in seconds.
    """

    include_workspace_root: bool = True
    include_directories: list[str] = Field(default_factory=list)
    run_silent: bool = False
    bin: str = "npm"
    validate_enabled: bool = True
    run_in_terminal: bool = False
    validation_delay: float = Field(default=0.5, ge=0.0)

    @field_validator("bin")
    @classmethod
    def validate_bin(cls, v: str) -> str:
        """Reject an empty binary name."""
        if not v.strip():
            raise ValueError("bin must not be empty")
        return v.strip()


class RootConfig(BaseModel):
    """A configured workspace root.

    Attributes:
        path: Root directory (relative paths resolve against the settings file).
        name: Display name used to prefix labels in multi-root setups.
        scheme: URI scheme; only "file" roots are scanned.
        npm: Per-root overrides merged over the global npm settings.
    """

    path: str
    name: str | None = None
    scheme: str = FILE_SCHEME
    npm: dict[str, Any] = Field(default_factory=dict)

    @field_validator("npm")
    @classmethod
    def validate_overrides(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Reject keys NpmSettings does not define, and session-wide keys."""
        unknown = sorted(set(v) - set(NpmSettings.model_fields))
        if unknown:
            raise ValueError(f"unknown npm settings: {', '.join(unknown)}")
        if "run_in_terminal" in v:
            raise ValueError("run_in_terminal can only be set globally")
        return v


class Settings(BaseModel):
    """Root configuration model.

    Attributes:
        version: Configuration schema version.
        npm: Default npm settings for every root.
        roots: Workspace roots; empty means the base directory alone.
        base_directory: Directory relative root paths are resolved against.
    """

    version: str = "1"
    npm: NpmSettings = Field(default_factory=NpmSettings)
    roots: list[RootConfig] = Field(default_factory=list)
    base_directory: str = "."
    _overrides: dict[Path, NpmSettings] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _resolve_overrides(self) -> "Settings":
        """Merge each root's overrides over the global npm settings."""
        overrides: dict[Path, NpmSettings] = {}
        for root, config in zip(self.workspace_roots(), self.roots, strict=False):
            if not config.npm:
                continue
            merged = self.npm.model_dump()
            merged.update(config.npm)
            try:
                resolved = NpmSettings.model_validate(merged)
            except ValidationError as e:
                raise ValueError(f"invalid npm overrides for root '{config.path}': {e}") from e
            overrides.setdefault(root.path, resolved)
        self._overrides = overrides
        return self

    def workspace_roots(self) -> list[WorkspaceRoot]:
        """Return the configured roots as WorkspaceRoot values, in order."""
        base = Path(self.base_directory).resolve()
        if not self.roots:
            return [WorkspaceRoot(path=base, name=base.name, scheme=FILE_SCHEME)]

        roots: list[WorkspaceRoot] = []
        for root in self.roots:
            path = Path(root.path)
            if not path.is_absolute():
                path = base / path
            path = path.resolve()
            roots.append(
                WorkspaceRoot(path=path, name=root.name or path.name, scheme=root.scheme)
            )
        return roots

    def for_root(self, root: WorkspaceRoot | None = None) -> NpmSettings:
        """Look up the npm settings that apply to a root.

        Args:
            root: The workspace root, or None for the global defaults.

        Returns:
            The global settings with the root's overrides applied.
        """
        if root is None:
            return self.npm

        return self._overrides.get(root.path, self.npm)


# Environment variable expansion pattern: ${VAR_NAME}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} patterns with environment variables.

    Args:
        value: String potentially containing ${VAR} patterns.

    Returns:
        String with all ${VAR} patterns replaced with environment variable values.

    Raises:
        ValueError: If a referenced environment variable is not set.
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            raise ValueError(f"Environment variable '{var_name}' not set")
        return env_value

    return _ENV_VAR_PATTERN.sub(replacer, value)


def expand_env_vars_in_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand environment variables in a nested dictionary.

    Args:
        data: Dictionary potentially containing ${VAR} patterns in string values.

    Returns:
        New dictionary with all ${VAR} patterns expanded.
    """
    result: dict[str, Any] = {}

    for key, value in data.items():
        if isinstance(value, str):
            result[key] = expand_env_vars(value)
        elif isinstance(value, dict):
            result[key] = expand_env_vars_in_dict(value)
        elif isinstance(value, list):
            result[key] = [
                expand_env_vars_in_dict(item)
                if isinstance(item, dict)
                else expand_env_vars(item)
                if isinstance(item, str)
                else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def load_settings(path: str | Path) -> Settings:
    """Load and validate settings from a YAML file.

    Relative root paths are resolved against the directory holding the file.

    Args:
        path: Path to the settings.yml file.

    Returns:
        Validated Settings instance.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
        pydantic.ValidationError: If the configuration is invalid.
        ValueError: If environment variable expansion fails.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with path.open() as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    data = expand_env_vars_in_dict(data)
    data.setdefault("base_directory", str(path.resolve().parent))

    return Settings.model_validate(data)


def find_settings_path(explicit: str | Path | None = None) -> Path | None:
    """Find the settings file.

    Searches, in order: the explicit path, the NPMSCRIPT_SETTINGS environment
    variable, then settings.yml in the current working directory.

    Returns:
        Path to the settings file if found, None otherwise.
    """
    candidates: list[Path] = []
    if explicit is not None:
        candidates.append(Path(explicit))
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path))
    candidates.append(Path.cwd() / "settings.yml")

    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def resolve_settings(explicit: str | Path | None = None) -> Settings:
    """Load settings from the first settings file found, or use defaults."""
    path = find_settings_path(explicit)
    if path is None:
        return Settings(base_directory=str(Path.cwd()))
    return load_settings(path)
