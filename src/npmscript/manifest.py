"""Manifest (package.json) reading.

Loads a directory's package.json through a manifest store and extracts the
declared scripts and dependency sets.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from npmscript.errors import ErrorCode, ManifestError
from npmscript.host import LocalManifestStore, ManifestStore

logger = structlog.get_logger()

MANIFEST_NAME = "package.json"


@dataclass(frozen=True)
class Manifest:
    """Parsed contents of a package.json.

    Attributes:
        path: The manifest file.
        scripts: Declared scripts, name to command body, in file order.
        dependencies: The ``dependencies`` section.
        dev_dependencies: The ``devDependencies`` section.
    """

    path: Path
    scripts: dict[str, str] = field(default_factory=dict)
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def wanted_dependencies(self) -> dict[str, str]:
        """All declared dependencies; devDependencies win on duplicate names."""
        merged = dict(self.dependencies)
        merged.update(self.dev_dependencies)
        return merged


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def parse_manifest(path: Path, content: str) -> Manifest:
    """Parse package.json text.

    Raises:
        ManifestError: If the text is not a JSON object.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ManifestError(ErrorCode.MANIFEST_INVALID, str(path), e) from e

    if not isinstance(data, dict):
        raise ManifestError(ErrorCode.MANIFEST_INVALID, str(path))

    return Manifest(
        path=path,
        scripts=_string_map(data.get("scripts")),
        dependencies=_string_map(data.get("dependencies")),
        dev_dependencies=_string_map(data.get("devDependencies")),
    )


def read_manifest(directory: Path, store: ManifestStore | None = None) -> Manifest:
    """Read and parse the package.json in ``directory``.

    Args:
        directory: Directory holding the manifest.
        store: Manifest store used for reading (defaults to the filesystem).

    Returns:
        The parsed manifest.

    Raises:
        ManifestError: If the file cannot be read or is not valid JSON.
    """
    store = store if store is not None else LocalManifestStore()
    path = directory / MANIFEST_NAME
    try:
        content = store.read_text(path)
    except OSError as e:
        raise ManifestError(ErrorCode.MANIFEST_NOT_FOUND, str(path), e) from e

    manifest = parse_manifest(path, content)
    logger.debug(
        "manifest_read",
        path=str(path),
        scripts=len(manifest.scripts),
        dependencies=len(manifest.wanted_dependencies),
    )
    return manifest
