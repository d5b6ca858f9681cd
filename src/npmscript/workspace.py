"""Workspace roots and directory set resolution.

Resolves the ordered list of directories that may hold a package.json from
the workspace roots and their include settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from npmscript.config import NpmSettings

logger = structlog.get_logger()

FILE_SCHEME = "file"


@dataclass(frozen=True)
class WorkspaceRoot:
    """A workspace root folder.

    Attributes:
        path: Absolute path of the root.
        name: Display name of the root.
        scheme: URI scheme of the root; only "file" roots are local.
    """

    path: Path
    name: str
    scheme: str = FILE_SCHEME

    @property
    def is_local(self) -> bool:
        return self.scheme == FILE_SCHEME


@dataclass(frozen=True)
class DirectoryEntry:
    """A directory believed to contain a package.json.

    Attributes:
        path: Absolute directory path.
        relative_path: Path relative to the owning root, or None when the
            directory lies outside every known root.
        root: The root the directory was resolved from.
    """

    path: Path
    relative_path: str | None = None
    root: WorkspaceRoot | None = None


def relative_to_roots(path: Path, roots: list[WorkspaceRoot]) -> str | None:
    """Return ``path`` relative to the first root containing it.

    The root directory itself yields an empty string.
    """
    for root in roots:
        try:
            relative = path.relative_to(root.path)
        except ValueError:
            continue
        return "" if str(relative) == "." else relative.as_posix()
    return None


def resolve_directories(
    root: WorkspaceRoot,
    settings: NpmSettings,
    roots: list[WorkspaceRoot] | None = None,
) -> list[DirectoryEntry]:
    """Resolve the directories to scan for one root.

    The root comes first unless ``include_workspace_root`` is false, followed
    by each extra directory joined to the root in configuration order.

    Args:
        root: The workspace root.
        settings: npm settings that apply to the root.
        roots: All known roots, used to compute relative labels.

    Returns:
        Ordered directory entries; empty for non-local roots.
    """
    if not root.is_local:
        logger.debug("non_local_root_skipped", root=root.name, scheme=root.scheme)
        return []

    known = roots if roots is not None else [root]
    candidates: list[Path] = []
    if settings.include_workspace_root:
        candidates.append(root.path)
    for extra in settings.include_directories:
        candidates.append((root.path / extra).resolve())

    return [
        DirectoryEntry(path=p, relative_path=relative_to_roots(p, known), root=root)
        for p in candidates
    ]


def resolve_workspace_directories(
    roots: list[WorkspaceRoot],
    settings_for_root,
) -> list[DirectoryEntry]:
    """Resolve directories for every root and concatenate the results.

    Args:
        roots: Workspace roots in order.
        settings_for_root: Callable returning the NpmSettings for a root.

    Returns:
        Directory entries for all local roots, root by root.
    """
    entries: list[DirectoryEntry] = []
    for root in roots:
        entries.extend(resolve_directories(root, settings_for_root(root), roots))
    return entries
