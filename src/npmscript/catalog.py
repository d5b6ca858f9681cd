"""Command catalog building.

Combines directory resolution and manifest reading into a flat catalog of
runnable command descriptors for a command family.

A command family is the npm argument prefix a user asked for:
    - ("run-script",): every declared script
    - ("run-script", "<name>"): one named script
    - ("install",), ("test",), ...: a fixed subcommand, once per directory
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from npmscript.errors import ManifestError
from npmscript.host import ManifestStore, Notifier
from npmscript.manifest import read_manifest
from npmscript.workspace import DirectoryEntry, WorkspaceRoot

logger = structlog.get_logger()

CommandFamily = tuple[str, ...]

RUN_SCRIPT = "run-script"
SCRIPT_FAMILY: CommandFamily = (RUN_SCRIPT,)

FIXED_FAMILIES: dict[str, CommandFamily] = {
    "install": ("install",),
    "test": ("test",),
    "start": ("start",),
    "build": ("build",),
    "audit": ("audit",),
    "outdated": ("outdated",),
}


def is_script_family(family: CommandFamily) -> bool:
    return bool(family) and family[0] == RUN_SCRIPT


def requested_script(family: CommandFamily) -> str | None:
    """Return the script name a ``("run-script", name)`` family filters on."""
    if is_script_family(family) and len(family) > 1:
        return family[1]
    return None


@dataclass(frozen=True)
class CommandDescriptor:
    """One runnable unit: a script, or a fixed subcommand in one directory.

    Attributes:
        path: Absolute working directory.
        relative_path: Directory relative to its root, None outside any root.
        name: Script name, or the fixed subcommand.
        command_line: Text shown next to the entry; for scripts this is
            ``run-script <declared body>``.
        root: Owning workspace root, if any.
    """

    path: Path
    relative_path: str | None
    name: str
    command_line: str
    root: WorkspaceRoot | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("command descriptor name must not be empty")


def _script_descriptors(
    family: CommandFamily,
    entry: DirectoryEntry,
    scripts: dict[str, str],
) -> list[CommandDescriptor]:
    wanted = requested_script(family)
    return [
        CommandDescriptor(
            path=entry.path,
            relative_path=entry.relative_path,
            name=name,
            command_line=f"{RUN_SCRIPT} {body}",
            root=entry.root,
        )
        for name, body in scripts.items()
        if name and (wanted is None or name == wanted)
    ]


def build_catalog(
    family: CommandFamily,
    directories: Iterable[DirectoryEntry],
    store: ManifestStore | None = None,
) -> list[CommandDescriptor]:
    """Build the command catalog for a family.

    A directory whose manifest is missing or malformed contributes nothing.

    Args:
        family: The requested command family.
        directories: Candidate directories, in order.
        store: Manifest store used for reading.

    Returns:
        One descriptor per (directory, matching script) for script families,
        one per readable directory for fixed families.
    """
    catalog: list[CommandDescriptor] = []
    for entry in directories:
        try:
            manifest = read_manifest(entry.path, store)
        except ManifestError as e:
            logger.debug("manifest_skipped", path=e.path, code=e.code.value)
            continue

        if is_script_family(family):
            catalog.extend(_script_descriptors(family, entry, manifest.scripts))
        else:
            catalog.append(
                CommandDescriptor(
                    path=entry.path,
                    relative_path=entry.relative_path,
                    name=" ".join(family),
                    command_line=" ".join(family),
                    root=entry.root,
                )
            )

    logger.debug("catalog_built", family=" ".join(family), count=len(catalog))
    return catalog


def read_scripts_strict(
    directories: Iterable[DirectoryEntry],
    notifier: Notifier,
    store: ManifestStore | None = None,
) -> list[CommandDescriptor] | None:
    """Single-target discovery: every listed manifest must be readable.

    The first unreadable manifest aborts the build and is reported; an empty
    result is reported as well.

    Returns:
        The script catalog, or None after notifying the user.
    """
    catalog: list[CommandDescriptor] = []
    for entry in directories:
        try:
            manifest = read_manifest(entry.path, store)
        except ManifestError as e:
            notifier.inform(e.message)
            return None
        catalog.extend(_script_descriptors(SCRIPT_FAMILY, entry, manifest.scripts))

    if not catalog:
        notifier.inform("No scripts are defined")
        return None
    return catalog
