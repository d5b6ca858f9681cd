"""Selection of catalog entries.

Turns a command catalog into a choice set, applies the single-candidate
shortcut and the optional "Run all" entry, and executes the chosen command.

Commands are plain values dispatched by ``execute``:
    - RunScript: run one named script in a directory
    - RunFixed: run a fixed subcommand (install, test, ...) in a directory
    - RunAll: run every member independently
"""

from __future__ import annotations

import asyncio
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Union

import structlog

from npmscript.catalog import (
    SCRIPT_FAMILY,
    CommandDescriptor,
    CommandFamily,
    is_script_family,
    requested_script,
)
from npmscript.host import PromptItem, SelectionPrompt
from npmscript.workspace import WorkspaceRoot

if TYPE_CHECKING:
    from npmscript.session import Session

logger = structlog.get_logger()

RUN_ALL_LABEL = "Run all"

_WHITESPACE = re.compile(r"\s")


@dataclass(frozen=True)
class RunScript:
    """Run a declared script."""

    directory: Path
    name: str
    root: WorkspaceRoot | None = None


@dataclass(frozen=True)
class RunFixed:
    """Run a fixed npm subcommand."""

    directory: Path
    family: CommandFamily
    root: WorkspaceRoot | None = None


@dataclass(frozen=True)
class RunAll:
    """Run every member; never contains itself."""

    members: tuple[RunScript | RunFixed, ...]


Command = Union[RunScript, RunFixed, RunAll]


@dataclass(frozen=True)
class SelectableEntry:
    """A row of the choice set.

    Attributes:
        label: Text shown to the user.
        description: Secondary text (the command line).
        command: What runs when the entry is chosen.
    """

    label: str
    description: str
    command: Command

    def to_prompt_item(self) -> PromptItem:
        return PromptItem(label=self.label, description=self.description)


def format_label(descriptor: CommandDescriptor, multi_root: bool) -> str:
    """Build ``[root: ][relative path: ]name``."""
    label = descriptor.name
    if descriptor.relative_path:
        label = f"{descriptor.relative_path}: {label}"
    if multi_root and descriptor.root is not None:
        label = f"{descriptor.root.name}: {label}"
    return label


def quote_script_name(name: str) -> str:
    """Quote a script name for the shell when it contains whitespace."""
    return shlex.quote(name) if _WHITESPACE.search(name) else name


def script_arguments(name: str) -> list[str]:
    """npm arguments running script ``name``; the base family is copied."""
    args = list(SCRIPT_FAMILY)
    args.append(quote_script_name(name))
    return args


def to_command(descriptor: CommandDescriptor, family: CommandFamily) -> RunScript | RunFixed:
    if is_script_family(family):
        return RunScript(descriptor.path, descriptor.name, descriptor.root)
    return RunFixed(descriptor.path, tuple(family), descriptor.root)


def build_entries(
    catalog: list[CommandDescriptor],
    family: CommandFamily,
    allow_all: bool = False,
    multi_root: bool = False,
) -> list[SelectableEntry]:
    """Build the choice set for a catalog.

    When ``allow_all`` is set and there are at least two entries, a "Run all"
    entry comes first; its members are the real entries only.
    """
    entries = [
        SelectableEntry(
            label=format_label(descriptor, multi_root),
            description=descriptor.command_line,
            command=to_command(descriptor, family),
        )
        for descriptor in catalog
    ]

    if allow_all and len(entries) >= 2:
        run_all = SelectableEntry(
            label=RUN_ALL_LABEL,
            description=f"Run all {len(entries)} commands",
            command=RunAll(tuple(e.command for e in entries)),
        )
        entries.insert(0, run_all)
    return entries


def not_found_message(family: CommandFamily) -> str:
    name = requested_script(family)
    if name is not None:
        return f"Script '{name}' not found"
    if is_script_family(family):
        return "No scripts are defined"
    return f"No package.json found for 'npm {' '.join(family)}'"


async def _execute_member(command: RunScript | RunFixed, session: Session) -> None:
    try:
        await execute(command, session)
    except Exception as e:
        logger.error("run_all_member_failed", directory=str(command.directory), error=str(e))
        session.notifier.warn(f"Failed to run in '{command.directory}': {e}")


async def execute(command: Command, session: Session) -> None:
    """Execute a command within a session.

    Only script commands are remembered as the session's last command.
    """
    if isinstance(command, RunAll):
        await asyncio.gather(*(_execute_member(m, session) for m in command.members))
    elif isinstance(command, RunScript):
        session.last_command = command
        await session.run_npm(script_arguments(command.name), command.directory, command.root)
    elif isinstance(command, RunFixed):
        await session.run_npm(list(command.family), command.directory, command.root)
    else:
        raise TypeError(f"Unknown command: {command!r}")


async def resolve_and_execute(
    session: Session,
    catalog: list[CommandDescriptor],
    family: CommandFamily,
    allow_all: bool = False,
    prompt: SelectionPrompt | None = None,
) -> Command | None:
    """Pick an entry of ``catalog`` and execute it.

    Returns:
        The executed command, or None when nothing ran (empty catalog or
        cancelled prompt).
    """
    if not catalog:
        session.notifier.inform(not_found_message(family))
        return None

    entries = build_entries(catalog, family, allow_all, session.is_multi_root())
    if len(catalog) == 1:
        chosen = entries[-1]
    else:
        prompt = prompt if prompt is not None else session.prompt
        index = await prompt.present([e.to_prompt_item() for e in entries])
        if index is None:
            logger.debug("selection_cancelled", family=" ".join(family))
            return None
        chosen = entries[index]

    logger.info("entry_selected", label=chosen.label)
    await execute(chosen.command, session)
    return chosen.command
