"""User-facing entry points.

Each function takes the Session it operates on. None of them raises for an
expected failure: missing manifests, empty catalogs, cancelled prompts and
refused terminations are reported through the session's notifier.
"""

from pathlib import Path

import structlog

from npmscript.catalog import (
    FIXED_FAMILIES,
    RUN_SCRIPT,
    SCRIPT_FAMILY,
    CommandDescriptor,
    build_catalog,
    read_scripts_strict,
)
from npmscript.errors import ErrorCode, NpmScriptError
from npmscript.host import PromptItem, SelectionPrompt
from npmscript.manifest import MANIFEST_NAME
from npmscript.processes import ExecutionMode
from npmscript.selection import Command, execute, resolve_and_execute
from npmscript.session import Session
from npmscript.validator import Diagnostic
from npmscript.workspace import DirectoryEntry

logger = structlog.get_logger()

TERMINAL_MODE_MESSAGE = (
    "Terminating scripts is not supported when 'run_in_terminal' is enabled"
)
NOTHING_RUNNING_MESSAGE = "No scripts are currently running"


def list_scripts(session: Session) -> list[CommandDescriptor]:
    """Return every declared script across the session's directories."""
    return build_catalog(SCRIPT_FAMILY, session.directories(), session.store)


async def run_script(
    session: Session,
    name: str | None = None,
    prompt: SelectionPrompt | None = None,
) -> Command | None:
    """Pick a script and run it.

    Without ``name`` every script is offered. With ``name`` only scripts of
    that name are offered, together with a "Run all" entry.
    """
    family = (RUN_SCRIPT, name) if name else SCRIPT_FAMILY
    catalog = build_catalog(family, session.directories(), session.store)
    return await resolve_and_execute(
        session, catalog, family, allow_all=name is not None, prompt=prompt
    )


async def run_fixed(
    session: Session,
    family_name: str,
    prompt: SelectionPrompt | None = None,
) -> Command | None:
    """Run a fixed subcommand (install, test, ...) in a chosen directory.

    Raises:
        NpmScriptError: If ``family_name`` is not a known subcommand.
    """
    family = FIXED_FAMILIES.get(family_name)
    if family is None:
        raise NpmScriptError(
            ErrorCode.COMMAND_NOT_FOUND,
            f"Unknown command '{family_name}'",
        )
    catalog = build_catalog(family, session.directories(), session.store)
    return await resolve_and_execute(
        session, catalog, family, allow_all=True, prompt=prompt
    )


async def run_script_strict(
    session: Session,
    directory: Path,
    prompt: SelectionPrompt | None = None,
) -> Command | None:
    """Run a script from one explicit directory.

    Unlike ``run_script``, an unreadable package.json is reported.
    """
    entry = DirectoryEntry(path=directory.resolve(), relative_path=None)
    catalog = read_scripts_strict([entry], session.notifier, session.store)
    if catalog is None:
        return None
    return await resolve_and_execute(session, catalog, SCRIPT_FAMILY, prompt=prompt)


async def rerun_last_script(
    session: Session,
    prompt: SelectionPrompt | None = None,
) -> Command | None:
    """Run the last script again, or offer all scripts if none ran yet."""
    if session.last_command is None:
        return await run_script(session, prompt=prompt)
    command = session.last_command
    await execute(command, session)
    return command


async def terminate_script(
    session: Session,
    pid: int | None = None,
    prompt: SelectionPrompt | None = None,
) -> int | None:
    """Terminate a running script.

    With ``pid`` the process is signalled directly; otherwise the running
    scripts are offered for selection.

    Returns:
        The signalled pid, or None when nothing was terminated.
    """
    if session.mode is ExecutionMode.TERMINAL:
        session.notifier.inform(TERMINAL_MODE_MESSAGE)
        return None

    running = session.tracker.snapshot()
    if not running:
        session.notifier.inform(NOTHING_RUNNING_MESSAGE)
        return None

    if pid is None:
        prompt = prompt if prompt is not None else session.prompt
        items = [PromptItem(label=p.invocation, description=f"pid {p.pid}") for p in running]
        index = await prompt.present(items)
        if index is None:
            return None
        pid = running[index].pid

    try:
        session.tracker.terminate(pid)
    except NpmScriptError as e:
        session.notifier.inform(e.message)
        return None
    return pid


async def validate_directory(session: Session, directory: Path) -> list[Diagnostic] | None:
    """Validate the package.json in ``directory`` once.

    Returns:
        The diagnostics, or None when validation does not apply or the pass
        was abandoned.
    """
    document = directory.resolve() / MANIFEST_NAME
    validator = session.validator
    if not validator.should_validate(document):
        logger.info("validation_not_applicable", document=str(document))
        return None

    opened = not validator.is_relevant(document)
    if opened:
        validator.open_document(document)
    try:
        return await validator.validate(document)
    finally:
        if opened:
            validator.close_document(document)
