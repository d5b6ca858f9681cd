"""Run commands for the npms CLI.

This module provides `npms run` (pick and run a declared script) and the
fixed subcommands `npms install`, `npms test`, `npms start`, `npms build`,
`npms audit` and `npms outdated`.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Annotated

import typer

from npmscript import commands
from npmscript.cli.common import ConfigOption, exit_code, run_in_session
from npmscript.session import Session


async def _finish(session: Session) -> int:
    return exit_code(await session.wait_all())


def run_command(
    script: Annotated[
        str | None,
        typer.Argument(help="Script to run; omit to choose from all scripts"),
    ] = None,
    directory: Annotated[
        Path | None,
        typer.Option(
            "--dir",
            "-d",
            help="Only use the package.json in this directory",
        ),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Run an npm script.

    Scripts are collected from every configured directory. When more than one
    matches, a numbered menu is shown; a single match runs immediately.

    Examples:
        npms run                 # choose from all scripts
        npms run test            # run 'test' (menu if several folders have it)
        npms run -d packages/a   # scripts of one package only
    """

    async def body(session: Session) -> int:
        if directory is not None:
            await commands.run_script_strict(session, directory)
        else:
            await commands.run_script(session, script)
        return await _finish(session)

    code = run_in_session(config, body)
    if code:
        raise typer.Exit(code)


def make_fixed_command(family_name: str) -> Callable[..., None]:
    """Build the CLI callback running ``npm <family_name>``."""

    def fixed_command(config: ConfigOption = None) -> None:
        async def body(session: Session) -> int:
            await commands.run_fixed(session, family_name)
            return await _finish(session)

        code = run_in_session(config, body)
        if code:
            raise typer.Exit(code)

    fixed_command.__doc__ = (
        f"Run 'npm {family_name}' in a configured directory (or in all of them)."
    )
    return fixed_command
