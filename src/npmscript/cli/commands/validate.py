"""Validate command for the npms CLI.

This module provides the `npms validate` command that checks the installed
modules of a directory against its package.json.
"""

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from npmscript.cli.common import ConfigOption, run_in_session
from npmscript.commands import validate_directory
from npmscript.manifest import MANIFEST_NAME
from npmscript.session import Session
from npmscript.validator import Diagnostic


def line_and_column(text: str, offset: int) -> tuple[int, int]:
    """1-based line and column of a character offset."""
    before = text[:offset]
    line = before.count("\n") + 1
    column = offset - (before.rfind("\n") + 1) + 1
    return line, column


def _to_dict(text: str, diagnostic: Diagnostic) -> dict[str, Any]:
    line, column = line_and_column(text, diagnostic.span.offset)
    return {
        "line": line,
        "column": column,
        "offset": diagnostic.span.offset,
        "length": diagnostic.span.length,
        "severity": diagnostic.severity,
        "message": diagnostic.message,
    }


def validate_command(
    directory: Annotated[
        Path,
        typer.Argument(help="Directory containing package.json"),
    ] = Path("."),
    config: ConfigOption = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON",
        ),
    ] = False,
) -> None:
    """Check installed modules against package.json.

    Reports dependencies that are not installed, installed with a version
    that does not match, or installed without being declared. Exits with 1
    when problems are found and 2 when the check could not run.
    """
    document = directory.resolve() / MANIFEST_NAME

    async def body(session: Session) -> tuple[bool, list[Diagnostic] | None]:
        applicable = session.validator.should_validate(document)
        if not applicable:
            return False, None
        return True, await validate_directory(session, directory)

    applicable, diagnostics = run_in_session(config, body)

    if not applicable:
        typer.echo(f"Validation does not apply to {document}")
        return
    if diagnostics is None:
        typer.echo(f"Error: Could not validate {document}", err=True)
        raise typer.Exit(2)

    text = document.read_text(encoding="utf-8")
    if json_output:
        typer.echo(json.dumps([_to_dict(text, d) for d in diagnostics], indent=2))
    elif not diagnostics:
        typer.echo("All dependencies are installed")
    else:
        for diagnostic in diagnostics:
            line, column = line_and_column(text, diagnostic.span.offset)
            typer.echo(f"{document}:{line}:{column}: {diagnostic.severity}: {diagnostic.message}")

    if diagnostics:
        raise typer.Exit(1)
