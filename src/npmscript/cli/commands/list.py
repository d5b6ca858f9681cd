"""List command for the npms CLI.

This module provides the `npms list` command that shows every declared
script across the configured directories.
"""

import json
from typing import Annotated

import typer

from npmscript.catalog import CommandDescriptor
from npmscript.cli.common import ConfigOption, load_cli_settings
from npmscript.commands import list_scripts
from npmscript.selection import format_label
from npmscript.session import Session


def _to_dict(descriptor: CommandDescriptor) -> dict[str, str | None]:
    return {
        "name": descriptor.name,
        "directory": str(descriptor.path),
        "relative_path": descriptor.relative_path,
        "command": descriptor.command_line,
    }


def list_command(
    config: ConfigOption = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON",
        ),
    ] = False,
) -> None:
    """List the scripts declared in every configured package.json."""
    session = Session(settings=load_cli_settings(config))
    catalog = list_scripts(session)

    if json_output:
        typer.echo(json.dumps([_to_dict(d) for d in catalog], indent=2))
        return

    if not catalog:
        typer.echo("No scripts are defined")
        return

    multi_root = session.is_multi_root()
    width = max(len(format_label(d, multi_root)) for d in catalog)
    for descriptor in catalog:
        label = format_label(descriptor, multi_root)
        typer.echo(f"  {label:<{width}}  {descriptor.command_line}")
