"""npm-script CLI entry point.

This module provides the main Typer application and entry point for the
`npms` CLI.

Usage:
    npms list [options]            - List declared scripts
    npms run [SCRIPT] [options]    - Run a script
    npms install|test|start|...    - Run a fixed npm subcommand
    npms validate [DIR] [options]  - Check installed modules
    npms serve [options]           - Run the MCP server
    npms version [options]         - Show version information
"""

import logging
from typing import Annotated

import typer

from npmscript.catalog import FIXED_FAMILIES
from npmscript.cli.commands import list as list_cmd
from npmscript.cli.commands import run, serve, validate, version
from npmscript.log import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="npms",
    help="npm-script - Discover, run and validate npm scripts",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log engine events to stderr",
        ),
    ] = False,
) -> None:
    """Configure logging before any command runs."""
    configure_logging(logging.INFO if verbose else logging.WARNING)
    logger.debug("logging_configured: verbose=%s", verbose)


app.command(name="list")(list_cmd.list_command)
app.command(name="run")(run.run_command)
app.command(name="validate")(validate.validate_command)
app.command(name="serve")(serve.serve_command)
app.command(name="version")(version.version_command)

for family_name in FIXED_FAMILIES:
    app.command(
        name=family_name,
        help=f"Run 'npm {family_name}' in a configured directory (or in all of them).",
    )(run.make_fixed_command(family_name))


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
