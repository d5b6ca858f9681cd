"""Helpers shared by CLI commands."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import typer
import yaml
from pydantic import ValidationError

from npmscript.config import Settings, resolve_settings
from npmscript.session import Session

T = TypeVar("T")

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to settings.yml (default: $NPMSCRIPT_SETTINGS or ./settings.yml)",
    ),
]


def load_cli_settings(config: Path | None) -> Settings:
    """Load settings for a CLI command, exiting with a message on failure."""
    if config is not None and not config.exists():
        typer.echo(f"Error: Settings file not found: {config}", err=True)
        raise typer.Exit(1)

    try:
        return resolve_settings(config)
    except yaml.YAMLError as e:
        typer.echo(f"Error: Invalid YAML in settings: {e}", err=True)
        raise typer.Exit(2) from e
    except (ValidationError, ValueError) as e:
        typer.echo(f"Error: Failed to load settings: {e}", err=True)
        raise typer.Exit(2) from e


def run_in_session(config: Path | None, body: Callable[[Session], Awaitable[T]]) -> T:
    """Run ``body`` with a fresh console session and close it afterwards."""
    settings = load_cli_settings(config)

    async def main() -> T:
        session = Session(settings=settings)
        try:
            return await body(session)
        finally:
            await session.close()

    return asyncio.run(main())


def exit_code(codes: list[int | None]) -> int:
    """First non-zero exit code of the finished commands, or 0."""
    for code in codes:
        if code:
            return 1 if code < 0 else code
    return 0
