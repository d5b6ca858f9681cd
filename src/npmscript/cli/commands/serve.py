"""Serve command for the npms CLI.

Starts the FastMCP server. The settings file is handed over through the
NPMSCRIPT_SETTINGS environment variable, which the server's lifespan reads
when it creates its session.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from npmscript.config import SETTINGS_ENV_VAR


class Transport(str, Enum):
    """MCP transports the server can listen on."""

    STDIO = "stdio"
    SSE = "sse"
    HTTP = "http"


def serve_command(
    transport: Annotated[
        Transport,
        typer.Option("--transport", "-t", help="MCP transport"),
    ] = Transport.STDIO,
    host: Annotated[
        str,
        typer.Option("--host", help="Bind address for the sse and http transports"),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port for the sse and http transports"),
    ] = 8000,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to settings.yml"),
    ] = None,
) -> None:
    """Expose list, run, terminate and validate as MCP tools.

    One session lives as long as the server, so a script started by one
    tool call can be listed, terminated or rerun by the next.

    Examples:
        npms serve
        npms serve -t http -p 8080 -c ./settings.yml
    """
    if config is not None:
        if not config.is_file():
            typer.echo(f"Error: Settings file not found: {config}", err=True)
            raise typer.Exit(1)
        os.environ[SETTINGS_ENV_VAR] = str(config.resolve())

    from npmscript.server import mcp

    if transport is Transport.STDIO:
        typer.echo("npm-script MCP server listening on stdio", err=True)
        mcp.run(transport="stdio")
        return

    typer.echo(
        f"npm-script MCP server listening on http://{host}:{port} ({transport.value})",
        err=True,
    )
    mcp.run(transport=transport.value, host=host, port=port)
