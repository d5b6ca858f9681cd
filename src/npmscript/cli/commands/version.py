"""Version command for the npms CLI.

Shows the npm-script version and, with --verbose, the package manager
binary the configured settings would invoke.
"""

import shutil
import subprocess
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Annotated

import typer

from npmscript import __version__
from npmscript.cli.common import ConfigOption, load_cli_settings

RUNTIME_PACKAGES = ("fastmcp", "pydantic", "typer", "pyyaml", "structlog", "psutil")
BINARY_TIMEOUT = 10.0


def get_version() -> str:
    """Version of the installed distribution, else the package's own."""
    try:
        return version("npm-script")
    except PackageNotFoundError:
        return __version__


def describe_binary(binary: str) -> str:
    """Locate ``binary`` and ask it for its version."""
    path = shutil.which(binary)
    if path is None:
        return f"{binary}: not found on PATH"
    try:
        completed = subprocess.run(
            [path, "--version"],
            capture_output=True,
            text=True,
            timeout=BINARY_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        return f"{binary}: {path} (version unavailable: {e})"
    reported = completed.stdout.strip() or "unknown"
    return f"{binary}: {path} ({reported})"


def version_command(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Also show the runtime and the configured npm binary",
        ),
    ] = False,
    config: ConfigOption = None,
) -> None:
    """Show npm-script version information."""
    typer.echo(f"npm-script {get_version()}")
    if not verbose:
        return

    typer.echo(f"Python {sys.version.split()[0]} ({sys.executable})")
    for package in RUNTIME_PACKAGES:
        try:
            typer.echo(f"  {package} {version(package)}")
        except PackageNotFoundError:
            typer.echo(f"  {package} missing")

    settings = load_cli_settings(config)
    binaries = {settings.for_root(root).bin for root in settings.workspace_roots()}
    for binary in sorted(binaries):
        typer.echo(describe_binary(binary))
