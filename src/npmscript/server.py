"""npm-script MCP server.

This module exposes the engine as MCP tools through FastMCP. The server owns
a single Session for its lifetime, so scripts started by one tool call can be
listed, terminated or rerun by later calls.

Prompts cannot be answered interactively over MCP: tools that may need a
choice take a ``choice`` argument naming the entry label, and report the
available labels when it is missing.

Usage:
    # Start the server directly
    python -m npmscript.server

    # Or through the CLI
    npms serve
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import structlog
from fastmcp import FastMCP

from npmscript import commands
from npmscript.config import Settings, resolve_settings
from npmscript.errors import NpmScriptError
from npmscript.host import BufferedOutputSink, DetachedTerminal, LabelPrompt, MessageLog
from npmscript.log import configure_logging
from npmscript.selection import Command, RunAll, RunFixed, RunScript
from npmscript.session import Session

logger = structlog.get_logger()

# Session shared by all tool calls. Use _reset_for_testing() in tests.
_session: Session | None = None


async def initialize_session(settings: Settings | None = None) -> Session:
    """Create the server session.

    Args:
        settings: Pre-loaded settings (optional, for testing).

    Returns:
        The session used by every tool.
    """
    global _session

    if _session is not None:
        logger.warning("session_already_initialized")
        return _session

    _session = Session(
        settings=settings if settings is not None else resolve_settings(),
        notifier=MessageLog(),
        prompt=LabelPrompt(),
        output=BufferedOutputSink(),
        terminal=DetachedTerminal(),
    )
    logger.info("session_initialized", roots=len(_session.roots()))
    return _session


async def shutdown_session() -> None:
    """Close the server session, terminating running scripts."""
    global _session

    if _session is not None:
        await _session.close()
        _session = None
        logger.info("session_shutdown")


@asynccontextmanager
async def _server_lifespan(server: FastMCP):
    """Create the session on startup and close it on shutdown."""
    await initialize_session()
    yield
    await shutdown_session()


mcp = FastMCP("npm-script", lifespan=_server_lifespan)


def get_session() -> Session:
    """Return the server session.

    Raises:
        RuntimeError: If the server has not been started.
    """
    if _session is None:
        raise RuntimeError("Session not initialized")
    return _session


async def _reset_for_testing(settings: Settings | None = None) -> Session:
    """Replace the session with a fresh one. For tests only."""
    await shutdown_session()
    return await initialize_session(settings)


def _messages(session: Session) -> list[str]:
    notifier = session.notifier
    return notifier.drain() if isinstance(notifier, MessageLog) else []


def _describe(command: Command | None) -> Any:
    if command is None:
        return None
    if isinstance(command, RunAll):
        return [_describe(member) for member in command.members]
    if isinstance(command, RunScript):
        return {"script": command.name, "directory": str(command.directory)}
    if isinstance(command, RunFixed):
        return {"command": " ".join(command.family), "directory": str(command.directory)}
    return None


def _selection_result(session: Session, command: Command | None, prompt: LabelPrompt) -> dict[str, Any]:
    result: dict[str, Any] = {
        "started": _describe(command),
        "messages": _messages(session),
    }
    if command is None and prompt.offered:
        result["choices"] = [item.label for item in prompt.offered]
    return result


@mcp.tool()
def list_scripts() -> list[dict[str, Any]]:
    """List the npm scripts declared in every configured package.json.

    Returns:
        One entry per script with its name, directory and command.
    """
    session = get_session()
    return [
        {
            "name": d.name,
            "directory": str(d.path),
            "relative_path": d.relative_path,
            "command": d.command_line,
        }
        for d in commands.list_scripts(session)
    ]


@mcp.tool()
async def run_script(name: str | None = None, choice: str | None = None) -> dict[str, Any]:
    """Run an npm script.

    Args:
        name: Script to run; omit to choose among all scripts.
        choice: Label of the entry to run when several match (see "choices"
            in a previous result). "Run all" runs every match.

    Returns:
        What was started, any messages, and the available choices when a
        choice is needed.
    """
    session = get_session()
    prompt = LabelPrompt(choice)
    command = await commands.run_script(session, name, prompt=prompt)
    return _selection_result(session, command, prompt)


@mcp.tool()
async def run_command(command: str, choice: str | None = None) -> dict[str, Any]:
    """Run a fixed npm command (install, test, start, build, audit, outdated).

    Args:
        command: The npm subcommand.
        choice: Label of the directory entry to use when several exist.
    """
    session = get_session()
    prompt = LabelPrompt(choice)
    try:
        started = await commands.run_fixed(session, command, prompt=prompt)
    except NpmScriptError as e:
        raise RuntimeError(e.message) from e
    return _selection_result(session, started, prompt)


@mcp.tool()
async def rerun_last_script(choice: str | None = None) -> dict[str, Any]:
    """Run the most recently started script again."""
    session = get_session()
    prompt = LabelPrompt(choice)
    command = await commands.rerun_last_script(session, prompt=prompt)
    return _selection_result(session, command, prompt)


@mcp.tool()
def list_processes() -> list[dict[str, Any]]:
    """List scripts that are currently running."""
    session = get_session()
    return [{"pid": p.pid, "invocation": p.invocation} for p in session.tracker.snapshot()]


@mcp.tool()
async def terminate_script(pid: int) -> dict[str, Any]:
    """Terminate a running script by pid (see list_processes)."""
    session = get_session()
    terminated = await commands.terminate_script(session, pid=pid)
    return {"terminated": terminated, "messages": _messages(session)}


@mcp.tool()
async def validate_dependencies(directory: str = ".") -> dict[str, Any]:
    """Check installed modules against a directory's package.json.

    Returns:
        The diagnostics (offset, length, message), or null diagnostics when
        validation does not apply or could not run.
    """
    session = get_session()
    diagnostics = await commands.validate_directory(session, Path(directory))
    return {
        "diagnostics": None
        if diagnostics is None
        else [
            {
                "offset": d.span.offset,
                "length": d.span.length,
                "severity": d.severity,
                "message": d.message,
            }
            for d in diagnostics
        ],
        "messages": _messages(session),
    }


@mcp.tool()
def show_output(clear: bool = False) -> str:
    """Return the collected output of scripts started by this server."""
    session = get_session()
    output = session.output
    if not isinstance(output, BufferedOutputSink):
        return ""
    text = output.text()
    if clear:
        output.clear()
    return text


if __name__ == "__main__":
    configure_logging()
    mcp.run()
