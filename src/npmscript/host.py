"""Host capability interfaces and their default implementations.

The engine never talks to a user interface or the operating system directly.
It consumes these narrow capabilities instead:
    - ManifestStore: Reads manifest text
    - Notifier: Shows informational and warning messages
    - SelectionPrompt: Presents a list and returns the chosen index
    - OutputSink: Receives streamed command output
    - Terminal: Runs a command attached to an interactive terminal
    - ProcessSignaler: Sends a signal to a process (tree)

Console implementations back the ``npms`` CLI; the MCP server swaps in the
buffered and label-driven variants.
"""

import asyncio
import collections
import os
import signal
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import psutil
import structlog
import typer

logger = structlog.get_logger()


@dataclass(frozen=True)
class PromptItem:
    """A row shown by a selection prompt.

    Attributes:
        label: Primary text.
        description: Secondary text shown next to the label.
    """

    label: str
    description: str = ""


# =============================================================================
# Interfaces
# =============================================================================


class ManifestStore(ABC):
    """Reads manifest files."""

    @abstractmethod
    def read_text(self, path: Path) -> str:
        """Return the file's text.

        Raises:
            OSError: If the file cannot be read.
        """
        ...


class Notifier(ABC):
    """Shows messages to the user."""

    @abstractmethod
    def inform(self, message: str) -> None: ...

    @abstractmethod
    def warn(self, message: str) -> None: ...


class SelectionPrompt(ABC):
    """Presents a list for single selection."""

    @abstractmethod
    async def present(self, items: list[PromptItem]) -> int | None:
        """Show ``items`` and wait for a choice.

        Returns:
            Index of the chosen item, or None if the user cancelled.
        """
        ...


class OutputSink(ABC):
    """Receives command output as it is produced."""

    @abstractmethod
    def append(self, text: str) -> None: ...

    def show(self) -> None:
        """Bring the output to the user's attention."""


class Terminal(ABC):
    """Runs commands in an interactive terminal owned by the host."""

    @abstractmethod
    async def run(self, command: str, cwd: Path, env: dict[str, str]) -> None: ...


class ProcessSignaler(ABC):
    """Delivers signals to processes."""

    @abstractmethod
    def send_signal(self, pid: int, signal_name: str) -> None:
        """Send ``signal_name`` (e.g. "SIGTERM") to ``pid``.

        Raises:
            ProcessLookupError: If the process no longer exists.
        """
        ...


# =============================================================================
# Default implementations
# =============================================================================


class LocalManifestStore(ManifestStore):
    """Reads manifests from the local filesystem."""

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")


class ConsoleNotifier(Notifier):
    """Prints notifications to stderr."""

    def inform(self, message: str) -> None:
        typer.echo(message, err=True)

    def warn(self, message: str) -> None:
        typer.secho(f"Warning: {message}", err=True, fg=typer.colors.YELLOW)


class MessageLog(Notifier):
    """Collects notifications so a caller can return them."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def inform(self, message: str) -> None:
        self.messages.append(("info", message))

    def warn(self, message: str) -> None:
        self.messages.append(("warning", message))

    def drain(self) -> list[str]:
        """Return and forget the collected messages."""
        drained = [message for _, message in self.messages]
        self.messages.clear()
        return drained


class ConsolePrompt(SelectionPrompt):
    """Numbered console menu.

    An empty answer or 0 cancels. Reading stdin happens in a worker thread so
    the event loop keeps streaming output of running commands.
    """

    def __init__(self, output: TextIO | None = None) -> None:
        self._output = output

    def _ask(self, items: list[PromptItem]) -> int | None:
        for index, item in enumerate(items, start=1):
            line = f"{index:>3}. {item.label}"
            if item.description:
                line = f"{line}  ({item.description})"
            typer.echo(line, file=self._output)

        answer = typer.prompt("Select", default="", show_default=False)
        answer = answer.strip()
        if not answer.isdigit():
            return None
        choice = int(answer)
        if not 1 <= choice <= len(items):
            return None
        return choice - 1

    async def present(self, items: list[PromptItem]) -> int | None:
        if not items:
            return None
        return await asyncio.to_thread(self._ask, items)


class LabelPrompt(SelectionPrompt):
    """Non-interactive prompt that picks the item whose label matches.

    Used by the MCP server, where the caller names its choice up front.
    """

    def __init__(self, choice: str | None = None) -> None:
        self.choice = choice
        self.offered: list[PromptItem] = []

    async def present(self, items: list[PromptItem]) -> int | None:
        self.offered = list(items)
        if self.choice is None:
            return None
        for index, item in enumerate(items):
            if item.label == self.choice:
                return index
        return None


class ConsoleOutputSink(OutputSink):
    """Writes output straight to a stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def append(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()


class BufferedOutputSink(OutputSink):
    """Keeps the most recent output in memory.

    Attributes:
        max_chunks: Number of chunks retained before old ones are dropped.
    """

    def __init__(self, max_chunks: int = 2000) -> None:
        self.max_chunks = max_chunks
        self._chunks: collections.deque[str] = collections.deque(maxlen=max_chunks)

    def append(self, text: str) -> None:
        self._chunks.append(text)

    def text(self) -> str:
        return "".join(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()


class ConsoleTerminal(Terminal):
    """Runs the command attached to the current terminal and waits for it."""

    async def run(self, command: str, cwd: Path, env: dict[str, str]) -> None:
        process = await asyncio.create_subprocess_shell(command, cwd=str(cwd), env=env)
        await process.wait()


class DetachedTerminal(Terminal):
    """Starts the command in its own session without capturing it.

    Used where no interactive terminal exists (the MCP server); the command
    is neither awaited nor tracked.
    """

    async def run(self, command: str, cwd: Path, env: dict[str, str]) -> None:
        await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )


class TreeSignaler(ProcessSignaler):
    """Signals a process and all of its descendants.

    npm runs scripts through a shell, so signalling only the direct child
    would leave the script itself running.
    """

    def send_signal(self, pid: int, signal_name: str) -> None:
        signum = getattr(signal, signal_name)
        try:
            parent = psutil.Process(pid)
        except psutil.NoSuchProcess as e:
            raise ProcessLookupError(pid) from e

        for child in parent.children(recursive=True):
            try:
                child.send_signal(signum)
            except psutil.NoSuchProcess:
                logger.debug("child_already_exited", pid=child.pid)
        try:
            parent.send_signal(signum)
        except psutil.NoSuchProcess as e:
            raise ProcessLookupError(pid) from e


def process_environment() -> dict[str, str]:
    """Environment handed to spawned commands."""
    return os.environ.copy()
