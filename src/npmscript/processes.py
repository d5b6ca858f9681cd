"""Process tracking and command running.

This module provides:
    - TrackedProcess: A running child process and its invocation
    - ProcessTracker: pid-keyed registry of terminable processes
    - ExecutionMode: Whether commands are tracked or handed to a terminal
    - ProcessRunner: Spawns npm commands and streams their output

The tracker is only mutated from the event loop (on spawn and on exit), so
it takes no lock.
"""

import asyncio
import codecs
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from npmscript.errors import ErrorCode, NpmScriptError
from npmscript.host import (
    Notifier,
    OutputSink,
    ProcessSignaler,
    Terminal,
    TreeSignaler,
    process_environment,
)

logger = structlog.get_logger()

TERMINATE_SIGNAL = "SIGTERM"
CHUNK_SIZE = 4096


class ExecutionMode(str, Enum):
    """How commands are executed.

    Attributes:
        OUTPUT: Spawned as tracked child processes, output streamed to the sink.
        TERMINAL: Handed to the host terminal, which owns the process.
    """

    OUTPUT = "output"
    TERMINAL = "terminal"


@dataclass
class TrackedProcess:
    """A child process that can be terminated.

    Attributes:
        process: The asyncio process handle.
        invocation: The command line it was started with.
        pid: Process id.
    """

    process: asyncio.subprocess.Process
    invocation: str
    pid: int


class ProcessTracker:
    """Registry of running child processes keyed by pid.

    Example:
        tracker = ProcessTracker()
        tracker.register(process, "npm run-script build")
        for entry in tracker.snapshot():
            print(entry.pid, entry.invocation)
        tracker.terminate(entry.pid)
    """

    def __init__(self, signaler: ProcessSignaler | None = None) -> None:
        self._processes: dict[int, TrackedProcess] = {}
        self._signaler = signaler if signaler is not None else TreeSignaler()

    def __len__(self) -> int:
        return len(self._processes)

    def __contains__(self, pid: object) -> bool:
        return pid in self._processes

    def register(self, process: asyncio.subprocess.Process, invocation: str) -> TrackedProcess:
        """Track a freshly spawned process."""
        entry = TrackedProcess(process=process, invocation=invocation, pid=process.pid)
        self._processes[entry.pid] = entry
        logger.debug("process_registered", pid=entry.pid, invocation=invocation)
        return entry

    def unregister(self, pid: int) -> TrackedProcess | None:
        """Stop tracking ``pid``; returns the removed entry, if any."""
        entry = self._processes.pop(pid, None)
        if entry is not None:
            logger.debug("process_unregistered", pid=pid)
        return entry

    def snapshot(self) -> list[TrackedProcess]:
        """Return the tracked processes in spawn order."""
        return list(self._processes.values())

    def terminate(self, pid: int, signal_name: str = TERMINATE_SIGNAL) -> None:
        """Send a termination signal to a tracked process tree.

        The entry stays registered until the process actually exits.

        Raises:
            NpmScriptError: If ``pid`` is not tracked.
        """
        entry = self._processes.get(pid)
        if entry is None:
            raise NpmScriptError(
                ErrorCode.PROCESS_NOT_FOUND,
                f"No running script with pid {pid}",
            )
        try:
            self._signaler.send_signal(pid, signal_name)
        except ProcessLookupError:
            # Exited between snapshot and signal; its exit event cleans up.
            logger.debug("process_already_exited", pid=pid)
            return
        logger.info("process_terminated", pid=pid, signal=signal_name)


def build_invocation(binary: str, args: list[str], silent: bool = False) -> str:
    """Return the shell command line for an npm invocation.

    Arguments are passed through as given; script names that need quoting
    arrive already quoted.
    """
    parts = [shlex.quote(binary)]
    if silent:
        parts.append("--silent")
    parts.extend(args)
    return " ".join(parts)


def describe_exit(invocation: str, returncode: int | None) -> str:
    """Human-readable line describing how a command ended."""
    if returncode is not None and returncode < 0:
        return f"{invocation} terminated by signal {-returncode}"
    return f"{invocation} exited with code {returncode}"


class ProcessRunner:
    """Spawns npm commands in output or terminal mode.

    Attributes:
        tracker: Registry receiving every spawned process.
        output: Sink for streamed output.
        notifier: Where spawn failures are reported.
        terminal: Terminal used in terminal mode.
    """

    def __init__(
        self,
        tracker: ProcessTracker,
        output: OutputSink,
        notifier: Notifier,
        terminal: Terminal,
    ) -> None:
        self.tracker = tracker
        self.output = output
        self.notifier = notifier
        self.terminal = terminal

    async def _forward(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                self.output.append(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            self.output.append(tail)

    async def spawn(self, invocation: str, cwd: Path) -> TrackedProcess | None:
        """Start ``invocation`` as a tracked child process.

        Returns:
            The tracked entry, or None if the process could not be started.
        """
        try:
            process = await asyncio.create_subprocess_shell(
                invocation,
                cwd=str(cwd),
                env=process_environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("spawn_failed", invocation=invocation, cwd=str(cwd), error=str(e))
            self.notifier.warn(f"Failed to run '{invocation}': {e}")
            return None

        self.output.append(f"> {invocation}\n")
        self.output.show()
        return self.tracker.register(process, invocation)

    async def wait(self, entry: TrackedProcess) -> int | None:
        """Stream output until ``entry`` exits, then stop tracking it."""
        try:
            await asyncio.gather(
                self._forward(entry.process.stdout),
                self._forward(entry.process.stderr),
            )
            returncode = await entry.process.wait()
        finally:
            self.tracker.unregister(entry.pid)

        self.output.append(f"\n{describe_exit(entry.invocation, returncode)}\n")
        logger.info("process_exited", pid=entry.pid, returncode=returncode)
        return returncode

    async def run(self, invocation: str, cwd: Path, mode: ExecutionMode) -> int | None:
        """Run a command to completion in the given mode.

        Returns:
            The exit code in output mode; None in terminal mode or when the
            command could not be started.
        """
        logger.info("command_started", invocation=invocation, cwd=str(cwd), mode=mode.value)
        if mode is ExecutionMode.TERMINAL:
            try:
                await self.terminal.run(invocation, cwd, process_environment())
            except OSError as e:
                self.notifier.warn(f"Failed to run '{invocation}': {e}")
            return None

        entry = await self.spawn(invocation, cwd)
        if entry is None:
            return None
        return await self.wait(entry)
