"""Session context.

A Session bundles everything that outlives a single command: settings, the
host capabilities, the process tracker and runner, the dependency validator
and the last executed script. Hosts construct one at startup, pass it to
every entry point in ``npmscript.commands`` and close it at shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

import structlog

from npmscript.config import NpmSettings, Settings
from npmscript.errors import NpmScriptError
from npmscript.host import (
    ConsoleNotifier,
    ConsoleOutputSink,
    ConsolePrompt,
    ConsoleTerminal,
    LocalManifestStore,
    ManifestStore,
    Notifier,
    OutputSink,
    ProcessSignaler,
    SelectionPrompt,
    Terminal,
)
from npmscript.processes import (
    ExecutionMode,
    ProcessRunner,
    ProcessTracker,
    TrackedProcess,
    build_invocation,
)
from npmscript.reporter import ModuleReporter
from npmscript.selection import RunScript
from npmscript.validator import DependencyValidator
from npmscript.workspace import DirectoryEntry, WorkspaceRoot, resolve_workspace_directories

logger = structlog.get_logger()


class Session:
    """Per-session state shared by all entry points.

    Attributes:
        settings: Loaded configuration.
        notifier: User notifications.
        prompt: Default selection prompt.
        output: Output sink for streamed command output.
        terminal: Terminal used when run_in_terminal is enabled.
        store: Manifest store.
        tracker: Registry of running child processes.
        runner: Spawns and streams commands.
        validator: Dependency validator.
        last_command: The most recently started script, for rerun.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        prompt: SelectionPrompt | None = None,
        output: OutputSink | None = None,
        terminal: Terminal | None = None,
        store: ManifestStore | None = None,
        signaler: ProcessSignaler | None = None,
        reporter: ModuleReporter | None = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.notifier = notifier if notifier is not None else ConsoleNotifier()
        self.prompt = prompt if prompt is not None else ConsolePrompt()
        self.output = output if output is not None else ConsoleOutputSink()
        self.terminal = terminal if terminal is not None else ConsoleTerminal()
        self.store = store if store is not None else LocalManifestStore()
        self.tracker = ProcessTracker(signaler)
        self.runner = ProcessRunner(self.tracker, self.output, self.notifier, self.terminal)
        self.validator = DependencyValidator(
            settings_for=self.settings_for_path,
            reporter=reporter,
            store=self.store,
        )
        self.last_command: RunScript | None = None
        self._waiters: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Workspace
    # -------------------------------------------------------------------------

    @property
    def mode(self) -> ExecutionMode:
        if self.settings.npm.run_in_terminal:
            return ExecutionMode.TERMINAL
        return ExecutionMode.OUTPUT

    def roots(self) -> list[WorkspaceRoot]:
        return self.settings.workspace_roots()

    def is_multi_root(self) -> bool:
        return sum(1 for root in self.roots() if root.is_local) > 1

    def directories(self) -> list[DirectoryEntry]:
        """Directories to scan across all roots, in order."""
        return resolve_workspace_directories(self.roots(), self.settings.for_root)

    def settings_for_path(self, path: Path) -> NpmSettings:
        """npm settings of the root containing ``path``."""
        for root in self.roots():
            if path == root.path or root.path in path.parents:
                return self.settings.for_root(root)
        return self.settings.npm

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    async def run_npm(
        self,
        args: list[str],
        cwd: Path | None = None,
        root: WorkspaceRoot | None = None,
    ) -> TrackedProcess | None:
        """Start ``npm <args>`` in ``cwd``.

        In output mode the process is tracked and its output streamed in the
        background; the call returns once it has started. In terminal mode
        the call returns when the terminal is done with it.
        """
        if cwd is None:
            cwd = self.roots()[0].path
        npm = self.settings.for_root(root) if root is not None else self.settings_for_path(cwd)
        invocation = build_invocation(npm.bin, args, npm.run_silent)

        if self.mode is ExecutionMode.TERMINAL:
            await self.runner.run(invocation, cwd, ExecutionMode.TERMINAL)
            return None

        entry = await self.runner.spawn(invocation, cwd)
        if entry is None:
            return None
        waiter = asyncio.get_running_loop().create_task(self.runner.wait(entry))
        self._waiters.add(waiter)
        waiter.add_done_callback(self._waiters.discard)
        return entry

    async def wait_all(self) -> list[int | None]:
        """Wait until every started command has exited.

        Returns:
            Exit codes of the commands that were still running, in no
            particular order.
        """
        codes: list[int | None] = []
        while self._waiters:
            results = await asyncio.gather(*list(self._waiters), return_exceptions=True)
            codes.extend(r for r in results if not isinstance(r, BaseException))
        return codes

    async def close(self) -> None:
        """Stop validation and terminate commands that are still running."""
        await self.validator.shutdown()
        for entry in self.tracker.snapshot():
            with contextlib.suppress(NpmScriptError):
                self.tracker.terminate(entry.pid)
        await self.wait_all()
        logger.info("session_closed")
