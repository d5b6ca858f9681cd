"""Tests for process tracking, running and the session's npm runner.

Tests cover:
    - Tracker bookkeeping and termination (TestProcessTracker)
    - Invocation building (TestBuildInvocation)
    - Running real child processes (TestProcessRunner)
    - Session execution modes and shutdown (TestSessionRunNpm)
"""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from npmscript.errors import ErrorCode, NpmScriptError
from npmscript.host import BufferedOutputSink, MessageLog, Terminal
from npmscript.processes import (
    ExecutionMode,
    ProcessRunner,
    ProcessTracker,
    build_invocation,
    describe_exit,
)
from npmscript.session import Session

from conftest import RecordingSignaler, make_settings


class RecordingTerminal(Terminal):
    def __init__(self) -> None:
        self.commands: list[tuple[str, Path]] = []

    async def run(self, command: str, cwd: Path, env: dict[str, str]) -> None:
        self.commands.append((command, cwd))


class VanishedSignaler(RecordingSignaler):
    def send_signal(self, pid: int, signal_name: str) -> None:
        raise ProcessLookupError(pid)


def _fake_process(pid: int) -> MagicMock:
    process = MagicMock()
    process.pid = pid
    return process


def _runner(tracker: ProcessTracker | None = None) -> ProcessRunner:
    return ProcessRunner(
        tracker if tracker is not None else ProcessTracker(RecordingSignaler()),
        BufferedOutputSink(),
        MessageLog(),
        RecordingTerminal(),
    )


# =============================================================================
# Tracker
# =============================================================================


class TestProcessTracker:
    """Tests for ProcessTracker."""

    def test_register_and_unregister(self) -> None:
        tracker = ProcessTracker(RecordingSignaler())

        entry = tracker.register(_fake_process(101), "npm run-script build")

        assert entry.pid == 101
        assert 101 in tracker
        assert len(tracker) == 1
        assert tracker.unregister(101) is entry
        assert 101 not in tracker
        assert tracker.unregister(101) is None

    def test_snapshot_keeps_spawn_order(self) -> None:
        tracker = ProcessTracker(RecordingSignaler())
        tracker.register(_fake_process(3), "npm test")
        tracker.register(_fake_process(1), "npm start")

        assert [p.invocation for p in tracker.snapshot()] == ["npm test", "npm start"]

    def test_terminate_signals_tree_but_keeps_entry(self) -> None:
        """Verify the entry stays registered until the process exits."""
        signaler = RecordingSignaler()
        tracker = ProcessTracker(signaler)
        tracker.register(_fake_process(42), "npm start")

        tracker.terminate(42)

        assert signaler.sent == [(42, "SIGTERM")]
        assert 42 in tracker

    def test_terminate_unknown_pid(self) -> None:
        tracker = ProcessTracker(RecordingSignaler())

        with pytest.raises(NpmScriptError) as exc_info:
            tracker.terminate(7)

        assert exc_info.value.code == ErrorCode.PROCESS_NOT_FOUND
        assert exc_info.value.message == "No running script with pid 7"

    def test_terminate_already_exited_is_not_an_error(self) -> None:
        tracker = ProcessTracker(VanishedSignaler())
        tracker.register(_fake_process(9), "npm start")

        tracker.terminate(9)


# =============================================================================
# Invocation
# =============================================================================


class TestBuildInvocation:
    """Tests for build_invocation and describe_exit."""

    def test_plain(self) -> None:
        assert build_invocation("npm", ["run-script", "build"]) == "npm run-script build"

    def test_silent(self) -> None:
        assert build_invocation("npm", ["install"], silent=True) == "npm --silent install"

    def test_binary_is_quoted(self) -> None:
        assert build_invocation("/opt/my npm/npm", ["test"]) == "'/opt/my npm/npm' test"

    def test_describe_exit(self) -> None:
        assert describe_exit("npm test", 0) == "npm test exited with code 0"
        assert describe_exit("npm test", -15) == "npm test terminated by signal 15"


# =============================================================================
# Runner
# =============================================================================


class TestProcessRunner:
    """Tests for ProcessRunner against real child processes."""

    @pytest.mark.asyncio
    async def test_output_mode_streams_and_untracks(self, tmp_path: Path) -> None:
        runner = _runner()

        code = await runner.run("echo hello", tmp_path, ExecutionMode.OUTPUT)

        assert code == 0
        text = runner.output.text()
        assert text.startswith("> echo hello\n")
        assert "hello\n" in text
        assert text.endswith("echo hello exited with code 0\n")
        assert len(runner.tracker) == 0

    @pytest.mark.asyncio
    async def test_exit_code_and_stderr(self, tmp_path: Path) -> None:
        runner = _runner()

        code = await runner.run("echo oops >&2; exit 3", tmp_path, ExecutionMode.OUTPUT)

        assert code == 3
        assert "oops" in runner.output.text()

    @pytest.mark.asyncio
    async def test_multibyte_character_across_chunk_boundary(self, tmp_path: Path) -> None:
        """Verify a character split between two reads is decoded whole."""
        runner = _runner()

        await runner.run(
            "printf '%4095s' ''; printf '\\303\\251\\n'", tmp_path, ExecutionMode.OUTPUT
        )

        text = runner.output.text()
        assert " " * 4095 + "é\n" in text
        assert "�" not in text

    @pytest.mark.asyncio
    async def test_truncated_character_at_eof_is_replaced(self, tmp_path: Path) -> None:
        runner = _runner()

        await runner.run("printf 'ab\\303'", tmp_path, ExecutionMode.OUTPUT)

        assert "ab�" in runner.output.text()

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, tmp_path: Path) -> None:
        runner = _runner()

        await runner.run("pwd", tmp_path, ExecutionMode.OUTPUT)

        assert str(tmp_path.resolve()) in runner.output.text()

    @pytest.mark.asyncio
    async def test_spawn_failure_is_reported(self, tmp_path: Path) -> None:
        runner = _runner()

        code = await runner.run("echo hi", tmp_path / "missing", ExecutionMode.OUTPUT)

        assert code is None
        assert [level for level, _ in runner.notifier.messages] == ["warning"]
        assert runner.notifier.messages[0][1].startswith("Failed to run 'echo hi'")
        assert len(runner.tracker) == 0

    @pytest.mark.asyncio
    async def test_terminal_mode_is_untracked(self, tmp_path: Path) -> None:
        runner = _runner()

        code = await runner.run("npm start", tmp_path, ExecutionMode.TERMINAL)

        assert code is None
        assert runner.terminal.commands == [("npm start", tmp_path)]
        assert len(runner.tracker) == 0

    @pytest.mark.asyncio
    async def test_terminate_real_process(self, tmp_path: Path) -> None:
        """Verify a tracked process tree can be terminated."""
        runner = _runner(ProcessTracker())

        entry = await runner.spawn("sleep 30", tmp_path)
        assert entry is not None
        await asyncio.sleep(0.2)
        runner.tracker.terminate(entry.pid)
        code = await asyncio.wait_for(runner.wait(entry), timeout=10)

        assert code is not None and code != 0
        assert entry.pid not in runner.tracker


# =============================================================================
# Session
# =============================================================================


class TestSessionRunNpm:
    """Tests for Session.run_npm and Session.close."""

    def _session(self, base: Path, terminal: Terminal | None = None, **npm) -> Session:
        return Session(
            settings=make_settings(base, **npm),
            notifier=MessageLog(),
            output=BufferedOutputSink(),
            terminal=terminal or RecordingTerminal(),
        )

    @pytest.mark.asyncio
    async def test_output_mode_returns_once_started(self, tmp_path: Path) -> None:
        session = self._session(tmp_path, bin="echo")

        entry = await session.run_npm(["run-script", "build"], tmp_path)

        assert entry is not None
        assert entry.invocation == "echo run-script build"
        assert await session.wait_all() == [0]
        assert "run-script build\n" in session.output.text()
        assert len(session.tracker) == 0

    @pytest.mark.asyncio
    async def test_silent_flag(self, tmp_path: Path) -> None:
        session = self._session(tmp_path, bin="echo", run_silent=True)

        entry = await session.run_npm(["test"], tmp_path)
        await session.wait_all()

        assert entry is not None
        assert entry.invocation == "echo --silent test"

    @pytest.mark.asyncio
    async def test_terminal_mode(self, tmp_path: Path) -> None:
        terminal = RecordingTerminal()
        session = self._session(tmp_path, terminal, run_in_terminal=True)

        entry = await session.run_npm(["run-script", "build"], tmp_path)

        assert entry is None
        assert session.mode is ExecutionMode.TERMINAL
        assert terminal.commands == [("npm run-script build", tmp_path)]

    @pytest.mark.asyncio
    async def test_close_terminates_running_commands(self, tmp_path: Path) -> None:
        session = self._session(tmp_path, bin="sleep")

        entry = await session.run_npm(["30"], tmp_path)
        assert entry is not None and entry.pid in session.tracker
        await asyncio.sleep(0.2)

        await asyncio.wait_for(session.close(), timeout=10)

        assert len(session.tracker) == 0
