"""Tests for selection and command execution.

Tests cover:
    - Choice set construction (TestBuildEntries)
    - Labels and script name quoting (TestLabels)
    - Picking and executing entries (TestResolveAndExecute)
"""

from pathlib import Path

import pytest

from npmscript.catalog import FIXED_FAMILIES, SCRIPT_FAMILY, CommandDescriptor
from npmscript.host import BufferedOutputSink, MessageLog
from npmscript.selection import (
    RUN_ALL_LABEL,
    RunAll,
    RunFixed,
    RunScript,
    build_entries,
    execute,
    format_label,
    not_found_message,
    quote_script_name,
    resolve_and_execute,
    script_arguments,
)
from npmscript.workspace import WorkspaceRoot

from conftest import RecordingSession, ScriptedPrompt, make_settings


def _descriptor(path: Path, name: str, relative: str | None = "", root=None) -> CommandDescriptor:
    return CommandDescriptor(
        path=path,
        relative_path=relative,
        name=name,
        command_line=f"run-script {name}-body",
        root=root,
    )


def _session(base: Path, prompt=None, fail_in=None) -> RecordingSession:
    return RecordingSession(
        settings=make_settings(base),
        notifier=MessageLog(),
        prompt=prompt or ScriptedPrompt(),
        output=BufferedOutputSink(),
        fail_in=fail_in,
    )


# =============================================================================
# Choice set
# =============================================================================


class TestBuildEntries:
    """Tests for build_entries."""

    def test_entries_follow_catalog_order(self, tmp_path: Path) -> None:
        catalog = [_descriptor(tmp_path, "build"), _descriptor(tmp_path / "a", "build", "a")]

        entries = build_entries(catalog, SCRIPT_FAMILY)

        assert [e.label for e in entries] == ["build", "a: build"]
        assert [e.description for e in entries] == ["run-script build-body"] * 2
        assert entries[1].command == RunScript(tmp_path / "a", "build")

    def test_run_all_comes_first(self, tmp_path: Path) -> None:
        """Verify the Run all entry is first and lists only real entries."""
        catalog = [_descriptor(tmp_path, "test"), _descriptor(tmp_path / "a", "test", "a")]

        entries = build_entries(catalog, ("run-script", "test"), allow_all=True)

        assert entries[0].label == RUN_ALL_LABEL
        assert entries[0].description == "Run all 2 commands"
        run_all = entries[0].command
        assert isinstance(run_all, RunAll)
        assert run_all.members == (entries[1].command, entries[2].command)
        assert all(not isinstance(m, RunAll) for m in run_all.members)

    def test_no_run_all_for_single_entry(self, tmp_path: Path) -> None:
        entries = build_entries([_descriptor(tmp_path, "test")], SCRIPT_FAMILY, allow_all=True)

        assert [e.label for e in entries] == ["test"]

    def test_fixed_family_commands(self, tmp_path: Path) -> None:
        catalog = [
            CommandDescriptor(path=tmp_path, relative_path="", name="install", command_line="install")
        ]

        entries = build_entries(catalog, FIXED_FAMILIES["install"])

        assert entries[0].command == RunFixed(tmp_path, ("install",))


# =============================================================================
# Labels
# =============================================================================


class TestLabels:
    """Tests for labels, quoting and argument building."""

    def test_multi_root_label_prefix(self, tmp_path: Path) -> None:
        root = WorkspaceRoot(path=tmp_path, name="web")
        descriptor = _descriptor(tmp_path / "pkg", "build", "pkg", root)

        assert format_label(descriptor, multi_root=True) == "web: pkg: build"
        assert format_label(descriptor, multi_root=False) == "pkg: build"

    def test_root_directory_has_no_path_prefix(self, tmp_path: Path) -> None:
        root = WorkspaceRoot(path=tmp_path, name="web")

        assert format_label(_descriptor(tmp_path, "build", "", root), True) == "web: build"

    def test_quote_script_name(self) -> None:
        assert quote_script_name("build") == "build"
        assert quote_script_name("build:prod") == "build:prod"
        assert quote_script_name("run all") == "'run all'"

    def test_script_arguments_copy_base_family(self) -> None:
        """Verify building arguments never mutates the shared family."""
        first = script_arguments("build")
        second = script_arguments("lint")

        assert first == ["run-script", "build"]
        assert second == ["run-script", "lint"]
        assert SCRIPT_FAMILY == ("run-script",)

    def test_not_found_messages(self) -> None:
        assert not_found_message(("run-script", "x")) == "Script 'x' not found"
        assert not_found_message(SCRIPT_FAMILY) == "No scripts are defined"
        assert not_found_message(("install",)) == "No package.json found for 'npm install'"


# =============================================================================
# Resolve and execute
# =============================================================================


class TestResolveAndExecute:
    """Tests for resolve_and_execute and execute."""

    @pytest.mark.asyncio
    async def test_empty_catalog_notifies(self, tmp_path: Path) -> None:
        prompt = ScriptedPrompt()
        session = _session(tmp_path, prompt)

        result = await resolve_and_execute(session, [], ("run-script", "deploy"))

        assert result is None
        assert session.notifier.messages == [("info", "Script 'deploy' not found")]
        assert prompt.calls == []
        assert session.invocations == []

    @pytest.mark.asyncio
    async def test_single_candidate_runs_without_prompt(self, tmp_path: Path) -> None:
        prompt = ScriptedPrompt()
        session = _session(tmp_path, prompt)
        catalog = [_descriptor(tmp_path, "test")]

        result = await resolve_and_execute(
            session, catalog, ("run-script", "test"), allow_all=True
        )

        assert result == RunScript(tmp_path, "test")
        assert prompt.calls == []
        assert session.invocations == [(["run-script", "test"], tmp_path)]

    @pytest.mark.asyncio
    async def test_prompt_choice_runs_entry(self, tmp_path: Path) -> None:
        prompt = ScriptedPrompt(answer=1)
        session = _session(tmp_path, prompt)
        catalog = [_descriptor(tmp_path, "build"), _descriptor(tmp_path, "lint")]

        result = await resolve_and_execute(session, catalog, SCRIPT_FAMILY)

        assert result == RunScript(tmp_path, "lint")
        assert [item.label for item in prompt.calls[0]] == ["build", "lint"]
        assert session.invocations == [(["run-script", "lint"], tmp_path)]

    @pytest.mark.asyncio
    async def test_cancel_runs_nothing(self, tmp_path: Path) -> None:
        session = _session(tmp_path, ScriptedPrompt(answer=None))
        catalog = [_descriptor(tmp_path, "build"), _descriptor(tmp_path, "lint")]

        result = await resolve_and_execute(session, catalog, SCRIPT_FAMILY)

        assert result is None
        assert session.invocations == []
        assert session.last_command is None

    @pytest.mark.asyncio
    async def test_run_all_runs_each_member_once(self, tmp_path: Path) -> None:
        """Verify Run all starts every member even when one fails."""
        first, second, third = tmp_path / "a", tmp_path / "b", tmp_path / "c"
        session = _session(tmp_path, ScriptedPrompt(answer=0), fail_in={second})
        catalog = [_descriptor(p, "test", p.name) for p in (first, second, third)]

        result = await resolve_and_execute(
            session, catalog, ("run-script", "test"), allow_all=True
        )

        assert isinstance(result, RunAll)
        assert sorted(cwd for _, cwd in session.invocations) == [first, second, third]
        assert [level for level, _ in session.notifier.messages] == ["warning"]
        assert str(second) in session.notifier.messages[0][1]

    @pytest.mark.asyncio
    async def test_last_command_only_tracks_scripts(self, tmp_path: Path) -> None:
        session = _session(tmp_path)

        await execute(RunScript(tmp_path, "build"), session)
        await execute(RunFixed(tmp_path, ("install",)), session)

        assert session.last_command == RunScript(tmp_path, "build")
        assert session.invocations == [
            (["run-script", "build"], tmp_path),
            (["install"], tmp_path),
        ]

    @pytest.mark.asyncio
    async def test_script_name_with_space_is_quoted(self, tmp_path: Path) -> None:
        session = _session(tmp_path)

        await execute(RunScript(tmp_path, "run all"), session)

        assert session.invocations == [(["run-script", "'run all'"], tmp_path)]
