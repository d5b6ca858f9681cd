"""Shared fixtures and fakes for the npm-script tests."""

from __future__ import annotations

import json
import stat
from pathlib import Path
from typing import Any

import pytest

from npmscript.config import NpmSettings, RootConfig, Settings
from npmscript.host import (
    BufferedOutputSink,
    MessageLog,
    ProcessSignaler,
    PromptItem,
    SelectionPrompt,
)
from npmscript.reporter import InstalledModuleReport, ModuleReporter
from npmscript.session import Session

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "package_json"


def write_package(directory: Path, data: dict[str, Any] | str) -> Path:
    """Write a package.json into ``directory`` and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data, indent=2))
    return path


def write_fake_npm(directory: Path, body: str) -> Path:
    """Create an executable shell script standing in for the npm binary."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "fake-npm"
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class ScriptedPrompt(SelectionPrompt):
    """Prompt answering with a fixed index and recording what it was shown."""

    def __init__(self, answer: int | None = 0) -> None:
        self.answer = answer
        self.calls: list[list[PromptItem]] = []

    async def present(self, items: list[PromptItem]) -> int | None:
        self.calls.append(list(items))
        return self.answer


class RecordingSignaler(ProcessSignaler):
    """Signaler that records instead of signalling."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []

    def send_signal(self, pid: int, signal_name: str) -> None:
        self.sent.append((pid, signal_name))


class StaticReporter(ModuleReporter):
    """Reporter returning a fixed report, or raising a fixed error."""

    def __init__(
        self,
        report: InstalledModuleReport | None = None,
        error: Exception | None = None,
    ) -> None:
        self._report = report if report is not None else InstalledModuleReport()
        self._error = error
        self.calls: list[Path] = []

    async def report(self, directory: Path) -> InstalledModuleReport:
        self.calls.append(directory)
        if self._error is not None:
            raise self._error
        return self._report


class RecordingSession(Session):
    """Session that records npm invocations instead of spawning them."""

    def __init__(self, *args: Any, fail_in: set[Path] | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.invocations: list[tuple[list[str], Path | None]] = []
        self.fail_in = fail_in or set()

    async def run_npm(self, args, cwd=None, root=None):
        self.invocations.append((args, cwd))
        if cwd in self.fail_in:
            raise OSError(f"cannot run in {cwd}")
        return None


def make_settings(base: Path, **npm: Any) -> Settings:
    """Settings with a single root at ``base``."""
    return Settings(base_directory=str(base), npm=NpmSettings(**npm))


def make_multi_root_settings(base: Path, names: list[str], **npm: Any) -> Settings:
    return Settings(
        base_directory=str(base),
        npm=NpmSettings(**npm),
        roots=[RootConfig(path=name, name=name) for name in names],
    )


@pytest.fixture
def notifier() -> MessageLog:
    return MessageLog()


@pytest.fixture
def output() -> BufferedOutputSink:
    return BufferedOutputSink()


@pytest.fixture
def prompt() -> ScriptedPrompt:
    return ScriptedPrompt()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with a root package and two nested packages."""
    root = tmp_path / "workspace"
    write_package(root, {"name": "root", "scripts": {"build": "tsc", "lint": "eslint ."}})
    write_package(root / "packages" / "a", {"name": "a", "scripts": {"build": "vite build"}})
    write_package(root / "packages" / "b", {"name": "b", "scripts": {"test": "jest"}})
    return root
