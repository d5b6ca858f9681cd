"""Installed-module report.

Runs ``<bin> ls --depth 0 --json`` in a directory and decodes its output
into an InstalledModuleReport. The package manager's output is trusted; it
is only JSON-decoded and shape-checked here.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from npmscript.errors import ErrorCode, ReporterError
from npmscript.host import process_environment
from npmscript.processes import build_invocation

logger = structlog.get_logger()

PROBLEM_PREFIXES = ("missing:", "invalid:", "extraneous:")


class ModuleStatus(BaseModel):
    """Installed state of one top-level dependency.

    Attributes:
        version: The installed version, if any.
        invalid: The installed version does not satisfy the declared range.
        extraneous: Installed but not declared.
        missing: Declared but not installed.
    """

    model_config = ConfigDict(extra="ignore")

    version: str | None = None
    invalid: bool = False
    extraneous: bool = False
    missing: bool = False

    @field_validator("invalid", "extraneous", "missing", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        """Newer npm releases report ``invalid`` as a reason string."""
        return bool(v)


class InstalledModuleReport(BaseModel):
    """Snapshot produced by ``npm ls --depth 0 --json``.

    Attributes:
        invalid: Opaque kill switch; a set flag disables classification.
        problems: Problem tags, each prefixed missing:, invalid: or extraneous:.
        dependencies: Package name to its installed state, in report order.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    invalid: bool = False
    problems: list[str] = Field(default_factory=list)
    dependencies: dict[str, ModuleStatus] = Field(default_factory=dict)

    def has_problems(self) -> bool:
        """Return True if any problem tag names an actionable issue."""
        return any(p.startswith(PROBLEM_PREFIXES) for p in self.problems)


def parse_report(text: str) -> InstalledModuleReport:
    """Decode report JSON.

    Raises:
        ReporterError: If the text is not a report.
    """
    try:
        return InstalledModuleReport.model_validate_json(text)
    except ValidationError as e:
        raise ReporterError(
            ErrorCode.REPORT_INVALID,
            "Installed-module report is not valid JSON",
            e,
        ) from e


class ModuleReporter(ABC):
    """Produces installed-module reports for a directory."""

    @abstractmethod
    async def report(self, directory: Path) -> InstalledModuleReport:
        """Return the report for ``directory``.

        Raises:
            ReporterError: If the report cannot be obtained.
        """
        ...


class NpmListReporter(ModuleReporter):
    """Runs the package manager's listing command.

    Attributes:
        binary: Package manager binary.
    """

    LIST_ARGS = ["ls", "--depth", "0", "--json"]

    def __init__(self, binary: str = "npm") -> None:
        self.binary = binary

    async def report(self, directory: Path) -> InstalledModuleReport:
        invocation = build_invocation(self.binary, self.LIST_ARGS)
        try:
            process = await asyncio.create_subprocess_shell(
                invocation,
                cwd=str(directory),
                env=process_environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            raise ReporterError(
                ErrorCode.REPORTER_FAILED,
                f"Failed to run '{invocation}'",
                e,
            ) from e

        # npm ls exits non-zero whenever it finds problems; only the JSON matters.
        logger.debug(
            "module_report_received",
            directory=str(directory),
            returncode=process.returncode,
            stderr_bytes=len(stderr),
        )
        return parse_report(stdout.decode("utf-8", errors="replace"))
