"""Dependency validation.

Cross-references an installed-module report with the dependencies declared
in package.json and produces diagnostics anchored at precise source spans.

Classes:
    - Diagnostic: One flagged dependency
    - DiagnosticCollection: Published diagnostics per document
    - DependencyValidator: Debounced, relevance-checked validation passes

Functions:
    - compute_diagnostics: Classify a report against a source range map
"""

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from npmscript.config import NpmSettings
from npmscript.errors import ReporterError
from npmscript.host import LocalManifestStore, ManifestStore
from npmscript.manifest import MANIFEST_NAME
from npmscript.ranges import SourceRangeMap, Span, extract_ranges
from npmscript.reporter import InstalledModuleReport, ModuleReporter, NpmListReporter

logger = structlog.get_logger()

DIAGNOSTIC_SOURCE = "npm"
WARNING = "warning"

# Lock files of other package managers; npm ls reports nonsense next to them.
FOREIGN_LOCK_FILES = ("yarn.lock", "pnpm-lock.yaml")

_ATTRIBUTE_PROPERTIES = ("dependencies", "devDependencies", "name")


@dataclass(frozen=True)
class Diagnostic:
    """A warning attached to a span of package.json.

    Attributes:
        span: Where the warning is shown.
        message: Warning text.
        severity: Always "warning".
        source: Tag identifying the producer.
    """

    span: Span
    message: str
    severity: str = WARNING
    source: str = DIAGNOSTIC_SOURCE


def attribute_span(ranges: SourceRangeMap) -> Span:
    """Span used for findings that have no entry of their own."""
    for name in _ATTRIBUTE_PROPERTIES:
        span = ranges.properties.get(name)
        if span is not None:
            return span
    return Span(0, 1)


def compute_diagnostics(
    report: InstalledModuleReport,
    ranges: SourceRangeMap,
) -> list[Diagnostic]:
    """Classify every reported dependency.

    Checks are exclusive and ordered missing, invalid, extraneous, so each
    dependency yields at most one diagnostic. Nothing is produced when the
    report is flagged invalid or lists no actionable problem.

    Args:
        report: The installed-module report.
        ranges: Spans extracted from the manifest text.

    Returns:
        Diagnostics in report order.
    """
    if report.invalid or not report.has_problems():
        return []

    diagnostics: list[Diagnostic] = []
    for name, status in report.dependencies.items():
        entry = ranges.dependencies.get(name)
        if entry is None:
            logger.debug("dependency_not_in_manifest", dependency=name)
            continue

        if status.missing:
            diagnostics.append(
                Diagnostic(entry.name, f"Module '{name}' is not installed")
            )
        elif status.invalid:
            if status.version:
                message = f"Module '{name}' the installed version '{status.version}' is invalid"
            else:
                message = f"Module '{name}' the installed version is invalid or has errors"
            diagnostics.append(Diagnostic(entry.version, message))
        elif status.extraneous:
            diagnostics.append(
                Diagnostic(attribute_span(ranges), f"Module '{name}' is extraneous")
            )

    return diagnostics


class DiagnosticCollection:
    """Diagnostics currently published, per document."""

    def __init__(self) -> None:
        self._diagnostics: dict[Path, list[Diagnostic]] = {}

    def set(self, document: Path, diagnostics: list[Diagnostic]) -> None:
        """Replace all diagnostics of ``document``."""
        self._diagnostics.pop(document, None)
        if diagnostics:
            self._diagnostics[document] = list(diagnostics)

    def get(self, document: Path) -> list[Diagnostic]:
        return list(self._diagnostics.get(document, []))

    def delete(self, document: Path) -> None:
        self._diagnostics.pop(document, None)

    def clear(self) -> None:
        self._diagnostics.clear()


def uses_foreign_lock_file(document: Path) -> bool:
    return any((document.parent / name).exists() for name in FOREIGN_LOCK_FILES)


class DependencyValidator:
    """Validates open package.json documents against installed modules.

    Requests are debounced per document: each request (re)starts a quiet
    window, and a request arriving while a pass is running is held in the
    document's pending slot and served once that pass ends. The manifest
    text is read when the pass starts; results are dropped if the document
    was closed meanwhile.

    Attributes:
        collection: Published diagnostics.

    Example:
        validator = DependencyValidator(settings_for=settings.for_document)
        validator.open_document(Path("package.json"))
        validator.request_validation(Path("package.json"))
    """

    def __init__(
        self,
        settings_for: Callable[[Path], NpmSettings],
        reporter: ModuleReporter | None = None,
        store: ManifestStore | None = None,
        collection: DiagnosticCollection | None = None,
    ) -> None:
        self.collection = collection if collection is not None else DiagnosticCollection()
        self._settings_for = settings_for
        self._reporter = reporter
        self._store = store if store is not None else LocalManifestStore()
        self._open: dict[Path, str | None] = {}
        self._pending: set[Path] = set()
        self._running: set[Path] = set()
        self._timers: dict[Path, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def open_document(self, document: Path, text: str | None = None) -> None:
        """Mark ``document`` as relevant; ``text`` overrides the file content."""
        self._open[document] = text

    def close_document(self, document: Path) -> None:
        """Forget ``document``, cancel its pending pass and clear its diagnostics."""
        self._open.pop(document, None)
        self._pending.discard(document)
        timer = self._timers.pop(document, None)
        if timer is not None:
            timer.cancel()
        self.collection.delete(document)

    def is_relevant(self, document: Path) -> bool:
        return document in self._open

    def should_validate(self, document: Path) -> bool:
        """Return True if validation applies to ``document`` at all."""
        if document.name != MANIFEST_NAME:
            return False
        if not self._settings_for(document).validate_enabled:
            return False
        if uses_foreign_lock_file(document):
            logger.debug("validation_skipped_foreign_lock_file", document=str(document))
            return False
        return True

    def _read_text(self, document: Path) -> str:
        text = self._open.get(document)
        if text is not None:
            return text
        return self._store.read_text(document)

    def _reporter_for(self, document: Path) -> ModuleReporter:
        if self._reporter is not None:
            return self._reporter
        return NpmListReporter(self._settings_for(document).bin)

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    async def validate(self, document: Path) -> list[Diagnostic] | None:
        """Run one validation pass and publish its result.

        Returns:
            The published diagnostics, or None when the pass was abandoned
            (unreadable manifest, reporter failure, or stale document).
        """
        try:
            text = self._read_text(document)
        except OSError as e:
            logger.warning("validation_manifest_unreadable", document=str(document), error=str(e))
            return None

        try:
            report = await self._reporter_for(document).report(document.parent)
        except ReporterError as e:
            logger.warning("validation_abandoned", document=str(document), error=e.message)
            return None

        if not self.is_relevant(document):
            logger.debug("validation_stale", document=str(document))
            return None

        diagnostics = compute_diagnostics(report, extract_ranges(text))
        self.collection.set(document, diagnostics)
        logger.info("validation_published", document=str(document), count=len(diagnostics))
        return diagnostics

    def request_validation(self, document: Path) -> None:
        """Schedule a debounced validation pass for an open document."""
        if not self.is_relevant(document) or not self.should_validate(document):
            return
        self._pending.add(document)
        if document not in self._running:
            self._arm(document)

    def _arm(self, document: Path) -> None:
        timer = self._timers.pop(document, None)
        if timer is not None:
            timer.cancel()
        delay = self._settings_for(document).validation_delay
        loop = asyncio.get_running_loop()
        self._timers[document] = loop.call_later(delay, self._fire, document)

    def _fire(self, document: Path) -> None:
        self._timers.pop(document, None)
        if document in self._running or document not in self._pending:
            return
        self._pending.discard(document)
        task = asyncio.get_running_loop().create_task(self._run(document))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, document: Path) -> None:
        self._running.add(document)
        try:
            await self.validate(document)
        finally:
            self._running.discard(document)
            if document in self._pending and self.is_relevant(document):
                self._arm(document)

    async def drain(self) -> None:
        """Wait until no pass is scheduled or running."""
        while self._timers or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0.01)

    async def shutdown(self) -> None:
        """Cancel pending and running passes."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()
        for task in list(self._tasks):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
