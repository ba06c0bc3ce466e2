"""PipelineRunner: sequential scan pipeline over a project's analysis units."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from sbomsentinel.engines.sbom_pipeline.cache import ScanCache
from sbomsentinel.engines.sbom_pipeline.client import RemoteScanner
from sbomsentinel.engines.sbom_pipeline.manifests import (
    ManifestStructureProvider,
    discover_manifests,
)
from sbomsentinel.engines.sbom_pipeline.models import (
    AnalysisUnit,
    EventType,
    Finding,
    PipelineEvent,
    PipelineState,
    UnitReport,
)
from sbomsentinel.engines.sbom_pipeline.packager import ArchivePackager
from sbomsentinel.engines.sbom_pipeline.severity import canonical_order, summarize
from sbomsentinel.engines.sbom_pipeline.units import UnitBuilder
from sbomsentinel.exceptions import PipelineCancelled

log = structlog.get_logger("sbomsentinel.engine")

Observer = Callable[[PipelineEvent], None]


class PipelineRunner:
    """Drive discovery, packaging, cache lookup and remote scan for every unit.

    Units are processed one at a time, in builder order. This bounds load
    on the scanning backend and lets observers consume one unit's result at
    a time. A failing unit is reported as ``failed`` and the run moves on;
    only an enumeration failure ends the run early.

    Only one run is active per runner. Calling :meth:`run` while a run is in
    flight re-announces the in-flight state and returns it.
    """

    def __init__(
        self,
        project_root: Path,
        provider: ManifestStructureProvider,
        packager: ArchivePackager,
        cache: ScanCache,
        scanner: RemoteScanner,
        state: PipelineState | None = None,
    ) -> None:
        self.project_root = project_root
        self._provider = provider
        self._packager = packager
        self._cache = cache
        self._scanner = scanner
        self.state = state if state is not None else PipelineState()
        self.observers: list[Observer] = []
        self._cancel = asyncio.Event()

    # ── public ─────────────────────────────────────────────────────────────

    def subscribe(self, observer: Observer) -> None:
        self.observers.append(observer)

    def cancel(self) -> None:
        """Ask the active run to stop at its next suspension point."""
        if self.state.is_running:
            log.info("pipeline.cancel_requested")
            self._cancel.set()

    async def run(self, force_refresh: bool = False) -> PipelineState:
        if self.state.is_running:
            log.info("pipeline.already_running")
            self._emit("run_initialized", reports=self.state.snapshot(), is_analyzing=True)
            return self.state

        self.state.is_running = True
        self.state.reports = []
        self._cancel.clear()
        try:
            try:
                units = await self._enumerate()
            except Exception as exc:
                log.error("pipeline.enumeration_failed", root=str(self.project_root), error=str(exc))
                self._emit("run_failed", error=str(exc))
                return self.state

            if not units:
                self._emit("run_completed", reports=[])
                return self.state

            self.state.reports = [UnitReport(dep_file=unit.display_label) for unit in units]
            self._emit("run_initialized", reports=self.state.snapshot(), is_analyzing=True)

            for unit, report in zip(units, self.state.reports):
                if self._cancel.is_set():
                    break
                await self._process(unit, report, force_refresh)

            if self._cancel.is_set():
                log.info("pipeline.cancelled")
                self._emit("run_cancelled", reports=self.state.snapshot())
            else:
                log.info(
                    "pipeline.completed",
                    units=len(units),
                    failed=sum(1 for r in self.state.reports if r.status == "failed"),
                )
                self._emit("run_completed", reports=self.state.snapshot())
            return self.state
        finally:
            self.state.is_running = False

    # ── internal ───────────────────────────────────────────────────────────

    async def _enumerate(self) -> list[AnalysisUnit]:
        manifests = await asyncio.to_thread(
            discover_manifests, self.project_root, self._provider.manifest_filename
        )
        log.info("pipeline.manifests_found", root=str(self.project_root), count=len(manifests))
        if not manifests:
            return []
        builder = UnitBuilder(self._provider, self.project_root.resolve())
        return await asyncio.to_thread(builder.build, manifests)

    async def _process(self, unit: AnalysisUnit, report: UnitReport, force_refresh: bool) -> None:
        report.status = "running"
        self._emit("unit_updated", report={"dep_file": report.dep_file, "status": "running"})

        try:
            findings, cached = await self._analyze(unit, report, force_refresh)
        except asyncio.CancelledError:
            self._fail(report, "cancelled")
            raise
        except Exception as exc:
            log.error("pipeline.unit_failed", unit=report.dep_file, error=str(exc))
            self._fail(report, str(exc) or type(exc).__name__)
            return

        report.issue_stats = summarize(findings)
        report.total_issues = len(findings)
        report.cached = cached
        report.status = "success"
        self._emit("unit_updated", report=report.to_dict())

    async def _analyze(
        self,
        unit: AnalysisUnit,
        report: UnitReport,
        force_refresh: bool,
    ) -> tuple[list[Finding], bool]:
        async with self._packager.pack(unit) as packed:
            report.file_hash = packed.content_hash
            self._checkpoint()

            findings: list[Finding] | None = None
            if force_refresh:
                log.info("pipeline.cache_bypassed", unit=report.dep_file)
            else:
                findings = await self._cache.get(packed.cache_key, packed.content_hash)
                self._checkpoint()

            if findings is not None:
                log.info("pipeline.cache_hit", unit=report.dep_file, content_hash=packed.content_hash)
                return canonical_order(findings), True

            log.info("pipeline.scanning", unit=report.dep_file, archive=packed.is_archive)
            findings = canonical_order(
                await self._scanner.scan(packed.path, archive=packed.is_archive)
            )
            # A finished report is stored even if the run was cancelled meanwhile.
            await self._cache.put(packed.cache_key, packed.content_hash, findings)
            self._checkpoint()
            return findings, False

    def _checkpoint(self) -> None:
        if self._cancel.is_set():
            raise PipelineCancelled()

    def _fail(self, report: UnitReport, error: str) -> None:
        report.status = "failed"
        report.error = error
        self._emit(
            "unit_updated",
            report={"dep_file": report.dep_file, "status": "failed", "error": error},
        )

    def _emit(self, event_type: EventType, **data: Any) -> None:
        event = PipelineEvent(type=event_type, data=data)
        for observer in self.observers:
            try:
                observer(event)
            except Exception:
                log.debug("pipeline.observer_error", event_type=event_type, exc_info=True)
