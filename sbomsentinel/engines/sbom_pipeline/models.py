"""Data models for the SBOM pipeline engine."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

UnitStatus = Literal["created", "running", "success", "failed"]
EventType = Literal[
    "run_initialized",
    "unit_updated",
    "run_completed",
    "run_failed",
    "run_cancelled",
]


class PackagingKind(str, enum.Enum):
    ORDINARY = "ordinary"
    AGGREGATOR = "aggregator"


@dataclass(frozen=True)
class ManifestDescriptor:
    """Structure of a single manifest file, rebuilt on every run."""

    path: Path
    packaging_kind: PackagingKind = PackagingKind.ORDINARY
    module_refs: tuple[str, ...] = ()
    packaging: str = "jar"


@dataclass(frozen=True)
class AnalysisUnit:
    """The scope submitted to the remote scanner in one request.

    Either a standalone manifest or an aggregator plus every manifest it
    transitively owns. ``members[0]`` is always ``root``.
    """

    root: Path
    members: tuple[Path, ...]
    display_label: str
    is_aggregate: bool = False

    @property
    def cache_key(self) -> str:
        return f"{self.root}#multi" if self.is_aggregate else str(self.root)


class Finding(BaseModel):
    """A single issue in a scan report.

    Field aliases follow the backend's JSON; unknown keys are kept so that a
    cached report carries the full body.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = Field(default=None, alias="ID")
    severity: int | None = Field(default=None, alias="Severity")
    message: str | None = Field(default=None, alias="Message")
    ecosystem: str | None = Field(default=None, alias="Ecosystem")
    affected_file_path: str | None = Field(default=None, alias="AffectedFilePath")
    cves: list[str] = Field(default_factory=list, alias="CVEs")
    cwes: list[str] = Field(default_factory=list, alias="CWEs")


@dataclass
class SeverityStats:
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    unknown: int = 0


@dataclass
class UnitReport:
    """Per-unit progress record, mutated only by the pipeline runner."""

    dep_file: str
    file_hash: str = ""
    issue_stats: SeverityStats = field(default_factory=SeverityStats)
    total_issues: int = 0
    status: UnitStatus = "created"
    error: str | None = None
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineState:
    """State of the (single) active pipeline run."""

    is_running: bool = False
    reports: list[UnitReport] = field(default_factory=list)

    def snapshot(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.reports]


@dataclass
class PipelineEvent:
    """Notification delivered to pipeline observers."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
