"""SBOM pipeline engine: group manifests, package, cache and scan them."""

from sbomsentinel.engines.sbom_pipeline.cache import ScanCache
from sbomsentinel.engines.sbom_pipeline.client import SbomScanClient
from sbomsentinel.engines.sbom_pipeline.manifests import (
    MavenStructureProvider,
    discover_manifests,
)
from sbomsentinel.engines.sbom_pipeline.models import (
    AnalysisUnit,
    Finding,
    ManifestDescriptor,
    PipelineEvent,
    PipelineState,
    UnitReport,
)
from sbomsentinel.engines.sbom_pipeline.packager import ArchivePackager, PackedUnit
from sbomsentinel.engines.sbom_pipeline.runner import PipelineRunner
from sbomsentinel.engines.sbom_pipeline.units import UnitBuilder

__all__ = [
    "AnalysisUnit",
    "ArchivePackager",
    "Finding",
    "ManifestDescriptor",
    "MavenStructureProvider",
    "PackedUnit",
    "PipelineEvent",
    "PipelineRunner",
    "PipelineState",
    "SbomScanClient",
    "ScanCache",
    "UnitBuilder",
    "UnitReport",
    "discover_manifests",
]
