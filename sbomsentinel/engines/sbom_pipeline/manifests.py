"""Manifest discovery and the Maven structure provider."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from sbomsentinel.engines.sbom_pipeline.models import ManifestDescriptor, PackagingKind
from sbomsentinel.exceptions import EnumerationError

log = structlog.get_logger("sbomsentinel.engine")

_NS = "{http://maven.apache.org/POM/4.0.0}"

# Build output, VCS and IDE directories never hold project manifests.
_EXCLUDED_SEGMENTS = frozenset(
    {
        "node_modules",
        "target",
        "build",
        "dist",
        "out",
        ".git",
        ".idea",
        ".vscode",
        ".history",
        ".cache",
        ".m2",
        ".mvn",
        ".gradle",
        ".settings",
        ".metadata",
    }
)


@runtime_checkable
class ManifestStructureProvider(Protocol):
    """Interface that every manifest structure provider must satisfy."""

    manifest_filename: str

    def read(self, path: Path) -> ManifestDescriptor: ...


def _text(element: ET.Element | None) -> str | None:
    if element is None:
        return None
    return element.text.strip() if element.text else None


class MavenStructureProvider:
    """Read packaging and ``<modules>`` from a ``pom.xml``."""

    manifest_filename = "pom.xml"

    def read(self, path: Path) -> ManifestDescriptor:
        content = path.read_text(encoding="utf-8", errors="replace")
        return self.parse(path, content)

    def parse(self, path: Path, content: str) -> ManifestDescriptor:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as exc:
            log.warning("manifest.parse_failed", path=str(path), error=str(exc))
            return ManifestDescriptor(path=path)

        packaging = "jar"
        modules: list[str] = []

        # Try both namespaced and non-namespaced
        for ns in (_NS, ""):
            value = _text(root.find(f"{ns}packaging"))
            if value:
                packaging = value
            modules_el = root.find(f"{ns}modules")
            if modules_el is None:
                continue
            for module_el in modules_el.findall(f"{ns}module"):
                ref = _text(module_el)
                if ref:
                    modules.append(ref)

        kind = PackagingKind.AGGREGATOR if packaging == "pom" else PackagingKind.ORDINARY
        return ManifestDescriptor(
            path=path,
            packaging_kind=kind,
            module_refs=tuple(modules),
            packaging=packaging,
        )


def is_project_manifest(project_root: Path, manifest: Path) -> bool:
    """Return False for manifests under build output, VCS or IDE directories."""
    try:
        relative = manifest.resolve().relative_to(project_root.resolve())
    except ValueError:
        return False

    segments = [part.lower() for part in relative.parts]
    if not segments:
        return False
    if any(segment in _EXCLUDED_SEGMENTS for segment in segments):
        return False
    # Copies of the POM packaged inside jars: META-INF/maven/<g>/<a>/pom.xml
    if "meta-inf" in segments and "maven" in segments:
        return False
    return True


def discover_manifests(project_root: Path, manifest_filename: str = "pom.xml") -> list[Path]:
    """Walk *project_root* and return every project manifest, sorted.

    Raises :class:`EnumerationError` when the root is not a directory.
    """
    if not project_root.is_dir():
        raise EnumerationError(f"project root {project_root} is not a directory")

    root = project_root.resolve()
    return [
        hit
        for hit in sorted(root.glob(f"**/{manifest_filename}"))
        if hit.is_file() and is_project_manifest(root, hit)
    ]
