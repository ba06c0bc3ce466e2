"""Analysis unit builder: turn a flat manifest set into scan units."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

import structlog

from sbomsentinel.engines.sbom_pipeline.manifests import ManifestStructureProvider
from sbomsentinel.engines.sbom_pipeline.models import (
    AnalysisUnit,
    ManifestDescriptor,
    PackagingKind,
)

log = structlog.get_logger("sbomsentinel.engine")


def display_label(path: Path, project_root: Path | None) -> str:
    """Path of *path* relative to *project_root*, POSIX separators."""
    if project_root is None:
        return path.as_posix()
    try:
        return path.relative_to(project_root).as_posix()
    except ValueError:
        return Path(os.path.relpath(path, project_root)).as_posix()


class UnitBuilder:
    """Group manifests into non-overlapping analysis units.

    An aggregator root (aggregator packaging, declared modules, no parent)
    absorbs every manifest it transitively owns; everything else becomes a
    standalone unit. The union of all units' members is always the input set.
    """

    def __init__(self, provider: ManifestStructureProvider, project_root: Path | None = None) -> None:
        self._provider = provider
        self._project_root = project_root

    def build(self, manifest_paths: Iterable[Path]) -> list[AnalysisUnit]:
        # Input order drives output order; duplicates collapse.
        ordered = list(dict.fromkeys(Path(os.path.normpath(p)) for p in manifest_paths))
        if not ordered:
            return []

        descriptors = {path: self._provider.read(path) for path in ordered}
        children = {path: self._resolve_modules(desc, descriptors) for path, desc in descriptors.items()}

        child_to_parent: dict[Path, Path] = {}
        for parent, kids in children.items():
            for child in kids:
                child_to_parent.setdefault(child, parent)

        claimed: dict[Path, Path] = {}  # manifest -> root of the unit that owns it
        trees: dict[Path, list[Path]] = {}
        for path in ordered:
            desc = descriptors[path]
            is_root = (
                desc.packaging_kind is PackagingKind.AGGREGATOR
                and bool(desc.module_refs)
                and path not in child_to_parent
            )
            if not is_root:
                continue
            members = self._collect_tree(path, children, claimed)
            for member in members:
                claimed[member] = path
            trees[path] = members

        units: list[AnalysisUnit] = []
        for path in ordered:
            if path in trees:
                members = trees[path]
                units.append(
                    AnalysisUnit(
                        root=path,
                        members=(path, *sorted(m for m in members if m != path)),
                        display_label=display_label(path, self._project_root),
                        is_aggregate=True,
                    )
                )
            elif path not in claimed:
                if path in child_to_parent:
                    log.debug(
                        "units.orphan_module",
                        path=str(path),
                        parent=str(child_to_parent[path]),
                    )
                units.append(
                    AnalysisUnit(
                        root=path,
                        members=(path,),
                        display_label=display_label(path, self._project_root),
                    )
                )

        log.info(
            "units.built",
            manifests=len(ordered),
            units=len(units),
            aggregates=sum(1 for u in units if u.is_aggregate),
        )
        return units

    def _resolve_modules(
        self,
        desc: ManifestDescriptor,
        known: dict[Path, ManifestDescriptor],
    ) -> list[Path]:
        """Map module refs to known manifest paths; unknown refs are dropped."""
        resolved: list[Path] = []
        base = desc.path.parent
        for ref in desc.module_refs:
            candidate = Path(
                os.path.normpath(base / ref / self._provider.manifest_filename)
            )
            if candidate in known:
                resolved.append(candidate)
            else:
                log.debug("units.unresolved_module", manifest=str(desc.path), module=ref)
        return resolved

    @staticmethod
    def _collect_tree(
        root: Path,
        children: dict[Path, list[Path]],
        claimed: dict[Path, Path],
    ) -> list[Path]:
        """Depth-first walk with an explicit stack; cycles are visited once."""
        stack = [root]
        collected: list[Path] = []
        visited: set[Path] = set()

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            if current in claimed:
                # Already owned by an earlier aggregator root.
                continue
            collected.append(current)
            stack.extend(children.get(current, ()))

        return collected
