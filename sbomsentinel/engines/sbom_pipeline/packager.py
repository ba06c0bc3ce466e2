"""Archive packager: deterministic ZIP + content hash for an analysis unit."""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import tempfile
import zipfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import structlog

from sbomsentinel.engines.sbom_pipeline.models import AnalysisUnit
from sbomsentinel.exceptions import PackagingError

log = structlog.get_logger("sbomsentinel.engine")

ARCHIVE_NAME = "multi-module.zip"

# Fixed entry metadata so archive bytes do not depend on the host clock or umask.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_ZIP_FILE_MODE = 0o100644 << 16
_ZIP_COMPRESSLEVEL = 6


@dataclass(frozen=True)
class PackedUnit:
    """What gets uploaded for a unit, plus its cache coordinates."""

    path: Path
    content_hash: str
    cache_key: str
    is_archive: bool


def _md5():
    # Change detection only, not a security boundary.
    return hashlib.md5(usedforsecurity=False)


def hash_file(path: Path) -> str:
    """Hex MD5 of a single file's bytes."""
    digest = _md5()
    digest.update(path.read_bytes())
    return digest.hexdigest()


def archive_entries(members: tuple[Path, ...] | list[Path], base: Path) -> list[tuple[str, Path]]:
    """Return ``(relative_posix_path, path)`` pairs sorted by relative path."""
    base = base.resolve()
    entries = [(Path(os.path.relpath(m.resolve(), base)).as_posix(), m) for m in members]
    entries.sort(key=lambda item: item[0])
    return entries


def write_archive(entries: list[tuple[str, Path]], archive_path: Path) -> str:
    """Write *entries* into a ZIP at *archive_path* and return the hex digest.

    Each entry's bytes are read once and fed to both the digest (relative
    path first, then content) and the archive.
    """
    digest = _md5()
    with zipfile.ZipFile(archive_path, "w") as zf:
        for relative, path in entries:
            content = path.read_bytes()
            digest.update(relative.encode("utf-8"))
            digest.update(content)

            info = zipfile.ZipInfo(relative, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = _ZIP_FILE_MODE
            info.create_system = 3  # unix, regardless of host
            zf.writestr(info, content, compresslevel=_ZIP_COMPRESSLEVEL)
    return digest.hexdigest()


class ArchivePackager:
    """Package analysis units for upload.

    Standalone units are uploaded as-is and hashed directly. Aggregate units
    are zipped into a scratch directory which is removed when the
    :meth:`pack` context exits, whatever the outcome.
    """

    def __init__(self, project_root: Path | None = None) -> None:
        self._project_root = project_root.resolve() if project_root is not None else None

    @asynccontextmanager
    async def pack(self, unit: AnalysisUnit) -> AsyncIterator[PackedUnit]:
        if not unit.is_aggregate:
            try:
                content_hash = await asyncio.to_thread(hash_file, unit.root)
            except OSError as exc:
                raise PackagingError(unit.display_label, str(exc)) from exc
            yield PackedUnit(
                path=unit.root,
                content_hash=content_hash,
                cache_key=unit.cache_key,
                is_archive=False,
            )
            return

        scratch = Path(tempfile.mkdtemp(prefix="sbomsentinel-"))
        try:
            packed = await asyncio.to_thread(self._pack_aggregate, unit, scratch)
            yield packed
        finally:
            await asyncio.to_thread(shutil.rmtree, scratch, True)
            log.debug("packager.cleaned", unit=unit.display_label, scratch=str(scratch))

    def _base_dir(self, unit: AnalysisUnit) -> Path:
        if self._project_root is not None:
            return self._project_root
        return Path(os.path.commonpath([m.parent for m in unit.members]))

    def _pack_aggregate(self, unit: AnalysisUnit, scratch: Path) -> PackedUnit:
        entries = archive_entries(unit.members, self._base_dir(unit))
        archive_path = scratch / ARCHIVE_NAME
        try:
            content_hash = write_archive(entries, archive_path)
        except (OSError, zipfile.BadZipFile) as exc:
            raise PackagingError(unit.display_label, str(exc)) from exc

        log.debug(
            "packager.archived",
            unit=unit.display_label,
            entries=len(entries),
            content_hash=content_hash,
        )
        return PackedUnit(
            path=archive_path,
            content_hash=content_hash,
            cache_key=unit.cache_key,
            is_archive=True,
        )
