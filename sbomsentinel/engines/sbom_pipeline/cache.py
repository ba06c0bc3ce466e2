"""Content-addressed, time-bounded cache of scan reports.

Entries live in a flat directory as files named ``{content_hash}-{unix_ms}``
holding the canonically ordered report as JSON. Only the latest entry per
hash survives a :meth:`ScanCache.put`; stale entries are evicted lazily on
:meth:`ScanCache.get`.

There is no cross-process locking. Writers go through a temp file and
``os.replace`` so readers never see a half-written entry; concurrent writers
for the same hash resolve as last-write-wins.
"""

from __future__ import annotations

import asyncio
import json
import os
import time
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from sbomsentinel.engines.sbom_pipeline.models import Finding
from sbomsentinel.engines.sbom_pipeline.severity import canonical_order
from sbomsentinel.exceptions import CacheError

log = structlog.get_logger("sbomsentinel.engine")

DEFAULT_TTL = timedelta(hours=24)

_REPORT_ADAPTER = TypeAdapter(list[Finding])


def entry_timestamp(name: str, content_hash: str) -> int | None:
    """Return the embedded millisecond timestamp, or None if malformed."""
    suffix = name[len(content_hash) + 1 :]
    return int(suffix) if suffix.isascii() and suffix.isdecimal() else None


class ScanCache:
    """Scan report cache keyed by content hash."""

    def __init__(
        self,
        cache_dir: Path,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = cache_dir
        self.ttl = ttl
        self._clock = clock

    # ── public (async) ──────────────────────────────────────────────────

    async def get(self, unit_key: str, content_hash: str) -> list[Finding] | None:
        """Return the cached report for *content_hash*, or None on a miss."""
        return await asyncio.to_thread(self.get_sync, unit_key, content_hash)

    async def put(self, unit_key: str, content_hash: str, findings: list[Finding]) -> bool:
        """Store *findings* as the only entry for *content_hash*."""
        return await asyncio.to_thread(self.put_sync, unit_key, content_hash, findings)

    async def latest(self, content_hash: str) -> list[Finding] | None:
        """Return the newest report for *content_hash* regardless of age."""
        return await asyncio.to_thread(self.latest_sync, content_hash)

    # ── public (blocking) ───────────────────────────────────────────────

    def get_sync(self, unit_key: str, content_hash: str) -> list[Finding] | None:
        try:
            self._ensure_dir()
            newest = self._newest_entry(content_hash)
        except OSError as exc:
            log.warning("cache.read_failed", unit=unit_key, error=str(exc))
            return None
        if newest is None:
            return None

        path, timestamp = newest
        age_ms = self._now_ms() - timestamp
        if age_ms >= self.ttl.total_seconds() * 1000:
            log.info("cache.expired", unit=unit_key, entry=path.name)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("cache.evict_failed", entry=path.name, error=str(exc))
            return None

        try:
            findings = self._load(path)
        except (OSError, CacheError) as exc:
            # Left in place; the next put for this hash replaces it.
            log.warning("cache.corrupt_entry", unit=unit_key, entry=path.name, error=str(exc))
            return None

        log.debug("cache.hit", unit=unit_key, entry=path.name, findings=len(findings))
        return findings

    def put_sync(self, unit_key: str, content_hash: str, findings: list[Finding]) -> bool:
        try:
            self._ensure_dir()
            for old in self._matching(content_hash):
                old.unlink(missing_ok=True)

            name = f"{content_hash}-{self._now_ms()}"
            body = json.dumps(
                [f.model_dump(mode="json", by_alias=True) for f in canonical_order(findings)]
            )
            tmp = self.cache_dir / f".{name}.tmp"
            tmp.write_text(body, encoding="utf-8")
            os.replace(tmp, self.cache_dir / name)
        except OSError as exc:
            log.warning("cache.write_failed", unit=unit_key, error=str(exc))
            return False

        log.debug("cache.stored", unit=unit_key, entry=name, findings=len(findings))
        return True

    def latest_sync(self, content_hash: str) -> list[Finding] | None:
        if not self.cache_dir.is_dir():
            return None
        newest = self._newest_entry(content_hash)
        if newest is None:
            return None
        try:
            return self._load(newest[0])
        except (OSError, CacheError) as exc:
            log.warning("cache.corrupt_entry", entry=newest[0].name, error=str(exc))
            return None

    # ── internal ────────────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _matching(self, content_hash: str) -> list[Path]:
        prefix = f"{content_hash}-"
        return [p for p in self.cache_dir.iterdir() if p.is_file() and p.name.startswith(prefix)]

    def _newest_entry(self, content_hash: str) -> tuple[Path, int] | None:
        """Pick the entry with the greatest embedded timestamp."""
        newest: tuple[Path, int] | None = None
        for path in self._matching(content_hash):
            timestamp = entry_timestamp(path.name, content_hash)
            if timestamp is None:
                log.warning("cache.malformed_name", entry=path.name)
                continue
            if newest is None or timestamp > newest[1]:
                newest = (path, timestamp)
        return newest

    @staticmethod
    def _load(path: Path) -> list[Finding]:
        raw = path.read_bytes()
        try:
            return _REPORT_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            raise CacheError(f"invalid cache entry {path.name}: {exc.error_count()} errors") from exc
