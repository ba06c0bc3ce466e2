"""Async client for the remote SBOM scanning service, with retries."""

from __future__ import annotations

import asyncio
import io
import zipfile
from pathlib import Path
from typing import Protocol

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from sbomsentinel.engines.sbom_pipeline.models import Finding
from sbomsentinel.exceptions import RemoteScanError

log = structlog.get_logger("sbomsentinel.engine")

MANIFEST_ENDPOINT = "/oxpecker/api/v1/sca/static-analyze/mvn"
ARCHIVE_ENDPOINT = "/oxpecker/api/v1/sca/static-analyze/mvn/zip"

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds

_REPORT_ADAPTER = TypeAdapter(list[Finding])


class RemoteScanner(Protocol):
    """Upload-and-report capability used by the pipeline runner."""

    async def scan(self, path: Path, *, archive: bool) -> list[Finding]: ...


def parse_report_archive(payload: bytes) -> list[Finding]:
    """Extract the JSON report from the ZIP returned by the service."""
    try:
        with zipfile.ZipFile(io.BytesIO(payload)) as zf:
            report_name = next(
                (
                    info.filename
                    for info in zf.infolist()
                    if not info.is_dir() and info.filename.lower().endswith(".json")
                ),
                None,
            )
            if report_name is None:
                raise RemoteScanError("scan response archive does not contain a JSON report")
            raw = zf.read(report_name)
    except zipfile.BadZipFile as exc:
        raise RemoteScanError(f"scan response is not a ZIP archive: {exc}") from exc

    try:
        return _REPORT_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise RemoteScanError(f"scan report is malformed: {exc.error_count()} errors") from exc


class SbomScanClient:
    """Thin async wrapper around the SBOM static-analysis endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        headers: dict[str, str] = {"Accept": "application/zip, application/octet-stream"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> SbomScanClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def scan(self, path: Path, *, archive: bool) -> list[Finding]:
        """Upload a manifest (or a ZIP of manifests) and return its findings.

        Transport errors and non-2xx responses surface as ``httpx`` exceptions;
        an unusable response body raises :class:`RemoteScanError`.
        """
        content = await asyncio.to_thread(path.read_bytes)
        endpoint = ARCHIVE_ENDPOINT if archive else MANIFEST_ENDPOINT
        content_type = "application/zip" if archive else "application/xml"

        response = await self._post_with_retry(endpoint, path.name, content, content_type)
        findings = parse_report_archive(response.content)
        log.info("scanner.report", endpoint=endpoint, file=path.name, findings=len(findings))
        return findings

    # ── internal ───────────────────────────────────────────────────────────

    async def _post_with_retry(
        self,
        endpoint: str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> httpx.Response:
        """POST with exponential backoff on 5xx and timeout errors."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.post(
                    endpoint,
                    files={"file": (filename, content, content_type)},
                )

                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                # 5xx, retry
                log.warning(
                    "scanner.server_error",
                    endpoint=endpoint,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "scanner.timeout",
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]
