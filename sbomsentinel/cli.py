"""CLI entry point: sbomsentinel.

Subcommands:
    sbomsentinel scan /path/to/project     # Scan every Maven unit in a project
    sbomsentinel show <content-hash>       # Print a cached report
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys
from pathlib import Path

import click

from sbomsentinel.core.config import Settings
from sbomsentinel.core.logging import setup_logging
from sbomsentinel.engines.sbom_pipeline.cache import ScanCache
from sbomsentinel.engines.sbom_pipeline.client import SbomScanClient
from sbomsentinel.engines.sbom_pipeline.manifests import MavenStructureProvider
from sbomsentinel.engines.sbom_pipeline.models import PipelineEvent, PipelineState, UnitReport
from sbomsentinel.engines.sbom_pipeline.packager import ArchivePackager
from sbomsentinel.engines.sbom_pipeline.runner import PipelineRunner

_TABLE_HEADERS = ["Status", "Crit", "High", "Med", "Low", "Unk", "Total", "Hash", "Manifest"]


def _format_table(reports: list[UnitReport]) -> str:
    rows = [
        [
            r.status,
            r.issue_stats.critical,
            r.issue_stats.high,
            r.issue_stats.medium,
            r.issue_stats.low,
            r.issue_stats.unknown,
            r.total_issues,
            r.file_hash[:12],
            r.dep_file,
        ]
        for r in reports
    ]
    widths = [len(h) for h in _TABLE_HEADERS]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    def fmt_row(values: list) -> str:
        return "  ".join(str(v).ljust(widths[i]) for i, v in enumerate(values)).rstrip()

    lines = [fmt_row(_TABLE_HEADERS), fmt_row(["-" * w for w in widths])]
    lines.extend(fmt_row(row) for row in rows)
    return "\n".join(lines)


async def _run_scan(
    project_dir: Path,
    settings: Settings,
    force_refresh: bool,
    quiet: bool,
) -> tuple[PipelineState, str | None]:
    """Run one pipeline pass; returns the final state and any run-level error."""
    run_error: str | None = None

    def _observer(event: PipelineEvent) -> None:
        nonlocal run_error
        if event.type == "run_failed":
            run_error = event.data.get("error")
        elif event.type == "unit_updated" and not quiet:
            report = event.data["report"]
            if report["status"] in ("success", "failed"):
                click.echo(f"[{report['status']}] {report['dep_file']}", err=True)

    cache = ScanCache(settings.cache_dir, ttl=settings.cache_ttl)
    async with SbomScanClient(
        settings.api_base_url,
        token=settings.auth_token,
        timeout=settings.scan_timeout,
    ) as client:
        runner = PipelineRunner(
            project_root=project_dir,
            provider=MavenStructureProvider(),
            packager=ArchivePackager(project_dir),
            cache=cache,
            scanner=client,
        )
        runner.subscribe(_observer)
        state = await runner.run(force_refresh=force_refresh)
    return state, run_error


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """SBOM Sentinel: scan multi-module Maven projects for vulnerable dependencies."""
    setup_logging("DEBUG" if verbose else None)


@main.command("scan")
@click.argument(
    "project_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--force-refresh", is_flag=True, help="Ignore cached reports and rescan")
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Scan cache directory",
)
@click.option("--api-url", default=None, help="Scanning service base URL")
@click.option("--json", "as_json", is_flag=True, help="Print the final state as JSON")
def scan(
    project_dir: Path,
    force_refresh: bool,
    cache_dir: Path | None,
    api_url: str | None,
    as_json: bool,
) -> None:
    """Scan every analysis unit found under PROJECT_DIR."""
    settings = Settings.from_env()
    overrides = {}
    if cache_dir is not None:
        overrides["cache_dir"] = cache_dir
    if api_url:
        overrides["api_base_url"] = api_url
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    state, run_error = asyncio.run(
        _run_scan(project_dir.resolve(), settings, force_refresh, quiet=as_json)
    )

    if run_error is not None:
        click.echo(f"Error: scan failed: {run_error}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"reports": state.snapshot()}, indent=2))
    elif state.reports:
        click.echo(_format_table(state.reports))
    else:
        click.echo("No pom.xml files found.")

    if any(r.status == "failed" for r in state.reports):
        sys.exit(1)


@main.command("show")
@click.argument("content_hash")
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Scan cache directory",
)
def show(content_hash: str, cache_dir: Path | None) -> None:
    """Print the cached report for CONTENT_HASH."""
    cache = ScanCache(cache_dir or Settings.from_env().cache_dir)
    findings = cache.latest_sync(content_hash)
    if findings is None:
        click.echo(f"Error: no cached report for {content_hash}", err=True)
        sys.exit(1)
    click.echo(
        json.dumps([f.model_dump(mode="json", by_alias=True) for f in findings], indent=2)
    )


if __name__ == "__main__":
    main()
