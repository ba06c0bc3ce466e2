"""Severity histogram and canonical ordering for scan reports."""

from __future__ import annotations

from collections.abc import Iterable

from sbomsentinel.engines.sbom_pipeline.models import Finding, SeverityStats

SEVERITY_NAMES = {
    1: "critical",
    2: "high",
    3: "medium",
    4: "low",
}

_UNRANKED = 99


def summarize(findings: Iterable[Finding]) -> SeverityStats:
    """Count findings per severity bucket."""
    stats = SeverityStats()
    for finding in findings:
        name = SEVERITY_NAMES.get(finding.severity, "unknown")  # type: ignore[arg-type]
        setattr(stats, name, getattr(stats, name) + 1)
    return stats


def _first_cve(finding: Finding) -> str:
    return finding.cves[0] if finding.cves else ""


def canonical_order(findings: Iterable[Finding]) -> list[Finding]:
    """Sort by severity code ascending, then first CVE id descending."""
    # Two stable passes: secondary key first.
    ordered = sorted(findings, key=_first_cve, reverse=True)
    ordered.sort(key=lambda f: f.severity if f.severity is not None else _UNRANKED)
    return ordered
