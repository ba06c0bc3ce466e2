"""Shared pytest fixtures for SBOM Sentinel tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import structlog

_POM_NS = "http://maven.apache.org/POM/4.0.0"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _structlog_to_stdlib():
    """Send log events through stdlib logging so stdout stays clean."""
    structlog.configure(
        processors=[structlog.processors.KeyValueRenderer(key_order=["event"])],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


def render_pom(
    artifact_id: str,
    packaging: str | None = None,
    modules: tuple[str, ...] | list[str] = (),
    namespaced: bool = True,
) -> str:
    xmlns = f' xmlns="{_POM_NS}"' if namespaced else ""
    parts = [f"<project{xmlns}>", "  <modelVersion>4.0.0</modelVersion>"]
    parts.append(f"  <artifactId>{artifact_id}</artifactId>")
    if packaging:
        parts.append(f"  <packaging>{packaging}</packaging>")
    if modules:
        parts.append("  <modules>")
        parts.extend(f"    <module>{m}</module>" for m in modules)
        parts.append("  </modules>")
    parts.append("</project>")
    return "\n".join(parts) + "\n"


@pytest.fixture
def write_pom(tmp_path):
    """Write a pom.xml under ``tmp_path / rel_dir`` and return its path."""

    def _write(
        rel_dir: str,
        packaging: str | None = None,
        modules: tuple[str, ...] | list[str] = (),
        artifact_id: str | None = None,
        namespaced: bool = True,
    ) -> Path:
        directory = tmp_path / rel_dir if rel_dir else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        pom = directory / "pom.xml"
        name = artifact_id or (Path(rel_dir).name if rel_dir else "root")
        pom.write_text(render_pom(name, packaging, modules, namespaced))
        return pom

    return _write


@pytest.fixture
def scratch_tmp(tmp_path, monkeypatch):
    """Redirect ``tempfile`` to a private directory so leaks are observable."""
    import tempfile

    scratch = tmp_path / "scratch-root"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch
