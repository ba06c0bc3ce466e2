"""Runtime settings read from ``SBOMSENTINEL_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

DEFAULT_API_BASE_URL = "http://localhost:8080"
DEFAULT_CACHE_TTL_HOURS = 24.0
DEFAULT_SCAN_TIMEOUT = 120.0


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def default_cache_dir() -> Path:
    return Path(os.path.expanduser("~/.cache/sbomsentinel")) / "sbom-cache"


@dataclass(frozen=True)
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    auth_token: str | None = None
    cache_dir: Path = default_cache_dir()
    cache_ttl: timedelta = timedelta(hours=DEFAULT_CACHE_TTL_HOURS)
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment, falling back to defaults.

        Recognised variables:
            SBOMSENTINEL_API_BASE_URL     scanning backend base URL
            SBOMSENTINEL_AUTH_TOKEN       bearer token for the backend
            SBOMSENTINEL_CACHE_DIR        scan cache directory
            SBOMSENTINEL_CACHE_TTL_HOURS  cache entry lifetime (default: 24)
            SBOMSENTINEL_SCAN_TIMEOUT     per-request timeout in seconds
        """
        cache_dir = os.environ.get("SBOMSENTINEL_CACHE_DIR")
        return cls(
            api_base_url=os.environ.get("SBOMSENTINEL_API_BASE_URL", DEFAULT_API_BASE_URL),
            auth_token=os.environ.get("SBOMSENTINEL_AUTH_TOKEN") or None,
            cache_dir=Path(cache_dir).expanduser() if cache_dir else default_cache_dir(),
            cache_ttl=timedelta(
                hours=_env_float("SBOMSENTINEL_CACHE_TTL_HOURS", DEFAULT_CACHE_TTL_HOURS)
            ),
            scan_timeout=_env_float("SBOMSENTINEL_SCAN_TIMEOUT", DEFAULT_SCAN_TIMEOUT),
        )
