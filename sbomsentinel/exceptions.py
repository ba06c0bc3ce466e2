"""Custom exceptions for SBOM Sentinel."""


class SbomSentinelError(Exception):
    """Base exception for all pipeline errors."""


class EnumerationError(SbomSentinelError):
    """Raised when manifests cannot be discovered or read.

    This is the only error class that aborts a whole pipeline run.
    """


class PackagingError(SbomSentinelError):
    """Raised when a unit's manifests cannot be read or archived."""

    def __init__(self, unit_label: str, reason: str):
        self.unit_label = unit_label
        self.reason = reason
        super().__init__(f"Failed to package {unit_label}: {reason}")


class RemoteScanError(SbomSentinelError):
    """Raised when the scanning backend returns an unusable report."""


class CacheError(SbomSentinelError):
    """Raised when a cache entry cannot be decoded."""


class PipelineCancelled(SbomSentinelError):
    """Raised inside a unit when the run was cancelled."""

    def __init__(self) -> None:
        super().__init__("cancelled")
