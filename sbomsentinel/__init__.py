"""SBOM Sentinel: dependency-manifest scan pipeline for multi-module builds."""

__version__ = "0.1.0"
