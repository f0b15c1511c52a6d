"""Metrics derived from build results: dependency attribution and export costs."""

from .dependencies import DependencyAttributor
from .exports import ExportDiscovery, ExportSizeAnalyzer, cjs_export_names, resolve_specifier

__all__ = [
    "DependencyAttributor",
    "ExportDiscovery",
    "ExportSizeAnalyzer",
    "cjs_export_names",
    "resolve_specifier",
]
