"""Build orchestration, synthetic entries and failure classification."""

from .classify import classify_failure, is_valid_npm_name, missing_package_names, package_name_of
from .entry import create_entry_point, render_entry_source
from .orchestrator import BuildOrchestrator, gzip_size, measure_assets

__all__ = [
    "BuildOrchestrator",
    "classify_failure",
    "create_entry_point",
    "gzip_size",
    "is_valid_npm_name",
    "measure_assets",
    "missing_package_names",
    "package_name_of",
    "render_entry_source",
]
