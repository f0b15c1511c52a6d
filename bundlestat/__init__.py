"""Measure the real bundled footprint of npm packages."""

from .errors import ErrorKind, PackageBuildError
from .models import (
    Asset,
    DependencySizeEntry,
    ExportSizeEntry,
    PackageSpec,
    StatsResult,
)
from .pipeline import PipelineOptions, StatsPipeline, get_all_exports, get_export_sizes, get_stats

__version__ = "0.1.0"

__all__ = [
    "Asset",
    "DependencySizeEntry",
    "ErrorKind",
    "ExportSizeEntry",
    "PackageBuildError",
    "PackageSpec",
    "PipelineOptions",
    "StatsPipeline",
    "StatsResult",
    "get_all_exports",
    "get_export_sizes",
    "get_stats",
]
