"""Core data models shared across bundlestat components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class PackageSpec:
    """Identifies what to measure: a registry name/range or a local working copy."""

    name: str
    version_range: Optional[str] = None
    local_path: Optional[Path] = None

    @property
    def is_local(self) -> bool:
        return self.local_path is not None

    @property
    def install_target(self) -> str:
        """The argument handed to the installer for this package."""
        if self.local_path is not None:
            return str(self.local_path)
        if self.version_range:
            return f"{self.name}@{self.version_range}"
        return self.name

    def __str__(self) -> str:
        return self.install_target


@dataclass(frozen=True)
class Externals:
    """Import specifiers excluded from a build.

    ``packages`` are peer dependencies (and, on a rebuild, ignored missing
    modules); ``builtins`` are platform modules stubbed out of the bundle.
    """

    packages: Tuple[str, ...] = ()
    builtins: Tuple[str, ...] = ()

    def is_external(self, specifier: str) -> bool:
        """Return True when ``specifier`` is a peer dependency or one of its sub-paths."""
        for name in self.packages:
            if specifier == name or specifier.startswith(name + "/"):
                return True
        return False

    def is_builtin(self, specifier: str) -> bool:
        if specifier.startswith("node:"):
            return True
        base = specifier.split("/", 1)[0]
        return base in self.builtins

    def with_packages(self, extra: Sequence[str]) -> "Externals":
        merged = list(self.packages)
        for name in extra:
            if name not in merged:
                merged.append(name)
        return Externals(packages=tuple(merged), builtins=self.builtins)


@dataclass(frozen=True)
class BuildRequest:
    """Everything one bundler invocation needs; never mutated or shared."""

    entry_path: Path
    externals: Externals
    minifier: str = "esbuild"
    mode: str = "production"
    debug: bool = False
    timeout: Optional[float] = None
    package_name: Optional[str] = None
    entry_name: str = "main"


@dataclass(frozen=True)
class Asset:
    """One emitted output file."""

    name: str
    type: str
    size: int
    gzip: int

    @property
    def filename(self) -> str:
        return f"{self.name}.bundle.{self.type}"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "size": self.size, "gzip": self.gzip}


@dataclass(frozen=True)
class ModuleRecord:
    """A resolved source file and the bytes it contributed to the output."""

    path: Path
    size: int


@dataclass
class BuildResult:
    """Output of a single build; owned by the call that produced it."""

    assets: List[Asset]
    # Keyed by emitted filename; bytes are only comparable within one file.
    modules: Dict[str, List[ModuleRecord]] = field(default_factory=dict)
    ignored_missing_dependencies: List[str] = field(default_factory=list)

    @property
    def main_asset(self) -> Optional[Asset]:
        has_css = any(asset.type == "css" for asset in self.assets)
        wanted = "css" if has_css else "js"
        for asset in self.assets:
            if asset.name == "main" and asset.type == wanted:
                return asset
        return None

    @property
    def total_size(self) -> int:
        return sum(asset.size for asset in self.assets)

    def modules_for(self, asset: Asset) -> List[ModuleRecord]:
        """Module records whose bytes landed in ``asset``."""
        return list(self.modules.get(asset.filename, []))


@dataclass
class DependencySizeEntry:
    """Bytes in the bundle owned by one package."""

    name: str
    size: int
    required_by: FrozenSet[str]
    version_ranges: FrozenSet[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "approximateSize": self.size,
            "requiredBy": sorted(self.required_by),
            "versionRanges": sorted(self.version_ranges),
        }


@dataclass(frozen=True)
class ExportSizeEntry:
    """Gross bundled cost of importing a single named export."""

    export_name: str
    size: int
    gzip: int
    path: Optional[str] = None
    ignored_missing_dependencies: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.export_name,
            "size": self.size,
            "gzip": self.gzip,
            "path": self.path,
        }
        if self.ignored_missing_dependencies:
            data["ignoredMissingDependencies"] = list(self.ignored_missing_dependencies)
        return data


@dataclass
class StatsResult:
    """Measured footprint of a package."""

    build_version: str
    dependency_count: int
    has_js_module: bool
    has_js_next: bool
    has_side_effects: Any
    is_module_type: bool
    size: int
    gzip: int
    assets: List[Asset]
    dependency_sizes: List[DependencySizeEntry]
    peer_dependencies: List[str] = field(default_factory=list)
    ignored_missing_dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "buildVersion": self.build_version,
            "dependencyCount": self.dependency_count,
            "hasJSModule": self.has_js_module,
            "hasJSNext": self.has_js_next,
            "hasSideEffects": self.has_side_effects,
            "isModuleType": self.is_module_type,
            "size": self.size,
            "gzip": self.gzip,
            "assets": [asset.to_dict() for asset in self.assets],
            "dependencySizes": [entry.to_dict() for entry in self.dependency_sizes],
            "peerDependencies": list(self.peer_dependencies),
        }
        if self.ignored_missing_dependencies:
            data["ignoredMissingDependencies"] = list(self.ignored_missing_dependencies)
        return data
