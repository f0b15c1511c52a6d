"""Install, build and measure pipeline behind the public API."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, TypeVar, Union

from .analysis.dependencies import DependencyAttributor
from .analysis.exports import ExportDiscovery, ExportSizeAnalyzer
from .build.entry import create_entry_point
from .build.orchestrator import BuildOrchestrator
from .bundlers import Bundler, get_bundler
from .concurrency import ConcurrencyGovernor
from .config import BundleStatConfig
from .errors import ErrorKind, PackageBuildError, make_error
from .install.installer import Installer
from .install.tree import InstallTree
from .install.workspace import Workspace
from .logging import get_logger
from .models import BuildRequest, ExportSizeEntry, Externals, PackageSpec, StatsResult
from .resolve.entry import EntryPoint, resolve_entry
from .resolve.externals import compute_externals
from .resolve.spec import parse_package_string

T = TypeVar("T")
PackageArg = Union[str, PackageSpec]


@dataclass(frozen=True)
class PipelineOptions:
    """Recognised options of ``get_stats`` / ``get_export_sizes`` / ``get_all_exports``."""

    client: str = "npm"
    bundler: str = "esbuild"
    minifier: str = "esbuild"
    debug: bool = False
    custom_imports: Tuple[str, ...] = ()
    install_timeout: Optional[float] = 120.0
    build_timeout: Optional[float] = 120.0
    limit_concurrency: bool = True
    network_concurrency: int = 4
    tmp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "bundlestat")

    @classmethod
    def from_config(cls, config: BundleStatConfig, **overrides: object) -> "PipelineOptions":
        """Options from a loaded config; keyword overrides that are not None win."""
        options = cls(
            client=config.install.client,
            bundler=config.build.bundler,
            minifier=config.build.minifier,
            debug=config.debug,
            install_timeout=config.install.timeout,
            build_timeout=config.build.timeout,
            limit_concurrency=config.install.limit_concurrency,
            network_concurrency=config.install.network_concurrency,
            tmp_dir=config.tmp_dir,
        )
        return options.with_overrides(**overrides)

    def with_overrides(self, **overrides: object) -> "PipelineOptions":
        """Copy with every non-None override applied; raises ValueError on out-of-range values."""
        values = {key: value for key, value in overrides.items() if value is not None}
        concurrency = values.get("network_concurrency")
        if concurrency is not None and concurrency < 1:  # type: ignore[operator]
            raise ValueError("network_concurrency must be at least 1")
        for key in ("install_timeout", "build_timeout"):
            timeout = values.get(key)
            if timeout is not None and timeout <= 0:  # type: ignore[operator]
                raise ValueError(f"{key} must be positive")
        if "custom_imports" in values:
            values["custom_imports"] = tuple(values["custom_imports"])  # type: ignore[arg-type]
        if "tmp_dir" in values:
            values["tmp_dir"] = Path(values["tmp_dir"])  # type: ignore[arg-type]
        return replace(self, **values) if values else self


@dataclass
class _PreparedPackage:
    spec: PackageSpec
    workspace: Workspace
    package_dir: Path
    entry: EntryPoint
    externals: Externals


class StatsPipeline:
    """Runs install, build and measurement for one package at a time.

    A pipeline instance owns one :class:`ConcurrencyGovernor`; every run
    started through it, from any thread, shares the same install and build
    pools. Each run gets its own workspace which is removed afterwards
    unless ``debug`` is set.
    """

    def __init__(
        self,
        options: PipelineOptions | None = None,
        *,
        installer: Installer | None = None,
        bundler: Bundler | None = None,
        governor: ConcurrencyGovernor | None = None,
    ) -> None:
        self.options = options or PipelineOptions()
        self.installer = installer or Installer()
        self._bundler = bundler
        self.governor = governor or ConcurrencyGovernor.from_options(
            limit_concurrency=self.options.limit_concurrency,
            network_concurrency=self.options.network_concurrency,
        )
        self.discovery = ExportDiscovery()
        self.logger = get_logger("pipeline")

    def get_stats(self, package: PackageArg, options: PipelineOptions | None = None) -> StatsResult:
        """Install ``package``, bundle it and attribute the output to its dependencies."""
        opts = options or self.options
        return self._run(package, opts, "stats", lambda prepared: self._measure(prepared, opts))

    def get_export_sizes(
        self, package: PackageArg, options: PipelineOptions | None = None
    ) -> List[ExportSizeEntry]:
        """Gross bundled cost of every named export of ``package``."""
        opts = options or self.options
        return self._run(
            package, opts, "export sizes", lambda prepared: self._measure_exports(prepared, opts)
        )

    def get_all_exports(self, package: PackageArg, options: PipelineOptions | None = None) -> Dict[str, str]:
        """Map of export name to the file (relative to the install root) that defines it."""
        opts = options or self.options
        return self._run(
            package,
            opts,
            "exports",
            lambda prepared: self.discovery.discover(
                prepared.package_dir, relative_to=prepared.workspace.path
            ),
        )

    def _run(
        self,
        package: PackageArg,
        opts: PipelineOptions,
        action: str,
        measure: Callable[[_PreparedPackage], T],
    ) -> T:
        spec = package if isinstance(package, PackageSpec) else parse_package_string(package)
        workspace = Workspace.create(spec.name, opts.tmp_dir, debug=opts.debug)
        self.logger.debug("%s start %s in %s", action, spec, workspace.path)
        try:
            prepared = self._prepare(spec, workspace, opts)
            result = measure(prepared)
        except PackageBuildError as error:
            self.logger.warning("%s failed for %s: %s", action, spec, error)
            raise
        finally:
            workspace.cleanup()
        self.logger.debug("%s end %s", action, spec)
        return result

    def _prepare(self, spec: PackageSpec, workspace: Workspace, opts: PipelineOptions) -> _PreparedPackage:
        with self.governor.install():
            self.installer.install(
                spec,
                workspace,
                client=opts.client,
                timeout=opts.install_timeout,
                limit_concurrency=opts.limit_concurrency,
                network_concurrency=opts.network_concurrency,
            )
        package_dir = workspace.package_dir(spec.name)
        entry = resolve_entry(package_dir)
        externals = compute_externals(entry.name, entry.peer_dependencies, entry.dependencies)
        return _PreparedPackage(
            spec=spec,
            workspace=workspace,
            package_dir=package_dir,
            entry=entry,
            externals=externals,
        )

    def _measure(self, prepared: _PreparedPackage, opts: PipelineOptions) -> StatsResult:
        entry = prepared.entry
        entry_path = create_entry_point(
            prepared.workspace.path,
            entry.name,
            custom_imports=list(opts.custom_imports) or None,
        )
        orchestrator = BuildOrchestrator(self._bundler_for(opts), self.governor)
        result = orchestrator.build_ignoring_missing_deps(
            BuildRequest(
                entry_path=entry_path,
                externals=prepared.externals,
                minifier=opts.minifier,
                debug=opts.debug,
                timeout=opts.build_timeout,
                package_name=entry.name,
            )
        )
        main = result.main_asset
        if main is None:
            raise make_error(
                ErrorKind.UNEXPECTED_BUILD,
                f"Build of {entry.name} emitted no main asset",
                {"assets": [asset.name for asset in result.assets]},
            )

        tree = InstallTree.scan(prepared.workspace.path)
        attributor = DependencyAttributor(
            tree,
            root_name=entry.name,
            root_dir=_working_copy(prepared),
        )
        dependency_sizes = attributor.attribute(result.modules_for(main), main.size)

        return StatsResult(
            build_version=entry.version or "",
            dependency_count=entry.dependency_count,
            has_js_module=entry.has_js_module,
            has_js_next=entry.has_js_next,
            has_side_effects=entry.has_side_effects,
            is_module_type=entry.is_module_type,
            size=main.size,
            gzip=main.gzip,
            assets=list(result.assets),
            dependency_sizes=dependency_sizes,
            peer_dependencies=list(entry.peer_dependencies),
            ignored_missing_dependencies=list(result.ignored_missing_dependencies),
        )

    def _measure_exports(self, prepared: _PreparedPackage, opts: PipelineOptions) -> List[ExportSizeEntry]:
        orchestrator = BuildOrchestrator(self._bundler_for(opts), self.governor)
        analyzer = ExportSizeAnalyzer(
            orchestrator,
            prepared.workspace.path,
            prepared.externals,
            minifier=opts.minifier,
            timeout=opts.build_timeout,
            debug=opts.debug,
            discovery=self.discovery,
        )
        return analyzer.analyze(prepared.package_dir, custom_imports=list(opts.custom_imports) or None)

    def _bundler_for(self, opts: PipelineOptions) -> Bundler:
        if self._bundler is not None:
            return self._bundler
        return get_bundler(opts.bundler)


def _working_copy(prepared: _PreparedPackage) -> Path:
    if prepared.spec.local_path is not None:
        return prepared.spec.local_path
    return Path(os.path.realpath(prepared.package_dir))


def get_stats(package: PackageArg, options: PipelineOptions | None = None) -> StatsResult:
    return StatsPipeline(options).get_stats(package)


def get_export_sizes(package: PackageArg, options: PipelineOptions | None = None) -> List[ExportSizeEntry]:
    return StatsPipeline(options).get_export_sizes(package)


def get_all_exports(package: PackageArg, options: PipelineOptions | None = None) -> Dict[str, str]:
    return StatsPipeline(options).get_all_exports(package)


__all__ = [
    "PipelineOptions",
    "StatsPipeline",
    "get_all_exports",
    "get_export_sizes",
    "get_stats",
]
