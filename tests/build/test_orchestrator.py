"""Tests for build orchestration, timeouts and the missing-dependency rebuild."""

from __future__ import annotations

import gzip
import threading
import time
from pathlib import Path

import pytest

from bundlestat.build.orchestrator import BuildOrchestrator, gzip_size, measure_assets
from bundlestat.bundlers.base import BundleConfig, BundleOutput, Bundler, BundlerFailure
from bundlestat.concurrency import ConcurrencyGovernor
from bundlestat.errors import ErrorKind, PackageBuildError, make_error
from bundlestat.models import BuildRequest, Externals
from tests._fixtures.packages import FakeBundler


def _request(tmp_path: Path, **overrides: object) -> BuildRequest:
    entry = tmp_path / "__entry.main.js"
    entry.write_text("console.log(1)\n", encoding="utf-8")
    values: dict = {
        "entry_path": entry,
        "externals": Externals(packages=("react",)),
        "package_name": "my-lib",
        "timeout": 10.0,
    }
    values.update(overrides)
    return BuildRequest(**values)


def test_build_measures_assets(tmp_path: Path) -> None:
    contents = b"var a=1;" * 50
    result = BuildOrchestrator(FakeBundler(contents)).build(_request(tmp_path))

    assert [(asset.name, asset.type, asset.size) for asset in result.assets] == [("main", "js", 400)]
    main = result.main_asset
    assert main is not None
    assert 0 < main.gzip < main.size


def test_output_dir_is_removed_after_build(tmp_path: Path) -> None:
    BuildOrchestrator(FakeBundler()).build(_request(tmp_path))
    assert not list(tmp_path.glob(".bundlestat-out-*"))


def test_output_dir_is_kept_in_debug(tmp_path: Path) -> None:
    BuildOrchestrator(FakeBundler()).build(_request(tmp_path, debug=True))
    assert list(tmp_path.glob(".bundlestat-out-*"))


def test_identical_requests_get_identical_configs(tmp_path: Path) -> None:
    bundler = FakeBundler()
    orchestrator = BuildOrchestrator(bundler)
    request = _request(tmp_path)

    first = orchestrator.build(request)
    second = orchestrator.build(request)

    assert first.assets == second.assets
    a, b = bundler.configs
    assert (a.entry_path, a.external_packages, a.defines, a.format) == (
        b.entry_path,
        b.external_packages,
        b.defines,
        b.format,
    )


def test_raw_failures_are_classified_once(tmp_path: Path) -> None:
    bundler = FakeBundler(failures=[BundlerFailure("minify", ["terser crashed"])])

    with pytest.raises(PackageBuildError) as excinfo:
        BuildOrchestrator(bundler).build(_request(tmp_path))

    assert excinfo.value.kind is ErrorKind.MINIFY
    assert isinstance(excinfo.value.__cause__, BundlerFailure)


def test_classified_errors_are_not_reclassified(tmp_path: Path) -> None:
    original = make_error(ErrorKind.INSTALL, "late install failure")
    bundler = FakeBundler(failures=[original])

    with pytest.raises(PackageBuildError) as excinfo:
        BuildOrchestrator(bundler).build(_request(tmp_path))

    assert excinfo.value is original


class _HangingBundler(Bundler):
    def __init__(self) -> None:
        self.release = threading.Event()

    def bundle(self, config: BundleConfig) -> BundleOutput:
        self.release.wait(5)
        return BundleOutput(files={config.output_filename: b"late"})


def test_timeout_bounds_the_whole_build(tmp_path: Path) -> None:
    bundler = _HangingBundler()
    try:
        with pytest.raises(PackageBuildError) as excinfo:
            BuildOrchestrator(bundler).build(_request(tmp_path, timeout=0.1))
    finally:
        bundler.release.set()

    assert excinfo.value.kind is ErrorKind.BUILD
    assert excinfo.value.extra["timeout"] is True


def test_timed_out_worker_keeps_its_permit_until_it_returns(tmp_path: Path) -> None:
    governor = ConcurrencyGovernor(install_limit=1, build_limit=1)
    bundler = _HangingBundler()
    try:
        with pytest.raises(PackageBuildError):
            BuildOrchestrator(bundler, governor).build(_request(tmp_path, timeout=0.1))

        assert governor.build_pool.in_flight == 1
        assert list(tmp_path.glob(".bundlestat-out-*"))
    finally:
        bundler.release.set()

    deadline = time.monotonic() + 5
    while governor.build_pool.in_flight and time.monotonic() < deadline:
        time.sleep(0.01)
    assert governor.build_pool.in_flight == 0
    assert not list(tmp_path.glob(".bundlestat-out-*"))


def test_missing_dependencies_trigger_one_rebuild(tmp_path: Path) -> None:
    failure = BundlerFailure(
        "compile", ['Could not resolve "left-pad"'], missing_modules=["left-pad/index.js"]
    )
    bundler = FakeBundler(failures=[failure])

    result = BuildOrchestrator(bundler).build_ignoring_missing_deps(_request(tmp_path))

    assert result.ignored_missing_dependencies == ["left-pad"]
    assert len(bundler.configs) == 2
    assert "left-pad" in bundler.configs[1].external_packages
    assert "left-pad" not in bundler.configs[0].external_packages


def test_too_many_missing_dependencies_are_not_ignored(tmp_path: Path) -> None:
    missing = [f"dep-{index}" for index in range(7)]
    bundler = FakeBundler(failures=[BundlerFailure("compile", ["x"], missing_modules=missing)])

    with pytest.raises(PackageBuildError) as excinfo:
        BuildOrchestrator(bundler).build_ignoring_missing_deps(_request(tmp_path))

    assert excinfo.value.kind is ErrorKind.MISSING_DEPENDENCY
    assert len(bundler.configs) == 1


def test_second_failure_is_not_retried(tmp_path: Path) -> None:
    first = BundlerFailure("compile", ["x"], missing_modules=["a"])
    second = BundlerFailure("compile", ["y"], missing_modules=["b"])
    bundler = FakeBundler(failures=[first, second])

    with pytest.raises(PackageBuildError) as excinfo:
        BuildOrchestrator(bundler).build_ignoring_missing_deps(_request(tmp_path))

    assert excinfo.value.missing_modules == ["b"]
    assert len(bundler.configs) == 2


def test_build_permit_is_released_on_failure(tmp_path: Path) -> None:
    governor = ConcurrencyGovernor(install_limit=1, build_limit=1)
    bundler = FakeBundler(failures=[BundlerFailure("launch", ["boom"])])
    orchestrator = BuildOrchestrator(bundler, governor)

    with pytest.raises(PackageBuildError):
        orchestrator.build(_request(tmp_path))

    assert governor.build_pool.in_flight == 0
    orchestrator.build(_request(tmp_path))
    assert governor.build_pool.peak == 1


def test_measure_assets_skips_licenses_and_rejects_unknown_names() -> None:
    output = BundleOutput(files={"main.bundle.js": b"abc", "main.bundle.js.LICENSE.txt": b"MIT"})
    assert [asset.name for asset in measure_assets(output)] == ["main"]

    with pytest.raises(PackageBuildError) as excinfo:
        measure_assets(BundleOutput(files={"chunk-1.js": b"abc"}))
    assert excinfo.value.kind is ErrorKind.UNEXPECTED_BUILD


def test_gzip_size_never_exceeds_raw_size() -> None:
    assert gzip_size(b"a") == 1
    payload = b"hello world " * 100
    assert gzip_size(payload) == len(gzip.compress(payload, compresslevel=6, mtime=0))
