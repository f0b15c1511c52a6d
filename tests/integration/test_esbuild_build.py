"""End-to-end builds against a real esbuild binary."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from bundlestat.bundlers import EsbuildBundler
from bundlestat.pipeline import PipelineOptions, StatsPipeline
from tests._fixtures.packages import FakeInstaller, write_package

pytestmark = pytest.mark.skipif(shutil.which("esbuild") is None, reason="esbuild not installed")


@pytest.fixture
def packages(tmp_path: Path) -> dict[str, Path]:
    root = tmp_path / "registry"
    return {
        "widget": write_package(
            root / "widget",
            {"name": "widget", "version": "1.0.0", "main": "index.js", "dependencies": {"tiny": "^1.0.0"}},
            {"index.js": "const tiny = require('tiny');\nmodule.exports = { widget: () => tiny() + 1 };\n"},
        ),
        "tiny": write_package(
            root / "tiny",
            {"name": "tiny", "version": "1.0.0", "main": "index.js"},
            {"index.js": "module.exports = function tiny() { return 41; };\n"},
        ),
        "needs-missing": write_package(
            root / "needs-missing",
            {"name": "needs-missing", "version": "1.0.0"},
            {"index.js": "module.exports = require('not-installed-anywhere');\n"},
        ),
    }


def _pipeline(tmp_path: Path, packages: dict[str, Path]) -> StatsPipeline:
    installer = FakeInstaller(
        {"widget": packages["widget"], "needs-missing": packages["needs-missing"]},
        extra={"tiny": packages["tiny"]},
    )
    return StatsPipeline(
        PipelineOptions(tmp_dir=tmp_path / "tmp"),
        installer=installer,  # type: ignore[arg-type]
        bundler=EsbuildBundler(),
    )


def test_real_build_attributes_dependency_bytes(tmp_path: Path, packages: dict[str, Path]) -> None:
    result = _pipeline(tmp_path, packages).get_stats("widget")

    assert result.size > 0
    assert result.gzip <= result.size
    assert sum(entry.size for entry in result.dependency_sizes) == result.size
    names = {entry.name for entry in result.dependency_sizes}
    assert names == {"widget", "tiny"}


def test_repeated_builds_are_byte_identical(tmp_path: Path, packages: dict[str, Path]) -> None:
    pipeline = _pipeline(tmp_path, packages)

    first = pipeline.get_stats("widget")
    second = pipeline.get_stats("widget")

    assert (first.size, first.gzip) == (second.size, second.gzip)


def test_unresolvable_dependency_is_ignored_once(tmp_path: Path, packages: dict[str, Path]) -> None:
    result = _pipeline(tmp_path, packages).get_stats("needs-missing")

    assert result.ignored_missing_dependencies == ["not-installed-anywhere"]
