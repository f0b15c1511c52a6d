"""Tests for the esbuild bundler adapter."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import List

import pytest

from bundlestat.bundlers.base import BundleConfig, BundlerFailure
from bundlestat.bundlers.esbuild import EsbuildBundler, parse_error_messages, rescale_modules
from bundlestat.models import BuildRequest, Externals, ModuleRecord


def _config(tmp_path: Path, *, minifier: str = "esbuild") -> BundleConfig:
    entry = tmp_path / "__entry.main.js"
    entry.write_text("const p = require('lib');\nconsole.log(p);\n", encoding="utf-8")
    request = BuildRequest(
        entry_path=entry,
        externals=Externals(packages=("react",), builtins=("fs",)),
        minifier=minifier,
        timeout=30,
    )
    return BundleConfig.from_request(request, working_dir=tmp_path, output_dir=tmp_path / "out")


class _FakeEsbuild:
    """Writes the outfile and metafile the way the esbuild CLI would."""

    def __init__(self, output: bytes, inputs: dict, *, terser_output: bytes | None = None) -> None:
        self.output = output
        self.inputs = inputs
        self.terser_output = terser_output
        self.calls: List[List[str]] = []

    def __call__(self, args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        args = list(args)
        self.calls.append(args)
        if args[0] == "terser":
            Path(args[args.index("--output") + 1]).write_bytes(self.terser_output or b"")
            return ""
        outfile = Path(next(arg for arg in args if arg.startswith("--outfile=")).split("=", 1)[1])
        metafile = Path(next(arg for arg in args if arg.startswith("--metafile=")).split("=", 1)[1])
        outfile.write_bytes(self.output)
        key = str(outfile.relative_to(cwd))
        metafile.write_text(
            json.dumps({"inputs": {}, "outputs": {key: {"inputs": self.inputs, "bytes": len(self.output)}}}),
            encoding="utf-8",
        )
        return ""


def test_build_args_are_deterministic_and_externalise(tmp_path: Path) -> None:
    config = _config(tmp_path)
    bundler = EsbuildBundler()

    first = bundler.build_args(config, tmp_path / "meta.json")
    second = bundler.build_args(config, tmp_path / "meta.json")

    assert first == second
    assert "--bundle" in first
    assert "--minify" in first
    assert "--format=iife" in first
    assert "--external:react" in first
    assert "--external:react/*" in first
    assert "--external:fs" in first
    assert '--define:process.env.NODE_ENV="production"' in first


def test_terser_minifier_skips_esbuild_minify(tmp_path: Path) -> None:
    args = EsbuildBundler().build_args(_config(tmp_path, minifier="terser"), tmp_path / "meta.json")
    assert "--minify" not in args


def test_bundle_reads_files_and_module_graph(tmp_path: Path) -> None:
    config = _config(tmp_path)
    runner = _FakeEsbuild(
        b"x" * 100,
        {
            "node_modules/lib/index.js": {"bytesInOutput": 60},
            "node_modules/lib/empty.js": {"bytesInOutput": 0},
            "(disabled):fs": {"bytesInOutput": 5},
            "__entry.main.js": {"bytesInOutput": 20},
        },
    )

    output = EsbuildBundler(runner=runner).bundle(config)

    assert output.files == {"main.bundle.js": b"x" * 100}
    sizes = {record.path: record.size for record in output.modules["main.bundle.js"]}
    assert sizes == {
        tmp_path / "node_modules/lib/index.js": 60,
        tmp_path / "fs": 5,
        tmp_path / "__entry.main.js": 20,
    }


def test_terser_output_replaces_bundle_and_rescales_modules(tmp_path: Path) -> None:
    config = _config(tmp_path, minifier="terser")
    runner = _FakeEsbuild(
        b"y" * 200,
        {"a.js": {"bytesInOutput": 100}, "b.js": {"bytesInOutput": 50}},
        terser_output=b"z" * 100,
    )

    output = EsbuildBundler(runner=runner).bundle(config)

    assert output.files["main.bundle.js"] == b"z" * 100
    assert sum(record.size for record in output.modules["main.bundle.js"]) == 75
    assert runner.calls[1][0] == "terser"


def test_missing_modules_are_reported_as_compile_failure(tmp_path: Path) -> None:
    stderr = (
        '✘ [ERROR] Could not resolve "left-pad"\n\n    node_modules/lib/index.js:1:17:\n'
        '✘ [ERROR] Could not resolve "@scope/x/y"\n'
    )

    def runner(args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        raise subprocess.CalledProcessError(1, args, output="", stderr=stderr)

    with pytest.raises(BundlerFailure) as excinfo:
        EsbuildBundler(runner=runner).bundle(_config(tmp_path))

    assert excinfo.value.stage == "compile"
    assert excinfo.value.missing_modules == ["left-pad", "@scope/x/y"]


def test_unreported_non_zero_exit_is_launch_failure(tmp_path: Path) -> None:
    def runner(args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        raise subprocess.CalledProcessError(2, args, output="", stderr="Segmentation fault")

    with pytest.raises(BundlerFailure) as excinfo:
        EsbuildBundler(runner=runner).bundle(_config(tmp_path))

    assert excinfo.value.stage == "launch"


def test_missing_executable_is_launch_failure(tmp_path: Path) -> None:
    def runner(args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        raise FileNotFoundError(args[0])

    with pytest.raises(BundlerFailure) as excinfo:
        EsbuildBundler(runner=runner).bundle(_config(tmp_path))

    assert excinfo.value.stage == "launch"


def test_timeout_is_flagged(tmp_path: Path) -> None:
    def runner(args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        raise subprocess.TimeoutExpired(args, timeout)

    with pytest.raises(BundlerFailure) as excinfo:
        EsbuildBundler(runner=runner).bundle(_config(tmp_path))

    assert excinfo.value.timed_out is True


def test_terser_crash_is_minify_failure(tmp_path: Path) -> None:
    esbuild = _FakeEsbuild(b"y" * 10, {})

    def runner(args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        if args[0] == "terser":
            raise subprocess.CalledProcessError(1, args, output="", stderr="Parse error at 1:1")
        return esbuild(args, cwd=cwd, timeout=timeout)

    with pytest.raises(BundlerFailure) as excinfo:
        EsbuildBundler(runner=runner).bundle(_config(tmp_path, minifier="terser"))

    assert excinfo.value.stage == "minify"


def test_parse_error_messages() -> None:
    stderr = "✘ [ERROR] Unexpected token\n  detail\n[ERROR] Another\nnoise"
    assert parse_error_messages(stderr) == ["Unexpected token", "Another"]


def test_rescale_modules_keeps_proportions() -> None:
    modules = [ModuleRecord(Path("a"), 3), ModuleRecord(Path("b"), 3), ModuleRecord(Path("c"), 3)]

    scaled = rescale_modules(modules, from_total=10, to_total=5)

    # 9 * 5 // 10 == 4 bytes shared by three equal modules.
    assert sorted(record.size for record in scaled) == [1, 1, 2]
