"""Tests for the installer command construction and error mapping."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List

import pytest

from bundlestat.errors import ErrorKind, PackageBuildError
from bundlestat.install.installer import CLIENTS, Installer, build_install_command
from bundlestat.install.workspace import Workspace
from bundlestat.models import PackageSpec


class _RecordingRunner:
    def __init__(self, *, error: BaseException | None = None, stdout: str = "") -> None:
        self.calls: List[List[str]] = []
        self.error = error
        self.stdout = stdout

    def __call__(self, args, *, cwd, timeout=None):  # type: ignore[no-untyped-def]
        self.calls.append(list(args))
        if self.error is not None:
            raise self.error
        return self.stdout


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace.create("react", tmp_path / "tmp")


def test_npm_command_uses_shared_cache(workspace: Workspace) -> None:
    args = build_install_command("npm", "react@18.2.0", workspace)

    assert args[:3] == ["npm", "install", "react@18.2.0"]
    assert f"--cache={workspace.cache_dir}" in args
    assert "--ignore-scripts" in args
    assert "--no-package-lock" in args


def test_yarn_command_honours_concurrency_flags(workspace: Workspace) -> None:
    args = build_install_command(
        "yarn", "react", workspace, limit_concurrency=True, network_concurrency=3
    )

    assert args[:3] == ["yarn", "add", "react"]
    assert args[args.index("--mutex") + 1] == "network"
    assert args[args.index("--network-concurrency") + 1] == "3"


def test_pnpm_command(workspace: Workspace) -> None:
    args = build_install_command("pnpm", "react", workspace, network_concurrency=2)

    assert args[:3] == ["pnpm", "add", "react"]
    assert "--network-concurrency=2" in args


def test_additional_packages_are_appended(workspace: Workspace) -> None:
    args = build_install_command("npm", "react", workspace, additional_packages=["react-dom"])
    assert args[2:4] == ["react", "react-dom"]


def test_unknown_client_is_a_value_error(workspace: Workspace) -> None:
    with pytest.raises(ValueError):
        build_install_command("bun", "react", workspace)
    with pytest.raises(ValueError):
        Installer(runner=_RecordingRunner()).install(PackageSpec("react"), workspace, client="bun")


@pytest.mark.parametrize("client", CLIENTS)
@pytest.mark.parametrize(
    "stderr",
    [
        "npm ERR! code E404\nnpm ERR! 404 Not Found - GET https://registry.npmjs.org/nope",
        "error Couldn't find package \"nope\" on the \"npm\" registry.",
        "ERR_PNPM_FETCH_404  GET https://registry.npmjs.org/nope: Not Found - 404",
        "npm ERR! code ETARGET\nnpm ERR! notarget No matching version found for react@99.",
    ],
)
def test_registry_misses_map_to_package_not_found(workspace: Workspace, client: str, stderr: str) -> None:
    runner = _RecordingRunner(
        error=subprocess.CalledProcessError(1, [client], output="", stderr=stderr)
    )

    with pytest.raises(PackageBuildError) as excinfo:
        Installer(runner=runner).install(PackageSpec("nope"), workspace, client=client)

    assert excinfo.value.kind is ErrorKind.PACKAGE_NOT_FOUND
    assert isinstance(excinfo.value.__cause__, subprocess.CalledProcessError)


def test_other_failures_map_to_install_error(workspace: Workspace) -> None:
    runner = _RecordingRunner(
        error=subprocess.CalledProcessError(1, ["npm"], output="", stderr="npm ERR! code EACCES")
    )

    with pytest.raises(PackageBuildError) as excinfo:
        Installer(runner=runner).install(PackageSpec("react"), workspace)

    assert excinfo.value.kind is ErrorKind.INSTALL
    assert excinfo.value.extra["exitCode"] == 1


def test_timeout_maps_to_install_error(workspace: Workspace) -> None:
    runner = _RecordingRunner(error=subprocess.TimeoutExpired(["npm"], 5))

    with pytest.raises(PackageBuildError) as excinfo:
        Installer(runner=runner).install(PackageSpec("react"), workspace, timeout=5)

    assert excinfo.value.kind is ErrorKind.INSTALL
    assert excinfo.value.extra["timeout"] is True


def test_missing_client_binary_maps_to_install_error(workspace: Workspace) -> None:
    runner = _RecordingRunner(error=FileNotFoundError("npm"))

    with pytest.raises(PackageBuildError) as excinfo:
        Installer(runner=runner).install(PackageSpec("react"), workspace)

    assert excinfo.value.kind is ErrorKind.INSTALL


def test_local_packages_are_packed_before_install(workspace: Workspace, tmp_path: Path) -> None:
    local = tmp_path / "local-lib"
    local.mkdir()
    runner = _RecordingRunner(stdout="npm notice\nlocal-lib-1.0.0.tgz\n")

    Installer(runner=runner).install(
        PackageSpec("local-lib", local_path=local), workspace, client="npm"
    )

    pack, install = runner.calls
    assert pack[:3] == ["npm", "pack", "--ignore-scripts"]
    assert pack[-1] == str(local)
    assert install[2] == str(workspace.path / "local-lib-1.0.0.tgz")
