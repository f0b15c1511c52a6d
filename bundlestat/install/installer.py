"""Installer collaborator driving npm, yarn or pnpm."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from ..errors import ErrorKind, make_error
from ..logging import get_logger
from ..models import PackageSpec
from .workspace import Workspace

CLIENTS = ("npm", "yarn", "pnpm")

# stderr fragments meaning the registry has no such package or version.
_NOT_FOUND_MARKERS = (
    "E404",
    "404 Not Found",
    "ERR_PNPM_FETCH_404",
    "Couldn't find package",
    "is not in this registry",
    "ETARGET",
    "No matching version found",
    "ERR_PNPM_NO_MATCHING_VERSION",
)

Runner = Callable[..., str]

logger = get_logger("install")


class Installer:
    """Materialises a package and its dependencies inside a workspace."""

    def __init__(self, runner: Runner | None = None) -> None:
        self._runner = runner or self._default_runner

    def install(
        self,
        spec: PackageSpec,
        workspace: Workspace,
        *,
        client: str = "npm",
        timeout: Optional[float] = None,
        limit_concurrency: bool = False,
        network_concurrency: Optional[int] = None,
        additional_packages: Sequence[str] = (),
    ) -> None:
        """Install ``spec`` into ``workspace`` or raise PackageNotFoundError / InstallError."""
        if client not in CLIENTS:
            raise ValueError(f"Unknown install client '{client}'. Choose one of: {', '.join(CLIENTS)}")

        target = spec.install_target
        if spec.local_path is not None:
            target = self._pack_local(spec.local_path, workspace, timeout=timeout)

        args = build_install_command(
            client,
            target,
            workspace,
            limit_concurrency=limit_concurrency,
            network_concurrency=network_concurrency,
            additional_packages=additional_packages,
        )
        logger.debug("install start %s (%s)", spec, client)
        self._run_classified(args, cwd=workspace.path, timeout=timeout, package=str(spec))
        logger.debug("install finish %s", spec)

    def _pack_local(self, local_path: Path, workspace: Workspace, *, timeout: Optional[float]) -> str:
        # Packing copies the working tree instead of symlinking it into node_modules.
        args = [
            "npm",
            "pack",
            "--ignore-scripts",
            "--pack-destination",
            str(workspace.path),
            str(local_path),
        ]
        output = self._run_classified(args, cwd=workspace.path, timeout=timeout, package=str(local_path))
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines:
            raise make_error(
                ErrorKind.INSTALL,
                f"npm pack produced no tarball for {local_path}",
                {"path": str(local_path)},
            )
        return str(workspace.path / lines[-1])

    def _run_classified(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        timeout: Optional[float],
        package: str,
    ) -> str:
        try:
            return self._runner(args, cwd=cwd, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise make_error(
                ErrorKind.INSTALL, exc, {"timeout": True, "seconds": timeout, "package": package}
            ) from exc
        except FileNotFoundError as exc:
            raise make_error(
                ErrorKind.INSTALL,
                exc,
                {"package": package, "reason": f"'{args[0]}' is not installed"},
            ) from exc
        except subprocess.CalledProcessError as exc:
            output = _decode(exc.stderr) + "\n" + _decode(exc.stdout)
            if any(marker in output for marker in _NOT_FOUND_MARKERS):
                raise make_error(ErrorKind.PACKAGE_NOT_FOUND, output.strip(), {"package": package}) from exc
            raise make_error(
                ErrorKind.INSTALL,
                output.strip() or str(exc),
                {"package": package, "exitCode": exc.returncode},
            ) from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        timeout: Optional[float] = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
        return completed.stdout


def build_install_command(
    client: str,
    target: str,
    workspace: Workspace,
    *,
    limit_concurrency: bool = False,
    network_concurrency: Optional[int] = None,
    additional_packages: Sequence[str] = (),
) -> List[str]:
    """Return the argv that installs ``target`` (plus extras) with ``client``."""
    packages = [target, *additional_packages]
    if client == "yarn":
        args = ["yarn", "add", *packages]
        args += [
            "--ignore-engines",
            "--skip-integrity-check",
            "--exact",
            "--json",
            "--no-progress",
            "--silent",
            "--no-lockfile",
            "--no-bin-links",
            "--ignore-optional",
        ]
        if limit_concurrency:
            args += ["--mutex", "network"]
        if network_concurrency:
            args += ["--network-concurrency", str(network_concurrency)]
        return args
    if client == "pnpm":
        args = ["pnpm", "add", *packages]
        args += ["--no-optional", "--loglevel=error", "--ignore-scripts", "--save-exact"]
        if network_concurrency:
            args.append(f"--network-concurrency={network_concurrency}")
        return args
    if client == "npm":
        return [
            "npm",
            "install",
            *packages,
            # A shared cache is required for concurrent npm installs to work.
            f"--cache={workspace.cache_dir}",
            "--no-package-lock",
            "--no-shrinkwrap",
            "--omit=optional",
            "--omit=dev",
            "--no-bin-links",
            "--no-progress",
            "--no-audit",
            "--no-fund",
            "--loglevel=error",
            "--ignore-scripts",
            "--save-exact",
            "--json",
        ]
    raise ValueError(f"Unknown install client '{client}'")


def _decode(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = ["CLIENTS", "Installer", "build_install_command"]
