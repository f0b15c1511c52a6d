"""Build orchestration around the bundler collaborator."""

from __future__ import annotations

import dataclasses
import gzip
import re
import shutil
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import ExitStack, nullcontext
from pathlib import Path
from typing import ContextManager, List, Optional

from ..bundlers.base import BundleConfig, BundleOutput, Bundler
from ..concurrency import ConcurrencyGovernor
from ..errors import ErrorKind, PackageBuildError, make_error
from ..logging import get_logger
from ..models import Asset, BuildRequest, BuildResult
from .classify import classify_failure, is_valid_npm_name

_ASSET_NAME = re.compile(r"^(.+?)\.bundle\.(.+)$")
_MAX_IGNORED_MISSING = 6
_GZIP_LEVEL = 6


class BuildOrchestrator:
    """Runs one bundler build per request and classifies whatever goes wrong."""

    def __init__(self, bundler: Bundler, governor: ConcurrencyGovernor | None = None) -> None:
        self.bundler = bundler
        self.governor = governor
        self.logger = get_logger("build")

    def build(self, request: BuildRequest) -> BuildResult:
        """Bundle ``request.entry_path`` and measure every emitted asset.

        Raises :class:`PackageBuildError` with one of the build kinds; the
        classification happens here and nowhere else.

        On a timeout the error is raised straight away, but the build permit
        and the output directory stay held until the bundler call returns.
        """
        with ExitStack() as stack:
            stack.enter_context(self._build_permit())
            return self._build_unlocked(request, stack)

    def build_ignoring_missing_deps(self, request: BuildRequest) -> BuildResult:
        """Build, and on a small set of missing dependencies rebuild once with them externalised."""
        started = time.monotonic()
        try:
            return self.build(request)
        except PackageBuildError as error:
            missing = error.missing_modules
            if (
                error.kind is not ErrorKind.MISSING_DEPENDENCY
                or not missing
                or len(missing) > _MAX_IGNORED_MISSING
                or not all(is_valid_npm_name(name) for name in missing)
            ):
                raise
            self.logger.debug(
                "%s has missing dependencies, rebuilding without %s",
                request.package_name or request.entry_path,
                ", ".join(missing),
            )
            remaining = None
            if request.timeout is not None:
                remaining = max(request.timeout - (time.monotonic() - started), 0.0)
            rebuilt = self.build(
                dataclasses.replace(
                    request,
                    externals=request.externals.with_packages(missing),
                    timeout=remaining,
                )
            )
            rebuilt.ignored_missing_dependencies = list(missing)
            return rebuilt

    def _build_permit(self) -> ContextManager[object]:
        if self.governor is None:
            return nullcontext()
        return self.governor.build()

    def _build_unlocked(self, request: BuildRequest, stack: ExitStack) -> BuildResult:
        working_dir = request.entry_path.parent
        output_dir = Path(tempfile.mkdtemp(prefix=".bundlestat-out-", dir=working_dir))
        if not request.debug:
            stack.callback(shutil.rmtree, output_dir, ignore_errors=True)
        config = BundleConfig.from_request(request, working_dir=working_dir, output_dir=output_dir)
        self.logger.debug("build start %s", request.package_name or request.entry_path)
        try:
            output = self._run_bundler(config, request.timeout, stack)
            assets = measure_assets(output)
        except Exception as exc:
            error = classify_failure(
                exc, package_name=request.package_name, externals=request.externals
            )
            if error is exc:
                raise
            raise error from exc
        self.logger.debug("build end %s", request.package_name or request.entry_path)
        return BuildResult(
            assets=assets,
            modules={name: list(records) for name, records in output.modules.items()},
        )

    def _run_bundler(
        self, config: BundleConfig, timeout: Optional[float], stack: ExitStack
    ) -> BundleOutput:
        if timeout is None:
            return self.bundler.bundle(config)
        # Wall-clock bound on the whole call, even for bundlers that ignore config.timeout.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bundlestat-build")
        try:
            future = executor.submit(self.bundler.bundle, config)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError as exc:
                if not future.cancel():
                    # The worker still writes into output_dir and still counts against the pool.
                    held = stack.pop_all()
                    future.add_done_callback(lambda _: held.close())
                    self.logger.debug("build of %s timed out while still running", config.entry_path)
                raise make_error(
                    ErrorKind.BUILD,
                    f"Build did not finish within {timeout:.1f}s",
                    {"timeout": True, "seconds": timeout},
                ) from exc
        finally:
            executor.shutdown(wait=False)


def measure_assets(output: BundleOutput) -> List[Asset]:
    """Turn emitted files into assets with raw and gzip sizes."""
    assets: List[Asset] = []
    for filename, contents in sorted(output.files.items()):
        if filename.endswith("LICENSE.txt"):
            continue
        match = _ASSET_NAME.match(filename)
        if not match:
            raise make_error(
                ErrorKind.UNEXPECTED_BUILD,
                f"Found an asset without the `.bundle` suffix: {filename}",
                {"asset": filename},
            )
        entry_name, extension = match.groups()
        size = len(contents)
        assets.append(
            Asset(name=entry_name, type=extension, size=size, gzip=gzip_size(contents, size))
        )
    return assets


def gzip_size(contents: bytes, size: Optional[int] = None) -> int:
    """Gzipped byte count, capped at the raw size.

    Servers skip compression when it would grow a response, so tiny files
    never cost more than their raw bytes.
    """
    raw = len(contents) if size is None else size
    compressed = len(gzip.compress(contents, compresslevel=_GZIP_LEVEL, mtime=0))
    return min(compressed, raw)


__all__ = ["BuildOrchestrator", "gzip_size", "measure_assets"]
