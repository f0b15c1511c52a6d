"""Base classes for bundler plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import BuildRequest, ModuleRecord

OUTPUT_SUFFIX = ".bundle"


@dataclass(frozen=True)
class BundleConfig:
    """Deterministic bundler settings derived from a single BuildRequest."""

    entry_path: Path
    working_dir: Path
    output_dir: Path
    entry_name: str
    external_packages: Tuple[str, ...]
    stubbed_builtins: Tuple[str, ...]
    minifier: str
    mode: str
    timeout: Optional[float]
    format: str = "iife"
    platform: str = "browser"
    target: str = "es2017"
    main_fields: Tuple[str, ...] = ("module", "main")
    defines: Tuple[Tuple[str, str], ...] = ()

    @property
    def output_filename(self) -> str:
        return f"{self.entry_name}{OUTPUT_SUFFIX}.js"

    @property
    def output_path(self) -> Path:
        return self.output_dir / self.output_filename

    @classmethod
    def from_request(cls, request: BuildRequest, working_dir: Path, output_dir: Path) -> "BundleConfig":
        """Derive the configuration purely from ``request``; nothing is shared across calls."""
        patterns: List[str] = []
        for name in request.externals.packages:
            patterns.extend((name, f"{name}/*"))
        return cls(
            entry_path=request.entry_path,
            working_dir=working_dir,
            output_dir=output_dir,
            entry_name=request.entry_name,
            external_packages=tuple(patterns),
            stubbed_builtins=tuple(request.externals.builtins),
            minifier=request.minifier,
            mode=request.mode,
            timeout=request.timeout,
            defines=(("process.env.NODE_ENV", f'"{request.mode}"'),),
        )


@dataclass
class BundleOutput:
    """Raw bundler output: emitted files and, per file, the modules that produced it."""

    files: Dict[str, bytes]
    modules: Dict[str, List[ModuleRecord]] = field(default_factory=dict)


class BundlerFailure(Exception):
    """Unclassified failure reported by a bundler run.

    ``stage`` is ``launch`` when the process could not start or exit cleanly,
    ``compile`` for bundling errors and ``minify`` for minifier crashes.
    """

    def __init__(
        self,
        stage: str,
        messages: Sequence[str] = (),
        *,
        missing_modules: Sequence[str] = (),
        exit_code: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        summary = "; ".join(messages) if messages else stage
        super().__init__(f"{stage} failure: {summary}")
        self.stage = stage
        self.messages = list(messages)
        self.missing_modules = list(missing_modules)
        self.exit_code = exit_code
        self.timed_out = timed_out


class Bundler(ABC):
    """Contract for bundlers that compile and minify a single entry."""

    name: str = "bundler"

    @abstractmethod
    def bundle(self, config: BundleConfig) -> BundleOutput:
        """Build ``config.entry_path`` and return the emitted files, or raise BundlerFailure."""
