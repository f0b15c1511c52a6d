"""Per-run working directories."""

from __future__ import annotations

import json
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..logging import get_logger

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

logger = get_logger("install.workspace")


@dataclass
class Workspace:
    """An isolated install/build directory owned by exactly one pipeline run."""

    path: Path
    tmp_root: Path
    debug: bool = False

    @classmethod
    def create(cls, package_name: str, tmp_root: Path, *, debug: bool = False) -> "Workspace":
        """Create a fresh directory seeded with an empty manifest."""
        packages_root = tmp_root / "packages"
        packages_root.mkdir(parents=True, exist_ok=True)
        prefix = f"build-{sanitize_name(package_name)}-"
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=packages_root))
        (path / "package.json").write_text(
            json.dumps({"private": True, "dependencies": {}}), encoding="utf-8"
        )
        logger.debug("Created workspace %s", path)
        return cls(path=path, tmp_root=tmp_root, debug=debug)

    @property
    def node_modules(self) -> Path:
        return self.path / "node_modules"

    @property
    def cache_dir(self) -> Path:
        return self.tmp_root / "cache"

    def package_dir(self, package_name: str) -> Path:
        return self.node_modules.joinpath(*package_name.split("/"))

    def cleanup(self) -> None:
        """Remove the directory unless the run asked to keep it for inspection."""
        if self.debug:
            logger.info("Keeping workspace %s (debug)", self.path)
            return
        shutil.rmtree(self.path, ignore_errors=True)

    def __enter__(self) -> "Workspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.cleanup()


def sanitize_name(package_name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", package_name.lstrip("@"))
    return cleaned.strip("-.") or "package"


__all__ = ["Workspace", "sanitize_name"]
