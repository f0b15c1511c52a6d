"""Entry file resolution from a package manifest."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ErrorKind, make_error

_RESOLVE_EXTENSIONS = (".js", ".mjs", ".cjs", ".json")
_INDEX_FILES = ("index.js", "index.mjs", "index.cjs")


@dataclass(frozen=True)
class EntryPoint:
    """The file treated as program entry plus manifest-derived flags."""

    path: Path
    field: str
    name: str
    version: Optional[str]
    has_js_module: bool
    has_js_next: bool
    has_side_effects: Any
    is_module_type: bool
    dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies: List[str] = field(default_factory=list)

    @property
    def dependency_count(self) -> int:
        return len(self.dependencies)

    @property
    def is_esm(self) -> bool:
        return self.field == "module" or self.is_module_type or self.path.suffix == ".mjs"


def read_manifest(package_dir: Path) -> Dict[str, Any]:
    """Return the parsed package.json of ``package_dir`` or raise EntryPointError."""
    manifest_path = package_dir / "package.json"
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise make_error(
            ErrorKind.ENTRY_POINT, exc, {"reason": "missing manifest", "path": str(manifest_path)}
        ) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise make_error(
            ErrorKind.ENTRY_POINT, exc, {"reason": "unreadable manifest", "path": str(manifest_path)}
        ) from exc
    if not isinstance(data, dict):
        raise make_error(
            ErrorKind.ENTRY_POINT,
            f"{manifest_path} must contain a JSON object",
            {"path": str(manifest_path)},
        )
    return data


def resolve_entry(package_dir: Path) -> EntryPoint:
    """Resolve the entry file of the package rooted at ``package_dir``.

    Priority is ``module`` > ``main`` > conventional ``index`` file. The
    highest-priority field that is declared decides the candidate; if that
    file is not on disk the package has no usable entry.
    """
    manifest = read_manifest(package_dir)

    module_field = manifest.get("module")
    main_field = manifest.get("main")
    if isinstance(module_field, str) and module_field:
        field_name, declared = "module", module_field
    elif isinstance(main_field, str) and main_field:
        field_name, declared = "main", main_field
    else:
        field_name, declared = "index", None

    if declared is not None:
        path = resolve_file(package_dir / declared)
    else:
        path = _find_index(package_dir)

    if path is None:
        target = declared or "index.js"
        raise make_error(
            ErrorKind.ENTRY_POINT,
            f"Entry file '{target}' declared by '{field_name}' does not exist in {package_dir}",
            {"field": field_name, "path": str(package_dir / target)},
        )

    dependencies = manifest.get("dependencies")
    peers = manifest.get("peerDependencies")
    version = manifest.get("version")
    name = manifest.get("name")
    return EntryPoint(
        path=path,
        field=field_name,
        name=name if isinstance(name, str) else package_dir.name,
        version=version if isinstance(version, str) else None,
        has_js_module=bool(module_field),
        has_js_next=bool(manifest.get("jsnext:main")),
        has_side_effects=manifest.get("sideEffects", True),
        is_module_type=manifest.get("type") == "module",
        dependencies=dict(dependencies) if isinstance(dependencies, dict) else {},
        peer_dependencies=sorted(peers) if isinstance(peers, dict) else [],
    )


def resolve_file(candidate: Path) -> Optional[Path]:
    """Complete ``candidate`` the way Node does: exact file, extensions, then index files."""
    if candidate.is_file():
        return candidate
    for extension in _RESOLVE_EXTENSIONS:
        with_extension = candidate.with_name(candidate.name + extension)
        if with_extension.is_file():
            return with_extension
    if candidate.is_dir():
        return _find_index(candidate)
    return None


def _find_index(directory: Path) -> Optional[Path]:
    for filename in _INDEX_FILES:
        path = directory / filename
        if path.is_file():
            return path
    return None


__all__ = ["EntryPoint", "read_manifest", "resolve_entry", "resolve_file"]
