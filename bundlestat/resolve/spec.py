"""Parsing of user-supplied package strings."""

from __future__ import annotations

import json
from pathlib import Path

from ..errors import ErrorKind, make_error
from ..models import PackageSpec


def parse_package_string(package_string: str) -> PackageSpec:
    """Turn ``name``, ``name@range``, ``@scope/name@range`` or a local path into a spec."""
    value = package_string.strip()
    if not value:
        raise ValueError("Package string must not be empty")

    expanded = Path(value).expanduser() if value.startswith("~") else Path(value)
    if (expanded / "package.json").is_file():
        return _parse_local(expanded)
    if _looks_like_path(value):
        raise make_error(
            ErrorKind.PACKAGE_NOT_FOUND,
            f"No package.json found at local path '{value}'",
            {"path": str(expanded)},
        )
    if value.startswith("@"):
        return _parse_scoped(value)
    return _parse_unscoped(value)


def _parse_local(path: Path) -> PackageSpec:
    manifest_path = path / "package.json"
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise make_error(ErrorKind.PACKAGE_NOT_FOUND, exc, {"path": str(path)}) from exc
    name = manifest.get("name") if isinstance(manifest, dict) else None
    if not isinstance(name, str) or not name:
        raise make_error(
            ErrorKind.PACKAGE_NOT_FOUND,
            f"{manifest_path} does not declare a package name",
            {"path": str(path)},
        )
    version = manifest.get("version")
    return PackageSpec(
        name=name,
        version_range=version if isinstance(version, str) else None,
        local_path=path.resolve(),
    )


def _parse_scoped(value: str) -> PackageSpec:
    last_at = value.rfind("@")
    if last_at == 0:
        return PackageSpec(name=value)
    return PackageSpec(name=value[:last_at], version_range=value[last_at + 1 :] or None)


def _parse_unscoped(value: str) -> PackageSpec:
    last_at = value.rfind("@")
    if last_at == -1:
        return PackageSpec(name=value)
    return PackageSpec(name=value[:last_at], version_range=value[last_at + 1 :] or None)


def _looks_like_path(value: str) -> bool:
    return value.startswith((".", "/", "~")) or "\\" in value


__all__ = ["parse_package_string"]
