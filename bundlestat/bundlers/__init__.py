"""Bundler plugin implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable, List

from .base import BundleConfig, BundleOutput, Bundler, BundlerFailure
from .esbuild import EsbuildBundler

_ENTRY_POINT_GROUP = "bundlestat.bundlers"

_BUILTIN_FACTORIES: Dict[str, Callable[[], Bundler]] = {
    "esbuild": EsbuildBundler,
}


def available_bundlers() -> List[str]:
    """Names accepted by :func:`get_bundler`, built-ins first."""
    names = list(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        if entry.name.lower() not in names:
            names.append(entry.name.lower())
    return names


def get_bundler(name: str = "esbuild") -> Bundler:
    """Instantiate the bundler registered under ``name``."""
    key = name.lower()
    factory = _BUILTIN_FACTORIES.get(key)
    if factory is not None:
        return factory()

    for entry in _iter_entry_points():
        if entry.name.lower() != key:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - depends on installed plugins
            raise RuntimeError(f"Failed to load bundler entry point '{entry.name}': {exc}") from exc
        return _coerce_bundler(loaded)

    raise ValueError(
        f"Unknown bundler '{name}'. Available bundlers: {', '.join(available_bundlers())}"
    )


def _coerce_bundler(obj: object) -> Bundler:
    if isinstance(obj, Bundler):
        return obj
    if isinstance(obj, type) and issubclass(obj, Bundler):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, Bundler):
            return instance
    raise TypeError("Bundler entry point must be a Bundler subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "BundleConfig",
    "BundleOutput",
    "Bundler",
    "BundlerFailure",
    "EsbuildBundler",
    "available_bundlers",
    "get_bundler",
]
