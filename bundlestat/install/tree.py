"""Read-back of an installed node_modules tree."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

_SKIPPED_ENTRIES = {".bin", ".cache", ".modules.yaml", ".package-lock.json", ".yarn-integrity"}


@dataclass(frozen=True)
class PackageNode:
    """One physical copy of a package on disk."""

    name: str
    version: Optional[str]
    path: Path
    dependencies: tuple = field(default_factory=tuple)


class InstallTree:
    """Physical package copies under a workspace, with Node-style resolution."""

    def __init__(self, root: Path, nodes: Dict[Path, PackageNode]) -> None:
        self.root = root
        self._nodes = nodes
        self._by_name: Dict[str, List[PackageNode]] = {}
        for node in nodes.values():
            self._by_name.setdefault(node.name, []).append(node)

    @classmethod
    def scan(cls, root: Path) -> "InstallTree":
        """Walk ``root/node_modules`` recursively (pnpm's ``.pnpm`` store included)."""
        real_root = Path(os.path.realpath(root))
        nodes: Dict[Path, PackageNode] = {}
        pending = [real_root / "node_modules"]
        visited_dirs: Set[Path] = set()
        while pending:
            modules_dir = pending.pop()
            if modules_dir in visited_dirs or not modules_dir.is_dir():
                continue
            visited_dirs.add(modules_dir)
            for package_dir in _iter_package_dirs(modules_dir):
                real = Path(os.path.realpath(package_dir))
                if real in nodes:
                    continue
                node = _read_node(real)
                if node is None:
                    continue
                nodes[real] = node
                pending.append(real / "node_modules")
                # pnpm keeps siblings next to the package inside the store entry.
                if real.parent.name == "node_modules":
                    pending.append(real.parent)
                elif real.parent.name.startswith("@") and real.parent.parent.name == "node_modules":
                    pending.append(real.parent.parent)
        return cls(real_root, nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[PackageNode]:
        return iter(self._nodes.values())

    def node_at(self, path: Path) -> Optional[PackageNode]:
        return self._nodes.get(Path(os.path.realpath(path)))

    def copies_of(self, name: str) -> List[PackageNode]:
        return list(self._by_name.get(name, []))

    def versions_of(self, name: str) -> Set[str]:
        return {node.version for node in self.copies_of(name) if node.version}

    def resolve(self, from_dir: Path, name: str) -> Optional[PackageNode]:
        """Find the copy of ``name`` that ``require`` would load from ``from_dir``."""
        relative = Path(*name.split("/"))
        current = Path(os.path.realpath(from_dir))
        while True:
            lookup = current if current.name == "node_modules" else current / "node_modules"
            candidate = lookup / relative
            if candidate.exists():
                node = self.node_at(candidate)
                if node is not None:
                    return node
            if current == self.root or current.parent == current:
                return None
            current = current.parent

    def reachable_from(self, start: PackageNode) -> Set[Path]:
        """Paths of every copy in the transitive dependency subtree of ``start`` (inclusive)."""
        seen: Set[Path] = set()
        stack = [start]
        while stack:
            node = stack.pop()
            if node.path in seen:
                continue
            seen.add(node.path)
            for dependency in node.dependencies:
                child = self.resolve(node.path, dependency)
                if child is not None and child.path not in seen:
                    stack.append(child)
        return seen


def _iter_package_dirs(modules_dir: Path) -> Iterator[Path]:
    for entry in sorted(modules_dir.iterdir()):
        name = entry.name
        if name in _SKIPPED_ENTRIES:
            continue
        if name == ".pnpm":
            for store_entry in sorted(entry.iterdir()):
                nested = store_entry / "node_modules"
                if nested.is_dir():
                    yield from _iter_package_dirs(nested)
            continue
        if name.startswith("."):
            continue
        if name.startswith("@") and entry.is_dir():
            for scoped in sorted(entry.iterdir()):
                if scoped.is_dir():
                    yield scoped
            continue
        if entry.is_dir():
            yield entry


def _read_node(package_dir: Path) -> Optional[PackageNode]:
    manifest_path = package_dir / "package.json"
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    name = data.get("name")
    if not isinstance(name, str) or not name:
        return None
    version = data.get("version")
    dependencies: List[str] = []
    for key in ("dependencies", "optionalDependencies"):
        declared = data.get(key)
        if isinstance(declared, dict):
            dependencies.extend(dep for dep in declared if dep not in dependencies)
    return PackageNode(
        name=name,
        version=version if isinstance(version, str) else None,
        path=package_dir,
        dependencies=tuple(dependencies),
    )


__all__ = ["InstallTree", "PackageNode"]
