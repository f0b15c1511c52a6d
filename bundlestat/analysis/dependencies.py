"""Attribution of bundle bytes to the packages that own them."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from ..errors import ErrorKind, make_error
from ..install.tree import InstallTree
from ..logging import get_logger
from ..models import DependencySizeEntry, ModuleRecord

logger = get_logger("analysis.dependencies")


class DependencyAttributor:
    """Partitions a build's module graph by owning package.

    Sizes are the bytes each module occupies in the final (minified)
    output. Output bytes that belong to no module, the bundler's runtime
    scaffolding, are credited to the measured package itself so that the
    entries always add up to the build's total size.
    """

    def __init__(self, tree: InstallTree, *, root_name: str, root_dir: Path) -> None:
        self.tree = tree
        self.root_name = root_name
        self.root_dir = root_dir
        self._boundary = Path(os.path.realpath(tree.root))
        self._owner_cache: Dict[Path, Optional[str]] = {}

    def attribute(self, modules: Iterable[ModuleRecord], total_size: int) -> List[DependencySizeEntry]:
        """Split ``total_size`` bytes of one output file among the packages owning ``modules``.

        Raises UnexpectedBuildError when the modules claim more bytes than the
        file holds, which means they were measured against a different file.
        """
        sizes: Dict[str, int] = {self.root_name: 0}
        for module in modules:
            owner = self.owner_of(module.path) or self.root_name
            sizes[owner] = sizes.get(owner, 0) + module.size

        attributed = sum(sizes.values())
        residual = total_size - attributed
        if residual < 0:
            raise make_error(
                ErrorKind.UNEXPECTED_BUILD,
                f"Module sizes exceed the output size of {self.root_name} by {-residual} bytes",
                {"outputSize": total_size, "moduleSize": attributed},
            )
        sizes[self.root_name] += residual

        required_by = self._required_by()
        entries = [
            DependencySizeEntry(
                name=name,
                size=size,
                required_by=required_by.get(name) or frozenset({self.root_name}),
                version_ranges=self._version_ranges(name),
            )
            for name, size in sizes.items()
        ]
        entries.sort(key=lambda entry: (-entry.size, entry.name))
        logger.debug("Attributed %d bytes of %s to %d packages", total_size, self.root_name, len(entries))
        return entries

    def owner_of(self, module_path: Path) -> Optional[str]:
        """Name declared by the nearest enclosing package.json, stopping at the workspace root."""
        current = Path(os.path.realpath(module_path)).parent
        visited: List[Path] = []
        owner: Optional[str] = None
        while True:
            if current in self._owner_cache:
                owner = self._owner_cache[current]
                break
            visited.append(current)
            if current == self._boundary or current.parent == current:
                owner = None
                break
            name = _declared_name(current / "package.json")
            if name is not None:
                owner = name
                break
            current = current.parent
        for directory in visited:
            self._owner_cache[directory] = owner
        return owner

    def _required_by(self) -> Dict[str, FrozenSet[str]]:
        result: Dict[str, Set[str]] = {self.root_name: {self.root_name}}
        root_node = self.tree.node_at(self.root_dir) or self.tree.resolve(self.tree.root, self.root_name)
        if root_node is None:
            return {name: frozenset(values) for name, values in result.items()}

        for dependency in root_node.dependencies:
            direct = self.tree.resolve(root_node.path, dependency)
            if direct is None:
                continue
            result.setdefault(direct.name, set()).add(self.root_name)
            for path in self.tree.reachable_from(direct):
                if path == direct.path:
                    continue
                node = self.tree.node_at(path)
                if node is not None and node.name != self.root_name:
                    result.setdefault(node.name, set()).add(direct.name)
        return {name: frozenset(values) for name, values in result.items()}

    def _version_ranges(self, name: str) -> FrozenSet[str]:
        versions = set(self.tree.versions_of(name))
        if name == self.root_name:
            versions.add(f"file:{self.root_dir}")
        return frozenset(versions)


def _declared_name(manifest_path: Path) -> Optional[str]:
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError):
        return None
    if isinstance(data, dict):
        name = data.get("name")
        if isinstance(name, str) and name:
            return name
    return None


__all__ = ["DependencyAttributor"]
