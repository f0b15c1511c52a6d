"""Export discovery and per-export cost measurement."""

from __future__ import annotations

import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

from ..build.entry import create_entry_point, entry_filename
from ..build.orchestrator import BuildOrchestrator
from ..errors import ErrorKind, PackageBuildError, make_error
from ..logging import get_logger
from ..models import BuildRequest, ExportSizeEntry, Externals
from ..resolve.entry import read_manifest, resolve_entry, resolve_file

logger = get_logger("analysis.exports")

_JS_LANGUAGE = Language(tree_sitter_javascript.language())

_CJS_PATTERNS = (
    re.compile(r"(?<![\w$.])exports\.([A-Za-z_$][\w$]*)\s*="),
    re.compile(r"(?<![\w$.])module\.exports\.([A-Za-z_$][\w$]*)\s*="),
    re.compile(r"Object\.defineProperty\(\s*(?:module\.)?exports\s*,\s*['\"]([^'\"]+)['\"]"),
)
_CJS_OBJECT_ASSIGNMENT = re.compile(r"(?<![\w$.])module\.exports\s*=\s*\{")
_CJS_OBJECT_KEY = re.compile(r"^\s*(?:['\"]([^'\"]+)['\"]|([A-Za-z_$][\w$]*))\s*(?::|,|$|\()")
_DECLARATION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "lexical_declaration",
    "variable_declaration",
}


@dataclass
class _ModuleExports:
    names: List[str]
    star_sources: List[str]
    has_module_syntax: bool


class ExportDiscovery:
    """Statically enumerates the named exports of an installed package.

    ESM entries are parsed with tree-sitter and ``export * from`` chains are
    followed, including into other installed packages. CommonJS entries fall
    back to a scan of ``exports.X =`` style assignments.
    """

    def __init__(self) -> None:
        self._parser = Parser(_JS_LANGUAGE)

    def discover(self, package_dir: Path, relative_to: Optional[Path] = None) -> Dict[str, str]:
        """Return ``{export_name: defining_file}`` for the package at ``package_dir``.

        Paths are relative to ``relative_to`` (the package directory by
        default). Raises EntryPointError when nothing is exported.
        """
        entry = _esm_entry(package_dir)
        root = relative_to or package_dir
        visited: Set[Path] = set()
        exports = self._walk(entry, root, visited)
        if not exports:
            exports = {name: _relative(entry, root) for name in cjs_export_names(_read(entry))}
        if not exports:
            raise make_error(
                ErrorKind.ENTRY_POINT,
                f"Could not determine any exports of {package_dir}",
                {"path": str(entry)},
            )
        return exports

    def module_exports(self, source: str) -> _ModuleExports:
        """Parse ``source`` and list its direct exports and ``export *`` sources."""
        source_bytes = source.encode("utf-8")
        tree = self._parser.parse(source_bytes)
        names: List[str] = []
        star_sources: List[str] = []
        has_module_syntax = False
        for child in tree.root_node.children:
            if child.type == "import_statement":
                has_module_syntax = True
            elif child.type == "export_statement":
                has_module_syntax = True
                exported, star = _exports_of_statement(child)
                names.extend(exported)
                if star is not None:
                    star_sources.append(star)
        return _ModuleExports(names=names, star_sources=star_sources, has_module_syntax=has_module_syntax)

    def _walk(self, path: Path, root: Path, visited: Set[Path]) -> Dict[str, str]:
        real = Path(os.path.realpath(path))
        if real in visited:
            return {}
        visited.add(real)

        parsed = self.module_exports(_read(path))
        if not parsed.has_module_syntax:
            return {}

        relative = _relative(path, root)
        exports: Dict[str, str] = {name: relative for name in parsed.names}
        for specifier in parsed.star_sources:
            target = resolve_specifier(path.parent, specifier)
            if target is None:
                logger.warning("Could not resolve '%s' re-exported from %s", specifier, path)
                continue
            for name, defined_in in self._walk(target, root, visited).items():
                # `export *` never re-exports default.
                if name != "default":
                    exports.setdefault(name, defined_in)
        return exports


def cjs_export_names(source: str) -> List[str]:
    """Enumerate the keys a CommonJS module assigns to its export object."""
    names: List[str] = []
    for pattern in _CJS_PATTERNS:
        names.extend(pattern.findall(source))
    for match in _CJS_OBJECT_ASSIGNMENT.finditer(source):
        body = _balanced_body(source, match.end() - 1)
        for entry in _split_top_level(body):
            key = _CJS_OBJECT_KEY.match(entry)
            if key:
                names.append(key.group(1) or key.group(2))
    return [name for name in dict.fromkeys(names) if name != "__esModule"]


def resolve_specifier(from_dir: Path, specifier: str) -> Optional[Path]:
    """Resolve an import specifier from ``from_dir`` the way Node would."""
    if specifier.startswith((".", "/")):
        return resolve_file(from_dir / specifier)

    parts = specifier.split("/")
    count = 2 if specifier.startswith("@") else 1
    package_name, subpath = "/".join(parts[:count]), "/".join(parts[count:])
    current = from_dir
    while True:
        candidate = current / "node_modules" / package_name
        if (candidate / "package.json").is_file():
            if subpath:
                return resolve_file(candidate / subpath)
            try:
                return resolve_entry(candidate).path
            except PackageBuildError:
                return None
        if current.parent == current:
            return None
        current = current.parent


class ExportSizeAnalyzer:
    """Measures the gross bundled cost of each export of one installed package.

    Every export gets its own synthetic entry that imports exactly that
    binding. The builds are independent and run concurrently; the
    orchestrator's governor bounds how many compile at once.
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        working_dir: Path,
        externals: Externals,
        *,
        minifier: str = "esbuild",
        timeout: Optional[float] = None,
        debug: bool = False,
        max_workers: Optional[int] = None,
        discovery: Optional[ExportDiscovery] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.working_dir = working_dir
        self.externals = externals
        self.minifier = minifier
        self.timeout = timeout
        self.debug = debug
        self.max_workers = max_workers
        self.discovery = discovery or ExportDiscovery()

    def analyze(
        self,
        package_dir: Path,
        export_names: Optional[Iterable[str]] = None,
        custom_imports: Optional[Sequence[str]] = None,
    ) -> List[ExportSizeEntry]:
        manifest = read_manifest(package_dir)
        package_name = manifest.get("name") or package_dir.name

        paths: Dict[str, str] = {}
        if export_names is None:
            paths = self.discovery.discover(package_dir, relative_to=self.working_dir)
            export_names = list(paths)
        names = [
            name
            for name in dict.fromkeys([*export_names, *(custom_imports or ())])
            if name != "default"
        ]
        if not names:
            raise make_error(
                ErrorKind.ENTRY_POINT,
                f"{package_name} has no named exports to measure",
                {"path": str(package_dir)},
            )

        logger.debug("Measuring %d exports of %s", len(names), package_name)
        workers = self.max_workers or min(len(names), os.cpu_count() or 4)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bundlestat-export") as pool:
            measured = list(
                pool.map(lambda item: self._measure(package_name, *item), enumerate(names))
            )

        return [
            ExportSizeEntry(
                export_name=name,
                size=size,
                gzip=gzip,
                path=paths.get(name),
                ignored_missing_dependencies=ignored,
            )
            for name, (size, gzip, ignored) in zip(names, measured)
        ]

    def _measure(
        self, package_name: str, index: int, export_name: str
    ) -> Tuple[int, int, Tuple[str, ...]]:
        # The index keeps entry files and assets distinct when two names sanitise alike.
        entry_name = f"{index}-{entry_filename(export_name)}"
        entry_path = create_entry_point(
            self.working_dir,
            package_name,
            esm=True,
            custom_imports=[export_name],
            entry_name=entry_name,
        )
        try:
            result = self.orchestrator.build_ignoring_missing_deps(
                BuildRequest(
                    entry_path=entry_path,
                    externals=self.externals,
                    minifier=self.minifier,
                    debug=self.debug,
                    timeout=self.timeout,
                    package_name=package_name,
                    entry_name=entry_name,
                )
            )
        finally:
            if not self.debug:
                entry_path.unlink(missing_ok=True)
        asset = next(
            (item for item in result.assets if item.name == entry_name and item.type == "js"), None
        )
        if asset is None:
            raise make_error(
                ErrorKind.UNEXPECTED_BUILD,
                f"Build of export '{export_name}' emitted no JavaScript asset",
                {"export": export_name},
            )
        return asset.size, asset.gzip, tuple(result.ignored_missing_dependencies)


def _exports_of_statement(node: Node) -> Tuple[List[str], Optional[str]]:
    """Names exported by one ``export`` statement, and its ``export *`` source if any."""
    names: List[str] = []
    source_node = node.child_by_field_name("source")
    source = _string_value(source_node) if source_node is not None else None

    child_types = [child.type for child in node.children]
    if "default" in child_types:
        return ["default"], None

    declaration = node.child_by_field_name("declaration")
    if declaration is not None and declaration.type in _DECLARATION_TYPES:
        names.extend(_declared_names(declaration))
        return names, None

    for child in node.children:
        if child.type == "export_clause":
            for specifier in child.named_children:
                if specifier.type != "export_specifier":
                    continue
                exported = specifier.child_by_field_name("alias") or specifier.child_by_field_name("name")
                if exported is not None:
                    names.append(_binding_name(exported))
            return names, None
        if child.type == "namespace_export":
            # export * as ns from "x"
            identifier = child.named_children[-1] if child.named_children else None
            if identifier is not None:
                names.append(_binding_name(identifier))
            return names, None

    if "*" in child_types and source is not None:
        return names, source
    return names, None


def _declared_names(declaration: Node) -> List[str]:
    if declaration.type in {"lexical_declaration", "variable_declaration"}:
        names: List[str] = []
        for declarator in declaration.named_children:
            if declarator.type != "variable_declarator":
                continue
            target = declarator.child_by_field_name("name")
            if target is not None:
                names.extend(_pattern_names(target))
        return names
    name_node = declaration.child_by_field_name("name")
    return [_text(name_node)] if name_node is not None else []


def _pattern_names(node: Node) -> List[str]:
    """Identifiers bound by a (possibly destructuring) declaration target."""
    if node.type in {"identifier", "shorthand_property_identifier_pattern"}:
        return [_text(node)]
    if node.type == "pair_pattern":
        value = node.child_by_field_name("value")
        return _pattern_names(value) if value is not None else []
    if node.type == "assignment_pattern":
        left = node.child_by_field_name("left")
        return _pattern_names(left) if left is not None else []
    names: List[str] = []
    for child in node.named_children:
        names.extend(_pattern_names(child))
    return names


def _binding_name(node: Node) -> str:
    if node.type == "string":
        return _string_value(node)
    return _text(node)


def _string_value(node: Node) -> str:
    for child in node.named_children:
        if child.type == "string_fragment":
            return _text(child)
    return _text(node).strip("'\"")


def _text(node: Node) -> str:
    return (node.text or b"").decode("utf-8", errors="ignore")


def _esm_entry(package_dir: Path) -> Path:
    return resolve_entry(package_dir).path


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise make_error(ErrorKind.ENTRY_POINT, exc, {"path": str(path)}) from exc


def _relative(path: Path, root: Path) -> str:
    return os.path.relpath(path, root)


def _balanced_body(source: str, open_index: int) -> str:
    depth = 0
    for index in range(open_index, len(source)):
        char = source[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return source[open_index + 1 : index]
    return source[open_index + 1 :]


def _split_top_level(body: str) -> List[str]:
    """Split an object literal body on commas that are not nested."""
    entries: List[str] = []
    depth = 0
    current: List[str] = []
    for char in body:
        if char in "{[(":
            depth += 1
        elif char in "}])":
            depth -= 1
        if char == "," and depth == 0:
            entries.append("".join(current))
            current = []
            continue
        current.append(char)
    if "".join(current).strip():
        entries.append("".join(current))
    return entries


__all__ = [
    "ExportDiscovery",
    "ExportSizeAnalyzer",
    "cjs_export_names",
    "resolve_specifier",
]
