"""Synthetic entry modules handed to the bundler."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Sequence

from ..errors import ErrorKind, make_error

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_$.-]+")


def render_entry_source(
    package_name: str,
    *,
    esm: bool = False,
    custom_imports: Sequence[str] | None = None,
) -> str:
    """Return source that imports the package and keeps every binding alive.

    Each imported binding is passed to ``console.log`` so that dead-code
    elimination cannot drop it.
    """
    specifier = json.dumps(package_name)
    if esm:
        if custom_imports:
            return _esm_named_imports(specifier, custom_imports)
        return f"import * as p from {specifier};\nconsole.log(p);\n"

    if custom_imports:
        locals_ = [f"__bs{index}" for index in range(len(custom_imports))]
        bindings = ", ".join(
            f"{_property_key(name)}: {local}" for name, local in zip(custom_imports, locals_)
        )
        return f"const {{ {bindings} }} = require({specifier});\nconsole.log({', '.join(locals_)});\n"
    return f"const p = require({specifier});\nconsole.log(p);\n"


def create_entry_point(
    working_dir: Path,
    package_name: str,
    *,
    esm: bool = False,
    custom_imports: Sequence[str] | None = None,
    entry_name: str = "main",
) -> Path:
    """Write the synthetic entry for ``entry_name`` into ``working_dir``."""
    filename = f"__entry.{entry_filename(entry_name)}.js"
    entry_path = working_dir / filename
    source = render_entry_source(package_name, esm=esm, custom_imports=custom_imports)
    try:
        entry_path.write_text(source, encoding="utf-8")
    except OSError as exc:
        raise make_error(ErrorKind.ENTRY_POINT, exc, {"path": str(entry_path)}) from exc
    return entry_path


def entry_filename(entry_name: str) -> str:
    cleaned = _UNSAFE_FILENAME.sub("_", entry_name)
    return cleaned or "entry"


def _esm_named_imports(specifier: str, names: Sequence[str]) -> str:
    # String export names (`import { "a b" as x }`) need an ES2022 target, so
    # those are read off a namespace import with a constant key instead.
    specifiers: list[str] = []
    values: list[str] = []
    for index, name in enumerate(names):
        if _IDENTIFIER.match(name):
            local = f"__bs{index}"
            specifiers.append(f"{name} as {local}")
            values.append(local)
        else:
            values.append(f"__bsns[{json.dumps(name)}]")
    lines: list[str] = []
    if specifiers:
        lines.append(f"import {{ {', '.join(specifiers)} }} from {specifier};")
    if len(specifiers) < len(names):
        lines.append(f"import * as __bsns from {specifier};")
    lines.append(f"console.log({', '.join(values)});")
    return "\n".join(lines) + "\n"


def _property_key(name: str) -> str:
    return name if _IDENTIFIER.match(name) else json.dumps(name)


__all__ = ["create_entry_point", "entry_filename", "render_entry_source"]
