"""Package string parsing, entry resolution and externals."""

from .entry import EntryPoint, read_manifest, resolve_entry, resolve_file
from .externals import BUILTIN_MODULES, compute_externals
from .spec import parse_package_string

__all__ = [
    "BUILTIN_MODULES",
    "EntryPoint",
    "compute_externals",
    "parse_package_string",
    "read_manifest",
    "resolve_entry",
    "resolve_file",
]
