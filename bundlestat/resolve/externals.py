"""Externals derived from peer dependencies and platform builtins."""

from __future__ import annotations

from typing import Iterable, Mapping

from ..models import Externals

# Node.js builtin modules (``require('module').builtinModules``, without internals).
BUILTIN_MODULES = (
    "assert",
    "assert/strict",
    "async_hooks",
    "buffer",
    "child_process",
    "cluster",
    "console",
    "constants",
    "crypto",
    "dgram",
    "diagnostics_channel",
    "dns",
    "dns/promises",
    "domain",
    "events",
    "fs",
    "fs/promises",
    "http",
    "http2",
    "https",
    "inspector",
    "module",
    "net",
    "os",
    "path",
    "path/posix",
    "path/win32",
    "perf_hooks",
    "process",
    "punycode",
    "querystring",
    "readline",
    "readline/promises",
    "repl",
    "stream",
    "stream/consumers",
    "stream/promises",
    "stream/web",
    "string_decoder",
    "sys",
    "timers",
    "timers/promises",
    "tls",
    "trace_events",
    "tty",
    "url",
    "util",
    "util/types",
    "v8",
    "vm",
    "wasi",
    "worker_threads",
    "zlib",
)


def compute_externals(
    package_name: str,
    peer_dependencies: Iterable[str],
    dependencies: Mapping[str, str] | Iterable[str] = (),
    builtins: Iterable[str] = BUILTIN_MODULES,
) -> Externals:
    """Build the externals for one build of ``package_name``.

    A builtin whose name is the package's own name, or that the package
    declares as a regular npm dependency (``events``, ``buffer`` …), is
    bundled normally instead of being stubbed.
    """
    declared = set(dependencies)
    stubbed = tuple(
        module for module in builtins if module != package_name and module not in declared
    )
    peers = tuple(dict.fromkeys(peer_dependencies))
    return Externals(packages=peers, builtins=stubbed)


__all__ = ["BUILTIN_MODULES", "compute_externals"]
