"""Maps raw bundler failures onto the closed error taxonomy."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from ..bundlers.base import BundlerFailure
from ..errors import ErrorKind, PackageBuildError, make_error
from ..models import Externals

_VALID_NPM_NAME = re.compile(r"^(?:@[a-z0-9-*~][a-z0-9-*._~]*/)?[a-z0-9-~][a-z0-9-._~]*$")
_UNRESOLVED = "Could not resolve"


def classify_failure(
    failure: BaseException,
    *,
    package_name: Optional[str] = None,
    externals: Optional[Externals] = None,
) -> PackageBuildError:
    """Return the taxonomy error for ``failure``.

    Already-classified errors are returned untouched, so installer errors
    and earlier classifications keep their kind.
    """
    if isinstance(failure, PackageBuildError):
        return failure
    if not isinstance(failure, BundlerFailure):
        return make_error(ErrorKind.UNEXPECTED_BUILD, failure, {"type": type(failure).__name__})

    if failure.timed_out:
        return make_error(ErrorKind.BUILD, failure, {"timeout": True, "stage": failure.stage})
    if failure.stage == "launch":
        return make_error(ErrorKind.CLI_BUILD, failure, _extra_for(failure))
    if failure.stage == "minify":
        return make_error(ErrorKind.MINIFY, failure, _extra_for(failure))
    if failure.stage != "compile":
        return make_error(ErrorKind.UNEXPECTED_BUILD, failure, _extra_for(failure))

    if not failure.missing_modules and any(_UNRESOLVED in message for message in failure.messages):
        # Reported an unresolved import without naming it.
        return make_error(ErrorKind.UNEXPECTED_BUILD, failure, _extra_for(failure))

    missing = missing_package_names(failure.missing_modules, externals)
    if missing:
        if package_name is not None and missing == [package_name]:
            return make_error(ErrorKind.ENTRY_POINT, failure, _extra_for(failure))
        extra = _extra_for(failure)
        extra["missingModules"] = missing
        return make_error(ErrorKind.MISSING_DEPENDENCY, failure, extra)
    return make_error(ErrorKind.BUILD, failure, _extra_for(failure))


def missing_package_names(specifiers: Iterable[str], externals: Optional[Externals] = None) -> List[str]:
    """Reduce unresolved specifiers to unique package names, minus relative paths and peers."""
    names: List[str] = []
    for specifier in specifiers:
        if specifier.startswith((".", "/")):
            continue
        if externals is not None and (externals.is_external(specifier) or externals.is_builtin(specifier)):
            continue
        name = package_name_of(specifier)
        if name and name not in names:
            names.append(name)
    return names


def package_name_of(specifier: str) -> str:
    """``@babel/runtime/helpers/x`` -> ``@babel/runtime``; ``lodash/fp`` -> ``lodash``."""
    parts = specifier.split("/")
    if specifier.startswith("@"):
        return "/".join(parts[:2]) if len(parts) >= 2 else ""
    return parts[0]


def is_valid_npm_name(name: str) -> bool:
    return 0 < len(name) <= 214 and bool(_VALID_NPM_NAME.match(name))


def _extra_for(failure: BundlerFailure) -> dict:
    extra: dict = {"stage": failure.stage, "messages": list(failure.messages)}
    if failure.exit_code is not None:
        extra["exitCode"] = failure.exit_code
    return extra


__all__ = ["classify_failure", "is_valid_npm_name", "missing_package_names", "package_name_of"]
