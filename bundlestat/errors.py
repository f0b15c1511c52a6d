"""Closed error taxonomy for package measurement failures."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Every way a single package measurement can fail."""

    PACKAGE_NOT_FOUND = "PackageNotFoundError"
    INSTALL = "InstallError"
    ENTRY_POINT = "EntryPointError"
    BUILD = "BuildError"
    MISSING_DEPENDENCY = "MissingDependencyError"
    MINIFY = "MinifyError"
    CLI_BUILD = "CLIBuildError"
    UNEXPECTED_BUILD = "UnexpectedBuildError"


class PackageBuildError(Exception):
    """A classified failure carrying its kind, the raw cause and structured extras.

    There is one exception type for the whole taxonomy; callers branch on
    ``error.kind`` rather than on ``isinstance`` checks. The raw failure is
    kept on ``original_error`` and, when it is an exception, also chained as
    ``__cause__`` by the factory helpers.
    """

    def __init__(
        self,
        kind: ErrorKind,
        original_error: Any = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(kind.value)
        self.kind = kind
        self.original_error = original_error
        self.extra: Dict[str, Any] = dict(extra or {})

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def missing_modules(self) -> List[str]:
        modules = self.extra.get("missingModules")
        return list(modules) if isinstance(modules, (list, tuple)) else []

    @property
    def message(self) -> str:
        """Human readable summary of the original failure."""
        original = self.original_error
        if original is None:
            return self.kind.value
        if isinstance(original, (list, tuple)):
            text = "\n".join(str(item) for item in original)
        else:
            text = str(original)
        return text.strip() or self.kind.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.kind.value,
            "originalError": _serialise_original(self.original_error),
            "extra": self.extra,
        }

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def __repr__(self) -> str:
        return f"PackageBuildError(kind={self.kind.value!r}, extra={self.extra!r})"


def make_error(
    kind: ErrorKind,
    original_error: Any = None,
    extra: Optional[Dict[str, Any]] = None,
) -> PackageBuildError:
    """Build a classified error, chaining the original exception when there is one."""
    error = PackageBuildError(kind, original_error, extra)
    if isinstance(original_error, BaseException):
        error.__cause__ = original_error
    return error


def _serialise_original(original: Any) -> Any:
    if original is None:
        return None
    if isinstance(original, (str, int, float, bool)):
        return original
    if isinstance(original, (list, tuple)):
        return [_serialise_original(item) for item in original]
    if isinstance(original, dict):
        return {str(key): _serialise_original(value) for key, value in original.items()}
    return str(original)


__all__ = ["ErrorKind", "PackageBuildError", "make_error"]
