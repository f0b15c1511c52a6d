"""Published-versus-local comparison runs."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ErrorKind, PackageBuildError, make_error
from ..logging import get_logger
from ..models import PackageSpec, StatsResult
from ..pipeline import StatsPipeline
from ..resolve.spec import parse_package_string

logger = get_logger("compare")


@dataclass(frozen=True)
class ComparisonTarget:
    """A package to measure both from the registry and from a local working copy."""

    name: str
    local_path: Path
    published_version: Optional[str] = None

    @property
    def published_spec(self) -> PackageSpec:
        return PackageSpec(name=self.name, version_range=self.published_version)

    @property
    def local_spec(self) -> PackageSpec:
        return parse_package_string(str(self.local_path))


@dataclass(frozen=True)
class SizeDifference:
    size_change: int
    size_change_percent: Optional[float]
    gzip_change: int
    gzip_change_percent: Optional[float]

    @classmethod
    def between(cls, published: StatsResult, local: StatsResult) -> "SizeDifference":
        size_change = local.size - published.size
        gzip_change = local.gzip - published.gzip
        return cls(
            size_change=size_change,
            size_change_percent=_percent(size_change, published.size),
            gzip_change=gzip_change,
            gzip_change_percent=_percent(gzip_change, published.gzip),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sizeChange": self.size_change,
            "sizeChangePercent": self.size_change_percent,
            "gzipChange": self.gzip_change,
            "gzipChangePercent": self.gzip_change_percent,
        }


@dataclass
class ComparisonOutcome:
    """Result for one package: both measurements and their difference, or the failure."""

    target: ComparisonTarget
    published: Optional[StatsResult] = None
    local: Optional[StatsResult] = None
    error: Optional[PackageBuildError] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z")
    )

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def ok(self) -> bool:
        return self.error is None and self.published is not None and self.local is not None

    @property
    def difference(self) -> Optional[SizeDifference]:
        if not self.ok:
            return None
        assert self.published is not None and self.local is not None
        return SizeDifference.between(self.published, self.local)

    @property
    def status(self) -> str:
        difference = self.difference
        if difference is None:
            return "failed"
        if difference.size_change < 0:
            return "improved"
        if difference.size_change > 0:
            return "regressed"
        return "unchanged"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "package": self.name,
            "publishedVersion": self.target.published_version or "latest",
            "localVersion": str(self.target.local_path),
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
            return data
        data["publishedStats"] = self.published.to_dict() if self.published else None
        data["localStats"] = self.local.to_dict() if self.local else None
        difference = self.difference
        data["differences"] = difference.to_dict() if difference else None
        return data


@dataclass
class ComparisonSummary:
    """All outcomes of a batch, in input order."""

    outcomes: List[ComparisonOutcome]

    @property
    def succeeded(self) -> List[ComparisonOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> List[ComparisonOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def counts(self) -> Dict[str, int]:
        return {
            "total": len(self.outcomes),
            "improved": self.count("improved"),
            "regressed": self.count("regressed"),
            "unchanged": self.count("unchanged"),
            "failed": self.count("failed"),
        }


class ComparisonEngine:
    """Measures each target twice and diffs the results.

    Both runs of every target are submitted to one thread pool and share
    the pipeline's governor, so installs and builds across the whole batch
    stay within its limits. A failing package is recorded on its outcome
    and never affects its siblings.
    """

    def __init__(self, pipeline: StatsPipeline | None = None, *, max_workers: Optional[int] = None) -> None:
        self.pipeline = pipeline or StatsPipeline()
        self.max_workers = max_workers

    def compare(self, targets: Sequence[ComparisonTarget]) -> ComparisonSummary:
        if not targets:
            return ComparisonSummary(outcomes=[])
        workers = self.max_workers or max(2, 2 * len(targets))
        logger.debug("Comparing %d packages with %d workers", len(targets), workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bundlestat-compare") as pool:
            scheduled = [
                (
                    target,
                    pool.submit(self._run, target, published=True),
                    pool.submit(self._run, target, published=False),
                )
                for target in targets
            ]
            outcomes = [
                self._collect(target, published, local) for target, published, local in scheduled
            ]

        summary = ComparisonSummary(outcomes=outcomes)
        logger.debug("Comparison finished: %s", summary.counts())
        return summary

    def _run(self, target: ComparisonTarget, *, published: bool) -> StatsResult:
        spec = target.published_spec if published else target.local_spec
        return self.pipeline.get_stats(spec)

    def _collect(
        self,
        target: ComparisonTarget,
        published: "Future[StatsResult]",
        local: "Future[StatsResult]",
    ) -> ComparisonOutcome:
        outcome = ComparisonOutcome(target=target)
        try:
            outcome.published = published.result()
            outcome.local = local.result()
        except PackageBuildError as error:
            outcome.error = error
        except Exception as exc:
            logger.exception("Unexpected failure comparing %s", target.name)
            outcome.error = make_error(ErrorKind.UNEXPECTED_BUILD, exc)
        if outcome.error is not None:
            logger.warning("Comparison of %s failed: %s", target.name, outcome.error)
        return outcome


def _percent(change: int, base: int) -> Optional[float]:
    if base == 0:
        return 0.0 if change == 0 else None
    return round(change / base * 100, 2)


__all__ = [
    "ComparisonEngine",
    "ComparisonOutcome",
    "ComparisonSummary",
    "ComparisonTarget",
    "SizeDifference",
]
