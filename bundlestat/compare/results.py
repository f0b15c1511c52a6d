"""On-disk persistence of comparison results."""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..logging import get_logger
from .engine import ComparisonOutcome, ComparisonSummary
from .report import ReportRenderer

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9@._-]+")

logger = get_logger("compare.results")


class ResultStore:
    """Writes one JSON file per compared package plus a Markdown report.

    Every batch gets its own timestamped directory under ``root``.
    """

    def __init__(self, root: Path, renderer: ReportRenderer | None = None) -> None:
        self.root = root
        self.renderer = renderer or ReportRenderer()

    def create_run_dir(self, now: Optional[datetime] = None) -> Path:
        moment = now or datetime.now()
        base = self.root / moment.strftime("%Y-%m-%d_%H%M%S")
        run_dir = base
        suffix = 1
        while run_dir.exists():
            run_dir = base.with_name(f"{base.name}-{suffix}")
            suffix += 1
        run_dir.mkdir(parents=True)
        return run_dir

    def save(self, summary: ComparisonSummary, now: Optional[datetime] = None) -> Path:
        """Persist ``summary`` and return the directory holding it.

        Failed packages appear only in the report; result files are written
        for successful comparisons.
        """
        run_dir = self.create_run_dir(now)
        written: List[Path] = [self.save_result(run_dir, outcome) for outcome in summary.succeeded]
        report_path = run_dir / "report.md"
        report_path.write_text(self.renderer.render(summary), encoding="utf-8")
        logger.debug("Wrote %d result files and %s", len(written), report_path)
        return run_dir

    def save_result(self, run_dir: Path, outcome: ComparisonOutcome) -> Path:
        path = run_dir / result_filename(outcome.name)
        path.write_text(json.dumps(outcome.to_dict(), indent=2), encoding="utf-8")
        return path


def result_filename(package_name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", package_name.replace("/", "-"))
    return f"{cleaned}_result.json"


__all__ = ["ResultStore", "result_filename"]
