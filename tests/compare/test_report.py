from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from bundlestat.compare import (
    ComparisonOutcome,
    ComparisonSummary,
    ComparisonTarget,
    ReportRenderer,
    ResultStore,
    result_filename,
)
from bundlestat.errors import ErrorKind, make_error
from bundlestat.models import StatsResult


def stats(size: int, gzip: int) -> StatsResult:
    return StatsResult(
        build_version="1.0.0",
        dependency_count=0,
        has_js_module=True,
        has_js_next=False,
        has_side_effects=False,
        is_module_type=True,
        size=size,
        gzip=gzip,
        assets=[],
        dependency_sizes=[],
    )


def _summary(tmp_path: Path) -> ComparisonSummary:
    return ComparisonSummary(
        outcomes=[
            ComparisonOutcome(
                target=ComparisonTarget(name="@scope/ui", local_path=tmp_path / "ui"),
                published=stats(1000, 400),
                local=stats(900, 380),
            ),
            ComparisonOutcome(
                target=ComparisonTarget(name="grow", local_path=tmp_path / "grow"),
                published=stats(100, 50),
                local=stats(150, 60),
            ),
            ComparisonOutcome(
                target=ComparisonTarget(name="broken", local_path=tmp_path / "broken"),
                error=make_error(ErrorKind.BUILD, "Unexpected token |\nat line 3"),
            ),
        ]
    )


def test_report_lists_summary_results_and_failures(tmp_path: Path) -> None:
    report = ReportRenderer().render(
        _summary(tmp_path), generated_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    )

    assert report.startswith("# Package Comparison Report\n")
    assert "Generated: 2024-05-01T12:00:00Z" in report
    assert "- Total Packages: 3" in report
    assert "- Improved: 1" in report
    assert "- Regressed: 1" in report
    assert "- Unchanged: 0" in report
    assert "- Failed: 1" in report
    assert "### @scope/ui" in report
    assert "| Size | 1000 | 900 | -100B (-10.00%) |" in report
    assert "| Size | 100 | 150 | +50B (+50.00%) |" in report
    assert "| broken | BuildError | Unexpected token \\| at line 3 |" in report


def test_report_without_failures_has_no_failure_section(tmp_path: Path) -> None:
    summary = ComparisonSummary(outcomes=_summary(tmp_path).succeeded)

    report = ReportRenderer().render(summary)

    assert "## Failures" not in report
    assert "- Failed:" not in report


def test_result_store_writes_results_and_report(tmp_path: Path) -> None:
    store = ResultStore(tmp_path / "results")

    run_dir = store.save(_summary(tmp_path), now=datetime(2024, 5, 1, 12, 30, 5))

    assert run_dir.name == "2024-05-01_123005"
    assert sorted(path.name for path in run_dir.iterdir()) == [
        "@scope-ui_result.json",
        "grow_result.json",
        "report.md",
    ]
    data = json.loads((run_dir / "grow_result.json").read_text(encoding="utf-8"))
    assert data["differences"]["sizeChange"] == 50


def test_run_dirs_never_collide(tmp_path: Path) -> None:
    store = ResultStore(tmp_path)
    moment = datetime(2024, 5, 1, 12, 30, 5)

    first = store.create_run_dir(moment)
    second = store.create_run_dir(moment)

    assert first != second
    assert second.name == "2024-05-01_123005-1"


def test_result_filename_flattens_scopes() -> None:
    assert result_filename("@babel/core") == "@babel-core_result.json"
    assert result_filename("react") == "react_result.json"
