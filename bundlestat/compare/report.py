"""Markdown rendering of a comparison batch."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from .engine import ComparisonSummary

_TEMPLATE_NAME = "report.md.j2"


class ReportRenderer:
    """Renders ``report.md`` from the bundled Jinja template."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._env.filters["signed"] = _signed
        self._env.filters["percent"] = _percent
        self._env.filters["oneline"] = _oneline

    def render(self, summary: ComparisonSummary, *, generated_at: Optional[datetime] = None) -> str:
        template = self._env.get_template(_TEMPLATE_NAME)
        moment = generated_at or datetime.now(UTC)
        return template.render(
            generated_at=moment.isoformat().replace("+00:00", "Z"),
            counts=summary.counts(),
            succeeded=summary.succeeded,
            failed=summary.failed,
        )


def _signed(value: int) -> str:
    return f"+{value}" if value > 0 else str(value)


def _percent(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:+.2f}%"


def _oneline(value: str) -> str:
    return " ".join(str(value).split()).replace("|", "\\|")


__all__ = ["ReportRenderer"]
