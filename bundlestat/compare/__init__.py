"""Published-versus-local comparison, its persistence and its report."""

from .engine import (
    ComparisonEngine,
    ComparisonOutcome,
    ComparisonSummary,
    ComparisonTarget,
    SizeDifference,
)
from .report import ReportRenderer
from .results import ResultStore, result_filename

__all__ = [
    "ComparisonEngine",
    "ComparisonOutcome",
    "ComparisonSummary",
    "ComparisonTarget",
    "ReportRenderer",
    "ResultStore",
    "SizeDifference",
    "result_filename",
]
