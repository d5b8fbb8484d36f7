from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .outcome import ImportOutcome

"""Aggregated result models for the preview and commit steps.

PreviewCounts feeds the preview summary header; ImportSummary and CommitResult
feed the final screen / SUMMARY line.
"""

__all__ = [
    "PreviewCounts",
    "RowFailure",
    "ImportSummary",
    "CommitResult",
]


@dataclass(frozen=True)
class PreviewCounts:
    """Row counts shown above the preview table."""
    total: int
    valid: int
    warning: int
    error: int
    selected: int


@dataclass(frozen=True)
class RowFailure:
    row_index: int  # 0-based data row index
    label: str
    message: str

    @property
    def line_number(self) -> int:
        return self.row_index + 2


@dataclass(frozen=True)
class ImportSummary:
    """Counts per (entity type x action) plus every failed row."""
    people_created: int = 0
    people_updated: int = 0
    organizations_created: int = 0
    organizations_updated: int = 0
    failures: tuple[RowFailure, ...] = field(default_factory=tuple)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


@dataclass(frozen=True)
class CommitResult:
    outcomes: tuple[ImportOutcome, ...]
    summary: ImportSummary
    total_selected: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
