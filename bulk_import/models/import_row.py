from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""ImportRow model: a source row after mapping, validation and duplicate checks.

State carried per row during the preview step. Rows are immutable; selection
changes produce new instances (see services.validation.toggle_row / toggle_all).

Invariant: ``status is RowStatus.ERROR`` implies ``selected is False``. It is
checked at construction so no code path can build a selected error row.
"""

__all__ = [
    "RowStatus",
    "ImportRow",
]


class RowStatus(Enum):
    """Preview classification of a row.

    Ordering matters: ERROR > WARNING > VALID when escalating.
    """
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def escalate(self, other: RowStatus) -> RowStatus:
        return self if self.rank >= other.rank else other


_STATUS_RANK = {RowStatus.VALID: 0, RowStatus.WARNING: 1, RowStatus.ERROR: 2}


@dataclass(frozen=True)
class ImportRow:
    index: int
    raw_data: dict[str, str]
    mapped_data: dict[str, str]  # FieldId -> 値 (空値は含めない)
    status: RowStatus
    messages: tuple[str, ...] = field(default_factory=tuple)
    selected: bool = False

    def __post_init__(self) -> None:
        if self.status is RowStatus.ERROR and self.selected:
            raise ValueError(f"row {self.index} has errors and cannot be selected")

    @property
    def line_number(self) -> int:
        return self.index + 2

    @property
    def display_name(self) -> str:
        """Label used in progress and failure listings."""
        return (
            self.mapped_data.get("name")
            or " ".join(
                p for p in (self.mapped_data.get("first_name"), self.mapped_data.get("last_name")) if p
            )
            or self.mapped_data.get("org_name")
            or f"Linha {self.line_number}"
        )
