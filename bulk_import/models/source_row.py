from __future__ import annotations

from dataclasses import dataclass

"""SourceRow model: one data row exactly as it came out of the uploaded file.

Header text is kept untouched (only surrounding whitespace trimmed by the reader)
because it is shown to the operator during mapping.
"""

__all__ = [
    "SourceRow",
]


@dataclass(frozen=True)
class SourceRow:
    """Header-keyed raw row.

    ``index`` is 0-based over data rows; the spreadsheet line shown to operators
    is ``index + 2`` (line 1 is the header).
    """
    index: int
    values: dict[str, str]  # header -> raw string (header 順を保持)

    @property
    def line_number(self) -> int:
        return self.index + 2

    def get(self, header: str) -> str:
        return self.values.get(header, "")
