from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from ..db.store import ExistingKeys, ImportStore
from ..models.commit_result import PreviewCounts
from ..models.import_row import ImportRow, RowStatus
from ..models.source_row import SourceRow
from .mapping import apply_mapping, repair_mapping
from .normalize import digits_only, normalize_email
from .validation import status_for, validate_row

"""Preview builder: mapped + validated rows annotated with duplicate hints.

Duplicate hints are advisory. A collision with an existing email / CPF / CNPJ
means the row will most likely update an existing record instead of creating
one; the commit executor re-checks against live data and decides. Hints may
raise a row from VALID to WARNING but never to ERROR.
"""

__all__ = [
    "ExistingRecordIndex",
    "MSG_EMAIL_EXISTS",
    "MSG_CPF_EXISTS",
    "MSG_CNPJ_EXISTS",
    "load_existing_index",
    "build_preview",
    "preview_counts",
    "selected_rows",
]

logger = logging.getLogger(__name__)

MSG_EMAIL_EXISTS = "Email existe"
MSG_CPF_EXISTS = "CPF existe"
MSG_CNPJ_EXISTS = "CNPJ existe"


@dataclass(frozen=True)
class ExistingRecordIndex:
    """Normalized snapshot of store keys taken once per preview build."""
    emails: frozenset[str] = field(default_factory=frozenset)
    cpfs: frozenset[str] = field(default_factory=frozenset)
    cnpjs: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_snapshot(cls, keys: ExistingKeys) -> ExistingRecordIndex:
        return cls(
            emails=frozenset(e for e in (normalize_email(v) for v in keys.emails) if e),
            cpfs=frozenset(c for c in (digits_only(v) for v in keys.cpfs) if c),
            cnpjs=frozenset(c for c in (digits_only(v) for v in keys.cnpjs) if c),
        )

    def collisions(self, mapped_data: Mapping[str, str]) -> list[str]:
        found: list[str] = []
        email = normalize_email(mapped_data.get("email"))
        if email and email in self.emails:
            found.append(MSG_EMAIL_EXISTS)
        cpf = digits_only(mapped_data.get("cpf"))
        if cpf and cpf in self.cpfs:
            found.append(MSG_CPF_EXISTS)
        cnpj = digits_only(mapped_data.get("cnpj"))
        if cnpj and cnpj in self.cnpjs:
            found.append(MSG_CNPJ_EXISTS)
        return found


async def load_existing_index(store: ImportStore) -> ExistingRecordIndex:
    keys = await store.snapshot_existing_keys()
    index = ExistingRecordIndex.from_snapshot(keys)
    logger.debug(
        "existing index emails=%d cpfs=%d cnpjs=%d", len(index.emails), len(index.cpfs), len(index.cnpjs)
    )
    return index


def build_row(
    source: SourceRow,
    mapping: Mapping[str, str],
    index: ExistingRecordIndex,
    *,
    check_digits: bool = False,
) -> ImportRow:
    mapped = apply_mapping(source, mapping)
    result = validate_row(mapped, check_digits=check_digits)
    status = status_for(result)
    messages = list(result.messages)

    hints = index.collisions(mapped)
    if hints:
        messages.extend(hints)
        # 重複は WARNING 止まり (ERROR は導入しない)
        status = status.escalate(RowStatus.WARNING)

    return ImportRow(
        index=source.index,
        raw_data=dict(source.values),
        mapped_data=mapped,
        status=status,
        messages=tuple(messages),
        selected=status is not RowStatus.ERROR,
    )


def build_preview(
    rows: Sequence[SourceRow],
    mapping: Mapping[str, str],
    index: ExistingRecordIndex | None = None,
    *,
    check_digits: bool = False,
) -> list[ImportRow]:
    """Pure: same inputs give the same rows, safe to recompute on every change."""
    safe_mapping = repair_mapping(mapping)
    existing = index or ExistingRecordIndex()
    return [build_row(r, safe_mapping, existing, check_digits=check_digits) for r in rows]


def preview_counts(rows: Sequence[ImportRow]) -> PreviewCounts:
    return PreviewCounts(
        total=len(rows),
        valid=sum(1 for r in rows if r.status is RowStatus.VALID),
        warning=sum(1 for r in rows if r.status is RowStatus.WARNING),
        error=sum(1 for r in rows if r.status is RowStatus.ERROR),
        selected=sum(1 for r in rows if r.selected),
    )


def selected_rows(rows: Sequence[ImportRow]) -> list[ImportRow]:
    """Rows to commit, in original source order."""
    return sorted((r for r in rows if r.selected), key=lambda r: r.index)
