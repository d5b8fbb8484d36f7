from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from ..models.fields import ALL_IMPORT_FIELDS, FIELDS_BY_ID, REQUIRED_FIELD_ID, ImportField
from ..models.source_row import SourceRow
from .normalize import normalize_text

"""Field mapping engine: source headers -> catalog FieldIds.

A mapping is a plain ``dict[header, field_id]`` that is partial (unmapped headers
are absent) and injective (no field id appears twice). All functions here are
pure and return new dicts, so callers can recompute on every UI interaction.
"""

__all__ = [
    "MappingError",
    "MappingIncomplete",
    "normalize_header",
    "auto_detect_mapping",
    "set_mapping",
    "repair_mapping",
    "can_advance",
    "require_mapping",
    "apply_mapping",
]

logger = logging.getLogger(__name__)

# first_name / last_name だけでも name を組み立て可能
SPLIT_NAME_FIELD_IDS = ("first_name", "last_name")


class MappingError(Exception):
    """Raised for a mapping that references an unknown field id."""


class MappingIncomplete(Exception):
    """Raised when the required ``name`` field is not mapped to any header."""


def normalize_header(header: str) -> str:
    return normalize_text(header)


def _alias_index(fields: Iterable[ImportField]) -> list[tuple[ImportField, frozenset[str]]]:
    return [(f, frozenset(normalize_text(a) for a in f.aliases)) for f in fields]


_ALIASES = _alias_index(ALL_IMPORT_FIELDS)


def auto_detect_mapping(headers: Iterable[str]) -> dict[str, str]:
    """Propose a mapping from the synonym dictionary.

    Each normalized header is compared against the catalog in order and the first
    field whose alias set contains it wins. A field already claimed by an earlier
    header is not offered again; such headers stay unmapped.
    """
    mapping: dict[str, str] = {}
    taken: set[str] = set()
    for header in headers:
        key = normalize_header(header)
        if not key:
            continue
        for field, aliases in _ALIASES:
            if field.id in taken:
                continue
            if key in aliases:
                mapping[header] = field.id
                taken.add(field.id)
                break
    logger.debug("auto-detected mapping %s", mapping)
    return mapping


def set_mapping(mapping: Mapping[str, str], header: str, field_id: str | None) -> dict[str, str]:
    """Manual override of one header's target.

    Assigning a field already used by another header moves it: the other header
    becomes unmapped. ``None`` or "" unmaps ``header``.
    """
    updated = dict(mapping)
    if not field_id:
        updated.pop(header, None)
        return updated
    if field_id not in FIELDS_BY_ID:
        raise MappingError(f"unknown field id: {field_id}")
    for other, target in list(updated.items()):
        if target == field_id and other != header:
            del updated[other]
    updated[header] = field_id
    return updated


def repair_mapping(mapping: Mapping[str, str]) -> dict[str, str]:
    """Make a caller-supplied mapping valid.

    Unknown field ids are dropped; when several headers target the same field
    only the first one (iteration order) keeps it.
    """
    repaired: dict[str, str] = {}
    taken: set[str] = set()
    for header, field_id in mapping.items():
        if not field_id:
            continue
        if field_id not in FIELDS_BY_ID:
            logger.warning("mapping: header=%r targets unknown field %r, dropped", header, field_id)
            continue
        if field_id in taken:
            logger.warning("mapping: header=%r duplicates field %r, dropped", header, field_id)
            continue
        repaired[header] = field_id
        taken.add(field_id)
    return repaired


def can_advance(mapping: Mapping[str, str]) -> bool:
    targets = set(mapping.values())
    if REQUIRED_FIELD_ID in targets:
        return True
    return any(f in targets for f in SPLIT_NAME_FIELD_IDS)


def require_mapping(mapping: Mapping[str, str]) -> None:
    if not can_advance(mapping):
        label = FIELDS_BY_ID[REQUIRED_FIELD_ID].label
        raise MappingIncomplete(f"Campo obrigatório não mapeado: {label}")


def apply_mapping(row: SourceRow, mapping: Mapping[str, str]) -> dict[str, str]:
    """Project a SourceRow onto field ids, copying only non-blank values."""
    mapped: dict[str, str] = {}
    for header, field_id in mapping.items():
        if not field_id:
            continue
        value = row.get(header).strip()
        if value:
            mapped[field_id] = value
    return mapped
