from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Commit outcome models.

Every committed row yields exactly one ``ImportOutcome``. Successful rows list
the entities they touched (organization first, then person); failed rows carry
the error message and keep any entity that was already written before the
failure, since that write is visible in the store.
"""

__all__ = [
    "EntityType",
    "ImportAction",
    "EntityOutcome",
    "ImportOutcome",
    "CommitProgress",
]


class EntityType(Enum):
    PERSON = "person"
    ORGANIZATION = "organization"


class ImportAction(Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class EntityOutcome:
    entity_type: EntityType
    label: str
    action: ImportAction
    entity_id: str


@dataclass(frozen=True)
class ImportOutcome:
    row_index: int
    label: str
    entities: tuple[EntityOutcome, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def entity(self, entity_type: EntityType) -> EntityOutcome | None:
        for e in self.entities:
            if e.entity_type is entity_type:
                return e
        return None


@dataclass(frozen=True)
class CommitProgress:
    """Snapshot published after every committed row."""
    processed: int
    total_selected: int
    outcomes: tuple[ImportOutcome, ...]

    @property
    def percent(self) -> int:
        if self.total_selected == 0:
            return 100
        return round(self.processed * 100 / self.total_selected)
