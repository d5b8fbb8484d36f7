from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

"""Persistence contract consumed by the import core.

The core never talks to a database directly; it awaits these lookups/upserts on
whatever store the caller hands in (PostgresStore in production, InMemoryStore in
mock mode and tests).

Field payloads use store column names:
- organizations: name, cnpj, cnae, phone, email, automotores,
  address_city, address_state, address_zipcode
- people: name, email, cpf, phone, whatsapp, job_title, notes, label,
  lead_source, organization_id

``upsert_*`` with an id updates only the keys present in ``fields``; keys that are
absent are left untouched in the store.
"""

__all__ = [
    "StoreError",
    "ExistingKeys",
    "ImportStore",
    "TAG_TABLE_PERSON",
    "TAG_TABLE_ORGANIZATION",
]

TAG_TABLE_PERSON = "person_tags"
TAG_TABLE_ORGANIZATION = "organization_tags"


class StoreError(Exception):
    """Store rejected a read or write (constraint violation, connection loss...)."""


@dataclass(frozen=True)
class ExistingKeys:
    """Raw duplicate-check keys as stored; normalization happens in the preview."""
    emails: frozenset[str] = field(default_factory=frozenset)
    cpfs: frozenset[str] = field(default_factory=frozenset)
    cnpjs: frozenset[str] = field(default_factory=frozenset)


class ImportStore(Protocol):
    async def find_organization_by_tax_id(self, tax_id: str) -> str | None: ...

    async def find_organization_by_name(self, name: str) -> str | None: ...

    async def upsert_organization(self, org_id: str | None, fields: dict[str, Any]) -> str: ...

    async def find_person_by_email(self, email: str) -> str | None: ...

    async def find_person_by_cpf(self, cpf: str) -> str | None: ...

    async def upsert_person(self, person_id: str | None, fields: dict[str, Any]) -> str: ...

    async def snapshot_existing_keys(self) -> ExistingKeys: ...

    async def find_or_create_tag(self, table: str, name: str) -> str: ...

    async def assign_tag(self, table: str, entity_id: str, tag_id: str) -> None: ...
