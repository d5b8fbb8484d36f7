from __future__ import annotations

import itertools
import logging
from typing import Any

from ..services.normalize import digits_only, normalize_email
from .store import TAG_TABLE_ORGANIZATION, TAG_TABLE_PERSON, ExistingKeys, StoreError

"""In-memory ImportStore.

Used when DISABLE_DB_CONNECT=1 (mock mode) and by the test-suite. Behaves like the
Postgres store as far as the import core can observe: case-insensitive name
lookup, digit-only tax id / cpf comparison, partial updates, NOT NULL on names.
"""

__all__ = [
    "InMemoryStore",
]

logger = logging.getLogger(__name__)


class InMemoryStore:
    def __init__(self) -> None:
        self.organizations: dict[str, dict[str, Any]] = {}
        self.people: dict[str, dict[str, Any]] = {}
        self.tags: dict[str, dict[str, str]] = {TAG_TABLE_PERSON: {}, TAG_TABLE_ORGANIZATION: {}}
        self.tag_assignments: set[tuple[str, str, str]] = set()
        self._ids = itertools.count(1)
        # 呼び出し履歴 (テスト検証用)
        self.calls: list[tuple[str, Any]] = []

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # organizations -----------------------------------------------------

    async def find_organization_by_tax_id(self, tax_id: str) -> str | None:
        self.calls.append(("find_organization_by_tax_id", tax_id))
        wanted = digits_only(tax_id)
        if not wanted:
            return None
        for org_id, org in self.organizations.items():
            if digits_only(org.get("cnpj")) == wanted:
                return org_id
        return None

    async def find_organization_by_name(self, name: str) -> str | None:
        self.calls.append(("find_organization_by_name", name))
        wanted = name.strip().lower()
        for org_id, org in self.organizations.items():
            if (org.get("name") or "").strip().lower() == wanted:
                return org_id
        return None

    async def upsert_organization(self, org_id: str | None, fields: dict[str, Any]) -> str:
        self.calls.append(("upsert_organization", (org_id, dict(fields))))
        if org_id is None:
            if not fields.get("name"):
                raise StoreError('null value in column "name" of relation "organizations"')
            new_id = self._next_id("org")
            self.organizations[new_id] = dict(fields)
            return new_id
        if org_id not in self.organizations:
            raise StoreError(f"organization not found: {org_id}")
        self.organizations[org_id].update(fields)
        return org_id

    # people ------------------------------------------------------------

    async def find_person_by_email(self, email: str) -> str | None:
        self.calls.append(("find_person_by_email", email))
        wanted = normalize_email(email)
        for person_id, person in self.people.items():
            if wanted and normalize_email(person.get("email")) == wanted:
                return person_id
        return None

    async def find_person_by_cpf(self, cpf: str) -> str | None:
        self.calls.append(("find_person_by_cpf", cpf))
        wanted = digits_only(cpf)
        for person_id, person in self.people.items():
            if wanted and digits_only(person.get("cpf")) == wanted:
                return person_id
        return None

    async def upsert_person(self, person_id: str | None, fields: dict[str, Any]) -> str:
        self.calls.append(("upsert_person", (person_id, dict(fields))))
        org_id = fields.get("organization_id")
        if org_id is not None and org_id not in self.organizations:
            raise StoreError(f'insert or update on table "people" violates foreign key: {org_id}')
        if person_id is None:
            if not fields.get("name"):
                raise StoreError('null value in column "name" of relation "people"')
            new_id = self._next_id("person")
            self.people[new_id] = dict(fields)
            return new_id
        if person_id not in self.people:
            raise StoreError(f"person not found: {person_id}")
        self.people[person_id].update(fields)
        return person_id

    # snapshot / tags ---------------------------------------------------

    async def snapshot_existing_keys(self) -> ExistingKeys:
        return ExistingKeys(
            emails=frozenset(p["email"] for p in self.people.values() if p.get("email")),
            cpfs=frozenset(p["cpf"] for p in self.people.values() if p.get("cpf")),
            cnpjs=frozenset(o["cnpj"] for o in self.organizations.values() if o.get("cnpj")),
        )

    async def find_or_create_tag(self, table: str, name: str) -> str:
        if table not in self.tags:
            raise StoreError(f"unknown tag table: {table}")
        key = name.strip().lower()
        existing = self.tags[table].get(key)
        if existing is not None:
            return existing
        tag_id = self._next_id("tag")
        self.tags[table][key] = tag_id
        return tag_id

    async def assign_tag(self, table: str, entity_id: str, tag_id: str) -> None:
        self.tag_assignments.add((table, entity_id, tag_id))
