from __future__ import annotations

import asyncio

import pytest

from bulk_import.db.memory_store import InMemoryStore
from bulk_import.db.store import TAG_TABLE_PERSON, StoreError


def run(coro):
    return asyncio.run(coro)


def test_organization_lookups(store: InMemoryStore):
    org_id = run(store.upsert_organization(None, {"name": "Acme Ltda", "cnpj": "12.345.678/0001-99"}))
    assert run(store.find_organization_by_tax_id("12345678000199")) == org_id
    assert run(store.find_organization_by_tax_id("")) is None
    assert run(store.find_organization_by_name("  ACME LTDA ")) == org_id
    assert run(store.find_organization_by_name("Other")) is None


def test_upsert_is_partial_update(store: InMemoryStore):
    org_id = run(store.upsert_organization(None, {"name": "Acme", "phone": "1"}))
    assert run(store.upsert_organization(org_id, {"address_city": "Santos"})) == org_id
    assert store.organizations[org_id] == {"name": "Acme", "phone": "1", "address_city": "Santos"}


def test_insert_without_name_rejected(store: InMemoryStore):
    with pytest.raises(StoreError):
        run(store.upsert_organization(None, {"cnpj": "1"}))
    with pytest.raises(StoreError):
        run(store.upsert_person(None, {"email": "a@x.com"}))


def test_unknown_ids_rejected(store: InMemoryStore):
    with pytest.raises(StoreError):
        run(store.upsert_organization("org-99", {"name": "X"}))
    with pytest.raises(StoreError):
        run(store.upsert_person("person-99", {"name": "X"}))


def test_person_foreign_key(store: InMemoryStore):
    with pytest.raises(StoreError) as e:
        run(store.upsert_person(None, {"name": "Ana", "organization_id": "org-404"}))
    assert "foreign key" in str(e.value)


def test_person_lookups(store: InMemoryStore):
    person_id = run(store.upsert_person(None, {"name": "Ana", "email": "Ana@X.com", "cpf": "529.982.247-25"}))
    assert run(store.find_person_by_email("ana@x.com")) == person_id
    assert run(store.find_person_by_cpf("52998224725")) == person_id
    assert run(store.find_person_by_email("")) is None


def test_snapshot_and_tags(store: InMemoryStore):
    person_id = run(store.upsert_person(None, {"name": "Ana", "email": "a@x.com"}))
    keys = run(store.snapshot_existing_keys())
    assert keys.emails == frozenset({"a@x.com"})
    tag_id = run(store.find_or_create_tag(TAG_TABLE_PERSON, "VIP"))
    assert run(store.find_or_create_tag(TAG_TABLE_PERSON, " vip ")) == tag_id
    run(store.assign_tag(TAG_TABLE_PERSON, person_id, tag_id))
    run(store.assign_tag(TAG_TABLE_PERSON, person_id, tag_id))
    assert store.tag_assignments == {(TAG_TABLE_PERSON, person_id, tag_id)}
    with pytest.raises(StoreError):
        run(store.find_or_create_tag("bogus", "x"))


def test_calls_are_recorded(store: InMemoryStore):
    run(store.find_person_by_email("a@x.com"))
    assert store.calls == [("find_person_by_email", "a@x.com")]
