from __future__ import annotations

import asyncio
import io

import pandas as pd
import pytest

from bulk_import.db.memory_store import InMemoryStore
from bulk_import.models.import_row import RowStatus
from bulk_import.models.outcome import EntityType, ImportAction
from bulk_import.services.commit import commit_rows
from bulk_import.services.mapping import auto_detect_mapping
from bulk_import.services.preview import MSG_EMAIL_EXISTS, build_preview, load_existing_index
from bulk_import.services.validation import toggle_all
from bulk_import.tabular.reader import MSG_NO_DATA, ParseError, headers_of, parse_file

"""End-to-end import sessions: parse -> map -> preview -> commit against the in-memory store."""

SCENARIO_CSV = "Nome,Email,Empresa,CNPJ\nAna Silva,ana@x.com,ACME LTDA,12.345.678/0001-99\n"


async def _preview(store, content: bytes, filename: str):
    rows = await parse_file(content, filename)
    mapping = auto_detect_mapping(headers_of(rows))
    index = await load_existing_index(store)
    return mapping, build_preview(rows, mapping, index)


async def _session(store, content: bytes, filename: str = "contatos.csv"):
    mapping, preview = await _preview(store, content, filename)
    result = await commit_rows(store, preview, file_name=filename)
    return mapping, preview, result


def test_first_import_creates_organization_then_person():
    store = InMemoryStore()
    mapping, preview, result = asyncio.run(_session(store, SCENARIO_CSV.encode("utf-8")))

    assert mapping == {"Nome": "name", "Email": "email", "Empresa": "org_name", "CNPJ": "cnpj"}
    assert preview[0].status is RowStatus.VALID
    assert preview[0].selected

    outcome = result.outcomes[0]
    org, person = outcome.entities
    assert (org.entity_type, org.action, org.label) == (EntityType.ORGANIZATION, ImportAction.CREATED, "ACME LTDA")
    assert (person.entity_type, person.action, person.label) == (EntityType.PERSON, ImportAction.CREATED, "Ana Silva")
    assert store.people[person.entity_id]["organization_id"] == org.entity_id


def test_reimport_updates_same_records():
    store = InMemoryStore()
    _, _, first = asyncio.run(_session(store, SCENARIO_CSV.encode("utf-8")))
    _, preview, second = asyncio.run(_session(store, SCENARIO_CSV.encode("utf-8")))

    assert preview[0].status is RowStatus.WARNING
    assert MSG_EMAIL_EXISTS in preview[0].messages
    assert preview[0].selected

    before = {e.entity_type: e.entity_id for e in first.outcomes[0].entities}
    after = second.outcomes[0].entities
    assert [(e.entity_type, e.action) for e in after] == [
        (EntityType.ORGANIZATION, ImportAction.UPDATED),
        (EntityType.PERSON, ImportAction.UPDATED),
    ]
    assert {e.entity_type: e.entity_id for e in after} == before
    assert len(store.organizations) == 1
    assert len(store.people) == 1


def test_shared_tax_id_with_different_spellings_creates_one_organization():
    store = InMemoryStore()
    csv = (
        "Nome;Email;Empresa;CNPJ\n"
        "Ana Silva;ana@x.com;ACME LTDA;12.345.678/0001-99\n"
        "Bruno Lima;bruno@x.com;Acme Comércio Ltda;12345678000199\n"
    )
    _, _, result = asyncio.run(_session(store, csv.encode("utf-8")))

    org_outcomes = [e for o in result.outcomes for e in o.entities if e.entity_type is EntityType.ORGANIZATION]
    assert [e.action for e in org_outcomes] == [ImportAction.CREATED]
    assert len(store.organizations) == 1
    org_ids = {store.people[o.entity(EntityType.PERSON).entity_id]["organization_id"] for o in result.outcomes}
    assert org_ids == {org_outcomes[0].entity_id}


def test_missing_name_is_error_and_never_selected():
    store = InMemoryStore()
    csv = "Nome,Email\nAna,ana@x.com\n,sem-nome@x.com\n"
    _, preview = asyncio.run(_preview(store, csv.encode("utf-8"), "contatos.csv"))

    assert preview[1].status is RowStatus.ERROR
    assert not preview[1].selected
    assert not toggle_all(preview, True)[1].selected

    result = asyncio.run(commit_rows(store, toggle_all(preview, True)))
    assert [o.row_index for o in result.outcomes] == [0]


def test_zero_data_rows_is_parse_error():
    with pytest.raises(ParseError) as e:
        asyncio.run(parse_file(b"Nome,Email,Empresa,CNPJ\n", "contatos.csv"))
    assert str(e.value) == MSG_NO_DATA


def test_xlsx_session_with_split_names_and_address():
    frame = pd.DataFrame(
        {
            "Primeiro Nome": ["MARIA", "joão"],
            "Sobrenome": ["DA SILVA", "pereira"],
            "Razão Social": ["Transportes Sul", "Transportes Sul"],
            "Endereço": ["Curitiba, PR", "Curitiba, PR"],
            "Telefone": ["(41) 99999-0000 / (41) 3333-4444", "41 98888-7777"],
            "Automotores": [12, 12],
        }
    )
    buf = io.BytesIO()
    frame.to_excel(buf, index=False, engine="openpyxl")
    store = InMemoryStore()
    mapping, preview, result = asyncio.run(_session(store, buf.getvalue(), "contatos.xlsx"))

    assert mapping["Primeiro Nome"] == "first_name"
    assert mapping["Endereço"] == "org_address"
    assert all(r.status is RowStatus.VALID for r in preview)
    assert [o.entity(EntityType.PERSON).label for o in result.outcomes] == ["Maria da Silva", "João Pereira"]

    (org,) = store.organizations.values()
    assert org["address_city"] == "Curitiba"
    assert org["address_state"] == "PR"
    assert org["automotores"] == 12
    maria = store.people[result.outcomes[0].entity(EntityType.PERSON).entity_id]
    assert maria["phone"] == "(41) 99999-0000"
    assert maria["whatsapp"] == "(41) 3333-4444"
