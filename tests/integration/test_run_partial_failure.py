from __future__ import annotations

import asyncio
import json
from pathlib import Path

from bulk_import.db.memory_store import InMemoryStore
from bulk_import.db.store import StoreError
from bulk_import.logging.error_log import ErrorLogBuffer
from bulk_import.services.commit import commit_rows
from bulk_import.services.mapping import auto_detect_mapping
from bulk_import.services.preview import build_preview, load_existing_index
from bulk_import.tabular.reader import headers_of, parse_file

"""Fault isolation: a store rejection on one row never stops the rows after it."""


class RejectingStore(InMemoryStore):
    """Rejects person writes whose email matches ``reject_email`` (like a CHECK constraint)."""

    def __init__(self, reject_email: str) -> None:
        super().__init__()
        self.reject_email = reject_email

    async def upsert_person(self, person_id, fields):
        if fields.get("email") == self.reject_email:
            raise StoreError('new row for relation "people" violates check constraint "people_email_check"')
        return await super().upsert_person(person_id, fields)


async def _import(store, text: str, error_log: ErrorLogBuffer):
    rows = await parse_file(text.encode("utf-8"), "contatos.csv")
    preview = build_preview(rows, auto_detect_mapping(headers_of(rows)), await load_existing_index(store))
    return await commit_rows(store, preview, error_log=error_log, file_name="contatos.csv")


def test_one_rejected_row_in_the_middle(temp_workdir: Path):
    text = "Nome;Email;Empresa\n" + "".join(f"Pessoa {i};p{i}@x.com;Empresa {i % 2}\n" for i in range(5))
    store = RejectingStore(reject_email="p2@x.com")
    result = asyncio.run(_import(store, text, ErrorLogBuffer()))

    assert len(result.outcomes) == 5
    assert [o.row_index for o in result.outcomes] == [0, 1, 2, 3, 4]
    assert [o.success for o in result.outcomes] == [True, True, False, True, True]
    assert len(store.people) == 4
    assert len(store.organizations) == 2
    assert result.summary.people_created == 4
    assert result.summary.organizations_created == 2

    (log_file,) = list((temp_workdir / "logs").glob("errors-*.log"))
    (line,) = log_file.read_text(encoding="utf-8").splitlines()
    record = json.loads(line)
    assert record["row"] == 4
    assert record["entity"] == "Pessoa 2"
    assert "people_email_check" in record["message"]


def test_round_trip_after_partial_failure(temp_workdir: Path):
    text = "Nome;Email\nAna;ana@x.com\nBia;bia@x.com\n"
    store = RejectingStore(reject_email="bia@x.com")
    first = asyncio.run(_import(store, text, ErrorLogBuffer()))
    assert first.summary.failed == 1

    store.reject_email = ""
    second = asyncio.run(_import(store, text, ErrorLogBuffer()))
    assert second.summary.failed == 0
    assert second.summary.people_updated == 1
    assert second.summary.people_created == 1
