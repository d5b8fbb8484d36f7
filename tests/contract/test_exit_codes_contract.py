from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from bulk_import.cli import main as cli_main
from bulk_import.db.memory_store import InMemoryStore
from bulk_import.db.store import StoreError

"""Exit code contract: 0 all rows committed, 2 some rows failed, 1 fatal."""


def test_exit_code_fatal_startup(temp_workdir: Path, write_csv, capsys):
    path = write_csv("contatos.csv", "Email\na@x.com\n")
    assert cli_main([str(path)]) == 1
    assert "ERROR mapping:" in capsys.readouterr().out


def test_exit_code_all_success(temp_workdir: Path, write_config, write_csv, capsys):
    path = write_csv("contatos.csv", "Nome,Email\nAna,ana@x.com\nBia,bia@x.com\n")
    assert cli_main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "SUMMARY rows=2/2 people_created=2" in out
    assert "failed=0" in out


def test_exit_code_partial_failure(temp_workdir: Path, write_config, write_csv, capsys):
    path = write_csv("contatos.csv", "Nome,Email\nAna,ana@x.com\nBia,bia@x.com\n")
    original = InMemoryStore.upsert_person

    async def reject_bia(self, person_id, fields):
        if fields.get("name") == "Bia":
            raise StoreError("duplicate key value")
        return await original(self, person_id, fields)

    with patch.object(InMemoryStore, "upsert_person", reject_bia):
        assert cli_main([str(path)]) == 2
    assert "SUMMARY rows=2/2 people_created=1" in capsys.readouterr().out


def test_exit_code_all_rows_failed_is_partial(temp_workdir: Path, write_csv, capsys):
    path = write_csv("contatos.csv", "Nome\nAna\n")

    async def reject_all(self, person_id, fields):
        raise StoreError("read-only transaction")

    with patch.object(InMemoryStore, "upsert_person", reject_all):
        assert cli_main([str(path)]) == 2
    assert "failed=1" in capsys.readouterr().out
