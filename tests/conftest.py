# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from bulk_import.db.memory_store import InMemoryStore
from bulk_import.logging.init import reset_logging
from bulk_import.models.import_row import ImportRow, RowStatus
from bulk_import.models.source_row import SourceRow


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        reset_logging()
        yield p
        reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """max_upload_bytes: 5242880
allowed_extensions: [".csv", ".xls", ".xlsx"]
error_log_dir: ./logs
check_digits: false
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: crm
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def contacts_csv() -> bytes:
    return (
        "Nome;Email;Empresa;CNPJ\n"
        "Ana Souza;ana@x.com;Acme Ltda;12.345.678/0001-99\n"
        "Bruno Lima;bruno@x.com;ACME LTDA;\n"
    ).encode("utf-8")


@pytest.fixture()
def write_csv(temp_workdir: Path):
    def _write(name: str, text: str) -> Path:
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


def _make_row(index: int, mapped: dict[str, str], status: RowStatus = RowStatus.VALID, selected: bool | None = None) -> ImportRow:
    if selected is None:
        selected = status is not RowStatus.ERROR
    return ImportRow(
        index=index,
        raw_data=dict(mapped),
        mapped_data=dict(mapped),
        status=status,
        selected=selected,
    )


def _make_source(index: int, **values: str) -> SourceRow:
    return SourceRow(index=index, values=dict(values))


@pytest.fixture()
def make_row():
    """ImportRow built directly from mapped data (skips parse / mapping)."""
    return _make_row


@pytest.fixture()
def make_source():
    return _make_source
