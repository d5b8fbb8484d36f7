from __future__ import annotations

import json

from bulk_import.models.error_record import ErrorRecord

"""Unit tests for the ErrorRecord model."""


def test_error_record_fields_and_json_line():
    rec = ErrorRecord.create(
        file="contatos.xlsx",
        row=7,
        entity="Ana Souza",
        error_type="STORE_ERROR",
        message='null value in column "name"',
    )
    data = json.loads(rec.to_json_line())
    assert data["row"] == 7
    assert data["entity"] == "Ana Souza"
    assert data["timestamp"].endswith("Z")
    assert set(data.keys()) == {"timestamp", "file", "row", "entity", "error_type", "message"}


def test_error_record_row_minus_one_for_file_level():
    rec = ErrorRecord.create("contatos.xlsx", -1, "", "FILE_LEVEL_FATAL", "connection lost")
    assert json.loads(rec.to_json_line())["row"] == -1
