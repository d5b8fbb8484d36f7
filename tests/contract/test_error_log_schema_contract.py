from __future__ import annotations

import json

import jsonschema
import pytest

from bulk_import.models.error_record import ErrorRecord

"""Error log JSON Lines schema contract."""

ERROR_LOG_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "required": ["timestamp", "file", "row", "entity", "error_type", "message"],
    "properties": {
        "timestamp": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"},
        "file": {"type": "string"},
        "row": {"type": "integer", "minimum": -1},
        "entity": {"type": "string"},
        "error_type": {"type": "string", "pattern": r"^[A-Z][A-Z_]*$"},
        "message": {"type": "string"},
    },
}


def test_error_record_matches_schema():
    rec = ErrorRecord.create("contatos.csv", 3, "Ana", "STORE_ERROR", "duplicate key value")
    jsonschema.validate(json.loads(rec.to_json_line()), ERROR_LOG_SCHEMA)


def test_schema_rejects_extra_key():
    record = json.loads(ErrorRecord.create("contatos.csv", 3, "Ana", "STORE_ERROR", "dup").to_json_line())
    record["extra"] = "not allowed"
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, ERROR_LOG_SCHEMA)
