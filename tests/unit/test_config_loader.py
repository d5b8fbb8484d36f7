from __future__ import annotations

from pathlib import Path

import pytest

from bulk_import.config.loader import ConfigError, DatabaseConfig, ImportConfig, load_config, resolve_dsn
from bulk_import.tabular.reader import DEFAULT_ALLOWED_EXTENSIONS, DEFAULT_MAX_UPLOAD_BYTES


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.max_upload_bytes == 5 * 1024 * 1024
    assert cfg.allowed_extensions == (".csv", ".xls", ".xlsx")
    assert cfg.error_log_dir == "./logs"
    assert cfg.check_digits is False
    assert cfg.owner_id is None
    assert cfg.database.user == "appuser"
    assert cfg.database.port == 5432


def test_missing_default_file_gives_defaults(temp_workdir: Path):
    cfg = load_config()
    assert cfg == ImportConfig()
    assert cfg.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
    assert cfg.allowed_extensions == DEFAULT_ALLOWED_EXTENSIONS


def test_missing_required_file_raises(temp_workdir: Path):
    with pytest.raises(ConfigError) as e:
        load_config(temp_workdir / "config" / "not_exists.yml", required=True)
    assert "config file not found" in str(e.value)


def test_empty_file_gives_defaults(write_config: Path):
    write_config.write_text("", encoding="utf-8")
    assert load_config(write_config) == ImportConfig()


def test_partial_file_keeps_other_defaults(write_config: Path):
    write_config.write_text("check_digits: true\nowner_id: user-1\nallowed_extensions: ['.CSV']\n", encoding="utf-8")
    cfg = load_config(write_config)
    assert cfg.check_digits is True
    assert cfg.owner_id == "user-1"
    assert cfg.allowed_extensions == (".csv",)
    assert cfg.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
    assert cfg.database == DatabaseConfig()


def test_invalid_yaml(write_config: Path):
    write_config.write_text("max_upload_bytes: [1, 2\n", encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "invalid yaml" in str(e.value)


def test_root_must_be_mapping(write_config: Path):
    write_config.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(write_config)


def test_extra_field_rejected(write_config: Path):
    text = write_config.read_text(encoding="utf-8") + "\nextra_field: not_allowed\n"
    write_config.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value)


@pytest.mark.parametrize(
    "yaml_text",
    [
        "max_upload_bytes: 0\n",
        "max_upload_bytes: big\n",
        "allowed_extensions: []\n",
        "allowed_extensions: ['csv']\n",
        "check_digits: maybe\n",
        "database:\n  port: 70000\n",
        "database:\n  schema: public\n",
    ],
)
def test_schema_violations(write_config: Path, yaml_text: str):
    write_config.write_text(yaml_text, encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value)


def test_resolve_dsn_env_url_wins():
    db = DatabaseConfig(host="yaml-host", dsn="postgresql://yaml")
    assert resolve_dsn(db, {"DATABASE_URL": "postgresql://env"}) == "postgresql://env"
    assert resolve_dsn(db, {"PGDSN": "host=pgdsn"}) == "host=pgdsn"
    assert resolve_dsn(db, {}) == "postgresql://yaml"


def test_resolve_dsn_from_parts():
    db = DatabaseConfig(host="yaml-host", port=6543, user="yaml-user", password="pw", database="crm")
    assert resolve_dsn(db, {"PGHOST": "env-host"}) == (
        "host=env-host port=6543 user=yaml-user dbname=crm password=pw"
    )
    assert resolve_dsn(DatabaseConfig(), {}) == "host=localhost port=5432 user=postgres dbname=postgres"
