from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..tabular.reader import DEFAULT_ALLOWED_EXTENSIONS, DEFAULT_MAX_UPLOAD_BYTES

"""Config loader.

Responsibilities:
- Load YAML (``config/import.yml`` by default)
- Validate against the JSON schema shipped beside this module (unknown keys rejected)
- Apply defaults; a missing file means "all defaults"
- Resolve the PostgreSQL DSN (environment first, YAML ``database`` block as fallback)
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "ImportConfig",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "resolve_dsn",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("schema.json")
DEFAULT_ERROR_LOG_DIR = "./logs"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """YAML fallback for the connection; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    error_log_dir: str = DEFAULT_ERROR_LOG_DIR
    check_digits: bool = False  # CPF/CNPJ 検証桁チェック
    owner_id: str | None = None  # created_by / owner_id として書き込む
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path | None = None, *, required: bool = False) -> ImportConfig:
    """Load and validate a config file.

    Args:
        path: YAML path; ``config/import.yml`` when omitted
        required: raise instead of falling back to defaults when the file is missing
            (used for an explicit ``--config``)
    """
    path = path or DEFAULT_CONFIG_PATH
    if not path.exists():
        if required:
            raise ConfigError(f"config file not found: {path}")
        return ImportConfig()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    extensions = data.get("allowed_extensions")
    return ImportConfig(
        max_upload_bytes=data.get("max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES),
        allowed_extensions=(
            tuple(e.lower() for e in extensions) if extensions else DEFAULT_ALLOWED_EXTENSIONS
        ),
        error_log_dir=data.get("error_log_dir", DEFAULT_ERROR_LOG_DIR),
        check_digits=bool(data.get("check_digits", False)),
        owner_id=data.get("owner_id"),
        database=db,
    )


def resolve_dsn(db_cfg: DatabaseConfig, environ: Mapping[str, str] | None = None) -> str:
    """Connection string resolution order.

    1. ``DATABASE_URL`` / ``PGDSN`` (``.env`` is loaded with override beforehand)
    2. ``database.dsn`` from the YAML
    3. individual ``PGHOST`` / ``PGPORT`` / ``PGUSER`` / ``PGPASSWORD`` / ``PGDATABASE``,
       each falling back to the YAML block, then to libpq-ish defaults
    """
    env = os.environ if environ is None else environ
    dsn = env.get("DATABASE_URL") or env.get("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = env.get("PGHOST", db_cfg.host or "localhost")
    port = env.get("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = env.get("PGUSER", db_cfg.user or "postgres")
    password = env.get("PGPASSWORD", db_cfg.password or "")
    database = env.get("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn
