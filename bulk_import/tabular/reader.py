from __future__ import annotations

import asyncio
import io
import logging
import warnings
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath
from typing import Any

import pandas as pd

from ..models.source_row import SourceRow

"""Tabular reader: uploaded bytes -> ordered header-keyed SourceRows.

- CSV: UTF-8 (BOM tolerated), separator sniffed from the header line (tab, ';' or ',')
- Spreadsheet (.xls / .xlsx): first sheet only; first row is the header
- Legacy .xls files that are really HTML tables (the CRM's own export) or plain
  CSV text are detected by content and parsed accordingly

All cells come back as strings. Header text is only trimmed; matching against the
field catalog is the mapping engine's job.
"""

__all__ = [
    "ParseError",
    "FileKind",
    "DEFAULT_MAX_UPLOAD_BYTES",
    "DEFAULT_ALLOWED_EXTENSIONS",
    "check_upload",
    "detect_kind",
    "detect_separator",
    "parse_bytes",
    "parse_file",
    "headers_of",
]

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_ALLOWED_EXTENSIONS = (".csv", ".xls", ".xlsx")

MSG_NO_DATA = "Nenhum dado encontrado no arquivo"
MSG_NO_HEADER = "Não foi possível identificar o cabeçalho do arquivo"
MSG_READ_ERROR = "Erro ao ler o arquivo"

_OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0"
_ZIP_SIGNATURE = b"PK\x03\x04"


class ParseError(Exception):
    """Raised when the upload cannot be turned into at least one data row."""


class FileKind(Enum):
    CSV = "csv"
    SPREADSHEET = "spreadsheet"


def detect_kind(filename: str) -> FileKind:
    suffix = PurePath(filename).suffix.lower()
    if suffix == ".csv":
        return FileKind.CSV
    if suffix in (".xls", ".xlsx"):
        return FileKind.SPREADSHEET
    raise ParseError(f"Formato de arquivo não suportado: {suffix or filename}")


def check_upload(
    filename: str,
    size: int,
    *,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    allowed_extensions: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_EXTENSIONS,
) -> FileKind:
    """Upload gate (extension + size) applied before the reader sees the bytes."""
    suffix = PurePath(filename).suffix.lower()
    if suffix not in {e.lower() for e in allowed_extensions}:
        raise ParseError(f"Formato de arquivo não suportado: {suffix or filename}")
    if size > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        raise ParseError(f"Arquivo muito grande (máximo {limit_mb:g} MB)")
    return detect_kind(filename)


def detect_separator(text: str) -> str:
    """Pick the delimiter that dominates the first line (tab > ';' > ',')."""
    first_line = text.split("\n", 1)[0]
    tabs = first_line.count("\t")
    semicolons = first_line.count(";")
    commas = first_line.count(",")
    if tabs > semicolons and tabs > commas:
        return "\t"
    if semicolons > commas:
        return ";"
    return ","


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"{MSG_READ_ERROR}: codificação não é UTF-8") from e


def _read_csv_frame(text: str) -> pd.DataFrame:
    text = text.lstrip("\ufeff")
    if not text.strip():
        raise ParseError(MSG_NO_DATA)
    sep = detect_separator(text)
    with warnings.catch_warnings():
        # 余剰セルはヘッダ幅で切り捨て (ParserWarning 抑止)
        warnings.simplefilter("ignore", pd.errors.ParserWarning)
        return pd.read_csv(
            io.StringIO(text),
            sep=sep,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            quotechar='"',
            doublequote=True,
            engine="python",
            on_bad_lines=lambda fields: fields,
        )


def _with_header_row(df: pd.DataFrame) -> pd.DataFrame:
    """Push parsed column labels back in as row 0 (read_html consumes <th>)."""
    if isinstance(df.columns, pd.RangeIndex):
        return df
    if isinstance(df.columns, pd.MultiIndex):
        labels = [" ".join(str(p) for p in col if not str(p).startswith("Unnamed")) for col in df.columns]
    else:
        labels = [str(c) for c in df.columns]
    body = pd.DataFrame(df.to_numpy().tolist())
    return pd.concat([pd.DataFrame([labels]), body], ignore_index=True)


def _read_spreadsheet_frame(content: bytes) -> pd.DataFrame:
    if not content.strip():
        raise ParseError(MSG_NO_DATA)
    if not content.startswith((_OLE2_SIGNATURE, _ZIP_SIGNATURE)):
        text = _decode(content)
        if "<table" in text.lower():
            tables = pd.read_html(io.StringIO(text))
            if not tables:
                raise ParseError("Nenhuma tabela encontrada no arquivo")
            return _with_header_row(tables[0])
        # 拡張子 .xls だが中身は CSV テキスト
        return _read_csv_frame(text)
    return pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object)


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (datetime, pd.Timestamp)):
        if pd.isna(value):
            return ""
        if value.hour == 0 and value.minute == 0 and value.second == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _unique_headers(raw_headers: list[str]) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    for pos, header in enumerate(raw_headers):
        name = header or f"Coluna {pos + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name} ({seen[name]})"
        else:
            seen[name] = 1
        headers.append(name)
    return headers


def normalize_frame(df: pd.DataFrame) -> list[SourceRow]:
    """Turn a raw (header=None) frame into SourceRows.

    Steps:
    1. Row 0 is the header; blank header cells get a positional name, repeats a suffix
    2. Fully blank data rows are skipped
    3. Remaining rows are indexed 0..n-1 in file order
    """
    if df.shape[0] == 0:
        raise ParseError(MSG_NO_DATA)
    raw_headers = [_cell_to_str(c) for c in df.iloc[0].tolist()]
    if not any(raw_headers):
        raise ParseError(MSG_NO_HEADER)
    headers = _unique_headers(raw_headers)

    rows: list[SourceRow] = []
    for raw in df.iloc[1:].itertuples(index=False, name=None):
        values = [_cell_to_str(v) for v in raw]
        if not any(values):
            continue
        padded = values + [""] * (len(headers) - len(values))
        rows.append(SourceRow(index=len(rows), values=dict(zip(headers, padded, strict=False))))

    if not rows:
        raise ParseError(MSG_NO_DATA)
    return rows


def parse_bytes(content: bytes, kind: FileKind) -> list[SourceRow]:
    """Synchronous parse. Any reader failure is surfaced as ParseError."""
    try:
        if kind is FileKind.CSV:
            df = _read_csv_frame(_decode(content))
        else:
            df = _read_spreadsheet_frame(content)
        rows = normalize_frame(df)
    except ParseError:
        raise
    except pd.errors.EmptyDataError as e:
        raise ParseError(MSG_NO_DATA) from e
    except Exception as e:
        raise ParseError(f"Erro ao processar arquivo: {e}") from e
    logger.debug("parsed kind=%s rows=%d headers=%s", kind.value, len(rows), list(rows[0].values))
    return rows


async def parse_file(content: bytes, filename: str, kind: FileKind | None = None) -> list[SourceRow]:
    """Parse an upload off the event loop; resumes once with every row."""
    resolved = kind or detect_kind(filename)
    return await asyncio.to_thread(parse_bytes, content, resolved)


def headers_of(rows: list[SourceRow]) -> list[str]:
    """Headers in file order, taken from the first row's keys."""
    if not rows:
        raise ParseError(MSG_NO_HEADER)
    return list(rows[0].values.keys())
