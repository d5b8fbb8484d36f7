from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from ..config.loader import ConfigError, ImportConfig, load_config, resolve_dsn
from ..db.memory_store import InMemoryStore
from ..db.postgres_store import PostgresStore
from ..db.store import ImportStore, StoreError
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.import_row import ImportRow, RowStatus
from ..services.commit import commit_rows
from ..services.mapping import MappingError, MappingIncomplete, auto_detect_mapping, require_mapping, set_mapping
from ..services.preview import build_preview, load_existing_index, preview_counts
from ..services.progress import ProgressTracker
from ..services.summary import render_summary_line
from ..tabular.reader import ParseError, check_upload, headers_of, parse_file

"""CLI session driver.

parse -> auto-map (+ ``--map`` overrides) -> preview -> commit -> SUMMARY

Exit codes:
- 0: every selected row committed (or ``--preview`` only)
- 2: commit finished with at least one failed row
- 1: fatal (config, upload gate, parse, incomplete mapping, DB connection)
"""

__all__ = [
    "EXIT_SUCCESS_ALL",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_FATAL",
    "main",
]

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


class _FatalError(Exception):
    """Stops the session before commit; message already user-facing."""


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; override=True so .env wins over the shell."""
    if not path.exists():
        return
    try:
        load_dotenv(dotenv_path=path, override=override)
    except OSError as e:
        logging.getLogger(__name__).warning("failed to load %s: %s", path, e)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Contacts & companies bulk importer (CSV / XLS / XLSX)")
    p.add_argument("file", help="Spreadsheet or CSV file to import")
    p.add_argument("--config", help="Config YAML (default: config/import.yml if present)")
    p.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="HEADER=FIELD",
        help="Override the detected mapping; empty FIELD unmaps the header (repeatable)",
    )
    p.add_argument("--preview", action="store_true", help="Print the preview and exit without committing")
    p.add_argument("--only-valid", action="store_true", help="Deselect rows that carry warnings")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _apply_overrides(mapping: dict[str, str], headers: Sequence[str], overrides: Sequence[str]) -> dict[str, str]:
    for item in overrides:
        header, sep, field_id = item.partition("=")
        header = header.strip()
        if not sep or not header:
            raise _FatalError(f"invalid --map value (expected HEADER=FIELD): {item}")
        if header not in headers:
            raise _FatalError(f"unknown header in --map: {header}")
        try:
            mapping = set_mapping(mapping, header, field_id.strip() or None)
        except MappingError as e:
            raise _FatalError(str(e)) from e
    return mapping


def _open_store(cfg: ImportConfig) -> ImportStore:
    # テスト等で DB を完全に無効化: DISABLE_DB_CONNECT=1
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logging.getLogger(__name__).debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return InMemoryStore()
    try:
        return PostgresStore.connect(resolve_dsn(cfg.database))
    except StoreError as e:
        raise _FatalError(f"database: {e}") from e


def _only_valid(rows: list[ImportRow]) -> list[ImportRow]:
    return [replace(r, selected=False) if r.status is RowStatus.WARNING else r for r in rows]


def _print_preview(logger: logging.Logger, mapping: dict[str, str], rows: list[ImportRow]) -> None:
    for header, field_id in mapping.items():
        logger.info("map %s -> %s", header, field_id)
    counts = preview_counts(rows)
    logger.info(
        "preview total=%d valid=%d warning=%d error=%d selected=%d",
        counts.total, counts.valid, counts.warning, counts.error, counts.selected,
    )
    for row in rows:
        if not row.messages:
            continue
        level = logging.ERROR if row.status is RowStatus.ERROR else logging.WARNING
        logger.log(level, "line %d (%s): %s", row.line_number, row.display_name, "; ".join(row.messages))


async def _run_session(args: argparse.Namespace, cfg: ImportConfig, logger: logging.Logger) -> int:
    path = Path(args.file)
    if not path.is_file():
        raise _FatalError(f"file not found: {path}")

    try:
        check_upload(
            path.name,
            path.stat().st_size,
            max_bytes=cfg.max_upload_bytes,
            allowed_extensions=cfg.allowed_extensions,
        )
        rows = await parse_file(path.read_bytes(), path.name)
    except ParseError as e:
        raise _FatalError(f"parse: {e}") from e
    logger.info("parsed %s rows=%d", path.name, len(rows))

    headers = headers_of(rows)
    mapping = _apply_overrides(auto_detect_mapping(headers), headers, args.map)
    try:
        require_mapping(mapping)
    except MappingIncomplete as e:
        raise _FatalError(f"mapping: {e}") from e

    store = _open_store(cfg)
    try:
        try:
            index = await load_existing_index(store)
        except StoreError as e:
            raise _FatalError(f"database: {e}") from e
        preview = build_preview(rows, mapping, index, check_digits=cfg.check_digits)
        if args.only_valid:
            preview = _only_valid(preview)
        _print_preview(logger, mapping, preview)
        if args.preview:
            return EXIT_SUCCESS_ALL

        selected = preview_counts(preview).selected
        with ProgressTracker(selected) as tracker:
            result = await commit_rows(
                store,
                preview,
                on_progress=tracker.on_progress,
                error_log=ErrorLogBuffer(cfg.error_log_dir),
                file_name=path.name,
                owner_id=cfg.owner_id,
            )
    finally:
        if isinstance(store, PostgresStore):
            store.close()

    for failure in result.summary.failures:
        logger.error("line %d (%s): %s", failure.line_number, failure.label, failure.message)
    summary_line = render_summary_line(
        result.summary, len(result.outcomes), result.total_selected, result.elapsed_seconds
    )
    # log_summary が "SUMMARY " を付与する
    log_summary(summary_line[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if result.summary.has_failures else EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみ sys.argv を読む ([] はそのまま)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        logger = setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        if args.config:
            cfg = load_config(Path(args.config), required=True)
        else:
            cfg = load_config()
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        return asyncio.run(_run_session(args, cfg, logger))
    except _FatalError as e:
        logger.error(str(e))
        return EXIT_FATAL
