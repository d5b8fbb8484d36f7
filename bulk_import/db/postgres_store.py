from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from .store import TAG_TABLE_ORGANIZATION, TAG_TABLE_PERSON, ExistingKeys, StoreError

"""PostgreSQL ImportStore backed by psycopg2.

psycopg2 is blocking, so each call runs in a worker thread via asyncio.to_thread.
The commit executor awaits one call at a time; the lock only guards against a
caller sharing the store between tasks.

Every write is its own transaction (COMMIT on success, ROLLBACK on failure) so a
rejected row never leaves the connection in an aborted state for the next row.
"""

__all__ = [
    "PostgresStore",
    "ORGANIZATION_COLUMNS",
    "PERSON_COLUMNS",
]

logger = logging.getLogger(__name__)

ORGANIZATION_COLUMNS = frozenset({
    "name", "cnpj", "cnae", "phone", "email", "automotores",
    "address_city", "address_state", "address_zipcode", "created_by", "owner_id",
})
PERSON_COLUMNS = frozenset({
    "name", "email", "cpf", "phone", "whatsapp", "job_title", "notes", "label",
    "lead_source", "organization_id", "created_by", "owner_id",
})
_TAG_ASSIGNMENT_TABLES = {
    TAG_TABLE_PERSON: ("person_tag_assignments", "person_id"),
    TAG_TABLE_ORGANIZATION: ("organization_tag_assignments", "organization_id"),
}


class PostgresStore:
    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    @classmethod
    def connect(cls, dsn: str) -> PostgresStore:
        try:
            import psycopg2  # type: ignore
        except Exception as e:  # psycopg2-binary は依存に含まれる想定
            raise StoreError(f"psycopg2 not available: {e}") from e
        try:
            conn = psycopg2.connect(dsn)
        except Exception as e:
            raise StoreError(f"connection failed: {e}") from e
        conn.autocommit = False
        return cls(conn)

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()

    # 低レベル実行 -------------------------------------------------------

    def _run(self, sql: str, params: tuple[Any, ...], *, fetch: str | None, write: bool) -> Any:
        with self._lock:
            cur = self._conn.cursor()
            try:
                cur.execute(sql, params)
                if fetch == "one":
                    result = cur.fetchone()
                elif fetch == "all":
                    result = cur.fetchall()
                else:
                    result = None
                if write:
                    self._conn.commit()
                else:
                    # read-only でも暗黙トランザクションを閉じる
                    self._conn.rollback()
                return result
            except Exception as e:
                try:
                    self._conn.rollback()
                except Exception:  # pragma: no cover
                    logger.debug("rollback failed", exc_info=True)
                raise StoreError(str(e)) from e
            finally:
                cur.close()

    async def _fetch_id(self, sql: str, params: tuple[Any, ...], *, write: bool = False) -> str | None:
        row = await asyncio.to_thread(self._run, sql, params, fetch="one", write=write)
        if row is None:
            return None
        return str(row[0])

    @staticmethod
    def _checked(fields: dict[str, Any], allowed: frozenset[str], table: str) -> dict[str, Any]:
        unknown = set(fields) - allowed
        if unknown:
            raise StoreError(f"unknown columns for {table}: {sorted(unknown)}")
        return fields

    async def _upsert(self, table: str, row_id: str | None, fields: dict[str, Any]) -> str:
        cols = list(fields)
        if row_id is None:
            cols_sql = ",".join(f'"{c}"' for c in cols)
            placeholders = ",".join(["%s"] * len(cols))
            sql = f"INSERT INTO {table} ({cols_sql}) VALUES ({placeholders}) RETURNING id"
            new_id = await self._fetch_id(sql, tuple(fields[c] for c in cols), write=True)
            if new_id is None:  # pragma: no cover
                raise StoreError(f"insert into {table} returned no id")
            return new_id
        if not cols:
            return row_id
        set_sql = ",".join(f'"{c}" = %s' for c in cols)
        sql = f"UPDATE {table} SET {set_sql} WHERE id = %s RETURNING id"
        updated = await self._fetch_id(sql, tuple(fields[c] for c in cols) + (row_id,), write=True)
        if updated is None:
            raise StoreError(f"{table} row not found: {row_id}")
        return updated

    # ImportStore --------------------------------------------------------

    async def find_organization_by_tax_id(self, tax_id: str) -> str | None:
        return await self._fetch_id(
            "SELECT id FROM organizations WHERE regexp_replace(cnpj, '\\D', '', 'g') = %s LIMIT 1",
            (tax_id,),
        )

    async def find_organization_by_name(self, name: str) -> str | None:
        return await self._fetch_id(
            "SELECT id FROM organizations WHERE lower(name) = lower(%s) ORDER BY id LIMIT 1",
            (name.strip(),),
        )

    async def upsert_organization(self, org_id: str | None, fields: dict[str, Any]) -> str:
        return await self._upsert(
            "organizations", org_id, self._checked(fields, ORGANIZATION_COLUMNS, "organizations")
        )

    async def find_person_by_email(self, email: str) -> str | None:
        return await self._fetch_id(
            "SELECT id FROM people WHERE lower(email) = %s LIMIT 1", (email.strip().lower(),)
        )

    async def find_person_by_cpf(self, cpf: str) -> str | None:
        return await self._fetch_id(
            "SELECT id FROM people WHERE regexp_replace(cpf, '\\D', '', 'g') = %s LIMIT 1", (cpf,)
        )

    async def upsert_person(self, person_id: str | None, fields: dict[str, Any]) -> str:
        return await self._upsert("people", person_id, self._checked(fields, PERSON_COLUMNS, "people"))

    async def snapshot_existing_keys(self) -> ExistingKeys:
        people = await asyncio.to_thread(
            self._run,
            "SELECT email, cpf FROM people WHERE email IS NOT NULL OR cpf IS NOT NULL",
            (),
            fetch="all",
            write=False,
        )
        orgs = await asyncio.to_thread(
            self._run,
            "SELECT cnpj FROM organizations WHERE cnpj IS NOT NULL",
            (),
            fetch="all",
            write=False,
        )
        return ExistingKeys(
            emails=frozenset(r[0] for r in people if r[0]),
            cpfs=frozenset(r[1] for r in people if r[1]),
            cnpjs=frozenset(r[0] for r in orgs if r[0]),
        )

    async def find_or_create_tag(self, table: str, name: str) -> str:
        if table not in _TAG_ASSIGNMENT_TABLES:
            raise StoreError(f"unknown tag table: {table}")
        existing = await self._fetch_id(
            f"SELECT id FROM {table} WHERE lower(name) = lower(%s) LIMIT 1", (name.strip(),)
        )
        if existing is not None:
            return existing
        created = await self._fetch_id(
            f"INSERT INTO {table} (name) VALUES (%s) RETURNING id", (name.strip(),), write=True
        )
        if created is None:  # pragma: no cover
            raise StoreError(f"insert into {table} returned no id")
        return created

    async def assign_tag(self, table: str, entity_id: str, tag_id: str) -> None:
        assignment_table, fk_col = _TAG_ASSIGNMENT_TABLES[table]
        await asyncio.to_thread(
            self._run,
            f"INSERT INTO {assignment_table} ({fk_col}, tag_id) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (entity_id, tag_id),
            fetch=None,
            write=True,
        )
