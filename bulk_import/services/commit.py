from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..db.store import TAG_TABLE_ORGANIZATION, TAG_TABLE_PERSON, ImportStore, StoreError
from ..logging.error_log import ErrorLogBuffer
from ..models.commit_result import CommitResult
from ..models.error_record import ErrorRecord
from ..models.import_row import ImportRow, RowStatus
from ..models.outcome import CommitProgress, EntityOutcome, EntityType, ImportAction, ImportOutcome
from .normalize import (
    digits_only,
    normalize_email,
    organization_key,
    parse_number,
    split_and_deduplicate_phones,
)
from .summary import summarize
from .validation import MSG_NAME_REQUIRED, resolve_person_name

"""Commit executor: writes selected preview rows into the people / organizations store.

Rows are processed strictly one after another in source order. For each row:

1. resolve the organization (run-scoped cache -> tax id lookup -> name lookup ->
   create), updating an existing one with the columns present in the row only
2. resolve the person (email lookup -> cpf lookup -> create), always re-pointing
   its organization link to the id from step 1
3. append one ImportOutcome and publish progress

A row failure is recorded and the loop moves on; nothing aborts the run once it
started and there is no cancellation.

The OrganizationCache is what keeps two rows naming the same new company from
creating it twice: the id is cached under the company key as soon as it is
resolved. Sequential processing means the cache has a single writer. Running rows
concurrently would need resolution serialized per cache key.
"""

__all__ = [
    "CommitState",
    "CommitStateError",
    "CommitRowError",
    "OrganizationCache",
    "CommitExecutor",
    "prepare_row_data",
    "organization_fields",
    "person_fields",
    "commit_rows",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[CommitProgress], "Awaitable[None] | None"]


class CommitState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class CommitStateError(Exception):
    """Raised when an executor is started twice."""


class CommitRowError(Exception):
    """A single row could not be committed; recorded, never propagated out of run()."""

    def __init__(self, row_index: int, message: str) -> None:
        super().__init__(message)
        self.row_index = row_index
        self.message = message


class OrganizationCache:
    """Company key -> organization id, alive for exactly one commit run."""

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._ids.get(key)

    def put(self, key: str, org_id: str) -> None:
        self._ids[key] = org_id

    def __contains__(self, key: object) -> bool:
        return key in self._ids

    def __len__(self) -> int:
        return len(self._ids)


def prepare_row_data(mapped_data: Mapping[str, str]) -> dict[str, str]:
    """Row-level clean-up applied right before resolution.

    - ``org_address`` "City, UF" fills city / state when those are not mapped
    - a phone cell holding several numbers keeps the first; the second goes to
      whatsapp when whatsapp is empty
    """
    data = {k: v.strip() for k, v in mapped_data.items() if v and v.strip()}

    address = data.get("org_address")
    if address and not data.get("address_city"):
        parts = [p.strip() for p in address.split(",")]
        if parts and parts[0]:
            data["address_city"] = parts[0]
        if len(parts) > 1 and parts[1] and not data.get("address_state"):
            data["address_state"] = parts[1]

    phones = split_and_deduplicate_phones(data.get("phone"))
    if phones:
        data["phone"] = phones[0]
        if len(phones) > 1 and not data.get("whatsapp"):
            data["whatsapp"] = phones[1]
    whatsapps = split_and_deduplicate_phones(data.get("whatsapp"))
    if whatsapps:
        data["whatsapp"] = whatsapps[0]
    return data


def organization_fields(data: Mapping[str, str]) -> dict[str, Any]:
    """Store columns for an organization, only those present in the row (name excluded)."""
    fields: dict[str, Any] = {}
    cnpj = digits_only(data.get("cnpj"))
    if cnpj:
        fields["cnpj"] = cnpj
    if data.get("cnae"):
        fields["cnae"] = data["cnae"]
    if data.get("org_phone"):
        fields["phone"] = data["org_phone"]
    if data.get("org_email"):
        fields["email"] = data["org_email"]
    automotores = parse_number(data.get("automotores"))
    if automotores is not None:
        fields["automotores"] = automotores
    if data.get("address_city"):
        fields["address_city"] = data["address_city"]
    if data.get("address_state"):
        fields["address_state"] = data["address_state"].upper()
    if data.get("address_zipcode"):
        fields["address_zipcode"] = data["address_zipcode"]
    return fields


def person_fields(data: Mapping[str, str], name: str) -> dict[str, Any]:
    """Store columns for a person, only those present in the row (plus name)."""
    fields: dict[str, Any] = {"name": name}
    if data.get("email"):
        fields["email"] = data["email"]
    cpf = digits_only(data.get("cpf"))
    if cpf:
        fields["cpf"] = cpf
    for key in ("phone", "whatsapp", "job_title", "notes", "label", "lead_source"):
        if data.get(key):
            fields[key] = data[key]
    return fields


def _split_tags(value: str | None) -> list[str]:
    if not value:
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


class CommitExecutor:
    """Single-use executor: Idle -> Running -> Completed."""

    def __init__(
        self,
        store: ImportStore,
        *,
        on_progress: ProgressCallback | None = None,
        error_log: ErrorLogBuffer | None = None,
        file_name: str = "",
        owner_id: str | None = None,
    ) -> None:
        self.store = store
        self.on_progress = on_progress
        self.error_log = error_log
        self.file_name = file_name
        self.owner_id = owner_id
        self._state = CommitState.IDLE
        self._tag_ids: dict[tuple[str, str], str] = {}

    @property
    def state(self) -> CommitState:
        return self._state

    def _ownership(self) -> dict[str, Any]:
        if not self.owner_id:
            return {}
        return {"created_by": self.owner_id, "owner_id": self.owner_id}

    async def run(self, rows: Sequence[ImportRow]) -> CommitResult:
        if self._state is not CommitState.IDLE:
            raise CommitStateError(f"commit already {self._state.value}")
        self._state = CommitState.RUNNING

        # 選択済 & 非エラー行のみ (元の順序)
        selected = sorted(
            (r for r in rows if r.selected and r.status is not RowStatus.ERROR),
            key=lambda r: r.index,
        )
        total = len(selected)
        start_time = datetime.now(UTC)
        cache = OrganizationCache()
        outcomes: list[ImportOutcome] = []
        logger.info("commit started rows=%d file=%s", total, self.file_name or "-")

        for processed, row in enumerate(selected, start=1):
            outcome = await self._commit_row(row, cache)
            outcomes.append(outcome)
            await self._publish(CommitProgress(processed=processed, total_selected=total, outcomes=tuple(outcomes)))

        self._state = CommitState.COMPLETED
        self._flush_error_log()
        end_time = datetime.now(UTC)
        summary = summarize(outcomes)
        logger.info(
            "commit finished rows=%d failed=%d organizations_cached=%d", total, summary.failed, len(cache)
        )
        return CommitResult(
            outcomes=tuple(outcomes),
            summary=summary,
            total_selected=total,
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - start_time).total_seconds(),
        )

    async def _commit_row(self, row: ImportRow, cache: OrganizationCache) -> ImportOutcome:
        entities: list[EntityOutcome] = []
        try:
            data = prepare_row_data(row.mapped_data)
            org_id = await self._resolve_organization(data, cache, entities)
            await self._resolve_person(row, data, org_id, entities)
        except Exception as e:
            err = e if isinstance(e, CommitRowError) else CommitRowError(row.index, str(e) or type(e).__name__)
            self._record_failure(row, err, e)
            return ImportOutcome(
                row_index=row.index, label=row.display_name, entities=tuple(entities), error=err.message
            )
        return ImportOutcome(row_index=row.index, label=row.display_name, entities=tuple(entities))

    async def _resolve_organization(
        self, data: Mapping[str, str], cache: OrganizationCache, entities: list[EntityOutcome]
    ) -> str | None:
        org_name = data.get("org_name", "")
        cnpj = digits_only(data.get("cnpj"))
        if not org_name and not cnpj:
            return None

        key = organization_key(cnpj, org_name)
        cached = cache.get(key)
        if cached is not None:
            logger.debug("organization cache hit key=%s id=%s", key, cached)
            return cached

        fields = organization_fields(data)
        # tax id 一致が常に優先 (name 一致と食い違っても)
        existing: str | None = None
        if cnpj:
            existing = await self.store.find_organization_by_tax_id(cnpj)
        if existing is None and org_name:
            existing = await self.store.find_organization_by_name(org_name)

        label = org_name or cnpj
        if existing is not None:
            org_id = existing
            if fields:
                org_id = await self.store.upsert_organization(existing, fields)
            entities.append(EntityOutcome(EntityType.ORGANIZATION, label, ImportAction.UPDATED, org_id))
        elif org_name:
            org_id = await self.store.upsert_organization(None, {"name": org_name, **fields, **self._ownership()})
            entities.append(EntityOutcome(EntityType.ORGANIZATION, label, ImportAction.CREATED, org_id))
        else:
            logger.debug("cnpj=%s not found and no company name; row has no organization", cnpj)
            return None

        cache.put(key, org_id)
        await self._assign_tags(TAG_TABLE_ORGANIZATION, org_id, data.get("org_tags"))
        return org_id

    async def _resolve_person(
        self,
        row: ImportRow,
        data: Mapping[str, str],
        org_id: str | None,
        entities: list[EntityOutcome],
    ) -> str:
        name = resolve_person_name(data)
        if not name:
            raise CommitRowError(row.index, MSG_NAME_REQUIRED)

        email = normalize_email(data.get("email"))
        cpf = digits_only(data.get("cpf"))
        existing: str | None = None
        if email:
            existing = await self.store.find_person_by_email(email)
        if existing is None and cpf:
            existing = await self.store.find_person_by_cpf(cpf)

        fields = person_fields(data, name)
        fields["organization_id"] = org_id
        if existing is not None:
            person_id = await self.store.upsert_person(existing, fields)
            action = ImportAction.UPDATED
        else:
            person_id = await self.store.upsert_person(None, {**fields, **self._ownership()})
            action = ImportAction.CREATED
        entities.append(EntityOutcome(EntityType.PERSON, name, action, person_id))

        await self._assign_tags(TAG_TABLE_PERSON, person_id, data.get("person_tags"))
        return person_id

    async def _assign_tags(self, table: str, entity_id: str, raw: str | None) -> None:
        for tag_name in _split_tags(raw):
            cache_key = (table, tag_name.lower())
            try:
                tag_id = self._tag_ids.get(cache_key)
                if tag_id is None:
                    tag_id = await self.store.find_or_create_tag(table, tag_name)
                    self._tag_ids[cache_key] = tag_id
                await self.store.assign_tag(table, entity_id, tag_id)
            except StoreError as e:
                # タグ失敗は行を失敗にしない
                logger.warning("tag assignment failed table=%s tag=%r entity=%s: %s", table, tag_name, entity_id, e)

    def _record_failure(self, row: ImportRow, err: CommitRowError, cause: Exception) -> None:
        if isinstance(cause, StoreError):
            error_type = "STORE_ERROR"
        elif isinstance(cause, CommitRowError):
            error_type = "ROW_ERROR"
        else:
            error_type = "UNEXPECTED_ERROR"
        logger.warning("row %d (%s) failed: %s", row.line_number, row.display_name, err.message)
        if error_type == "UNEXPECTED_ERROR":
            logger.debug("row %d traceback", row.line_number, exc_info=cause)
        if self.error_log is not None:
            self.error_log.append(
                ErrorRecord.create(
                    file=self.file_name,
                    row=row.line_number,
                    entity=row.display_name,
                    error_type=error_type,
                    message=err.message,
                )
            )

    async def _publish(self, progress: CommitProgress) -> None:
        if self.on_progress is None:
            return
        try:
            result = self.on_progress(progress)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # 表示側の失敗でコミットを止めない
            logger.exception("progress observer failed at %d/%d", progress.processed, progress.total_selected)

    def _flush_error_log(self) -> None:
        if self.error_log is None or len(self.error_log) == 0:
            return
        try:
            path = self.error_log.flush()
        except OSError as e:
            logger.warning("failed to write error log: %s", e)
            return
        logger.info("error log written: %s", path)


async def commit_rows(
    store: ImportStore,
    rows: Sequence[ImportRow],
    *,
    on_progress: ProgressCallback | None = None,
    error_log: ErrorLogBuffer | None = None,
    file_name: str = "",
    owner_id: str | None = None,
) -> CommitResult:
    """Convenience wrapper: one executor, one run."""
    executor = CommitExecutor(
        store, on_progress=on_progress, error_log=error_log, file_name=file_name, owner_id=owner_id
    )
    return await executor.run(rows)
