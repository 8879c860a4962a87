from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.core.config import get_settings
from app.services.records import JobRecord, record_from_fields, record_to_fields

logger = logging.getLogger(__name__)

SortDir = Literal["asc", "desc"]


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""


@dataclass(slots=True)
class RecordFilter:
    id: str | None = None
    is_posting: bool | None = None
    owner_id: str | None = None
    original_posting_id: str | None = None
    status: str | None = None
    company_contains: str | None = None
    role_contains: str | None = None


@dataclass(slots=True)
class OwnerProfile:
    id: str
    name: str | None
    email: str | None


class JobRecordRepository(Protocol):
    async def find(self, record_filter: RecordFilter, *, sort_dir: SortDir = "desc") -> list[JobRecord]: ...

    async def find_one(self, record_filter: RecordFilter) -> JobRecord | None: ...

    async def create(self, record: JobRecord) -> JobRecord: ...

    async def save(self, record: JobRecord) -> JobRecord: ...

    async def delete_one(self, record_id: str) -> bool: ...

    async def delete_many(self, record_filter: RecordFilter) -> list[JobRecord]: ...

    async def upsert_owner_profile(self, profile: OwnerProfile) -> None: ...

    async def get_owner_profiles(self, owner_ids: list[str]) -> dict[str, OwnerProfile]: ...

    async def close(self) -> None: ...


_RECORD_COLUMNS = """
  id::text as id,
  company,
  role,
  status,
  posted_or_applied_date,
  notes,
  owner_id,
  is_posting,
  original_posting_id::text as original_posting_id,
  created_at,
  updated_at
"""


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def find(self, record_filter: RecordFilter, *, sort_dir: SortDir = "desc") -> list[JobRecord]:
        pool = await self._get_pool()
        where_sql, params = self._build_where(record_filter)
        direction = "asc" if sort_dir == "asc" else "desc"
        try:
            rows = await pool.fetch(
                f"""
                select {_RECORD_COLUMNS}
                from job_records r
                where {where_sql}
                order by r.posted_or_applied_date {direction}, r.id asc
                """,
                *params,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            # Malformed ids cannot match any row.
            return []
        except pg_exc.PostgresError as exc:
            raise RepositoryError("job record lookup failed") from exc
        return [self._row_to_record(row) for row in rows]

    async def find_one(self, record_filter: RecordFilter) -> JobRecord | None:
        rows = await self.find(record_filter)
        return rows[0] if rows else None

    async def create(self, record: JobRecord) -> JobRecord:
        pool = await self._get_pool()
        fields = record_to_fields(record)
        try:
            row = await pool.fetchrow(
                f"""
                insert into job_records (
                  id,
                  company,
                  role,
                  status,
                  posted_or_applied_date,
                  notes,
                  owner_id,
                  is_posting,
                  original_posting_id,
                  created_at,
                  updated_at
                )
                values ($1::uuid, $2, $3, $4, $5, $6, $7, $8, $9::uuid, $10, $11)
                returning {_RECORD_COLUMNS}
                """,
                fields["id"],
                fields["company"],
                fields["role"],
                fields["status"],
                fields["posted_or_applied_date"],
                fields["notes"],
                fields["owner_id"],
                fields["is_posting"],
                fields["original_posting_id"],
                fields["created_at"],
                fields["updated_at"],
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("job record already exists") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError("job record insert failed") from exc
        return self._row_to_record(row)

    async def save(self, record: JobRecord) -> JobRecord:
        pool = await self._get_pool()
        fields = record_to_fields(record)
        try:
            row = await pool.fetchrow(
                f"""
                update job_records
                set
                  company = $2,
                  role = $3,
                  status = $4,
                  posted_or_applied_date = $5,
                  notes = $6,
                  updated_at = $7
                where id = $1::uuid
                returning {_RECORD_COLUMNS}
                """,
                fields["id"],
                fields["company"],
                fields["role"],
                fields["status"],
                fields["posted_or_applied_date"],
                fields["notes"],
                fields["updated_at"],
            )
        except pg_exc.PostgresError as exc:
            raise RepositoryError("job record update failed") from exc
        if row is None:
            raise RepositoryError(f"job record {record.id} disappeared during update")
        return self._row_to_record(row)

    async def delete_one(self, record_id: str) -> bool:
        pool = await self._get_pool()
        try:
            result = await pool.execute("delete from job_records where id = $1::uuid", record_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return False
        except pg_exc.PostgresError as exc:
            raise RepositoryError("job record delete failed") from exc
        return result.endswith(" 1")

    async def delete_many(self, record_filter: RecordFilter) -> list[JobRecord]:
        pool = await self._get_pool()
        where_sql, params = self._build_where(record_filter)
        try:
            rows = await pool.fetch(
                f"""
                delete from job_records r
                where {where_sql}
                returning {_RECORD_COLUMNS}
                """,
                *params,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return []
        except pg_exc.PostgresError as exc:
            raise RepositoryError("job record delete failed") from exc
        return [self._row_to_record(row) for row in rows]

    async def upsert_owner_profile(self, profile: OwnerProfile) -> None:
        pool = await self._get_pool()
        try:
            await pool.execute(
                """
                insert into owner_profiles (id, name, email)
                values ($1, $2, $3)
                on conflict (id) do update
                set
                  name = coalesce(excluded.name, owner_profiles.name),
                  email = coalesce(excluded.email, owner_profiles.email),
                  updated_at = now()
                """,
                profile.id,
                profile.name,
                profile.email,
            )
        except pg_exc.PostgresError as exc:
            raise RepositoryError("owner profile upsert failed") from exc

    async def get_owner_profiles(self, owner_ids: list[str]) -> dict[str, OwnerProfile]:
        if not owner_ids:
            return {}
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                "select id, name, email from owner_profiles where id = any($1::text[])",
                list(owner_ids),
            )
        except pg_exc.PostgresError as exc:
            raise RepositoryError("owner profile lookup failed") from exc
        return {row["id"]: OwnerProfile(id=row["id"], name=row["name"], email=row["email"]) for row in rows}

    @staticmethod
    def _build_where(record_filter: RecordFilter) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if record_filter.id is not None:
            conditions.append(f"r.id = {bind(record_filter.id)}::uuid")
        if record_filter.is_posting is not None:
            conditions.append(f"r.is_posting = {bind(record_filter.is_posting)}")
        if record_filter.owner_id is not None:
            conditions.append(f"r.owner_id = {bind(record_filter.owner_id)}")
        if record_filter.original_posting_id is not None:
            conditions.append(f"r.original_posting_id = {bind(record_filter.original_posting_id)}::uuid")
        if record_filter.status is not None:
            conditions.append(f"r.status = {bind(record_filter.status)}")
        if record_filter.company_contains:
            conditions.append(f"r.company ilike {bind(_like_pattern(record_filter.company_contains))}")
        if record_filter.role_contains:
            conditions.append(f"r.role ilike {bind(_like_pattern(record_filter.role_contains))}")

        where_sql = " and ".join(conditions) if conditions else "true"
        return where_sql, params

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JT_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> JobRecord:
        return record_from_fields(dict(row))


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@lru_cache
def get_repository() -> JobRecordRepository:
    settings = get_settings()
    if not settings.database_url:
        from app.services.store import InMemoryRepository

        logger.warning("JT_DATABASE_URL not set; job records are kept in process memory only")
        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
