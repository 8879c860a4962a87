from __future__ import annotations

import asyncio
from dataclasses import replace

from app.services.records import JobApplication, JobRecord
from app.services.repository import (
    OwnerProfile,
    RecordFilter,
    RepositoryConflictError,
    RepositoryError,
    SortDir,
)


class InMemoryRepository:
    """Process-local record store for development runs and tests.

    Mirrors the PostgreSQL backend's semantics, including the one-application-per-posting
    uniqueness rule, so the service behaves the same on either store.
    """

    def __init__(self) -> None:
        self.records: dict[str, JobRecord] = {}
        self.profiles: dict[str, OwnerProfile] = {}
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    async def find(self, record_filter: RecordFilter, *, sort_dir: SortDir = "desc") -> list[JobRecord]:
        rows = [record for record in self.records.values() if _matches(record, record_filter)]
        rows.sort(key=lambda record: record.id)
        rows.sort(key=lambda record: record.posted_or_applied_date, reverse=sort_dir != "asc")
        return [replace(record) for record in rows]

    async def find_one(self, record_filter: RecordFilter) -> JobRecord | None:
        rows = await self.find(record_filter)
        return rows[0] if rows else None

    async def create(self, record: JobRecord) -> JobRecord:
        async with self._lock:
            if record.id in self.records:
                raise RepositoryConflictError("job record already exists")
            if isinstance(record, JobApplication):
                for existing in self.records.values():
                    if (
                        isinstance(existing, JobApplication)
                        and existing.owner_id == record.owner_id
                        and existing.original_posting_id == record.original_posting_id
                    ):
                        raise RepositoryConflictError("job record already exists")
            self.records[record.id] = replace(record)
        return replace(record)

    async def save(self, record: JobRecord) -> JobRecord:
        async with self._lock:
            if record.id not in self.records:
                raise RepositoryError(f"job record {record.id} disappeared during update")
            self.records[record.id] = replace(record)
        return replace(record)

    async def delete_one(self, record_id: str) -> bool:
        async with self._lock:
            return self.records.pop(record_id, None) is not None

    async def delete_many(self, record_filter: RecordFilter) -> list[JobRecord]:
        async with self._lock:
            doomed = [record for record in self.records.values() if _matches(record, record_filter)]
            for record in doomed:
                del self.records[record.id]
        return doomed

    async def upsert_owner_profile(self, profile: OwnerProfile) -> None:
        existing = self.profiles.get(profile.id)
        if existing is None:
            self.profiles[profile.id] = replace(profile)
            return
        self.profiles[profile.id] = OwnerProfile(
            id=profile.id,
            name=profile.name or existing.name,
            email=profile.email or existing.email,
        )

    async def get_owner_profiles(self, owner_ids: list[str]) -> dict[str, OwnerProfile]:
        return {owner_id: self.profiles[owner_id] for owner_id in owner_ids if owner_id in self.profiles}


def _matches(record: JobRecord, record_filter: RecordFilter) -> bool:
    if record_filter.id is not None and record.id != record_filter.id:
        return False
    if record_filter.is_posting is not None and record.is_posting != record_filter.is_posting:
        return False
    if record_filter.owner_id is not None and record.owner_id != record_filter.owner_id:
        return False
    if (
        record_filter.original_posting_id is not None
        and record.original_posting_id != record_filter.original_posting_id
    ):
        return False
    if record_filter.status is not None and record.status != record_filter.status:
        return False
    if record_filter.company_contains and record_filter.company_contains.lower() not in record.company.lower():
        return False
    if record_filter.role_contains and record_filter.role_contains.lower() not in record.role.lower():
        return False
    return True
