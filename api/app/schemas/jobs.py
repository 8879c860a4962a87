from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.services.records import JobRecord
from app.services.repository import OwnerProfile

ItemQueryType = Literal["opportunities", "myApplications", "applicationsForOpportunity", "allApplications"]
ItemSort = Literal["newest", "oldest"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OwnerOut(CamelModel):
    id: str
    name: str | None = None
    email: str | None = None


class JobItemOut(CamelModel):
    id: str
    company: str
    role: str
    status: str
    posted_or_applied_date: datetime
    notes: str | None = None
    user_id: str
    is_posting: bool
    original_job_posting_id: str | None = None
    created_at: datetime
    updated_at: datetime
    owner: OwnerOut | None = None

    @classmethod
    def from_record(cls, record: JobRecord, owner: OwnerProfile | None = None) -> JobItemOut:
        return cls(
            id=record.id,
            company=record.company,
            role=record.role,
            status=record.status,
            posted_or_applied_date=record.posted_or_applied_date,
            notes=record.notes,
            user_id=record.owner_id,
            is_posting=record.is_posting,
            original_job_posting_id=record.original_posting_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
            owner=OwnerOut(id=owner.id, name=owner.name, email=owner.email) if owner else None,
        )


class OpportunityCreateRequest(CamelModel):
    company: str | None = None
    role: str | None = None
    status: str | None = None
    posted_or_applied_date: datetime | None = None
    notes: str | None = None


class ApplyRequest(CamelModel):
    notes: str | None = None


class JobItemUpdateRequest(CamelModel):
    company: str | None = None
    role: str | None = None
    status: str | None = None
    posted_or_applied_date: datetime | None = None
    notes: str | None = None


class DeleteOut(CamelModel):
    message: str
    deleted_ids: list[str]
    cascade: bool
