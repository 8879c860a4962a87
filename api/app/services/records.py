from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import uuid4

PostingStatus = Literal["Open", "Closed"]
ApplicationStatus = Literal["Applied", "Interview", "Offer", "Rejected", "Accepted"]

POSTING_STATUSES = ("Open", "Closed")
APPLICATION_STATUSES = ("Applied", "Interview", "Offer", "Rejected", "Accepted")
# Lower-case names come from records written before the status enum was capitalized.
TERMINAL_APPLICATION_STATUSES = frozenset({"Rejected", "Accepted", "rejected", "hired"})

DEFAULT_POSTING_STATUS = "Open"
DEFAULT_APPLICATION_STATUS = "Applied"


@dataclass(slots=True)
class _JobRecordBase:
    id: str
    company: str
    role: str
    status: str
    posted_or_applied_date: datetime
    notes: str | None
    owner_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class JobOpportunity(_JobRecordBase):
    """An admin-authored listing that applicants apply to."""

    @property
    def is_posting(self) -> bool:
        return True

    @property
    def original_posting_id(self) -> None:
        return None

    @property
    def allowed_statuses(self) -> tuple[str, ...]:
        return POSTING_STATUSES

    @classmethod
    def create(
        cls,
        *,
        company: str,
        role: str,
        owner_id: str,
        now: datetime,
        status: str = DEFAULT_POSTING_STATUS,
        posted_date: datetime | None = None,
        notes: str | None = None,
    ) -> JobOpportunity:
        return cls(
            id=str(uuid4()),
            company=company,
            role=role,
            status=status,
            posted_or_applied_date=posted_date or now,
            notes=notes,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )


@dataclass(slots=True)
class JobApplication(_JobRecordBase):
    """One applicant's submission against a posting.

    Company and role are copied from the posting when the application is created and
    are not refreshed if the posting changes later.
    """

    original_posting_id: str

    @property
    def is_posting(self) -> bool:
        return False

    @property
    def allowed_statuses(self) -> tuple[str, ...]:
        return APPLICATION_STATUSES

    @property
    def is_finalized(self) -> bool:
        return self.status in TERMINAL_APPLICATION_STATUSES

    @classmethod
    def for_posting(
        cls,
        posting: JobOpportunity,
        *,
        owner_id: str,
        now: datetime,
        notes: str | None = None,
    ) -> JobApplication:
        return cls(
            id=str(uuid4()),
            company=posting.company,
            role=posting.role,
            status=DEFAULT_APPLICATION_STATUS,
            posted_or_applied_date=now,
            notes=notes,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            original_posting_id=posting.id,
        )


JobRecord = JobOpportunity | JobApplication


def record_from_fields(fields: dict) -> JobRecord:
    """Rebuild a record from its stored representation.

    The stored shape is flat and carries the ``is_posting`` discriminator; rows that claim
    to be applications without a posting link are rejected rather than silently coerced.
    """
    common = {
        "id": str(fields["id"]),
        "company": fields["company"],
        "role": fields["role"],
        "status": fields["status"],
        "posted_or_applied_date": fields["posted_or_applied_date"],
        "notes": fields.get("notes"),
        "owner_id": str(fields["owner_id"]),
        "created_at": fields["created_at"],
        "updated_at": fields["updated_at"],
    }
    if fields["is_posting"]:
        return JobOpportunity(**common)

    original_posting_id = fields.get("original_posting_id")
    if not original_posting_id:
        raise ValueError(f"application {common['id']} has no original posting")
    return JobApplication(**common, original_posting_id=str(original_posting_id))


def record_to_fields(record: JobRecord) -> dict:
    return {
        "id": record.id,
        "company": record.company,
        "role": record.role,
        "status": record.status,
        "posted_or_applied_date": record.posted_or_applied_date,
        "notes": record.notes,
        "owner_id": record.owner_id,
        "is_posting": record.is_posting,
        "original_posting_id": record.original_posting_id,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }
