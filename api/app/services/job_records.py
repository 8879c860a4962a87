from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends

from app.core.auth import Principal
from app.services.notifications import (
    MutationOutcome,
    NotificationPublisher,
    RecordDeleted,
    RecordUpdated,
    build_notifications,
    get_notification_publisher,
)
from app.services.policy import (
    can_access,
    can_change_status,
    can_create_opportunity,
    can_list_all_applications,
    writable_fields,
)
from app.services.records import (
    DEFAULT_POSTING_STATUS,
    POSTING_STATUSES,
    JobApplication,
    JobOpportunity,
    JobRecord,
)
from app.services.repository import (
    JobRecordRepository,
    OwnerProfile,
    RecordFilter,
    RepositoryConflictError,
    SortDir,
    get_repository,
)

logger = logging.getLogger(__name__)

ALL_STATUSES = "All"
UPDATABLE_FIELDS = ("company", "role", "status", "posted_or_applied_date", "notes")


class JobRecordError(Exception):
    """Base error for job record operations."""


class NotFoundError(JobRecordError):
    """Raised when the requested record does not exist."""


class UnauthorizedError(JobRecordError):
    """Raised when the principal does not own the record it is acting on."""


class ForbiddenError(JobRecordError):
    """Raised when the principal's role does not permit the action."""


class InvalidStateError(JobRecordError):
    """Raised when the record's current state does not allow the operation."""


class FinalStatusLockedError(InvalidStateError):
    """Raised when a non-admin tries to move an application out of a final status."""


class DuplicateApplicationError(JobRecordError):
    """Raised when the principal already applied to the posting."""


class JobRecordValidationError(JobRecordError):
    """Raised when required fields are missing or malformed."""


@dataclass(slots=True)
class ItemQuery:
    type: str = "opportunities"
    status: str | None = None
    sort: str = "newest"
    company: str | None = None
    role: str | None = None
    original_posting_id: str | None = None
    user_id: str | None = None


@dataclass(slots=True)
class ListedItem:
    record: JobRecord
    owner: OwnerProfile | None


@dataclass(slots=True)
class DeleteSummary:
    message: str
    deleted_ids: list[str]
    cascade: bool


class JobRecordService:
    def __init__(
        self,
        repository: JobRecordRepository,
        publisher: NotificationPublisher,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.publisher = publisher
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_opportunity(self, principal: Principal, fields: dict[str, Any]) -> JobOpportunity:
        if not can_create_opportunity(principal):
            raise ForbiddenError("only admins can create job opportunities")

        company = _required_text(fields.get("company"), "company")
        role = _required_text(fields.get("role"), "role")
        status = fields.get("status") or DEFAULT_POSTING_STATUS
        if status not in POSTING_STATUSES:
            raise JobRecordValidationError(f"status must be one of: {', '.join(POSTING_STATUSES)}")

        posting = JobOpportunity.create(
            company=company,
            role=role,
            owner_id=principal.subject,
            now=self._clock(),
            status=status,
            posted_date=_as_utc(fields.get("posted_or_applied_date")),
            notes=fields.get("notes"),
        )
        await self._remember_owner(principal)
        created = await self.repository.create(posting)
        logger.info("job opportunity created id=%s by=%s", created.id, principal.subject)
        return created

    async def apply_to_opportunity(self, principal: Principal, posting_id: str, notes: str | None) -> JobApplication:
        posting = await self.repository.find_one(RecordFilter(id=posting_id, is_posting=True))
        if not isinstance(posting, JobOpportunity):
            raise NotFoundError("job opportunity not found")
        if posting.status == "Closed":
            raise InvalidStateError("this job opportunity is closed and no longer accepts applications")

        existing = await self.repository.find_one(
            RecordFilter(is_posting=False, owner_id=principal.subject, original_posting_id=posting.id)
        )
        if existing is not None:
            raise DuplicateApplicationError("you have already applied to this job opportunity")

        application = JobApplication.for_posting(
            posting,
            owner_id=principal.subject,
            now=self._clock(),
            notes=notes,
        )
        await self._remember_owner(principal)
        try:
            created = await self.repository.create(application)
        except RepositoryConflictError as exc:
            raise DuplicateApplicationError("you have already applied to this job opportunity") from exc
        logger.info(
            "job application created id=%s posting=%s by=%s",
            created.id,
            posting.id,
            principal.subject,
        )
        return created

    async def list_items(self, principal: Principal, query: ItemQuery) -> list[ListedItem]:
        record_filter = self._filter_for_query(principal, query)
        sort_dir: SortDir = "asc" if query.sort == "oldest" else "desc"
        records = await self.repository.find(record_filter, sort_dir=sort_dir)

        owner_ids = sorted({record.owner_id for record in records})
        profiles = await self.repository.get_owner_profiles(owner_ids)
        return [ListedItem(record=record, owner=profiles.get(record.owner_id)) for record in records]

    async def get_item(self, principal: Principal, record_id: str) -> JobRecord:
        record = await self._load(record_id)
        if not can_access(principal, record, "read"):
            raise UnauthorizedError("not authorized to view this job item")
        return record

    async def update_item(self, principal: Principal, record_id: str, fields: dict[str, Any]) -> JobRecord:
        record = await self._load(record_id)
        if not can_access(principal, record, "update"):
            raise UnauthorizedError("not authorized to update this job item")

        changes = {name: value for name, value in fields.items() if name in UPDATABLE_FIELDS}
        if "posted_or_applied_date" in changes:
            changes["posted_or_applied_date"] = _as_utc(changes["posted_or_applied_date"])
        requested_status = changes.get("status")
        if requested_status is not None and not can_change_status(principal, record, requested_status):
            raise FinalStatusLockedError(f"You can't change the status once it is '{record.status}'")

        changes = {name: value for name, value in changes.items() if value != getattr(record, name)}
        allowed = writable_fields(principal, record)
        blocked = sorted(name for name in changes if name not in allowed)
        if blocked:
            raise ForbiddenError(f"not allowed to change: {', '.join(blocked)}")

        if "status" in changes and changes["status"] not in record.allowed_statuses:
            raise JobRecordValidationError(f"status must be one of: {', '.join(record.allowed_statuses)}")
        for name in ("company", "role"):
            if name in changes:
                changes[name] = _required_text(changes[name], name)
        if "posted_or_applied_date" in changes and changes["posted_or_applied_date"] is None:
            raise JobRecordValidationError("posted_or_applied_date cannot be cleared")

        for name, value in changes.items():
            setattr(record, name, value)
        record.updated_at = self._clock()

        saved = await self.repository.save(record)
        logger.info(
            "job item updated id=%s fields=%s by=%s",
            saved.id,
            ",".join(sorted(changes)) or "-",
            principal.subject,
        )
        self._fan_out(RecordUpdated(actor=principal, record=saved))
        return saved

    async def delete_item(self, principal: Principal, record_id: str) -> DeleteSummary:
        record = await self._load(record_id)
        if not principal.is_admin and record.is_posting:
            raise ForbiddenError("only admins can delete job opportunities")
        if not can_access(principal, record, "delete"):
            raise UnauthorizedError("not authorized to delete this job item")

        if isinstance(record, JobApplication):
            await self.repository.delete_one(record.id)
            logger.info("job application deleted id=%s by=%s", record.id, principal.subject)
            self._fan_out(RecordDeleted(actor=principal, record=record))
            return DeleteSummary(message="Job application removed", deleted_ids=[record.id], cascade=False)

        removed = await self.repository.delete_many(RecordFilter(is_posting=False, original_posting_id=record.id))
        for application in removed:
            self._fan_out(RecordDeleted(actor=principal, record=application, cascaded_from=record.id))
        await self.repository.delete_one(record.id)
        logger.info(
            "job opportunity deleted id=%s cascaded_applications=%s by=%s",
            record.id,
            len(removed),
            principal.subject,
        )
        return DeleteSummary(
            message=f"Job opportunity removed along with {len(removed)} linked application(s)",
            deleted_ids=[application.id for application in removed] + [record.id],
            cascade=True,
        )

    def _filter_for_query(self, principal: Principal, query: ItemQuery) -> RecordFilter:
        status = None if query.status in (None, "", ALL_STATUSES) else query.status

        if query.type == "opportunities":
            # Applicants only see open postings unless they ask for a status explicitly.
            if not query.status and not principal.is_admin:
                status = DEFAULT_POSTING_STATUS
            return RecordFilter(
                is_posting=True,
                status=status,
                company_contains=query.company,
                role_contains=query.role,
            )

        if query.type == "myApplications":
            return RecordFilter(
                is_posting=False,
                owner_id=principal.subject,
                status=status,
                company_contains=query.company,
                role_contains=query.role,
            )

        if query.type == "applicationsForOpportunity":
            if not can_list_all_applications(principal):
                raise ForbiddenError("only admins can list applications for an opportunity")
            if not query.original_posting_id:
                raise JobRecordValidationError("originalJobPostingId is required for applicationsForOpportunity")
            return RecordFilter(
                is_posting=False,
                original_posting_id=query.original_posting_id,
                status=status,
            )

        if query.type == "allApplications":
            if not can_list_all_applications(principal):
                raise ForbiddenError("only admins can list all applications")
            return RecordFilter(
                is_posting=False,
                owner_id=query.user_id or None,
                status=status,
                company_contains=query.company,
                role_contains=query.role,
            )

        raise JobRecordValidationError(f"unknown item query type: {query.type}")

    async def _load(self, record_id: str) -> JobRecord:
        record = await self.repository.find_one(RecordFilter(id=record_id))
        if record is None:
            raise NotFoundError("job item not found")
        return record

    async def _remember_owner(self, principal: Principal) -> None:
        await self.repository.upsert_owner_profile(
            OwnerProfile(id=principal.subject, name=principal.name, email=principal.email)
        )

    def _fan_out(self, outcome: MutationOutcome) -> None:
        self.publisher.publish(build_notifications(outcome))


def _required_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise JobRecordValidationError(f"{field_name} is required")
    return value.strip()


def _as_utc(value: datetime | None) -> datetime | None:
    # Stored dates are always UTC-aware.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def get_job_record_service(
    repository: JobRecordRepository = Depends(get_repository),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
) -> JobRecordService:
    return JobRecordService(repository, publisher)
