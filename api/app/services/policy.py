from __future__ import annotations

from typing import Literal

from app.core.auth import Principal
from app.services.records import JobApplication, JobRecord

RecordAction = Literal["read", "update", "delete"]

ADMIN_POSTING_FIELDS = frozenset({"company", "role", "status", "notes", "posted_or_applied_date"})
ADMIN_APPLICATION_FIELDS = frozenset({"status", "notes"})
OWNER_APPLICATION_FIELDS = frozenset({"notes"})


def can_access(principal: Principal, record: JobRecord, action: RecordAction) -> bool:
    if principal.is_admin:
        return True

    is_owner = record.owner_id == principal.subject
    if action == "read":
        return record.is_posting or is_owner
    if action in ("update", "delete"):
        return not record.is_posting and is_owner
    return False


def can_change_status(principal: Principal, record: JobRecord, requested_status: str) -> bool:
    if requested_status == record.status:
        return True
    if principal.is_admin:
        return True
    if isinstance(record, JobApplication) and record.is_finalized:
        return False
    return True


def writable_fields(principal: Principal, record: JobRecord) -> frozenset[str]:
    """Fields ``principal`` may change on ``record`` once update access is granted."""
    if principal.is_admin:
        return ADMIN_POSTING_FIELDS if record.is_posting else ADMIN_APPLICATION_FIELDS
    if record.is_posting:
        return frozenset()
    return OWNER_APPLICATION_FIELDS


def can_create_opportunity(principal: Principal) -> bool:
    return principal.is_admin


def can_list_all_applications(principal: Principal) -> bool:
    return principal.is_admin
