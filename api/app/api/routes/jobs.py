from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.security import get_human_principal
from app.schemas.jobs import (
    ApplyRequest,
    DeleteOut,
    ItemQueryType,
    ItemSort,
    JobItemOut,
    JobItemUpdateRequest,
    OpportunityCreateRequest,
)
from app.services.job_records import (
    DuplicateApplicationError,
    ForbiddenError,
    InvalidStateError,
    ItemQuery,
    JobRecordError,
    JobRecordService,
    JobRecordValidationError,
    NotFoundError,
    UnauthorizedError,
    get_job_record_service,
)
from app.services.repository import RepositoryError, RepositoryUnavailableError

router = APIRouter()

_STATUS_BY_ERROR: list[tuple[type[JobRecordError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
    (DuplicateApplicationError, status.HTTP_400_BAD_REQUEST),
    (JobRecordValidationError, status.HTTP_400_BAD_REQUEST),
]


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RepositoryUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, RepositoryError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/opportunity", response_model=JobItemOut, status_code=status.HTTP_201_CREATED)
async def create_opportunity(
    payload: OpportunityCreateRequest,
    principal=Depends(get_human_principal),
    service: JobRecordService = Depends(get_job_record_service),
) -> JobItemOut:
    try:
        record = await service.create_opportunity(principal, payload.model_dump())
    except (JobRecordError, RepositoryError) as exc:
        raise _http_error(exc) from exc
    return JobItemOut.from_record(record)


@router.post("/opportunity/{posting_id}/apply", response_model=JobItemOut, status_code=status.HTTP_201_CREATED)
async def apply_to_opportunity(
    posting_id: str,
    payload: ApplyRequest | None = None,
    principal=Depends(get_human_principal),
    service: JobRecordService = Depends(get_job_record_service),
) -> JobItemOut:
    notes = payload.notes if payload is not None else None
    try:
        record = await service.apply_to_opportunity(principal, posting_id, notes)
    except (JobRecordError, RepositoryError) as exc:
        raise _http_error(exc) from exc
    return JobItemOut.from_record(record)


@router.get("/items", response_model=list[JobItemOut])
async def list_items(
    principal=Depends(get_human_principal),
    service: JobRecordService = Depends(get_job_record_service),
    item_type: ItemQueryType = Query(default="opportunities", alias="type"),
    item_status: str | None = Query(default=None, alias="status"),
    sort: ItemSort = Query(default="newest"),
    company: str | None = Query(default=None, min_length=1),
    role: str | None = Query(default=None, min_length=1),
    original_posting_id: str | None = Query(default=None, alias="originalJobPostingId"),
    user_id: str | None = Query(default=None, alias="userId"),
) -> list[JobItemOut]:
    query = ItemQuery(
        type=item_type,
        status=item_status,
        sort=sort,
        company=company,
        role=role,
        original_posting_id=original_posting_id,
        user_id=user_id,
    )
    try:
        items = await service.list_items(principal, query)
    except (JobRecordError, RepositoryError) as exc:
        raise _http_error(exc) from exc
    return [JobItemOut.from_record(item.record, item.owner) for item in items]


@router.get("/items/{item_id}", response_model=JobItemOut)
async def get_item(
    item_id: str,
    principal=Depends(get_human_principal),
    service: JobRecordService = Depends(get_job_record_service),
) -> JobItemOut:
    try:
        record = await service.get_item(principal, item_id)
    except (JobRecordError, RepositoryError) as exc:
        raise _http_error(exc) from exc
    return JobItemOut.from_record(record)


@router.put("/items/{item_id}", response_model=JobItemOut)
async def update_item(
    item_id: str,
    payload: JobItemUpdateRequest,
    principal=Depends(get_human_principal),
    service: JobRecordService = Depends(get_job_record_service),
) -> JobItemOut:
    try:
        record = await service.update_item(principal, item_id, payload.model_dump(exclude_unset=True))
    except (JobRecordError, RepositoryError) as exc:
        raise _http_error(exc) from exc
    return JobItemOut.from_record(record)


@router.delete("/items/{item_id}", response_model=DeleteOut)
async def delete_item(
    item_id: str,
    principal=Depends(get_human_principal),
    service: JobRecordService = Depends(get_job_record_service),
) -> DeleteOut:
    try:
        summary = await service.delete_item(principal, item_id)
    except (JobRecordError, RepositoryError) as exc:
        raise _http_error(exc) from exc
    return DeleteOut(message=summary.message, deleted_ids=summary.deleted_ids, cascade=summary.cascade)
