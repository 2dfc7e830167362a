from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_sis_client, require_roles
from app.models.sync_outbox import OutboxStatus, SyncOutboxMessage
from app.models.user import User, UserRole
from app.schemas.sync import (
    OutboxDrainResponse,
    OutboxMessageOut,
    SisScheduleRow,
    SisSectionRow,
    SyncExistingResponse,
)
from app.services.sis_client import (
    SisClient,
    SisContentTypeError,
    SisHttpError,
    SisNotConfiguredError,
    SisSyncError,
)
from app.services.sis_import import map_sis_schedules, merge_sis_sections, queue_existing_assignments
from app.services.sync_outbox import deliver_after_commit, drain_outbox

logger = logging.getLogger(__name__)

router = APIRouter()

OPERATOR_ROLES = (UserRole.admin, UserRole.scheduler)


def _upstream_error(exc: SisSyncError) -> HTTPException:
    if isinstance(exc, SisNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, SisContentTypeError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{exc}. Check that SIS_BASE_URL points at the enrollment system.",
        )
    if isinstance(exc, SisHttpError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to fetch from SIS: {exc}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"SIS is unreachable: {exc}")


@router.get("/sis/schedules", response_model=list[SisScheduleRow])
def fetch_sis_schedules(
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> list[SisScheduleRow]:
    try:
        rows = sis_client.fetch_schedules()
    except SisSyncError as exc:
        raise _upstream_error(exc) from exc
    return [SisScheduleRow(**item) for item in map_sis_schedules(db, rows)]


@router.get("/sis/sections", response_model=list[SisSectionRow])
def fetch_sis_sections(
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> list[SisSectionRow]:
    try:
        rows = sis_client.fetch_sections()
    except SisSyncError as exc:
        raise _upstream_error(exc) from exc
    return [SisSectionRow(**item) for item in merge_sis_sections(db, rows)]


@router.get("/sis/outbox", response_model=list[OutboxMessageOut])
def list_outbox(
    status_filter: OutboxStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
) -> list[SyncOutboxMessage]:
    query = select(SyncOutboxMessage).order_by(SyncOutboxMessage.id.desc()).limit(limit)
    if status_filter is not None:
        query = query.where(SyncOutboxMessage.status == status_filter)
    return list(db.execute(query).scalars())


@router.post("/sis/outbox/drain", response_model=OutboxDrainResponse)
def drain_sync_outbox(
    limit: int = Query(default=50, ge=1, le=500),
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> OutboxDrainResponse:
    summary = drain_outbox(db, client=sis_client, limit=limit)
    return OutboxDrainResponse(
        attempted=summary.attempted,
        delivered=summary.delivered,
        retrying=summary.retrying,
        failed=summary.failed,
    )


@router.post("/sis/sync-existing", response_model=SyncExistingResponse)
def sync_existing_assignments(
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> SyncExistingResponse:
    try:
        rows = sis_client.fetch_schedules()
    except SisSyncError as exc:
        raise _upstream_error(exc) from exc

    plan = queue_existing_assignments(db, rows)
    db.commit()

    results = []
    for message in plan.queued:
        result = deliver_after_commit(db, message, client=sis_client)
        results.append(result.as_dict())
    delivered = sum(1 for item in results if item["synced"])
    logger.info(
        "Existing assignment sync by %s: %s fetched, %s queued, %s delivered",
        current_user.id,
        len(rows),
        len(plan.queued),
        delivered,
    )
    return SyncExistingResponse(
        fetched=len(rows),
        queued=len(plan.queued),
        delivered=delivered,
        skipped=plan.skipped,
        results=results,
    )
