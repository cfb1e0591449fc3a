from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_manager
from qms.core.security import RequestContext
from qms.db.enums import AuditStatus, AuditType, Priority
from qms.schemas.audits import AuditCreate, AuditOut, AuditStatusUpdate, AuditUpdate
from qms.schemas.common import HistoryEntryOut, StatusStats
from qms.services.audits import AuditService

router = APIRouter(prefix="/audits")


@router.get("", response_model=list[AuditOut])
async def list_audits(
    status_filter: AuditStatus | None = Query(default=None, alias="status"),
    audit_type: AuditType | None = Query(default=None),
    priority: Priority | None = Query(default=None),
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
    items = await AuditService(db).list_records(
        ctx,
        filters={"status": status_filter, "audit_type": audit_type, "priority": priority},
        search=search,
        skip=skip,
        limit=limit,
    )
    return [AuditOut.model_validate(a) for a in items]


@router.get("/stats", response_model=StatusStats)
async def audit_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> StatusStats:
    return StatusStats(**await AuditService(db).stats(ctx))


@router.get("/{audit_id}", response_model=AuditOut)
async def get_audit(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AuditOut:
    return AuditOut.model_validate(await AuditService(db).get(ctx, audit_id))


@router.post("", response_model=AuditOut, status_code=status.HTTP_201_CREATED)
async def create_audit(
    payload: AuditCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AuditOut:
    return AuditOut.model_validate(await AuditService(db).create(ctx, payload.model_dump()))


@router.put("/{audit_id}", response_model=AuditOut)
async def update_audit(
    audit_id: UUID,
    payload: AuditUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AuditOut:
    audit = await AuditService(db).update(ctx, audit_id, payload.model_dump(exclude_unset=True))
    return AuditOut.model_validate(audit)


@router.patch("/{audit_id}/status", response_model=AuditOut)
async def change_audit_status(
    audit_id: UUID,
    payload: AuditStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AuditOut:
    audit = await AuditService(db).change_status(
        ctx,
        audit_id,
        payload.status,
        comment=payload.comment,
        extra=payload.model_dump(exclude={"status", "comment"}, exclude_none=True),
    )
    return AuditOut.model_validate(audit)


@router.get("/{audit_id}/history", response_model=list[HistoryEntryOut])
async def audit_history(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[HistoryEntryOut]:
    return [HistoryEntryOut.model_validate(e) for e in await AuditService(db).history(ctx, audit_id)]


@router.delete("/{audit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_audit(
    audit_id: UUID,
    ctx: RequestContext = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
) -> None:
    await AuditService(db).delete(ctx, audit_id)
