from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_manager
from qms.core.security import RequestContext
from qms.db.enums import ChangeControlStatus, Priority, RiskLevel
from qms.schemas.common import HistoryEntryOut, StatusStats
from qms.schemas.quality import (
    ChangeControlCreate,
    ChangeControlOut,
    ChangeControlStatusUpdate,
    ChangeControlUpdate,
)
from qms.services.quality import ChangeControlService

router = APIRouter(prefix="/change-controls")


@router.get("", response_model=list[ChangeControlOut])
async def list_change_controls(
    status_filter: ChangeControlStatus | None = Query(default=None, alias="status"),
    priority: Priority | None = Query(default=None),
    risk_level: RiskLevel | None = Query(default=None),
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[ChangeControlOut]:
    items = await ChangeControlService(db).list_records(
        ctx,
        filters={"status": status_filter, "priority": priority, "risk_level": risk_level},
        search=search,
        skip=skip,
        limit=limit,
    )
    return [ChangeControlOut.model_validate(c) for c in items]


@router.get("/stats", response_model=StatusStats)
async def change_control_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> StatusStats:
    return StatusStats(**await ChangeControlService(db).stats(ctx))


@router.get("/{change_id}", response_model=ChangeControlOut)
async def get_change_control(
    change_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ChangeControlOut:
    return ChangeControlOut.model_validate(await ChangeControlService(db).get(ctx, change_id))


@router.post("", response_model=ChangeControlOut, status_code=status.HTTP_201_CREATED)
async def create_change_control(
    payload: ChangeControlCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ChangeControlOut:
    change = await ChangeControlService(db).create(ctx, payload.model_dump())
    return ChangeControlOut.model_validate(change)


@router.put("/{change_id}", response_model=ChangeControlOut)
async def update_change_control(
    change_id: UUID,
    payload: ChangeControlUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ChangeControlOut:
    change = await ChangeControlService(db).update(
        ctx, change_id, payload.model_dump(exclude_unset=True)
    )
    return ChangeControlOut.model_validate(change)


@router.patch("/{change_id}/status", response_model=ChangeControlOut)
async def change_change_control_status(
    change_id: UUID,
    payload: ChangeControlStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ChangeControlOut:
    change = await ChangeControlService(db).change_status(
        ctx,
        change_id,
        payload.status,
        comment=payload.comment,
        extra=payload.model_dump(exclude={"status", "comment"}, exclude_none=True),
    )
    return ChangeControlOut.model_validate(change)


@router.get("/{change_id}/history", response_model=list[HistoryEntryOut])
async def change_control_history(
    change_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[HistoryEntryOut]:
    entries = await ChangeControlService(db).history(ctx, change_id)
    return [HistoryEntryOut.model_validate(e) for e in entries]


@router.delete("/{change_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_change_control(
    change_id: UUID,
    ctx: RequestContext = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
) -> None:
    await ChangeControlService(db).delete(ctx, change_id)
