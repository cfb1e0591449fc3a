from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_manager
from qms.core.security import RequestContext
from qms.db.enums import CAPAStatus, CAPAType, Priority
from qms.schemas.common import HistoryEntryOut, StatusStats
from qms.schemas.quality import CAPACreate, CAPAOut, CAPAStatusUpdate, CAPAUpdate
from qms.services.quality import CAPAService

router = APIRouter(prefix="/capas")


@router.get("", response_model=list[CAPAOut])
async def list_capas(
    status_filter: CAPAStatus | None = Query(default=None, alias="status"),
    priority: Priority | None = Query(default=None),
    capa_type: CAPAType | None = Query(default=None, alias="type"),
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[CAPAOut]:
    items = await CAPAService(db).list_records(
        ctx,
        filters={"status": status_filter, "priority": priority, "type": capa_type},
        search=search,
        skip=skip,
        limit=limit,
    )
    return [CAPAOut.model_validate(c) for c in items]


@router.get("/stats", response_model=StatusStats)
async def capa_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> StatusStats:
    return StatusStats(**await CAPAService(db).stats(ctx))


@router.get("/{capa_id}", response_model=CAPAOut)
async def get_capa(
    capa_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> CAPAOut:
    return CAPAOut.model_validate(await CAPAService(db).get(ctx, capa_id))


@router.post("", response_model=CAPAOut, status_code=status.HTTP_201_CREATED)
async def create_capa(
    payload: CAPACreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> CAPAOut:
    return CAPAOut.model_validate(await CAPAService(db).create(ctx, payload.model_dump()))


@router.put("/{capa_id}", response_model=CAPAOut)
async def update_capa(
    capa_id: UUID,
    payload: CAPAUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> CAPAOut:
    capa = await CAPAService(db).update(ctx, capa_id, payload.model_dump(exclude_unset=True))
    return CAPAOut.model_validate(capa)


@router.patch("/{capa_id}/status", response_model=CAPAOut)
async def change_capa_status(
    capa_id: UUID,
    payload: CAPAStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> CAPAOut:
    capa = await CAPAService(db).change_status(
        ctx,
        capa_id,
        payload.status,
        comment=payload.comment,
        extra=payload.model_dump(exclude={"status", "comment"}, exclude_none=True),
    )
    return CAPAOut.model_validate(capa)


@router.get("/{capa_id}/history", response_model=list[HistoryEntryOut])
async def capa_history(
    capa_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[HistoryEntryOut]:
    return [HistoryEntryOut.model_validate(e) for e in await CAPAService(db).history(ctx, capa_id)]


@router.delete("/{capa_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_capa(
    capa_id: UUID,
    ctx: RequestContext = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
) -> None:
    await CAPAService(db).delete(ctx, capa_id)
