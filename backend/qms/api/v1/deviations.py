from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_manager
from qms.core.security import RequestContext
from qms.db.enums import DeviationSeverity, DeviationStatus
from qms.schemas.common import HistoryEntryOut, StatusStats
from qms.schemas.quality import (
    CAPAFromDeviation,
    CAPAOut,
    DeviationCAPAOut,
    DeviationCreate,
    DeviationOut,
    DeviationStatusUpdate,
    DeviationUpdate,
)
from qms.services.quality import DeviationService

router = APIRouter(prefix="/deviations")


@router.get("", response_model=list[DeviationOut])
async def list_deviations(
    status_filter: DeviationStatus | None = Query(default=None, alias="status"),
    severity: DeviationSeverity | None = Query(default=None),
    department: str | None = Query(default=None),
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[DeviationOut]:
    items = await DeviationService(db).list_records(
        ctx,
        filters={"status": status_filter, "severity": severity, "department": department},
        search=search,
        skip=skip,
        limit=limit,
    )
    return [DeviationOut.model_validate(d) for d in items]


@router.get("/stats", response_model=StatusStats)
async def deviation_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> StatusStats:
    return StatusStats(**await DeviationService(db).stats(ctx))


@router.get("/{deviation_id}", response_model=DeviationOut)
async def get_deviation(
    deviation_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> DeviationOut:
    return DeviationOut.model_validate(await DeviationService(db).get(ctx, deviation_id))


@router.post("", response_model=DeviationOut, status_code=status.HTTP_201_CREATED)
async def create_deviation(
    payload: DeviationCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> DeviationOut:
    """Регистрация отклонения (номер DEV-YYYY-NNN, статус open)."""
    deviation = await DeviationService(db).create(ctx, payload.model_dump())
    return DeviationOut.model_validate(deviation)


@router.put("/{deviation_id}", response_model=DeviationOut)
async def update_deviation(
    deviation_id: UUID,
    payload: DeviationUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> DeviationOut:
    deviation = await DeviationService(db).update(
        ctx, deviation_id, payload.model_dump(exclude_unset=True)
    )
    return DeviationOut.model_validate(deviation)


@router.patch("/{deviation_id}/status", response_model=DeviationOut)
async def change_deviation_status(
    deviation_id: UUID,
    payload: DeviationStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> DeviationOut:
    """Смена статуса; комментарии верификации и результаты расследования сохраняются вместе с ней."""
    deviation = await DeviationService(db).change_status(
        ctx,
        deviation_id,
        payload.status,
        comment=payload.comment,
        extra=payload.model_dump(exclude={"status", "comment"}, exclude_none=True),
    )
    return DeviationOut.model_validate(deviation)


@router.post(
    "/{deviation_id}/capa",
    response_model=DeviationCAPAOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_capa_from_deviation(
    deviation_id: UUID,
    payload: CAPAFromDeviation,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> DeviationCAPAOut:
    deviation, capa = await DeviationService(db).create_capa(ctx, deviation_id, payload.model_dump())
    return DeviationCAPAOut(
        deviation=DeviationOut.model_validate(deviation),
        capa=CAPAOut.model_validate(capa),
    )


@router.get("/{deviation_id}/history", response_model=list[HistoryEntryOut])
async def deviation_history(
    deviation_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[HistoryEntryOut]:
    entries = await DeviationService(db).history(ctx, deviation_id)
    return [HistoryEntryOut.model_validate(e) for e in entries]


@router.delete("/{deviation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deviation(
    deviation_id: UUID,
    ctx: RequestContext = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
) -> None:
    await DeviationService(db).delete(ctx, deviation_id)
