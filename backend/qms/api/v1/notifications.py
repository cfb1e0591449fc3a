from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context
from qms.core.security import RequestContext
from qms.schemas.notifications import MarkAllReadOut, NotificationOut, NotificationPage, UnreadCount
from qms.services.notifications import NotificationService

router = APIRouter(prefix="/notifications")


@router.get("", response_model=NotificationPage)
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
    unread_only: bool = Query(default=False),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> NotificationPage:
    result = await NotificationService(db).list_for_user(ctx, page=page, limit=limit, unread_only=unread_only)
    return NotificationPage.model_validate(result, from_attributes=True)


@router.get("/unread", response_model=list[NotificationOut])
async def unread_notifications(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
    return [NotificationOut.model_validate(n) for n in await NotificationService(db).unread(ctx)]


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(count=await NotificationService(db).unread_count(ctx))


@router.patch("/read-all", response_model=MarkAllReadOut)
async def mark_all_read(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> MarkAllReadOut:
    return MarkAllReadOut(updated=await NotificationService(db).mark_all_read(ctx))


@router.patch("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> NotificationOut:
    return NotificationOut.model_validate(await NotificationService(db).mark_read(ctx, notification_id))
