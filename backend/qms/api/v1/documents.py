from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_permission
from qms.core.security import RequestContext
from qms.db.enums import DocumentStatus, DocumentType
from qms.schemas.common import HistoryEntryOut, StatusStats
from qms.schemas.documents import DocumentCreate, DocumentOut, DocumentStatusUpdate, DocumentUpdate
from qms.services.documents import DocumentService

router = APIRouter(prefix="/documents")

_manage = require_permission("can_manage_documents")


@router.get("", response_model=list[DocumentOut])
async def list_documents(
    status_filter: DocumentStatus | None = Query(default=None, alias="status"),
    document_type: DocumentType | None = Query(default=None),
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[DocumentOut]:
    """Список документов тенанта."""
    items = await DocumentService(db).list_records(
        ctx,
        filters={"status": status_filter, "document_type": document_type},
        search=search,
        skip=skip,
        limit=limit,
    )
    return [DocumentOut.model_validate(d) for d in items]


@router.get("/stats", response_model=StatusStats)
async def document_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> StatusStats:
    return StatusStats(**await DocumentService(db).stats(ctx))


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    return DocumentOut.model_validate(await DocumentService(db).get(ctx, document_id))


@router.post("", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
async def create_document(
    payload: DocumentCreate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    document = await DocumentService(db).create(ctx, payload.model_dump())
    return DocumentOut.model_validate(document)


@router.put("/{document_id}", response_model=DocumentOut)
async def update_document(
    document_id: UUID,
    payload: DocumentUpdate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    document = await DocumentService(db).update(ctx, document_id, payload.model_dump(exclude_unset=True))
    return DocumentOut.model_validate(document)


@router.patch("/{document_id}/status", response_model=DocumentOut)
async def change_document_status(
    document_id: UUID,
    payload: DocumentStatusUpdate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    """Смена статуса документа (draft → review → approved → archived)."""
    document = await DocumentService(db).change_status(
        ctx, document_id, payload.status, comment=payload.comment
    )
    return DocumentOut.model_validate(document)


@router.get("/{document_id}/history", response_model=list[HistoryEntryOut])
async def document_history(
    document_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[HistoryEntryOut]:
    entries = await DocumentService(db).history(ctx, document_id)
    return [HistoryEntryOut.model_validate(e) for e in entries]


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> None:
    await DocumentService(db).delete(ctx, document_id)
