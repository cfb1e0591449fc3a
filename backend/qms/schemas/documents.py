from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel

from qms.db.enums import DocumentStatus, DocumentType
from qms.schemas.common import RecordOutBase


class DocumentCreate(BaseModel):
    """Схема для создания документа. Статус всегда draft."""

    title: str
    description: str | None = None
    document_type: DocumentType
    content: str | None = None
    version: str = "1.0"
    effective_date: date | None = None
    review_date: date | None = None
    tags: list[str] = []


class DocumentUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    document_type: DocumentType | None = None
    content: str | None = None
    version: str | None = None
    status: DocumentStatus | None = None
    effective_date: date | None = None
    review_date: date | None = None
    tags: list[str] | None = None


class DocumentStatusUpdate(BaseModel):
    status: DocumentStatus
    comment: str | None = None


class DocumentOut(RecordOutBase):
    title: str
    description: str | None
    document_type: DocumentType
    content: str | None
    version: str
    status: DocumentStatus
    approved_by: UUID | None
    approved_at: datetime | None
    effective_date: date | None
    review_date: date | None
    tags: list[str]
