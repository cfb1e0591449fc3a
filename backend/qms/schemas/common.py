from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Стандартный формат ошибки."""

    detail: str
    code: str
    details: dict[str, Any] = {}


class MessageResponse(BaseModel):
    message: str


class HistoryEntryOut(BaseModel):
    """Запись истории статусов (из audit_log)."""

    id: UUID
    action: str
    before_json: dict[str, Any] | None
    after_json: dict[str, Any] | None
    actor_user_id: UUID | None
    comment: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class StatusStats(BaseModel):
    """Количество записей по статусам (карточки над списком)."""

    total: int
    by_status: dict[str, int]


class RecordOutBase(BaseModel):
    """Общие поля workflow-записей."""

    id: UUID
    tenant_id: UUID
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
