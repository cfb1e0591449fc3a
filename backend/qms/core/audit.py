"""
Вспомогательные функции для audit logging.

История статусов хранится в том же журнале: action="status_change",
before_json/after_json = {"status": ...}.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.db.models.audit_log import AuditLog

STATUS_CHANGE = "status_change"


async def log_audit(
    db: AsyncSession,
    tenant_id: UUID,
    action: str,
    entity_type: str,
    entity_id: str,
    before_json: dict[str, Any] | None = None,
    after_json: dict[str, Any] | None = None,
    actor_user_id: UUID | None = None,
    comment: str | None = None,
) -> None:
    """
    Логирует действие в audit_log.

    Args:
        db: Сессия базы данных
        tenant_id: ID тенанта
        action: Действие (create, update, delete, status_change и т.д.)
        entity_type: Тип сущности (document, deviation, capa и т.д.)
        entity_id: ID сущности (строка)
        before_json: Состояние до изменения (опционально)
        after_json: Состояние после изменения (опционально)
        actor_user_id: ID пользователя, выполнившего действие (опционально)
        comment: Комментарий пользователя (опционально)
    """
    audit_entry = AuditLog(
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        before_json=before_json,
        after_json=after_json,
        comment=comment,
    )
    db.add(audit_entry)
    # Не коммитим здесь: коммит выполняет вызывающий код


async def list_status_history(
    db: AsyncSession,
    tenant_id: UUID,
    entity_type: str,
    entity_id: str,
) -> list[AuditLog]:
    """Записи создания и смены статуса сущности, от старых к новым."""
    stmt = (
        select(AuditLog)
        .where(
            AuditLog.tenant_id == tenant_id,
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
            AuditLog.action.in_(("create", STATUS_CHANGE)),
        )
        .order_by(AuditLog.created_at.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
