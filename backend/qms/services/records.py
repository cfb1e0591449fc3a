"""
Общий сервис для workflow-записей (документы, отклонения, CAPA, change control,
аудиты, тренинги).

Все вертикали устроены одинаково: список с фильтрами, получение, создание
с бизнес-номером и начальным статусом, обновление, смена статуса по таблице
переходов, удаление, история статусов и сводка по статусам. Подклассы задают
модель и переопределяют хуки prepare_create / apply_status_side_effects.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.audit import STATUS_CHANGE, list_status_history, log_audit
from qms.core.errors import NotFoundError
from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.models.audit_log import AuditLog
from qms.services.numbering import next_business_number
from qms.services.workflow import check_transition

ModelT = TypeVar("ModelT")

log = get_logger("records")


class RecordService(Generic[ModelT]):
    """Базовый сервис CRUD + workflow для tenant-scoped записи."""

    model: ClassVar[type]
    entity_type: ClassVar[str]
    resource_name: ClassVar[str]
    initial_status: ClassVar[Enum]
    number_field: ClassVar[str | None] = None
    number_prefix: ClassVar[str | None] = None
    search_fields: ClassVar[tuple[str, ...]] = ("title",)

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------ queries

    async def list_records(
        self,
        ctx: RequestContext,
        filters: dict[str, Any] | None = None,
        search: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ModelT]:
        """Список записей тенанта, новые первыми. Фильтры с None игнорируются."""
        stmt = select(self.model).where(self.model.tenant_id == ctx.tenant_id)
        for field, value in (filters or {}).items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, field) == value)
        if search:
            pattern = f"%{search}%"
            columns = [getattr(self.model, f) for f in self.search_fields]
            if self.number_field:
                columns.append(getattr(self.model, self.number_field))
            stmt = stmt.where(or_(*(c.ilike(pattern) for c in columns)))
        stmt = stmt.order_by(self.model.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, ctx: RequestContext, record_id: UUID) -> ModelT:
        """Запись по id в пределах тенанта. Чужой тенант неотличим от отсутствия."""
        stmt = select(self.model).where(
            self.model.id == record_id,
            self.model.tenant_id == ctx.tenant_id,
        )
        obj = (await self.db.execute(stmt)).scalar_one_or_none()
        if obj is None:
            raise NotFoundError(self.resource_name, str(record_id))
        return obj

    async def history(self, ctx: RequestContext, record_id: UUID) -> list[AuditLog]:
        await self.get(ctx, record_id)
        return await list_status_history(self.db, ctx.tenant_id, self.entity_type, str(record_id))

    async def stats(self, ctx: RequestContext) -> dict[str, Any]:
        """Количество записей тенанта по статусам."""
        stmt = (
            select(self.model.status, func.count())
            .where(self.model.tenant_id == ctx.tenant_id)
            .group_by(self.model.status)
        )
        rows = (await self.db.execute(stmt)).all()
        by_status = {_enum_value(status): count for status, count in rows}
        return {"total": sum(by_status.values()), "by_status": by_status}

    # ---------------------------------------------------------------- mutations

    async def create(self, ctx: RequestContext, data: dict[str, Any]) -> ModelT:
        """Создаёт запись в начальном статусе с новым бизнес-номером."""
        data = {k: v for k, v in data.items() if k != "status"}
        obj = self.model(**data)
        obj.tenant_id = ctx.tenant_id
        obj.status = self.initial_status
        obj.created_by = ctx.user_id
        obj.updated_by = ctx.user_id
        if self.number_field:
            number = await next_business_number(
                self.db,
                getattr(self.model, self.number_field),
                self.model.tenant_id,
                ctx.tenant_id,
                self.number_prefix,
            )
            setattr(obj, self.number_field, number)
        await self.prepare_create(ctx, obj)

        self.db.add(obj)
        await self.db.flush()
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="create",
            entity_type=self.entity_type,
            entity_id=str(obj.id),
            after_json=self._summary(obj),
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(obj)
        log.info(f"{self.entity_type} created: {self._label(obj)} (tenant={ctx.tenant_id})")
        return obj

    async def update(self, ctx: RequestContext, record_id: UUID, data: dict[str, Any]) -> ModelT:
        """
        Обновляет поля записи. Если среди полей есть status, смена статуса
        проверяется так же, как в change_status.
        """
        obj = await self.get(ctx, record_id)
        target = data.pop("status", None)

        before = {k: jsonable_encoder(getattr(obj, k)) for k in data}
        for key, value in data.items():
            setattr(obj, key, value)
        obj.updated_by = ctx.user_id
        await self.prepare_update(ctx, obj, data)

        previous_status = obj.status
        status_changed = False
        if target is not None:
            status_changed = await self._apply_status(ctx, obj, target)

        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="update",
            entity_type=self.entity_type,
            entity_id=str(obj.id),
            before_json=before,
            after_json={k: jsonable_encoder(getattr(obj, k)) for k in data},
            actor_user_id=ctx.user_id,
        )
        if status_changed:
            await self._log_status_change(ctx, obj, previous_status, None)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def change_status(
        self,
        ctx: RequestContext,
        record_id: UUID,
        target: Enum,
        comment: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> ModelT:
        """
        Переводит запись в новый статус.

        extra - сопутствующие поля (комментарии верификации, результат проверки
        эффективности ...), которые записываются вместе со сменой статуса.
        Повторная установка текущего статуса ничего не меняет.
        """
        obj = await self.get(ctx, record_id)
        for key, value in (extra or {}).items():
            if value is not None and hasattr(obj, key):
                setattr(obj, key, value)

        previous_status = obj.status
        if not await self._apply_status(ctx, obj, target):
            if extra:
                obj.updated_by = ctx.user_id
                await self.db.commit()
                await self.db.refresh(obj)
            return obj

        obj.updated_by = ctx.user_id
        await self._log_status_change(ctx, obj, previous_status, comment)
        await self.db.commit()
        await self.db.refresh(obj)
        log.info(
            f"{self.entity_type} {self._label(obj)} status: "
            f"{_enum_value(previous_status)} -> {_enum_value(obj.status)}"
        )
        return obj

    async def delete(self, ctx: RequestContext, record_id: UUID) -> None:
        obj = await self.get(ctx, record_id)
        await self.before_delete(ctx, obj)
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="delete",
            entity_type=self.entity_type,
            entity_id=str(obj.id),
            before_json=self._summary(obj),
            actor_user_id=ctx.user_id,
        )
        await self.db.delete(obj)
        await self.db.commit()
        log.info(f"{self.entity_type} deleted: {self._label(obj)}")

    # -------------------------------------------------------------------- hooks

    async def prepare_create(self, ctx: RequestContext, obj: ModelT) -> None:
        """Доп. заполнение полей перед вставкой."""

    async def prepare_update(self, ctx: RequestContext, obj: ModelT, data: dict[str, Any]) -> None:
        """Доп. проверки при обновлении полей (без статуса)."""

    async def apply_status_side_effects(
        self, ctx: RequestContext, obj: ModelT, previous: Enum, target: Enum
    ) -> None:
        """Поля, которые проставляются при входе в статус (даты, утвердивший и т.п.)."""

    async def before_delete(self, ctx: RequestContext, obj: ModelT) -> None:
        """Удаление зависимых записей."""

    # ------------------------------------------------------------------ helpers

    async def _apply_status(self, ctx: RequestContext, obj: Any, target: Enum) -> bool:
        previous = obj.status
        if not check_transition(self.entity_type, previous, target):
            return False
        obj.status = target
        await self.apply_status_side_effects(ctx, obj, previous, target)
        return True

    async def _log_status_change(
        self, ctx: RequestContext, obj: Any, previous: Enum, comment: str | None
    ) -> None:
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action=STATUS_CHANGE,
            entity_type=self.entity_type,
            entity_id=str(obj.id),
            before_json={"status": _enum_value(previous)},
            after_json={"status": _enum_value(obj.status)},
            actor_user_id=ctx.user_id,
            comment=comment,
        )

    def _summary(self, obj: Any) -> dict[str, Any]:
        summary: dict[str, Any] = {"status": _enum_value(obj.status), "title": obj.title}
        if self.number_field:
            summary[self.number_field] = getattr(obj, self.number_field)
        return summary

    def _label(self, obj: Any) -> str:
        if self.number_field:
            return str(getattr(obj, self.number_field))
        return str(obj.id)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value
