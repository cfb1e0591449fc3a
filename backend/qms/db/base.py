"""
Базовый declarative-слой для SQLAlchemy 2.0.

Все модели в проекте наследуются от `Base`, используют UUID в качестве
первичного ключа и timezone-aware временные метки. Типы подобраны так, чтобы
схема поднималась и на PostgreSQL (prod), и на SQLite (тесты, локальный запуск).
"""

from __future__ import annotations

import uuid
from functools import lru_cache
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, MetaData, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func


convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


metadata = MetaData(naming_convention=convention)


def utcnow() -> datetime:
    """Текущее время в UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite возвращает naive datetime: считаем такие значения UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# JSONB на PostgreSQL, обычный JSON на остальных диалектах
JSONVariant = JSON().with_variant(JSONB(), "postgresql")


@lru_cache(maxsize=None)
def enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    """SQL-тип для str-Enum, хранящий значения (а не имена) членов.

    Один объект типа на имя: несколько таблиц могут ссылаться на один PG ENUM.
    """
    return Enum(
        enum_cls,
        name=name,
        native_enum=True,
        values_callable=lambda x: [e.value for e in x],
    )


class Base(DeclarativeBase):
    """Базовый класс всех ORM-моделей."""

    metadata = metadata

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[override]
        return cls.__name__.lower()


class UUIDMixin:
    """Миксин с UUID первичным ключом."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class TenantMixin:
    """Миксин принадлежности тенанту. Каждая запись принадлежит ровно одному тенанту."""

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class TimestampMixin:
    """Миксин со стандартными временными метками."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class AuthorshipMixin:
    """Кто создал и кто последним изменил запись."""

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


JSONType = dict[str, Any]
