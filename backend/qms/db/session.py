"""
Инициализация async-движка и фабрики сессий SQLAlchemy 2.0.
Используется во всём приложении (FastAPI-зависимость get_db) и в seed-скрипте.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from qms.core.config import settings


def build_engine(url: str | None = None, echo: bool = False) -> AsyncEngine:
    """Создаёт async engine (по умолчанию на settings.async_database_url)."""
    return create_async_engine(url or settings.async_database_url, echo=echo, future=True)


engine: AsyncEngine = build_engine()

async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Зависимость FastAPI для получения async-сессии БД."""

    async with async_session_factory() as session:
        yield session
