"""
Генерация бизнес-номеров вида PREFIX-YYYY-NNN (DEV-2025-001, CAPA-2025-014 ...).

Нумерация ведётся в пределах тенанта и года. Гонка двух одновременных
созданий упирается в уникальный индекс (tenant_id, number) и возвращается
клиенту как 409.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

NUMBER_WIDTH = 3


def format_number(prefix: str, year: int, seq: int) -> str:
    return f"{prefix}-{year}-{seq:0{NUMBER_WIDTH}d}"


def parse_sequence(number: str, prefix: str, year: int) -> int | None:
    """Порядковый номер из строки, если она относится к prefix/year."""
    head = f"{prefix}-{year}-"
    if not number.startswith(head):
        return None
    tail = number[len(head):]
    return int(tail) if tail.isdigit() else None


async def next_business_number(
    db: AsyncSession,
    column: Any,
    tenant_column: Any,
    tenant_id: UUID,
    prefix: str,
    year: int | None = None,
) -> str:
    """
    Следующий свободный номер для тенанта в текущем году.

    Args:
        column: ORM-атрибут с номером (например, Deviation.deviation_number)
        tenant_column: ORM-атрибут tenant_id той же модели
    """
    year = year or datetime.now(timezone.utc).year
    stmt = select(column).where(
        tenant_column == tenant_id,
        column.like(f"{prefix}-{year}-%"),
    )
    result = await db.execute(stmt)
    sequences = [parse_sequence(n, prefix, year) for n in result.scalars().all()]
    last = max((s for s in sequences if s is not None), default=0)
    return format_number(prefix, year, last + 1)


def certificate_number(year: int | None = None) -> str:
    """CERT-YYYY-XXXXXXXX, где X - верхний регистр hex от uuid4."""
    year = year or datetime.now(timezone.utc).year
    return f"CERT-{year}-{uuid.uuid4().hex[:8].upper()}"


def verification_code() -> str:
    return str(uuid.uuid4())
