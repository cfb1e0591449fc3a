"""
Отчёты: сводка для дашборда, отчёт по модулю и показатели соответствия.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import Date, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.errors import ValidationError
from qms.core.security import RequestContext
from qms.db.base import as_utc, utcnow
from qms.db.enums import (
    AuditStatus,
    CAPAStatus,
    DeviationSeverity,
    DeviationStatus,
    TrainingStatus,
)
from qms.db.models.audits import Audit
from qms.db.models.documents import Document
from qms.db.models.quality import CAPA, ChangeControl, Deviation
from qms.db.models.training import Training
from qms.services.certificates import add_months
from qms.services.exams import round_half_up

# module -> (модель, поле даты для фильтра и помесячной разбивки)
MODULES: dict[str, tuple[type, str]] = {
    "documents": (Document, "created_at"),
    "change-controls": (ChangeControl, "created_at"),
    "deviations": (Deviation, "occurrence_date"),
    "capas": (CAPA, "created_at"),
    "audits": (Audit, "scheduled_date"),
    "trainings": (Training, "scheduled_date"),
}

OPEN_DEVIATION_STATUSES = (DeviationStatus.OPEN, DeviationStatus.INVESTIGATION)
CLOSED_CAPA_STATUSES = (CAPAStatus.COMPLETED, CAPAStatus.CANCELLED)
UPCOMING_AUDIT_DAYS = 30
RECENT_ITEMS = 10


def row_to_dict(obj: Any) -> dict[str, Any]:
    """Колонки ORM-объекта в dict (для отчётов без отдельной схемы на модуль)."""
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


def completion_rate(done: int, total: int) -> int:
    """Доля в процентах; при отсутствии записей считаем 100."""
    if not total:
        return 100
    return round_half_up(done * 100 / total)


class ReportService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _count(self, ctx: RequestContext, model: type, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(model).where(model.tenant_id == ctx.tenant_id, *criteria)
        return (await self.db.execute(stmt)).scalar_one()

    async def _by_status(self, ctx: RequestContext, model: type, *criteria: Any) -> dict[str, int]:
        stmt = (
            select(model.status, func.count())
            .where(model.tenant_id == ctx.tenant_id, *criteria)
            .group_by(model.status)
        )
        rows = (await self.db.execute(stmt)).all()
        return {status.value: count for status, count in sorted(rows, key=lambda r: -r[1])}

    async def dashboard(self, ctx: RequestContext) -> dict[str, Any]:
        totals: dict[str, int] = {}
        by_status: dict[str, dict[str, int]] = {}
        for module, (model, _) in MODULES.items():
            totals[module] = await self._count(ctx, model)
            by_status[module] = await self._by_status(ctx, model)

        today = utcnow().date()
        alerts = {
            "open_deviations": await self._count(
                ctx, Deviation, Deviation.status.in_(OPEN_DEVIATION_STATUSES)
            ),
            "open_critical_deviations": await self._count(
                ctx,
                Deviation,
                Deviation.severity == DeviationSeverity.CRITICAL,
                Deviation.status.not_in((DeviationStatus.CLOSED, DeviationStatus.REJECTED)),
            ),
            "open_capas": await self._count(ctx, CAPA, CAPA.status.not_in(CLOSED_CAPA_STATUSES)),
            "overdue_capas": await self._count(
                ctx,
                CAPA,
                CAPA.status.not_in(CLOSED_CAPA_STATUSES),
                CAPA.due_date.is_not(None),
                CAPA.due_date < today,
            ),
            "overdue_trainings": await self._count(
                ctx, Training, Training.status == TrainingStatus.OVERDUE
            ),
            "upcoming_audits": await self._count(
                ctx,
                Audit,
                Audit.status == AuditStatus.PLANNED,
                Audit.scheduled_date >= today,
                Audit.scheduled_date <= today + timedelta(days=UPCOMING_AUDIT_DAYS),
            ),
        }
        return {"totals": totals, "by_status": by_status, "alerts": alerts}

    async def module_report(
        self,
        ctx: RequestContext,
        module: str,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
    ) -> dict[str, Any]:
        """
        Отчёт по модулю: разбивка по статусам, по месяцам за последние 12 месяцев
        и последние записи.

        Raises:
            ValidationError: неизвестный модуль
        """
        if module not in MODULES:
            raise ValidationError(
                "Invalid module specified",
                details={"module": module, "allowed": sorted(MODULES)},
            )
        model, date_field = MODULES[module]
        column = getattr(model, date_field)
        is_date_column = isinstance(column.type, Date)

        criteria: list[Any] = []
        if start_date is not None:
            criteria.append(column >= _bound(start_date, is_date_column))
        if end_date is not None:
            criteria.append(column <= _bound(end_date, is_date_column, end=True))
        if status:
            status_enum = model.status.type.enum_class
            try:
                criteria.append(model.status == status_enum(status))
            except ValueError:
                raise ValidationError(
                    f"Invalid status '{status}' for {module}",
                    details={"allowed": [s.value for s in status_enum]},
                )

        twelve_months_ago = add_months(utcnow(), -12)
        month_values = (
            await self.db.execute(
                select(column).where(
                    model.tenant_id == ctx.tenant_id,
                    column.is_not(None),
                    column >= (twelve_months_ago.date() if is_date_column else twelve_months_ago),
                )
            )
        ).scalars().all()
        by_month: dict[tuple[int, int], int] = {}
        for value in month_values:
            key = (value.year, value.month)
            by_month[key] = by_month.get(key, 0) + 1

        recent_stmt = (
            select(model)
            .where(model.tenant_id == ctx.tenant_id, *criteria)
            .order_by(column.desc())
            .limit(RECENT_ITEMS)
        )
        recent = (await self.db.execute(recent_stmt)).scalars().all()
        return {
            "module": module,
            "by_status": await self._by_status(ctx, model, *criteria),
            "by_month": [
                {"year": year, "month": month, "count": count}
                for (year, month), count in sorted(by_month.items())
            ],
            "recent_items": [row_to_dict(item) for item in recent],
            "total_count": await self._count(ctx, model, *criteria),
        }

    async def compliance(self, ctx: RequestContext) -> dict[str, Any]:
        """Показатели соответствия; общий балл - среднее четырёх долей."""
        deviations = await self._count(ctx, Deviation)
        closed_deviations = await self._count(ctx, Deviation, Deviation.status == DeviationStatus.CLOSED)
        capas = await self._count(ctx, CAPA)
        completed_capas = await self._count(ctx, CAPA, CAPA.status == CAPAStatus.COMPLETED)
        trainings = await self._count(ctx, Training)
        completed_trainings = await self._count(
            ctx, Training, Training.status == TrainingStatus.COMPLETED
        )
        audits = await self._count(ctx, Audit)
        completed_audits = await self._count(
            ctx, Audit, Audit.status.in_((AuditStatus.COMPLETED, AuditStatus.CLOSED))
        )

        metrics = {
            "deviations": {
                "total": deviations,
                "closed": closed_deviations,
                "rate": completion_rate(closed_deviations, deviations),
            },
            "capas": {
                "total": capas,
                "completed": completed_capas,
                "rate": completion_rate(completed_capas, capas),
            },
            "trainings": {
                "total": trainings,
                "completed": completed_trainings,
                "rate": completion_rate(completed_trainings, trainings),
            },
            "audits": {
                "total": audits,
                "completed": completed_audits,
                "rate": completion_rate(completed_audits, audits),
            },
        }
        overall = sum(m["rate"] for m in metrics.values()) / len(metrics)
        return {"overall_score": round_half_up(overall), "metrics": metrics}


def _bound(value: date, is_date_column: bool, end: bool = False) -> date | datetime:
    if is_date_column:
        return value
    moment = datetime.combine(value, datetime.max.time() if end else datetime.min.time())
    return as_utc(moment)
