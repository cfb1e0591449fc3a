from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, require_permission
from qms.core.security import RequestContext
from qms.schemas.reports import ComplianceOut, DashboardOut, ModuleReportOut
from qms.services.reports import ReportService

router = APIRouter(prefix="/reports")

_reports = require_permission("can_view_reports")


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(
    ctx: RequestContext = Depends(_reports),
    db: AsyncSession = Depends(get_db),
) -> DashboardOut:
    return DashboardOut(**await ReportService(db).dashboard(ctx))


@router.get("/compliance", response_model=ComplianceOut)
async def compliance(
    ctx: RequestContext = Depends(_reports),
    db: AsyncSession = Depends(get_db),
) -> ComplianceOut:
    return ComplianceOut(**await ReportService(db).compliance(ctx))


@router.get("/{module}", response_model=ModuleReportOut)
async def module_report(
    module: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    status: str | None = Query(default=None),
    ctx: RequestContext = Depends(_reports),
    db: AsyncSession = Depends(get_db),
) -> ModuleReportOut:
    """Отчёт по модулю: documents, change-controls, deviations, capas, audits, trainings."""
    report = await ReportService(db).module_report(
        ctx, module, start_date=start_date, end_date=end_date, status=status
    )
    return ModuleReportOut(**report)
