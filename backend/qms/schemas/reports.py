from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class DashboardAlerts(BaseModel):
    open_deviations: int
    open_critical_deviations: int
    open_capas: int
    overdue_capas: int
    overdue_trainings: int
    upcoming_audits: int


class DashboardOut(BaseModel):
    totals: dict[str, int]
    by_status: dict[str, dict[str, int]]
    alerts: DashboardAlerts


class MonthCount(BaseModel):
    year: int
    month: int
    count: int


class ModuleReportOut(BaseModel):
    module: str
    by_status: dict[str, int]
    by_month: list[MonthCount]
    recent_items: list[dict[str, Any]]
    total_count: int


class ComplianceOut(BaseModel):
    overall_score: int
    metrics: dict[str, dict[str, int]]
