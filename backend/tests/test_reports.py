"""Тесты для отчётов: дашборд, отчёт по модулю, показатели соответствия."""

from datetime import timedelta

import pytest

from qms.core.errors import ValidationError
from qms.db.base import utcnow
from qms.db.enums import AuditType, CAPAStatus, CAPAType, DeviationSeverity, DeviationStatus
from qms.services.audits import AuditService
from qms.services.quality import CAPAService, DeviationService
from qms.services.reports import ReportService, completion_rate


def _deviation(severity=DeviationSeverity.MINOR, **overrides):
    data = {
        "title": "Label error",
        "description": "Wrong strength printed",
        "severity": severity,
        "category": "Dispensing",
        "occurrence_date": utcnow().date(),
    }
    data.update(overrides)
    return data


@pytest.fixture
async def quality_records(db, admin_ctx):
    """Два отклонения (одно критическое и закрытое), просроченная CAPA и ближайший аудит."""
    deviations = DeviationService(db)
    await deviations.create(admin_ctx, _deviation())
    critical = await deviations.create(admin_ctx, _deviation(DeviationSeverity.CRITICAL, title="Wrong patient"))
    for target in (DeviationStatus.INVESTIGATION, DeviationStatus.CLOSED):
        await deviations.change_status(admin_ctx, critical.id, target)

    today = utcnow().date()
    await CAPAService(db).create(
        admin_ctx,
        {
            "title": "Retrain dispensary staff",
            "description": "Labelling refresher",
            "type": CAPAType.CORRECTIVE,
            "source": "Deviation",
            "due_date": today - timedelta(days=3),
        },
    )
    await AuditService(db).create(
        admin_ctx,
        {
            "title": "Controlled drugs register audit",
            "audit_type": AuditType.INTERNAL,
            "scope": "CD register",
            "scheduled_date": today + timedelta(days=7),
        },
    )


class TestCompletionRate:
    """Тесты для completion_rate."""

    def test_empty_is_full(self):
        assert completion_rate(0, 0) == 100

    def test_rounding(self):
        assert completion_rate(1, 3) == 33
        assert completion_rate(2, 3) == 67
        assert completion_rate(1, 8) == 13


class TestReportService:
    """Тесты для ReportService."""

    async def test_dashboard(self, db, admin_ctx, quality_records):
        dashboard = await ReportService(db).dashboard(admin_ctx)

        assert dashboard["totals"]["deviations"] == 2
        assert dashboard["totals"]["capas"] == 1
        assert dashboard["totals"]["trainings"] == 0
        assert dashboard["by_status"]["deviations"] == {"open": 1, "closed": 1}
        alerts = dashboard["alerts"]
        assert alerts["open_deviations"] == 1
        assert alerts["open_critical_deviations"] == 0
        assert alerts["open_capas"] == 1
        assert alerts["overdue_capas"] == 1
        assert alerts["upcoming_audits"] == 1

    async def test_module_report(self, db, admin_ctx, quality_records):
        report = await ReportService(db).module_report(admin_ctx, "deviations", status="closed")

        assert report["total_count"] == 1
        assert report["by_status"] == {"closed": 1}
        assert [item["title"] for item in report["recent_items"]] == ["Wrong patient"]
        today = utcnow().date()
        assert report["by_month"] == [{"year": today.year, "month": today.month, "count": 2}]

    async def test_module_report_date_range(self, db, admin_ctx, quality_records):
        tomorrow = utcnow().date() + timedelta(days=1)
        report = await ReportService(db).module_report(admin_ctx, "deviations", start_date=tomorrow)
        assert report["total_count"] == 0
        assert report["recent_items"] == []

    async def test_unknown_module(self, db, admin_ctx):
        with pytest.raises(ValidationError) as exc_info:
            await ReportService(db).module_report(admin_ctx, "complaints")
        assert exc_info.value.message == "Invalid module specified"

    async def test_invalid_status(self, db, admin_ctx):
        with pytest.raises(ValidationError):
            await ReportService(db).module_report(admin_ctx, "capas", status="done")

    async def test_compliance_empty_tenant(self, db, admin_ctx):
        compliance = await ReportService(db).compliance(admin_ctx)
        assert compliance["overall_score"] == 100
        assert all(metric["rate"] == 100 for metric in compliance["metrics"].values())

    async def test_compliance(self, db, admin_ctx, quality_records):
        compliance = await ReportService(db).compliance(admin_ctx)

        assert compliance["metrics"]["deviations"] == {"total": 2, "closed": 1, "rate": 50}
        assert compliance["metrics"]["capas"]["rate"] == 0
        assert compliance["metrics"]["audits"]["rate"] == 0
        assert compliance["metrics"]["trainings"]["rate"] == 100
        assert compliance["overall_score"] == 38

    async def test_completed_capa_counts(self, db, admin_ctx):
        service = CAPAService(db)
        capa = await service.create(
            admin_ctx,
            {"title": "Fix", "description": "Fix it", "type": CAPAType.PREVENTIVE, "source": "Audit"},
        )
        for target in (
            CAPAStatus.INVESTIGATION,
            CAPAStatus.ACTION_PLAN,
            CAPAStatus.IMPLEMENTATION,
            CAPAStatus.EFFECTIVENESS_CHECK,
            CAPAStatus.COMPLETED,
        ):
            await service.change_status(admin_ctx, capa.id, target)

        compliance = await ReportService(db).compliance(admin_ctx)
        assert compliance["metrics"]["capas"] == {"total": 1, "completed": 1, "rate": 100}


class TestReportsApi:
    """Тесты для API отчётов."""

    async def test_dashboard(self, client, admin, headers_for, quality_records):
        response = await client.get("/api/reports/dashboard", headers=headers_for(admin))
        assert response.status_code == 200
        assert response.json()["alerts"]["overdue_capas"] == 1

    async def test_module_report(self, client, admin, headers_for, quality_records):
        response = await client.get("/api/reports/audits", headers=headers_for(admin))
        body = response.json()
        assert body["module"] == "audits"
        assert body["recent_items"][0]["status"] == "planned"

    async def test_unknown_module(self, client, admin, headers_for):
        response = await client.get("/api/reports/complaints", headers=headers_for(admin))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid module specified"

    async def test_trainee_forbidden(self, client, trainee, headers_for):
        response = await client.get("/api/reports/compliance", headers=headers_for(trainee))
        assert response.status_code == 403
