from __future__ import annotations

from enum import Enum
from typing import Any

from qms.core.security import RequestContext
from qms.db.base import utcnow
from qms.db.enums import AuditStatus
from qms.db.models.audits import Audit, empty_findings_count
from qms.services.records import RecordService


def normalize_findings(findings: dict[str, Any] | None) -> dict[str, int]:
    """Приводит findings_count к полному набору ключей с неотрицательными int."""
    result = empty_findings_count()
    for key, value in (findings or {}).items():
        if key in result:
            result[key] = max(int(value or 0), 0)
    return result


class AuditService(RecordService[Audit]):
    model = Audit
    entity_type = "audit"
    resource_name = "Audit"
    initial_status = AuditStatus.PLANNED
    number_field = "audit_number"
    number_prefix = "AUD"
    search_fields = ("title", "scope", "auditee")

    async def prepare_create(self, ctx: RequestContext, obj: Audit) -> None:
        obj.findings_count = normalize_findings(obj.findings_count)

    async def prepare_update(self, ctx: RequestContext, obj: Audit, data: dict[str, Any]) -> None:
        if "findings_count" in data:
            obj.findings_count = normalize_findings(data["findings_count"])

    async def apply_status_side_effects(
        self, ctx: RequestContext, obj: Audit, previous: Enum, target: Enum
    ) -> None:
        if target == AuditStatus.IN_PROGRESS and obj.start_date is None:
            obj.start_date = utcnow().date()
        elif target == AuditStatus.COMPLETED:
            obj.completion_date = utcnow()
            if obj.end_date is None:
                obj.end_date = obj.completion_date.date()
