from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel

from qms.db.enums import AuditStatus, AuditType, Priority
from qms.schemas.common import RecordOutBase


class FindingsCount(BaseModel):
    critical: int = 0
    major: int = 0
    minor: int = 0
    observation: int = 0


class AuditCreate(BaseModel):
    """Схема для планирования аудита. Статус всегда planned."""

    title: str
    description: str | None = None
    audit_type: AuditType
    scope: str
    standard: str | None = None
    priority: Priority = Priority.MEDIUM
    scheduled_date: date
    lead_auditor: UUID | None = None
    auditee: str | None = None
    external_organization: str | None = None
    auditor_name: str | None = None
    department: str | None = None


class AuditUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    audit_type: AuditType | None = None
    status: AuditStatus | None = None
    scope: str | None = None
    standard: str | None = None
    priority: Priority | None = None
    scheduled_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    lead_auditor: UUID | None = None
    auditee: str | None = None
    external_organization: str | None = None
    auditor_name: str | None = None
    department: str | None = None
    findings_count: FindingsCount | None = None
    executive_summary: str | None = None
    follow_up_required: bool | None = None
    follow_up_date: date | None = None
    capa_generated: bool | None = None
    capa_references: list[str] | None = None


class AuditStatusUpdate(BaseModel):
    status: AuditStatus
    comment: str | None = None
    executive_summary: str | None = None


class AuditOut(RecordOutBase):
    audit_number: str
    title: str
    description: str | None
    audit_type: AuditType
    status: AuditStatus
    scope: str
    standard: str | None
    priority: Priority
    scheduled_date: date
    start_date: date | None
    end_date: date | None
    completion_date: datetime | None
    lead_auditor: UUID | None
    auditee: str | None
    external_organization: str | None
    auditor_name: str | None
    department: str | None
    findings_count: FindingsCount
    executive_summary: str | None
    follow_up_required: bool
    follow_up_date: date | None
    capa_generated: bool
    capa_references: list[str]
