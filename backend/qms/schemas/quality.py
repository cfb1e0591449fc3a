from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel

from qms.db.enums import (
    CAPAStatus,
    CAPAType,
    ChangeControlStatus,
    DeviationSeverity,
    DeviationStatus,
    Priority,
    RiskLevel,
)
from qms.schemas.common import RecordOutBase


# ---------------------------------------------------------------- deviations


class DeviationCreate(BaseModel):
    """Схема для регистрации отклонения. Статус всегда open."""

    title: str
    description: str
    severity: DeviationSeverity
    category: str
    occurrence_date: date
    detected_by: UUID | None = None
    assigned_to: UUID | None = None
    department: str | None = None
    product_affected: str | None = None
    batch_number: str | None = None
    immediate_action: str | None = None


class DeviationUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    severity: DeviationSeverity | None = None
    category: str | None = None
    status: DeviationStatus | None = None
    occurrence_date: date | None = None
    assigned_to: UUID | None = None
    department: str | None = None
    product_affected: str | None = None
    batch_number: str | None = None
    immediate_action: str | None = None
    root_cause: str | None = None
    investigation: str | None = None
    corrective_action: str | None = None
    preventive_action: str | None = None
    verification_comments: str | None = None


class DeviationStatusUpdate(BaseModel):
    """Смена статуса; сопутствующие поля записываются вместе с ней."""

    status: DeviationStatus
    comment: str | None = None
    root_cause: str | None = None
    investigation: str | None = None
    corrective_action: str | None = None
    preventive_action: str | None = None
    verification_comments: str | None = None


class DeviationOut(RecordOutBase):
    deviation_number: str
    title: str
    description: str
    severity: DeviationSeverity
    category: str
    status: DeviationStatus
    occurrence_date: date
    detected_by: UUID | None
    assigned_to: UUID | None
    department: str | None
    product_affected: str | None
    batch_number: str | None
    immediate_action: str | None
    root_cause: str | None
    investigation: str | None
    corrective_action: str | None
    preventive_action: str | None
    capa_id: UUID | None
    closure_date: datetime | None
    verified_by: UUID | None
    verification_comments: str | None


# ---------------------------------------------------------------------- CAPA


class CAPACreate(BaseModel):
    title: str
    description: str
    type: CAPAType
    source: str = "Other"
    source_reference: str | None = None
    priority: Priority = Priority.MEDIUM
    root_cause: str | None = None
    corrective_action: str | None = None
    preventive_action: str | None = None
    action_plan: str | None = None
    assigned_to: UUID | None = None
    due_date: date | None = None


class CAPAFromDeviation(BaseModel):
    """CAPA по отклонению: заголовок и описание по умолчанию берутся из отклонения."""

    title: str | None = None
    description: str | None = None
    type: CAPAType = CAPAType.BOTH
    priority: Priority = Priority.MEDIUM
    action_plan: str | None = None
    assigned_to: UUID | None = None
    due_date: date | None = None


class CAPAUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    type: CAPAType | None = None
    priority: Priority | None = None
    status: CAPAStatus | None = None
    root_cause: str | None = None
    corrective_action: str | None = None
    preventive_action: str | None = None
    action_plan: str | None = None
    effectiveness_check: str | None = None
    effectiveness_result: str | None = None
    assigned_to: UUID | None = None
    due_date: date | None = None
    implementation_date: date | None = None
    verification_comments: str | None = None


class CAPAStatusUpdate(BaseModel):
    status: CAPAStatus
    comment: str | None = None
    effectiveness_check: str | None = None
    effectiveness_result: str | None = None
    verification_comments: str | None = None


class CAPAOut(RecordOutBase):
    capa_number: str
    title: str
    description: str
    type: CAPAType
    source: str
    source_id: UUID | None
    source_reference: str | None
    priority: Priority
    status: CAPAStatus
    root_cause: str | None
    corrective_action: str | None
    preventive_action: str | None
    action_plan: str | None
    effectiveness_check: str | None
    effectiveness_result: str | None
    assigned_to: UUID | None
    due_date: date | None
    implementation_date: date | None
    completion_date: datetime | None
    verified_by: UUID | None
    verification_date: date | None
    verification_comments: str | None


class DeviationCAPAOut(BaseModel):
    deviation: DeviationOut
    capa: CAPAOut


# ------------------------------------------------------------ change control


class ChangeControlCreate(BaseModel):
    title: str
    description: str
    change_type: str
    priority: Priority = Priority.MEDIUM
    requestor_id: UUID | None = None
    implementation_date: date | None = None
    impact_assessment: str | None = None
    risk_level: RiskLevel = RiskLevel.MEDIUM
    affected_systems: list[str] = []


class ChangeControlUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    change_type: str | None = None
    priority: Priority | None = None
    status: ChangeControlStatus | None = None
    implementation_date: date | None = None
    impact_assessment: str | None = None
    risk_level: RiskLevel | None = None
    affected_systems: list[str] | None = None
    approval_comments: str | None = None


class ChangeControlStatusUpdate(BaseModel):
    status: ChangeControlStatus
    comment: str | None = None
    approval_comments: str | None = None


class ChangeControlOut(RecordOutBase):
    change_number: str
    title: str
    description: str
    change_type: str
    priority: Priority
    status: ChangeControlStatus
    requestor_id: UUID | None
    approver_id: UUID | None
    implementation_date: date | None
    completion_date: datetime | None
    impact_assessment: str | None
    risk_level: RiskLevel
    affected_systems: list[str]
    approval_comments: str | None
