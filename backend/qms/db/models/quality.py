"""
Модели записей качества: отклонения (deviations), CAPA и change control.

Бизнес-номера (DEV-2025-001, CAPA-2025-001, CC-2025-001) уникальны в пределах тенанта.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from qms.db.base import (
    AuthorshipMixin,
    Base,
    JSONVariant,
    TenantMixin,
    TimestampMixin,
    UUIDMixin,
    enum_column,
)
from qms.db.enums import (
    CAPAStatus,
    CAPAType,
    ChangeControlStatus,
    DeviationSeverity,
    DeviationStatus,
    Priority,
    RiskLevel,
)


def _user_fk(nullable: bool = True) -> Mapped[uuid.UUID | None]:
    return mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=nullable
    )


class Deviation(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    __tablename__ = "deviations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "deviation_number", name="uq_deviations_tenant_number"),
    )

    deviation_number: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[DeviationSeverity] = mapped_column(
        enum_column(DeviationSeverity, "deviation_severity"), nullable=False
    )
    category: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[DeviationStatus] = mapped_column(
        enum_column(DeviationStatus, "deviation_status"),
        nullable=False,
        default=DeviationStatus.OPEN,
    )
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    detected_by: Mapped[uuid.UUID | None] = _user_fk()
    assigned_to: Mapped[uuid.UUID | None] = _user_fk()
    department: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_affected: Mapped[str | None] = mapped_column(Text, nullable=True)
    batch_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    immediate_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    root_cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    investigation: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrective_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    preventive_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    capa_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("capas.id", ondelete="SET NULL"), nullable=True
    )
    closure_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[uuid.UUID | None] = _user_fk()
    verification_comments: Mapped[str | None] = mapped_column(Text, nullable=True)


class CAPA(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    __tablename__ = "capas"
    __table_args__ = (
        UniqueConstraint("tenant_id", "capa_number", name="uq_capas_tenant_number"),
    )

    capa_number: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[CAPAType] = mapped_column(enum_column(CAPAType, "capa_type"), nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    source_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    source_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[Priority] = mapped_column(
        enum_column(Priority, "priority"), nullable=False, default=Priority.MEDIUM
    )
    status: Mapped[CAPAStatus] = mapped_column(
        enum_column(CAPAStatus, "capa_status"), nullable=False, default=CAPAStatus.OPEN
    )
    root_cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrective_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    preventive_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_plan: Mapped[str | None] = mapped_column(Text, nullable=True)
    effectiveness_check: Mapped[str | None] = mapped_column(Text, nullable=True)
    effectiveness_result: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[uuid.UUID | None] = _user_fk()
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    implementation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[uuid.UUID | None] = _user_fk()
    verification_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    verification_comments: Mapped[str | None] = mapped_column(Text, nullable=True)


class ChangeControl(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    __tablename__ = "change_controls"
    __table_args__ = (
        UniqueConstraint("tenant_id", "change_number", name="uq_change_controls_tenant_number"),
    )

    change_number: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[Priority] = mapped_column(
        enum_column(Priority, "priority"), nullable=False, default=Priority.MEDIUM
    )
    status: Mapped[ChangeControlStatus] = mapped_column(
        enum_column(ChangeControlStatus, "change_control_status"),
        nullable=False,
        default=ChangeControlStatus.INITIATED,
    )
    requestor_id: Mapped[uuid.UUID | None] = _user_fk()
    approver_id: Mapped[uuid.UUID | None] = _user_fk()
    implementation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    impact_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_level: Mapped[RiskLevel] = mapped_column(
        enum_column(RiskLevel, "risk_level"), nullable=False, default=RiskLevel.MEDIUM
    )
    affected_systems: Mapped[list[str]] = mapped_column(JSONVariant, nullable=False, default=list)
    approval_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
