from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Text, UniqueConstraint, Uuid
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
from qms.db.enums import AuditStatus, AuditType, Priority


def empty_findings_count() -> dict[str, int]:
    return {"critical": 0, "major": 0, "minor": 0, "observation": 0}


class Audit(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    """Аудит (внутренний, внешний, регуляторный, поставщика, самоинспекция)."""

    __tablename__ = "audits"
    __table_args__ = (
        UniqueConstraint("tenant_id", "audit_number", name="uq_audits_tenant_number"),
    )

    audit_number: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    audit_type: Mapped[AuditType] = mapped_column(
        enum_column(AuditType, "audit_type"), nullable=False
    )
    status: Mapped[AuditStatus] = mapped_column(
        enum_column(AuditStatus, "audit_status"), nullable=False, default=AuditStatus.PLANNED
    )
    scope: Mapped[str] = mapped_column(Text, nullable=False)
    standard: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[Priority] = mapped_column(
        enum_column(Priority, "priority"), nullable=False, default=Priority.MEDIUM
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    lead_auditor: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    auditee: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_organization: Mapped[str | None] = mapped_column(Text, nullable=True)
    auditor_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    department: Mapped[str | None] = mapped_column(Text, nullable=True)
    findings_count: Mapped[dict[str, Any]] = mapped_column(
        JSONVariant, nullable=False, default=empty_findings_count
    )
    executive_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    follow_up_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    capa_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capa_references: Mapped[list[str]] = mapped_column(JSONVariant, nullable=False, default=list)
