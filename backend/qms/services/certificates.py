"""
Сертификаты о прохождении обучения: выпуск, проверка, отзыв, выгрузка.

Срок действия: expiry_date = issue_date + certificate_validity_months тренинга.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from io import BytesIO
from typing import Any
from uuid import UUID

from docx import Document as DocxDocument
from docx.enum.text import WD_PARAGRAPH_ALIGNMENT
from docx.shared import Pt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.audit import log_audit
from qms.core.config import settings
from qms.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.base import as_utc, utcnow
from qms.db.enums import AssignmentStatus, NotificationType
from qms.db.models.tenants import User
from qms.db.models.training import Certificate, Training, TrainingAssignment
from qms.services.notifications import NotificationService
from qms.services.numbering import certificate_number, verification_code

log = get_logger("certificates")


def add_months(value: datetime, months: int) -> datetime:
    """Прибавляет месяцы, прижимая день к концу месяца (31.01 + 1 = 28/29.02)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def is_expired(expiry_date: datetime | None, now: datetime | None = None) -> bool:
    """Истёк ли срок: expiry_date < now. Бессрочный сертификат не истекает."""
    if expiry_date is None:
        return False
    return as_utc(expiry_date) < as_utc(now or utcnow())


def is_expiring_soon(
    expiry_date: datetime | None,
    now: datetime | None = None,
    days: int | None = None,
) -> bool:
    """Истекает ли в ближайшие days дней: 0 <= expiry_date - now < days."""
    if expiry_date is None:
        return False
    window = timedelta(days=days if days is not None else settings.certificate_expiring_soon_days)
    remaining = as_utc(expiry_date) - as_utc(now or utcnow())
    return timedelta(0) <= remaining < window


def certificate_state(certificate: Certificate, now: datetime | None = None) -> str:
    if not certificate.is_valid:
        return "revoked"
    if is_expired(certificate.expiry_date, now):
        return "expired"
    if is_expiring_soon(certificate.expiry_date, now):
        return "expiring_soon"
    return "valid"


class CertificateService:
    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None) -> None:
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def issue(
        self,
        training: Training,
        assignment: TrainingAssignment,
        user: User,
        exam_score: int | None = None,
        exam_attempt_id: UUID | None = None,
    ) -> Certificate:
        """
        Выпускает сертификат по назначению и уведомляет пользователя.

        Коммит выполняет вызывающий код.
        """
        now = utcnow()
        completion = as_utc(assignment.completed_at) or now
        certificate = Certificate(
            tenant_id=assignment.tenant_id,
            certificate_number=certificate_number(now.year),
            training_id=training.id,
            assignment_id=assignment.id,
            user_id=user.id,
            exam_attempt_id=exam_attempt_id,
            training_title=training.title,
            user_name=user.full_name,
            issue_date=now,
            expiry_date=add_months(now, training.certificate_validity_months)
            if training.certificate_validity_months
            else None,
            exam_score=exam_score,
            completion_date=completion,
            is_valid=True,
            verification_code=verification_code(),
        )
        self.db.add(certificate)
        await self.db.flush()

        assignment.certificate_id = certificate.id
        assignment.certificate_issued_at = now

        await self.notifications.notify(
            tenant_id=assignment.tenant_id,
            user_id=user.id,
            notification_type=NotificationType.CERTIFICATE_ISSUED,
            title="Certificate Issued",
            message=f'Congratulations! Your certificate for "{training.title}" has been issued.',
            link=f"/training/certificates/{certificate.id}",
            related_id=certificate.id,
            related_type="Certificate",
            email_data={
                "user_name": user.full_name,
                "training_title": training.title,
                "certificate_number": certificate.certificate_number,
            },
        )
        log.info(
            f"Certificate {certificate.certificate_number} issued "
            f"(user={user.id}, training={training.id})"
        )
        return certificate

    async def issue_for_assignment(self, ctx: RequestContext, assignment_id: UUID) -> Certificate:
        """Ручной выпуск администратором для завершённого назначения без сертификата."""
        assignment = await self._get_assignment(ctx, assignment_id)
        if assignment.status != AssignmentStatus.COMPLETED:
            raise ValidationError(
                "Certificate can only be issued for a completed training",
                details={"status": assignment.status.value},
            )
        if assignment.certificate_id is not None:
            raise ConflictError(
                "Certificate already issued for this assignment",
                details={"certificate_id": str(assignment.certificate_id)},
            )
        training = await self.db.get(Training, assignment.training_id)
        user = await self.db.get(User, assignment.user_id)
        if training is None or user is None:
            raise NotFoundError("TrainingAssignment", str(assignment_id))

        certificate = await self.issue(training, assignment, user, exam_score=assignment.best_exam_score)
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="issue",
            entity_type="certificate",
            entity_id=str(certificate.id),
            after_json={"certificate_number": certificate.certificate_number},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(certificate)
        return certificate

    async def verify(self, code: str) -> dict[str, Any]:
        """Публичная проверка сертификата по коду верификации."""
        stmt = select(Certificate).where(Certificate.verification_code == code)
        certificate = (await self.db.execute(stmt)).scalar_one_or_none()
        if certificate is None:
            raise NotFoundError("Certificate", code)
        state = certificate_state(certificate)
        return {
            "valid": state in ("valid", "expiring_soon"),
            "state": state,
            "certificate_number": certificate.certificate_number,
            "training_title": certificate.training_title,
            "user_name": certificate.user_name,
            "issue_date": certificate.issue_date,
            "expiry_date": certificate.expiry_date,
            "completion_date": certificate.completion_date,
            "revoked_at": certificate.revoked_at,
            "revoke_reason": certificate.revoke_reason,
        }

    async def list_mine(self, ctx: RequestContext) -> list[Certificate]:
        stmt = (
            select(Certificate)
            .where(Certificate.tenant_id == ctx.tenant_id, Certificate.user_id == ctx.user_id)
            .order_by(Certificate.issue_date.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def get(self, ctx: RequestContext, certificate_id: UUID) -> Certificate:
        """Сертификат: владельцу, admin и qa_manager."""
        stmt = select(Certificate).where(
            Certificate.id == certificate_id,
            Certificate.tenant_id == ctx.tenant_id,
        )
        certificate = (await self.db.execute(stmt)).scalar_one_or_none()
        if certificate is None:
            raise NotFoundError("Certificate", str(certificate_id))
        if certificate.user_id != ctx.user_id and not ctx.is_manager:
            raise ForbiddenError("Access denied to this certificate")
        return certificate

    async def register_download(self, ctx: RequestContext, certificate_id: UUID) -> Certificate:
        certificate = await self.get(ctx, certificate_id)
        certificate.download_count += 1
        certificate.last_downloaded_at = utcnow()
        await self.db.commit()
        await self.db.refresh(certificate)
        return certificate

    async def render_docx(self, ctx: RequestContext, certificate_id: UUID) -> tuple[str, bytes]:
        """Рендерит сертификат в DOCX. Возвращает (имя файла, содержимое)."""
        certificate = await self.register_download(ctx, certificate_id)
        training = await self.db.get(Training, certificate.training_id)
        template = (training.certificate_template if training else None) or {}

        doc = DocxDocument()
        style = doc.styles["Normal"]
        style.font.name = "Calibri"
        style.font.size = Pt(12)

        title = doc.add_heading(template.get("title") or "Certificate of Completion", level=0)
        title.alignment = WD_PARAGRAPH_ALIGNMENT.CENTER

        def centered(text: str, size: int = 12, bold: bool = False) -> None:
            paragraph = doc.add_paragraph()
            paragraph.alignment = WD_PARAGRAPH_ALIGNMENT.CENTER
            run = paragraph.add_run(text)
            run.font.size = Pt(size)
            run.bold = bold

        centered("This is to certify that")
        centered(certificate.user_name, size=20, bold=True)
        centered("has successfully completed the training")
        centered(certificate.training_title, size=16, bold=True)
        if certificate.exam_score is not None:
            centered(f"Exam score: {certificate.exam_score}%")
        centered(f"Issued: {as_utc(certificate.issue_date):%Y-%m-%d}")
        if certificate.expiry_date is not None:
            centered(f"Valid until: {as_utc(certificate.expiry_date):%Y-%m-%d}")
        if template.get("signature_name"):
            centered(template["signature_name"], bold=True)
            if template.get("signature_title"):
                centered(template["signature_title"])
        centered(f"Certificate No. {certificate.certificate_number}", size=9)
        centered(f"Verification code: {certificate.verification_code}", size=9)

        buffer = BytesIO()
        doc.save(buffer)
        return f"{certificate.certificate_number}.docx", buffer.getvalue()

    async def list_all(
        self,
        ctx: RequestContext,
        training_id: UUID | None = None,
        user_id: UUID | None = None,
        is_valid: bool | None = None,
    ) -> list[Certificate]:
        stmt = select(Certificate).where(Certificate.tenant_id == ctx.tenant_id)
        if training_id is not None:
            stmt = stmt.where(Certificate.training_id == training_id)
        if user_id is not None:
            stmt = stmt.where(Certificate.user_id == user_id)
        if is_valid is not None:
            stmt = stmt.where(Certificate.is_valid.is_(is_valid))
        stmt = stmt.order_by(Certificate.issue_date.desc())
        return list((await self.db.execute(stmt)).scalars().all())

    async def revoke(self, ctx: RequestContext, certificate_id: UUID, reason: str) -> Certificate:
        certificate = await self.get(ctx, certificate_id)
        if not certificate.is_valid:
            raise ConflictError("Certificate is already revoked")
        certificate.is_valid = False
        certificate.revoked_at = utcnow()
        certificate.revoked_by = ctx.user_id
        certificate.revoke_reason = reason
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="revoke",
            entity_type="certificate",
            entity_id=str(certificate.id),
            after_json={"reason": reason},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(certificate)
        log.info(f"Certificate {certificate.certificate_number} revoked: {reason}")
        return certificate

    async def stats(self, ctx: RequestContext) -> dict[str, int]:
        certificates = list(
            (
                await self.db.execute(
                    select(Certificate).where(Certificate.tenant_id == ctx.tenant_id)
                )
            ).scalars().all()
        )
        now = utcnow()
        states = [certificate_state(c, now) for c in certificates]
        this_month = sum(
            1
            for c in certificates
            if as_utc(c.issue_date).year == now.year and as_utc(c.issue_date).month == now.month
        )
        return {
            "total": len(certificates),
            "valid": states.count("valid") + states.count("expiring_soon"),
            "expiring_soon": states.count("expiring_soon"),
            "expired": states.count("expired"),
            "revoked": states.count("revoked"),
            "issued_this_month": this_month,
        }

    async def _get_assignment(self, ctx: RequestContext, assignment_id: UUID) -> TrainingAssignment:
        stmt = select(TrainingAssignment).where(
            TrainingAssignment.id == assignment_id,
            TrainingAssignment.tenant_id == ctx.tenant_id,
        )
        assignment = (await self.db.execute(stmt)).scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("TrainingAssignment", str(assignment_id))
        return assignment
