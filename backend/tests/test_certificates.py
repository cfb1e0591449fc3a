"""Тесты для сертификатов: сроки действия, проверка, отзыв, выгрузка."""

from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from docx import Document as DocxDocument

from qms.core.errors import ConflictError, ForbiddenError, NotFoundError
from qms.db.enums import TrainingCategory, TrainingStatus, TrainingType
from qms.db.models.training import Certificate
from qms.services.assignments import AssignmentService
from qms.services.certificates import (
    CertificateService,
    add_months,
    certificate_state,
    is_expired,
    is_expiring_soon,
)
from qms.services.training import TrainingService

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestValidityDates:
    """Тесты для расчёта сроков действия."""

    def test_add_months(self):
        assert add_months(datetime(2025, 1, 15), 12) == datetime(2026, 1, 15)
        assert add_months(datetime(2025, 11, 30), 3) == datetime(2026, 2, 28)

    def test_add_months_clamps_to_month_end(self):
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)

    def test_is_expired(self):
        assert is_expired(NOW - timedelta(seconds=1), NOW)
        assert not is_expired(NOW + timedelta(days=1), NOW)
        assert not is_expired(None, NOW)

    def test_naive_expiry_treated_as_utc(self):
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert is_expired(naive, NOW)

    def test_expiring_soon_window(self):
        assert is_expiring_soon(NOW + timedelta(days=10), NOW, days=30)
        assert not is_expiring_soon(NOW + timedelta(days=30), NOW, days=30)
        assert not is_expiring_soon(NOW - timedelta(days=1), NOW, days=30)
        assert not is_expiring_soon(None, NOW, days=30)

    def test_certificate_state(self):
        certificate = Certificate(is_valid=True, expiry_date=NOW + timedelta(days=365))
        assert certificate_state(certificate, NOW) == "valid"

        certificate.expiry_date = NOW + timedelta(days=5)
        assert certificate_state(certificate, NOW) == "expiring_soon"

        certificate.expiry_date = NOW - timedelta(days=5)
        assert certificate_state(certificate, NOW) == "expired"

        certificate.is_valid = False
        assert certificate_state(certificate, NOW) == "revoked"


async def _completed_assignment(db, admin_ctx, trainee, trainee_ctx, **training_overrides):
    """Тренинг без материалов и экзамена: start сразу завершает назначение."""
    data = {
        "title": "Hand Hygiene",
        "description": "Hand hygiene in the dispensary",
        "training_type": TrainingType.ANNUAL,
        "category": TrainingCategory.SAFETY,
        "certificate_validity_months": 12,
        "certificate_template": {"title": "Hygiene Certificate", "signature_name": "QA Lead"},
    }
    data.update(training_overrides)
    training = await TrainingService(db).create(admin_ctx, data)
    await TrainingService(db).change_status(admin_ctx, training.id, TrainingStatus.PUBLISHED)
    service = AssignmentService(db)
    assignment = (await service.assign(admin_ctx, training.id, user_ids=[trainee.id]))["assigned"][0]
    return training, await service.start(trainee_ctx, assignment.id)


class TestCertificateService:
    """Тесты для CertificateService."""

    async def test_issued_on_completion(self, db, admin_ctx, trainee, trainee_ctx):
        training, assignment = await _completed_assignment(db, admin_ctx, trainee, trainee_ctx)

        assert assignment.certificate_id is not None
        certificates = await CertificateService(db).list_mine(trainee_ctx)
        assert len(certificates) == 1
        certificate = certificates[0]
        assert certificate.training_title == training.title
        assert certificate.user_name == trainee.full_name
        assert certificate.certificate_number.startswith("CERT-")
        assert certificate.expiry_date is not None

    async def test_no_certificate_when_disabled(self, db, admin_ctx, trainee, trainee_ctx):
        _, assignment = await _completed_assignment(
            db, admin_ctx, trainee, trainee_ctx, certificate_enabled=False
        )
        assert assignment.certificate_id is None
        assert await CertificateService(db).list_mine(trainee_ctx) == []

    async def test_open_ended_certificate(self, db, admin_ctx, trainee, trainee_ctx):
        await _completed_assignment(
            db, admin_ctx, trainee, trainee_ctx, certificate_validity_months=0
        )
        certificate = (await CertificateService(db).list_mine(trainee_ctx))[0]
        assert certificate.expiry_date is None
        assert certificate_state(certificate) == "valid"

    async def test_verify_and_revoke(self, db, admin_ctx, trainee, trainee_ctx):
        await _completed_assignment(db, admin_ctx, trainee, trainee_ctx)
        service = CertificateService(db)
        certificate = (await service.list_mine(trainee_ctx))[0]

        verified = await service.verify(certificate.verification_code)
        assert verified["valid"] is True
        assert verified["state"] == "valid"

        revoked = await service.revoke(admin_ctx, certificate.id, "Issued in error")
        assert revoked.is_valid is False
        assert revoked.revoked_by == admin_ctx.user_id

        verified = await service.verify(certificate.verification_code)
        assert verified["valid"] is False
        assert verified["state"] == "revoked"
        assert verified["revoke_reason"] == "Issued in error"

        with pytest.raises(ConflictError):
            await service.revoke(admin_ctx, certificate.id, "Again")

    async def test_verify_unknown_code(self, db):
        with pytest.raises(NotFoundError):
            await CertificateService(db).verify("no-such-code")

    async def test_other_user_cannot_read(self, db, tenant, admin_ctx, trainee, trainee_ctx, make_user, context_for):
        await _completed_assignment(db, admin_ctx, trainee, trainee_ctx)
        certificate = (await CertificateService(db).list_mine(trainee_ctx))[0]
        colleague = await make_user(tenant)

        with pytest.raises(ForbiddenError):
            await CertificateService(db).get(await context_for(colleague), certificate.id)
        assert (await CertificateService(db).get(admin_ctx, certificate.id)).id == certificate.id

    async def test_render_docx_counts_download(self, db, admin_ctx, trainee, trainee_ctx):
        await _completed_assignment(db, admin_ctx, trainee, trainee_ctx)
        service = CertificateService(db)
        certificate = (await service.list_mine(trainee_ctx))[0]

        file_name, content = await service.render_docx(trainee_ctx, certificate.id)

        assert file_name == f"{certificate.certificate_number}.docx"
        text = "\n".join(p.text for p in DocxDocument(BytesIO(content)).paragraphs)
        assert "Hygiene Certificate" in text
        assert trainee.full_name in text
        assert certificate.verification_code in text
        await db.refresh(certificate)
        assert certificate.download_count == 1

    async def test_stats(self, db, admin_ctx, trainee, trainee_ctx):
        await _completed_assignment(db, admin_ctx, trainee, trainee_ctx)
        stats = await CertificateService(db).stats(admin_ctx)
        assert stats["total"] == 1
        assert stats["valid"] == 1
        assert stats["revoked"] == 0
        assert stats["issued_this_month"] == 1
