from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_permission
from qms.core.security import RequestContext
from qms.db.models.training import Certificate
from qms.schemas.training import (
    CertificateOut,
    CertificateRevoke,
    CertificateStats,
    CertificateVerifyOut,
)
from qms.services.certificates import CertificateService, certificate_state

router = APIRouter(prefix="/certificates")

_issue = require_permission("can_issue_certificates")

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _out(certificate: Certificate) -> CertificateOut:
    out = CertificateOut.model_validate(certificate)
    out.state = certificate_state(certificate)
    return out


@router.get("/verify/{code}", response_model=CertificateVerifyOut)
async def verify_certificate(code: str, db: AsyncSession = Depends(get_db)) -> CertificateVerifyOut:
    """Публичная проверка сертификата по коду (без авторизации)."""
    return CertificateVerifyOut(**await CertificateService(db).verify(code))


@router.get("/my", response_model=list[CertificateOut])
async def my_certificates(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[CertificateOut]:
    return [_out(c) for c in await CertificateService(db).list_mine(ctx)]


@router.get("/stats", response_model=CertificateStats)
async def certificate_stats(
    ctx: RequestContext = Depends(_issue),
    db: AsyncSession = Depends(get_db),
) -> CertificateStats:
    return CertificateStats(**await CertificateService(db).stats(ctx))


@router.get("", response_model=list[CertificateOut])
async def list_certificates(
    training_id: UUID | None = Query(default=None),
    user_id: UUID | None = Query(default=None),
    is_valid: bool | None = Query(default=None),
    ctx: RequestContext = Depends(_issue),
    db: AsyncSession = Depends(get_db),
) -> list[CertificateOut]:
    items = await CertificateService(db).list_all(
        ctx, training_id=training_id, user_id=user_id, is_valid=is_valid
    )
    return [_out(c) for c in items]


@router.get("/{certificate_id}", response_model=CertificateOut)
async def get_certificate(
    certificate_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> CertificateOut:
    return _out(await CertificateService(db).get(ctx, certificate_id))


@router.get("/{certificate_id}/download", response_model=CertificateOut)
async def download_certificate(
    certificate_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> CertificateOut:
    """Данные сертификата для печати; увеличивает счётчик скачиваний."""
    return _out(await CertificateService(db).register_download(ctx, certificate_id))


@router.get("/{certificate_id}/docx")
async def download_certificate_docx(
    certificate_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> Response:
    filename, payload = await CertificateService(db).render_docx(ctx, certificate_id)
    return Response(
        content=payload,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{certificate_id}/revoke", response_model=CertificateOut)
async def revoke_certificate(
    certificate_id: UUID,
    payload: CertificateRevoke,
    ctx: RequestContext = Depends(_issue),
    db: AsyncSession = Depends(get_db),
) -> CertificateOut:
    return _out(await CertificateService(db).revoke(ctx, certificate_id, payload.reason))
