from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_permission
from qms.core.security import RequestContext
from qms.db.enums import AssignmentStatus
from qms.schemas.training import (
    AssignmentDetailOut,
    AssignmentListItem,
    AssignmentOut,
    AssignmentStats,
    AssignRequest,
    AssignResultOut,
    CertificateOut,
    ContentCompletion,
    MyAssignmentOut,
)
from qms.services.assignments import AssignmentService
from qms.services.certificates import CertificateService, certificate_state

router = APIRouter(prefix="/training-assignments")

_assign = require_permission("can_assign_trainings")


@router.post("/assign", response_model=AssignResultOut, status_code=status.HTTP_201_CREATED)
async def assign_training(
    payload: AssignRequest,
    ctx: RequestContext = Depends(_assign),
    db: AsyncSession = Depends(get_db),
) -> AssignResultOut:
    """Назначение тренинга пользователям (по id или по роли)."""
    result = await AssignmentService(db).assign(
        ctx,
        payload.training_id,
        user_ids=payload.user_ids,
        role_filter=payload.role_filter,
        due_date=payload.due_date,
    )
    return AssignResultOut(
        assigned=[AssignmentOut.model_validate(a) for a in result["assigned"]],
        errors=result["errors"],
    )


@router.get("", response_model=list[AssignmentListItem])
async def list_assignments(
    training_id: UUID | None = Query(default=None),
    user_id: UUID | None = Query(default=None),
    status_filter: AssignmentStatus | None = Query(default=None, alias="status"),
    ctx: RequestContext = Depends(_assign),
    db: AsyncSession = Depends(get_db),
) -> list[AssignmentListItem]:
    rows = await AssignmentService(db).list_all(
        ctx, training_id=training_id, user_id=user_id, status=status_filter
    )
    return [
        AssignmentListItem.model_validate(
            {"assignment": a, "training": t, "user": u}, from_attributes=True
        )
        for a, t, u in rows
    ]


@router.get("/stats", response_model=AssignmentStats)
async def assignment_stats(
    training_id: UUID | None = Query(default=None),
    ctx: RequestContext = Depends(_assign),
    db: AsyncSession = Depends(get_db),
) -> AssignmentStats:
    return AssignmentStats(**await AssignmentService(db).stats(ctx, training_id=training_id))


@router.get("/my", response_model=list[MyAssignmentOut])
async def my_assignments(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[MyAssignmentOut]:
    rows = await AssignmentService(db).list_mine(ctx)
    return [
        MyAssignmentOut.model_validate({"assignment": a, "training": t}, from_attributes=True)
        for a, t in rows
    ]


@router.get("/{assignment_id}", response_model=AssignmentDetailOut)
async def get_assignment(
    assignment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AssignmentDetailOut:
    """Назначение с материалами (флаги completed/can_access) и экзаменом."""
    details = await AssignmentService(db).details(ctx, assignment_id)
    return AssignmentDetailOut.model_validate(details, from_attributes=True)


@router.post("/{assignment_id}/start", response_model=AssignmentOut)
async def start_assignment(
    assignment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AssignmentOut:
    return AssignmentOut.model_validate(await AssignmentService(db).start(ctx, assignment_id))


@router.post("/{assignment_id}/content/{content_id}/complete", response_model=AssignmentOut)
async def complete_content(
    assignment_id: UUID,
    content_id: UUID,
    payload: ContentCompletion,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> AssignmentOut:
    assignment = await AssignmentService(db).complete_content(
        ctx,
        assignment_id,
        content_id,
        time_spent=payload.time_spent,
        playback_ratio=payload.playback_ratio,
        viewed_slides=payload.viewed_slides,
    )
    return AssignmentOut.model_validate(assignment)


@router.post("/{assignment_id}/reset", response_model=AssignmentOut)
async def reset_assignment(
    assignment_id: UUID,
    ctx: RequestContext = Depends(_assign),
    db: AsyncSession = Depends(get_db),
) -> AssignmentOut:
    return AssignmentOut.model_validate(await AssignmentService(db).reset(ctx, assignment_id))


@router.post(
    "/{assignment_id}/issue-certificate",
    response_model=CertificateOut,
    status_code=status.HTTP_201_CREATED,
)
async def issue_certificate(
    assignment_id: UUID,
    ctx: RequestContext = Depends(_assign),
    db: AsyncSession = Depends(get_db),
) -> CertificateOut:
    """Ручной выпуск сертификата для завершённого назначения."""
    certificate = await CertificateService(db).issue_for_assignment(ctx, assignment_id)
    out = CertificateOut.model_validate(certificate)
    out.state = certificate_state(certificate)
    return out
