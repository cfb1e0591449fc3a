from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context
from qms.core.security import RequestContext
from qms.schemas.training import ExamAttemptOut, ExamStartOut, ExamSubmit, ExamSubmitOut, ExamTakeOut
from qms.services.exams import ExamService

router = APIRouter(prefix="/exams")


@router.get("/{assignment_id}/take", response_model=ExamTakeOut)
async def take_exam(
    assignment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ExamTakeOut:
    """Экзамен для прохождения: вопросы без правильных ответов."""
    return ExamTakeOut(**await ExamService(db).take(ctx, assignment_id))


@router.post("/{assignment_id}/start", response_model=ExamStartOut)
async def start_exam(
    assignment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ExamStartOut:
    return ExamStartOut(**await ExamService(db).start(ctx, assignment_id))


@router.post("/attempts/{attempt_id}/submit", response_model=ExamSubmitOut)
async def submit_exam(
    attempt_id: UUID,
    payload: ExamSubmit,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ExamSubmitOut:
    answers = [a.model_dump() for a in payload.answers]
    return ExamSubmitOut(**await ExamService(db).submit(ctx, attempt_id, answers))


@router.get("/{assignment_id}/attempts", response_model=list[ExamAttemptOut])
async def list_attempts(
    assignment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[ExamAttemptOut]:
    return [ExamAttemptOut.model_validate(a) for a in await ExamService(db).attempts(ctx, assignment_id)]
