from __future__ import annotations

import uuid
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_permission
from qms.core.errors import NotFoundError, ValidationError
from qms.core.logging import logger
from qms.core.security import RequestContext
from qms.core.storage import resolve_stored_path, save_upload, stored_path
from qms.db.enums import ContentType, TrainingCategory, TrainingPriority, TrainingStatus, TrainingType
from qms.schemas.common import HistoryEntryOut, StatusStats
from qms.schemas.training import (
    ContentCreate,
    ContentOut,
    ContentReorder,
    ContentUpdate,
    ExamCreate,
    ExamOut,
    ExamResultsOut,
    ExamUpdate,
    TrainingCreate,
    TrainingOut,
    TrainingParticipants,
    TrainingStatusUpdate,
    TrainingUpdate,
)
from qms.services.training import ExamAdminService, TrainingContentService, TrainingService

router = APIRouter(prefix="/trainings")

_manage = require_permission("can_manage_trainings")
_exams = require_permission("can_create_exams")
_reports = require_permission("can_view_reports")

# Загружаемые файлы материалов
ALLOWED_EXTENSIONS = {".pdf", ".ppt", ".pptx", ".doc", ".docx", ".mp4", ".webm", ".mov", ".zip"}


# ------------------------------------------------------------------ trainings


@router.get("", response_model=list[TrainingOut])
async def list_trainings(
    status_filter: TrainingStatus | None = Query(default=None, alias="status"),
    training_type: TrainingType | None = Query(default=None),
    category: TrainingCategory | None = Query(default=None),
    priority: TrainingPriority | None = Query(default=None),
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[TrainingOut]:
    items = await TrainingService(db).list_records(
        ctx,
        filters={
            "status": status_filter,
            "training_type": training_type,
            "category": category,
            "priority": priority,
        },
        search=search,
        skip=skip,
        limit=limit,
    )
    return [TrainingOut.model_validate(t) for t in items]


@router.get("/stats", response_model=StatusStats)
async def training_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> StatusStats:
    return StatusStats(**await TrainingService(db).stats(ctx))


@router.get("/{training_id}", response_model=TrainingOut)
async def get_training(
    training_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> TrainingOut:
    return TrainingOut.model_validate(await TrainingService(db).get(ctx, training_id))


@router.post("", response_model=TrainingOut, status_code=status.HTTP_201_CREATED)
async def create_training(
    payload: TrainingCreate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> TrainingOut:
    training = await TrainingService(db).create(ctx, payload.model_dump())
    return TrainingOut.model_validate(training)


@router.put("/{training_id}", response_model=TrainingOut)
async def update_training(
    training_id: UUID,
    payload: TrainingUpdate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> TrainingOut:
    training = await TrainingService(db).update(ctx, training_id, payload.model_dump(exclude_unset=True))
    return TrainingOut.model_validate(training)


@router.patch("/{training_id}/status", response_model=TrainingOut)
async def change_training_status(
    training_id: UUID,
    payload: TrainingStatusUpdate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> TrainingOut:
    training = await TrainingService(db).change_status(
        ctx, training_id, payload.status, comment=payload.comment
    )
    return TrainingOut.model_validate(training)


@router.get("/{training_id}/history", response_model=list[HistoryEntryOut])
async def training_history(
    training_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[HistoryEntryOut]:
    entries = await TrainingService(db).history(ctx, training_id)
    return [HistoryEntryOut.model_validate(e) for e in entries]


@router.get("/{training_id}/participants", response_model=TrainingParticipants)
async def training_participants(
    training_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> TrainingParticipants:
    return TrainingParticipants(**await TrainingService(db).participants(ctx, training_id))


@router.delete("/{training_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_training(
    training_id: UUID,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> None:
    await TrainingService(db).delete(ctx, training_id)


# -------------------------------------------------------------------- content


@router.get("/{training_id}/content", response_model=list[ContentOut])
async def list_content(
    training_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[ContentOut]:
    items = await TrainingContentService(db).list_for_training(ctx, training_id)
    return [ContentOut.model_validate(c) for c in items]


@router.post(
    "/{training_id}/content",
    response_model=ContentOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_content(
    training_id: UUID,
    payload: ContentCreate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> ContentOut:
    content = await TrainingContentService(db).add(ctx, training_id, payload.model_dump())
    return ContentOut.model_validate(content)


@router.post(
    "/{training_id}/content/upload",
    response_model=ContentOut,
    status_code=status.HTTP_201_CREATED,
)
async def upload_content(
    training_id: UUID,
    file: UploadFile = File(...),
    title: str = Form(...),
    content_type: ContentType = Form(...),
    description: str | None = Form(default=None),
    duration: int | None = Form(default=None),
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> ContentOut:
    """Загрузка файла материала (видео, pdf, презентация ...)."""
    service = TrainingContentService(db)
    # Проверяем тренинг до записи файла на диск
    await TrainingService(db).get(ctx, training_id)

    filename = file.filename or ""
    extension = ("." + filename.rsplit(".", 1)[-1].lower()) if "." in filename else ""
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type {extension or '(none)'} is not allowed",
            details={"allowed": sorted(ALLOWED_EXTENSIONS)},
        )

    content_id = uuid.uuid4()
    stored = await save_upload(file, training_id, content_id)
    logger.info(f"Training content uploaded: {stored.path} ({stored.size_bytes} bytes, sha256={stored.sha256})")
    content = await service.add(
        ctx,
        training_id,
        {
            "id": content_id,
            "title": title,
            "description": description,
            "content_type": content_type,
            "content_url": f"/api/trainings/{training_id}/content/{content_id}/file",
            "file_name": stored.original_filename,
            "file_size": stored.size_bytes,
            "mime_type": stored.mime_type,
            "duration": duration,
        },
    )
    return ContentOut.model_validate(content)


@router.put("/{training_id}/content/reorder", response_model=list[ContentOut])
async def reorder_content(
    training_id: UUID,
    payload: ContentReorder,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> list[ContentOut]:
    items = await TrainingContentService(db).reorder(ctx, training_id, payload.content_ids)
    return [ContentOut.model_validate(c) for c in items]


@router.get("/{training_id}/content/{content_id}", response_model=ContentOut)
async def get_content(
    training_id: UUID,
    content_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ContentOut:
    return ContentOut.model_validate(await TrainingContentService(db).get(ctx, training_id, content_id))


@router.get("/{training_id}/content/{content_id}/file")
async def download_content_file(
    training_id: UUID,
    content_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> FileResponse:
    content = await TrainingContentService(db).get(ctx, training_id, content_id)
    if not content.file_name:
        raise NotFoundError("ContentFile", str(content_id))
    try:
        path = resolve_stored_path(str(stored_path(training_id, content_id, content.file_name)))
    except FileNotFoundError:
        raise NotFoundError("ContentFile", str(content_id))
    return FileResponse(path, media_type=content.mime_type, filename=content.file_name)


@router.put("/{training_id}/content/{content_id}", response_model=ContentOut)
async def update_content(
    training_id: UUID,
    content_id: UUID,
    payload: ContentUpdate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> ContentOut:
    content = await TrainingContentService(db).update(
        ctx, training_id, content_id, payload.model_dump(exclude_unset=True)
    )
    return ContentOut.model_validate(content)


@router.delete("/{training_id}/content/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(
    training_id: UUID,
    content_id: UUID,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> None:
    await TrainingContentService(db).delete(ctx, training_id, content_id)


# ----------------------------------------------------------------------- exam


@router.get("/{training_id}/exam", response_model=ExamOut)
async def get_exam(
    training_id: UUID,
    ctx: RequestContext = Depends(_exams),
    db: AsyncSession = Depends(get_db),
) -> ExamOut:
    """Экзамен с правильными ответами (для авторов экзамена)."""
    return ExamOut.model_validate(await ExamAdminService(db).get_for_training(ctx, training_id))


@router.post("/{training_id}/exam", response_model=ExamOut, status_code=status.HTTP_201_CREATED)
async def create_exam(
    training_id: UUID,
    payload: ExamCreate,
    ctx: RequestContext = Depends(_exams),
    db: AsyncSession = Depends(get_db),
) -> ExamOut:
    exam = await ExamAdminService(db).create(ctx, training_id, payload.model_dump(mode="json"))
    return ExamOut.model_validate(exam)


@router.put("/{training_id}/exam", response_model=ExamOut)
async def update_exam(
    training_id: UUID,
    payload: ExamUpdate,
    ctx: RequestContext = Depends(_exams),
    db: AsyncSession = Depends(get_db),
) -> ExamOut:
    exam = await ExamAdminService(db).update(
        ctx, training_id, payload.model_dump(mode="json", exclude_unset=True)
    )
    return ExamOut.model_validate(exam)


@router.delete("/{training_id}/exam", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exam(
    training_id: UUID,
    ctx: RequestContext = Depends(_exams),
    db: AsyncSession = Depends(get_db),
) -> None:
    await ExamAdminService(db).delete(ctx, training_id)


@router.get("/{training_id}/exam/results", response_model=ExamResultsOut)
async def exam_results(
    training_id: UUID,
    ctx: RequestContext = Depends(_reports),
    db: AsyncSession = Depends(get_db),
) -> ExamResultsOut:
    return ExamResultsOut(**await ExamAdminService(db).results(ctx, training_id))
