"""
Назначения тренингов и прохождение материалов.

Порядок прохождения контролируется на сервере:
- материал с индексом i доступен, только если все материалы с меньшим индексом
  завершены (can_access_content);
- при включённом enforce_content_dwell материал нельзя отметить завершённым,
  пока не выполнено требование ко времени просмотра (check_dwell).

После завершения всех материалов назначение переходит в exam_pending (если
у тренинга есть активный экзамен и требуется оценка) либо сразу в completed
с выпуском сертификата.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.audit import log_audit
from qms.core.config import settings
from qms.core.errors import ForbiddenError, NotFoundError, ValidationError
from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.base import utcnow
from qms.db.enums import AssignmentStatus, ContentType, NotificationType, TrainingStatus, UserRole
from qms.db.models.tenants import User
from qms.db.models.training import (
    Exam,
    ExamAttempt,
    Training,
    TrainingAssignment,
    TrainingContent,
)
from qms.services.certificates import CertificateService
from qms.services.notifications import NotificationService
from qms.services.training import TrainingContentService, TrainingService

log = get_logger("assignments")

# Статусы, в которых пользователь проходит материалы и они влияют на статус назначения
LEARNING_STATUSES = frozenset(
    {AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS, AssignmentStatus.OVERDUE}
)
FINISHED_STATUSES = frozenset({AssignmentStatus.COMPLETED})


# ---------------------------------------------------------------------- progress


def new_progress_entry(content_id: UUID | str) -> dict[str, Any]:
    return {"content_id": str(content_id), "completed": False, "completed_at": None, "time_spent": 0}


def build_content_progress(contents: list[TrainingContent]) -> list[dict[str, Any]]:
    return [new_progress_entry(c.id) for c in contents]


def align_progress(
    progress: list[dict[str, Any]], contents: list[TrainingContent]
) -> list[dict[str, Any]]:
    """
    Прогресс в порядке текущих материалов тренинга.

    Материалы, добавленные после назначения, появляются незавершёнными;
    записи удалённых материалов отбрасываются. Возвращает новые dict-ы.
    """
    by_id = {str(p.get("content_id")): p for p in progress or []}
    return [dict(by_id.get(str(c.id)) or new_progress_entry(c.id)) for c in contents]


def can_access_content(progress: list[dict[str, Any]], index: int) -> bool:
    """Материал index доступен тогда и только тогда, когда все предыдущие завершены."""
    if index < 0:
        return False
    return all(entry.get("completed") for entry in progress[:index])


def all_content_completed(progress: list[dict[str, Any]]) -> bool:
    return all(entry.get("completed") for entry in progress)


def check_dwell(
    content: TrainingContent,
    time_spent: int = 0,
    playback_ratio: float | None = None,
    viewed_slides: int | None = None,
) -> str | None:
    """
    Проверяет минимальное время/охват просмотра материала.

    video: просмотрено >= video_completion_ratio ролика или time_spent >= длительности;
    ppt со слайдами: просмотрены все слайды;
    остальное: time_spent >= min_document_seconds.

    Returns:
        None, если требование выполнено, иначе текст причины.
    """
    if content.content_type == ContentType.VIDEO:
        if playback_ratio is not None and playback_ratio >= settings.video_completion_ratio:
            return None
        required = (content.duration or 0) * 60 or settings.min_document_seconds
        if time_spent >= required:
            return None
        return (
            f"Watch at least {int(settings.video_completion_ratio * 100)}% of the video "
            f"before marking it complete"
        )
    if content.content_type == ContentType.PPT and content.slide_count > 0:
        if (viewed_slides or 0) >= content.slide_count:
            return None
        return f"View all {content.slide_count} slides before marking the presentation complete"
    if time_spent >= settings.min_document_seconds:
        return None
    return f"Spend at least {settings.min_document_seconds} seconds on this content before marking it complete"


# -------------------------------------------------------------------- completion


async def complete_assignment(
    db: AsyncSession,
    assignment: TrainingAssignment,
    training: Training,
    exam_score: int | None = None,
    exam_attempt_id: UUID | None = None,
    notifications: NotificationService | None = None,
) -> None:
    """
    Завершает назначение: статус completed, счётчик тренинга и сертификат
    (если он включён для тренинга). Коммит выполняет вызывающий код.
    """
    now = utcnow()
    assignment.status = AssignmentStatus.COMPLETED
    assignment.completed_at = now
    training.passed_count = (training.passed_count or 0) + 1

    if training.certificate_enabled and assignment.certificate_id is None:
        user = await db.get(User, assignment.user_id)
        if user is not None:
            await CertificateService(db, notifications).issue(
                training, assignment, user, exam_score=exam_score, exam_attempt_id=exam_attempt_id
            )
    log.info(f"Assignment {assignment.id} completed (training={training.id})")


class AssignmentService:
    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None) -> None:
        self.db = db
        self.notifications = notifications or NotificationService(db)

    # --------------------------------------------------------------- admin side

    async def assign(
        self,
        ctx: RequestContext,
        training_id: UUID,
        user_ids: list[UUID] | None = None,
        role_filter: UserRole | None = None,
        due_date: date | None = None,
    ) -> dict[str, Any]:
        """
        Назначает тренинг пользователям (по списку id или по роли).

        Уже назначенные и ненайденные пользователи пропускаются и попадают в errors.
        """
        training = await TrainingService(self.db).get(ctx, training_id)
        if training.status in (TrainingStatus.CANCELLED, TrainingStatus.COMPLETED):
            raise ValidationError(
                f"Cannot assign a training in {training.status.value} status",
                details={"status": training.status.value},
            )
        if not user_ids and role_filter is None:
            raise ValidationError("Provide user_ids or role_filter")

        stmt = select(User).where(User.tenant_id == ctx.tenant_id, User.is_active.is_(True))
        if user_ids:
            stmt = stmt.where(User.id.in_(user_ids))
        else:
            stmt = stmt.where(User.role == role_filter)
        users = list((await self.db.execute(stmt)).scalars().all())

        errors: list[dict[str, Any]] = []
        found = {u.id for u in users}
        for missing in [uid for uid in (user_ids or []) if uid not in found]:
            errors.append({"user_id": missing, "message": "User not found or inactive"})

        existing = set(
            (
                await self.db.execute(
                    select(TrainingAssignment.user_id).where(
                        TrainingAssignment.tenant_id == ctx.tenant_id,
                        TrainingAssignment.training_id == training_id,
                    )
                )
            ).scalars().all()
        )
        contents = await TrainingContentService(self.db).list_for_training(ctx, training_id)
        effective_due = due_date or training.due_date
        now = utcnow()

        created: list[TrainingAssignment] = []
        for user in users:
            if user.id in existing:
                errors.append({"user_id": user.id, "message": "Training already assigned to this user"})
                continue
            assignment = TrainingAssignment(
                tenant_id=ctx.tenant_id,
                training_id=training_id,
                user_id=user.id,
                assigned_by=ctx.user_id,
                assigned_at=now,
                due_date=effective_due,
                status=AssignmentStatus.ASSIGNED,
                content_progress=build_content_progress(contents),
                exam_attempts=0,
                total_time_spent=0,
            )
            self.db.add(assignment)
            await self.db.flush()
            created.append(assignment)

            await self.notifications.notify(
                tenant_id=ctx.tenant_id,
                user_id=user.id,
                notification_type=NotificationType.TRAINING_ASSIGNED,
                title="New Training Assigned",
                message=f'You have been assigned to "{training.title}"',
                link=f"/training/my-trainings/{assignment.id}",
                related_id=assignment.id,
                related_type="TrainingAssignment",
                email_data={
                    "user_name": user.full_name,
                    "training_title": training.title,
                    "due_date": effective_due.isoformat() if effective_due else None,
                },
            )

        if created:
            await log_audit(
                db=self.db,
                tenant_id=ctx.tenant_id,
                action="assign",
                entity_type="training",
                entity_id=str(training_id),
                after_json={"user_ids": [str(a.user_id) for a in created]},
                actor_user_id=ctx.user_id,
            )
        await self.db.commit()
        for assignment in created:
            await self.db.refresh(assignment)
        log.info(
            f"Training {training.training_number} assigned to {len(created)} users "
            f"({len(errors)} skipped)"
        )
        return {"assigned": created, "errors": errors}

    async def list_all(
        self,
        ctx: RequestContext,
        training_id: UUID | None = None,
        user_id: UUID | None = None,
        status: AssignmentStatus | None = None,
    ) -> list[tuple[TrainingAssignment, Training, User]]:
        await self.refresh_overdue(ctx)
        stmt = (
            select(TrainingAssignment, Training, User)
            .join(Training, Training.id == TrainingAssignment.training_id)
            .join(User, User.id == TrainingAssignment.user_id)
            .where(TrainingAssignment.tenant_id == ctx.tenant_id)
        )
        if training_id is not None:
            stmt = stmt.where(TrainingAssignment.training_id == training_id)
        if user_id is not None:
            stmt = stmt.where(TrainingAssignment.user_id == user_id)
        if status is not None:
            stmt = stmt.where(TrainingAssignment.status == status)
        stmt = stmt.order_by(TrainingAssignment.created_at.desc())
        return [tuple(row) for row in (await self.db.execute(stmt)).all()]

    async def stats(self, ctx: RequestContext, training_id: UUID | None = None) -> dict[str, Any]:
        rows = await self.list_all(ctx, training_id=training_id)
        assignments = [a for a, _, _ in rows]
        by_status: dict[str, int] = {s.value: 0 for s in AssignmentStatus}
        for a in assignments:
            by_status[a.status.value] += 1
        completed = by_status[AssignmentStatus.COMPLETED.value]
        scores = [a.best_exam_score for a in assignments if a.best_exam_score is not None]
        return {
            "total": len(assignments),
            "by_status": by_status,
            "completed": completed,
            "overdue": by_status[AssignmentStatus.OVERDUE.value],
            "completion_rate": round(completed / len(assignments) * 100, 1) if assignments else 0.0,
            "average_exam_score": round(sum(scores) / len(scores), 1) if scores else None,
        }

    async def reset(self, ctx: RequestContext, assignment_id: UUID) -> TrainingAssignment:
        """Возвращает назначение в исходное состояние (попытки экзамена удаляются)."""
        assignment = await self._get(ctx, assignment_id)
        before = {"status": assignment.status.value, "exam_attempts": assignment.exam_attempts}
        contents = await TrainingContentService(self.db).list_for_training(ctx, assignment.training_id)

        await self.db.execute(delete(ExamAttempt).where(ExamAttempt.assignment_id == assignment.id))
        assignment.status = AssignmentStatus.ASSIGNED
        assignment.content_progress = build_content_progress(contents)
        assignment.content_completed_at = None
        assignment.exam_attempts = 0
        assignment.last_exam_score = None
        assignment.best_exam_score = None
        assignment.exam_passed_at = None
        assignment.certificate_id = None
        assignment.certificate_issued_at = None
        assignment.total_time_spent = 0
        assignment.started_at = None
        assignment.completed_at = None

        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="reset",
            entity_type="training_assignment",
            entity_id=str(assignment.id),
            before_json=before,
            after_json={"status": AssignmentStatus.ASSIGNED.value},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(assignment)
        return assignment

    async def refresh_overdue(self, ctx: RequestContext) -> int:
        """Переводит просроченные незавершённые назначения тенанта в overdue."""
        today = utcnow().date()
        stmt = select(TrainingAssignment, Training).join(
            Training, Training.id == TrainingAssignment.training_id
        ).where(
            TrainingAssignment.tenant_id == ctx.tenant_id,
            TrainingAssignment.status.in_((AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS)),
            TrainingAssignment.due_date.is_not(None),
            TrainingAssignment.due_date < today,
        )
        rows = (await self.db.execute(stmt)).all()
        for assignment, training in rows:
            assignment.status = AssignmentStatus.OVERDUE
            await self.notifications.notify(
                tenant_id=ctx.tenant_id,
                user_id=assignment.user_id,
                notification_type=NotificationType.TRAINING_OVERDUE,
                title="Training Overdue",
                message=f'Training "{training.title}" is overdue',
                link=f"/training/my-trainings/{assignment.id}",
                related_id=assignment.id,
                related_type="TrainingAssignment",
            )
        if rows:
            await self.db.commit()
            log.info(f"{len(rows)} assignments marked overdue (tenant={ctx.tenant_id})")
        return len(rows)

    # ---------------------------------------------------------------- user side

    async def list_mine(self, ctx: RequestContext) -> list[tuple[TrainingAssignment, Training]]:
        await self.refresh_overdue(ctx)
        stmt = (
            select(TrainingAssignment, Training)
            .join(Training, Training.id == TrainingAssignment.training_id)
            .where(
                TrainingAssignment.tenant_id == ctx.tenant_id,
                TrainingAssignment.user_id == ctx.user_id,
            )
            .order_by(TrainingAssignment.created_at.desc())
        )
        return [tuple(row) for row in (await self.db.execute(stmt)).all()]

    async def details(self, ctx: RequestContext, assignment_id: UUID) -> dict[str, Any]:
        """Назначение вместе с тренингом, материалами (с флагами доступа) и экзаменом."""
        assignment = await self.get_visible(ctx, assignment_id)
        training = await self.db.get(Training, assignment.training_id)
        contents = await TrainingContentService(self.db).list_for_training(ctx, assignment.training_id)
        progress = align_progress(assignment.content_progress, contents)
        exam = await self._active_exam(assignment.training_id)
        return {
            "assignment": assignment,
            "training": training,
            "contents": [
                {
                    "content": content,
                    "completed": bool(progress[i].get("completed")),
                    "can_access": can_access_content(progress, i),
                }
                for i, content in enumerate(contents)
            ],
            "exam": exam,
        }

    async def get_visible(self, ctx: RequestContext, assignment_id: UUID) -> TrainingAssignment:
        """Назначение видно владельцу и тем, кто управляет назначениями."""
        assignment = await self._get(ctx, assignment_id)
        if assignment.user_id != ctx.user_id and not ctx.has_permission("can_assign_trainings"):
            raise ForbiddenError("Access denied to this assignment")
        return assignment

    async def start(self, ctx: RequestContext, assignment_id: UUID) -> TrainingAssignment:
        assignment = await self._get_own(ctx, assignment_id)
        if assignment.status != AssignmentStatus.ASSIGNED:
            raise ValidationError(
                "Assignment already started",
                details={"status": assignment.status.value},
            )
        training = await self.db.get(Training, assignment.training_id)
        self._mark_started(assignment, training)

        contents = await TrainingContentService(self.db).list_for_training(ctx, assignment.training_id)
        if not contents:
            # Тренинг без материалов: сразу к экзамену или завершению
            await self._after_content_done(assignment, training)
        await self.db.commit()
        await self.db.refresh(assignment)
        return assignment

    async def complete_content(
        self,
        ctx: RequestContext,
        assignment_id: UUID,
        content_id: UUID,
        time_spent: int = 0,
        playback_ratio: float | None = None,
        viewed_slides: int | None = None,
    ) -> TrainingAssignment:
        """
        Отмечает материал пройденным.

        Raises:
            NotFoundError: материала нет в тренинге
            ValidationError: предыдущие материалы не завершены или не выполнено
                требование ко времени просмотра
        """
        assignment = await self._get_own(ctx, assignment_id)
        training = await self.db.get(Training, assignment.training_id)
        contents = await TrainingContentService(self.db).list_for_training(ctx, assignment.training_id)
        progress = align_progress(assignment.content_progress, contents)

        index = next((i for i, c in enumerate(contents) if c.id == content_id), None)
        if index is None:
            raise NotFoundError("TrainingContent", str(content_id))
        if not can_access_content(progress, index):
            blocking = next(i for i, entry in enumerate(progress) if not entry.get("completed"))
            raise ValidationError(
                "Complete the previous content items first",
                details={"index": index, "blocking_content_id": progress[blocking]["content_id"]},
            )

        entry = progress[index]
        time_spent = max(int(time_spent or 0), 0)
        if not entry.get("completed"):
            if settings.enforce_content_dwell:
                reason = check_dwell(contents[index], time_spent, playback_ratio, viewed_slides)
                if reason:
                    raise ValidationError(
                        reason,
                        details={"content_id": str(content_id), "time_spent": time_spent},
                    )
            entry["completed"] = True
            entry["completed_at"] = jsonable_encoder(utcnow())
        entry["time_spent"] = int(entry.get("time_spent") or 0) + time_spent

        assignment.content_progress = progress
        assignment.total_time_spent = (assignment.total_time_spent or 0) + time_spent
        if assignment.started_at is None:
            self._mark_started(assignment, training)

        if assignment.status in LEARNING_STATUSES and all_content_completed(progress):
            await self._after_content_done(assignment, training)

        await self.db.commit()
        await self.db.refresh(assignment)
        return assignment

    # ------------------------------------------------------------------ helpers

    def _mark_started(self, assignment: TrainingAssignment, training: Training | None) -> None:
        # Просроченное назначение остаётся overdue до завершения
        if assignment.status == AssignmentStatus.ASSIGNED:
            assignment.status = AssignmentStatus.IN_PROGRESS
        assignment.started_at = utcnow()
        if training is not None:
            training.attendance_count = (training.attendance_count or 0) + 1

    async def _after_content_done(self, assignment: TrainingAssignment, training: Training) -> None:
        assignment.content_completed_at = utcnow()
        exam = await self._active_exam(training.id)
        if training.assessment_required and exam is not None:
            assignment.status = AssignmentStatus.EXAM_PENDING
            user = await self.db.get(User, assignment.user_id)
            await self.notifications.notify(
                tenant_id=assignment.tenant_id,
                user_id=assignment.user_id,
                notification_type=NotificationType.EXAM_AVAILABLE,
                title="Exam Available",
                message=f'You can now take the exam for "{training.title}"',
                link=f"/training/my-trainings/{assignment.id}/exam",
                related_id=assignment.id,
                related_type="TrainingAssignment",
                email_data={
                    "user_name": user.full_name if user else "",
                    "training_title": training.title,
                    "passing_score": exam.passing_score,
                    "time_limit": exam.time_limit,
                },
            )
        else:
            await complete_assignment(self.db, assignment, training, notifications=self.notifications)

    async def _active_exam(self, training_id: UUID) -> Exam | None:
        stmt = select(Exam).where(Exam.training_id == training_id, Exam.is_active.is_(True))
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _get(self, ctx: RequestContext, assignment_id: UUID) -> TrainingAssignment:
        stmt = select(TrainingAssignment).where(
            TrainingAssignment.id == assignment_id,
            TrainingAssignment.tenant_id == ctx.tenant_id,
        )
        assignment = (await self.db.execute(stmt)).scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("TrainingAssignment", str(assignment_id))
        return assignment

    async def _get_own(self, ctx: RequestContext, assignment_id: UUID) -> TrainingAssignment:
        assignment = await self._get(ctx, assignment_id)
        if assignment.user_id != ctx.user_id:
            raise NotFoundError("TrainingAssignment", str(assignment_id))
        return assignment
