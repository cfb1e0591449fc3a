"""
Тренинги: сам тренинг (workflow-запись), его материалы и экзамен.

Прохождение тренинга пользователем - в services/assignments.py и services/exams.py.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.audit import log_audit
from qms.core.errors import ConflictError, NotFoundError, ValidationError
from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.enums import AssignmentStatus, ExamAttemptStatus, TrainingStatus
from qms.db.models.tenants import User
from qms.db.models.training import (
    Certificate,
    Exam,
    ExamAttempt,
    Training,
    TrainingAssignment,
    TrainingContent,
)
from qms.services.records import RecordService

log = get_logger("training")


class TrainingService(RecordService[Training]):
    model = Training
    entity_type = "training"
    resource_name = "Training"
    initial_status = TrainingStatus.DRAFT
    number_field = "training_number"
    number_prefix = "TRN"
    search_fields = ("title", "description", "trainer")

    async def before_delete(self, ctx: RequestContext, obj: Training) -> None:
        # Зависимые записи удаляем явно: на SQLite каскад FK выключен
        for model in (Certificate, ExamAttempt, TrainingAssignment, Exam, TrainingContent):
            await self.db.execute(
                delete(model).where(model.training_id == obj.id, model.tenant_id == ctx.tenant_id)
            )

    async def participants(self, ctx: RequestContext, training_id: UUID) -> dict[str, list[UUID]]:
        """Назначенные и завершившие пользователи (вычисляются из назначений)."""
        await self.get(ctx, training_id)
        stmt = select(TrainingAssignment.user_id, TrainingAssignment.status).where(
            TrainingAssignment.tenant_id == ctx.tenant_id,
            TrainingAssignment.training_id == training_id,
        )
        rows = (await self.db.execute(stmt)).all()
        return {
            "assigned_to": [user_id for user_id, _ in rows],
            "completed_by": [user_id for user_id, status in rows if status.value == "completed"],
        }


class TrainingContentService:
    """Упорядоченные материалы тренинга. order всегда 0..n-1 без пропусков."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_for_training(self, ctx: RequestContext, training_id: UUID) -> list[TrainingContent]:
        await TrainingService(self.db).get(ctx, training_id)
        return await self._ordered(ctx, training_id)

    async def get(self, ctx: RequestContext, training_id: UUID, content_id: UUID) -> TrainingContent:
        stmt = select(TrainingContent).where(
            TrainingContent.id == content_id,
            TrainingContent.training_id == training_id,
            TrainingContent.tenant_id == ctx.tenant_id,
        )
        content = (await self.db.execute(stmt)).scalar_one_or_none()
        if content is None:
            raise NotFoundError("TrainingContent", str(content_id))
        return content

    async def add(self, ctx: RequestContext, training_id: UUID, data: dict[str, Any]) -> TrainingContent:
        """Добавляет материал в конец списка."""
        await TrainingService(self.db).get(ctx, training_id)
        count_stmt = select(func.count(TrainingContent.id)).where(
            TrainingContent.training_id == training_id,
            TrainingContent.tenant_id == ctx.tenant_id,
        )
        next_order = (await self.db.execute(count_stmt)).scalar_one()

        content = TrainingContent(**data)
        content.tenant_id = ctx.tenant_id
        content.training_id = training_id
        content.order = next_order
        content.created_by = ctx.user_id
        content.updated_by = ctx.user_id
        if content.slides and not content.slide_count:
            content.slide_count = len(content.slides)
        self.db.add(content)
        await self.db.flush()
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="create",
            entity_type="training_content",
            entity_id=str(content.id),
            after_json={"training_id": str(training_id), "title": content.title, "order": next_order},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(content)
        return content

    async def update(
        self, ctx: RequestContext, training_id: UUID, content_id: UUID, data: dict[str, Any]
    ) -> TrainingContent:
        content = await self.get(ctx, training_id, content_id)
        data.pop("order", None)
        for key, value in data.items():
            setattr(content, key, value)
        if "slides" in data and "slide_count" not in data:
            content.slide_count = len(content.slides or [])
        content.updated_by = ctx.user_id
        await self.db.commit()
        await self.db.refresh(content)
        return content

    async def delete(self, ctx: RequestContext, training_id: UUID, content_id: UUID) -> None:
        """Удаляет материал и перенумеровывает оставшиеся."""
        content = await self.get(ctx, training_id, content_id)
        await self.db.delete(content)
        await self.db.flush()
        for index, item in enumerate(await self._ordered(ctx, training_id)):
            item.order = index
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="delete",
            entity_type="training_content",
            entity_id=str(content_id),
            before_json={"training_id": str(training_id), "title": content.title},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()

    async def reorder(
        self, ctx: RequestContext, training_id: UUID, content_ids: list[UUID]
    ) -> list[TrainingContent]:
        """Задаёт новый порядок. Список должен содержать ровно все материалы тренинга."""
        items = await self.list_for_training(ctx, training_id)
        by_id = {item.id: item for item in items}
        if len(content_ids) != len(by_id) or set(content_ids) != set(by_id):
            raise ValidationError(
                "Reorder list must contain every content item of the training exactly once",
                details={"expected": len(by_id), "received": len(content_ids)},
            )
        for index, content_id in enumerate(content_ids):
            by_id[content_id].order = index
        await self.db.commit()
        return await self._ordered(ctx, training_id)

    async def _ordered(self, ctx: RequestContext, training_id: UUID) -> list[TrainingContent]:
        stmt = (
            select(TrainingContent)
            .where(
                TrainingContent.training_id == training_id,
                TrainingContent.tenant_id == ctx.tenant_id,
            )
            .order_by(TrainingContent.order.asc(), TrainingContent.created_at.asc())
        )
        return list((await self.db.execute(stmt)).scalars().all())


def normalize_questions(questions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Проверяет вопросы экзамена и проставляет id/points по умолчанию.

    Raises:
        ValidationError: если правильные ответы вне диапазона опций или их число
            не соответствует типу вопроса
    """
    normalized: list[dict[str, Any]] = []
    for index, question in enumerate(questions):
        q = dict(question)
        q["id"] = q.get("id") or f"q{index + 1}"
        q["points"] = q.get("points") or 1
        options = q.get("options") or []
        correct = sorted(set(q.get("correct_answers") or []))
        qtype = q.get("question_type", "multiple_choice")
        if qtype == "true_false" and not options:
            options = ["True", "False"]
        if not options:
            raise ValidationError(f"Question {q['id']} has no options")
        if not correct or any(i < 0 or i >= len(options) for i in correct):
            raise ValidationError(
                f"Question {q['id']} has invalid correct answers",
                details={"correct_answers": correct, "options": len(options)},
            )
        if qtype in ("multiple_choice", "true_false") and len(correct) != 1:
            raise ValidationError(f"Question {q['id']} must have exactly one correct answer")
        q["options"] = options
        q["correct_answers"] = correct
        q["question_type"] = qtype
        normalized.append(q)
    ids = [q["id"] for q in normalized]
    if len(ids) != len(set(ids)):
        raise ValidationError("Question ids must be unique")
    return normalized


class ExamAdminService:
    """Создание и редактирование экзамена тренинга (один экзамен на тренинг)."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_for_training(self, ctx: RequestContext, training_id: UUID) -> Exam:
        stmt = select(Exam).where(Exam.training_id == training_id, Exam.tenant_id == ctx.tenant_id)
        exam = (await self.db.execute(stmt)).scalar_one_or_none()
        if exam is None:
            raise NotFoundError("Exam", str(training_id))
        return exam

    async def create(self, ctx: RequestContext, training_id: UUID, data: dict[str, Any]) -> Exam:
        training = await TrainingService(self.db).get(ctx, training_id)
        existing = await self.db.execute(
            select(Exam.id).where(Exam.training_id == training_id, Exam.tenant_id == ctx.tenant_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Training already has an exam", details={"training_id": str(training_id)})

        questions = normalize_questions(data.pop("questions", []) or [])
        exam = Exam(**data)
        exam.tenant_id = ctx.tenant_id
        exam.training_id = training_id
        exam.questions = questions
        exam.total_points = sum(q["points"] for q in questions)
        exam.created_by = ctx.user_id
        exam.updated_by = ctx.user_id
        self.db.add(exam)
        await self.db.flush()

        training.assessment_required = True
        training.passing_score = exam.passing_score
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="create",
            entity_type="exam",
            entity_id=str(exam.id),
            after_json={"training_id": str(training_id), "questions": len(questions)},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(exam)
        log.info(f"Exam created for training {training.training_number} ({len(questions)} questions)")
        return exam

    async def update(self, ctx: RequestContext, training_id: UUID, data: dict[str, Any]) -> Exam:
        exam = await self.get_for_training(ctx, training_id)
        if data.get("is_active") is False and exam.is_active:
            await self._ensure_no_waiting_assignments(ctx, exam)
        if "questions" in data:
            questions = normalize_questions(data.pop("questions") or [])
            exam.questions = questions
            exam.total_points = sum(q["points"] for q in questions)
        for key, value in data.items():
            setattr(exam, key, value)
        exam.updated_by = ctx.user_id
        if "passing_score" in data:
            training = await TrainingService(self.db).get(ctx, training_id)
            training.passing_score = exam.passing_score
        await self.db.commit()
        await self.db.refresh(exam)
        return exam

    async def delete(self, ctx: RequestContext, training_id: UUID) -> None:
        exam = await self.get_for_training(ctx, training_id)
        await self._ensure_no_waiting_assignments(ctx, exam)
        await self.db.execute(delete(ExamAttempt).where(ExamAttempt.exam_id == exam.id))
        await self.db.delete(exam)
        training = await TrainingService(self.db).get(ctx, training_id)
        training.assessment_required = False
        await self.db.commit()

    async def _ensure_no_waiting_assignments(self, ctx: RequestContext, exam: Exam) -> None:
        """Экзамен нельзя убрать, пока назначения ждут его сдачи."""
        stmt = select(func.count()).select_from(TrainingAssignment).where(
            TrainingAssignment.training_id == exam.training_id,
            TrainingAssignment.tenant_id == ctx.tenant_id,
            TrainingAssignment.status.in_(
                (AssignmentStatus.EXAM_PENDING, AssignmentStatus.EXAM_FAILED)
            ),
        )
        waiting = (await self.db.execute(stmt)).scalar_one()
        if waiting:
            raise ConflictError(
                "Exam has assignments waiting for it",
                details={"exam_id": str(exam.id), "assignments": waiting},
            )

    async def results(self, ctx: RequestContext, training_id: UUID) -> dict[str, Any]:
        """Сводка по завершённым попыткам экзамена."""
        exam = await self.get_for_training(ctx, training_id)
        stmt = (
            select(ExamAttempt, User.first_name, User.last_name)
            .join(User, User.id == ExamAttempt.user_id)
            .where(
                ExamAttempt.exam_id == exam.id,
                ExamAttempt.tenant_id == ctx.tenant_id,
                ExamAttempt.status == ExamAttemptStatus.COMPLETED,
            )
            .order_by(ExamAttempt.completed_at.desc())
        )
        rows = (await self.db.execute(stmt)).all()
        attempts = [row[0] for row in rows]
        scores = [a.score for a in attempts]
        passed = [a for a in attempts if a.passed]
        return {
            "exam_id": exam.id,
            "total_attempts": len(attempts),
            "unique_users": len({a.user_id for a in attempts}),
            "passed_attempts": len(passed),
            "pass_rate": round(len(passed) / len(attempts) * 100, 1) if attempts else 0.0,
            "average_score": round(sum(scores) / len(scores), 1) if scores else 0.0,
            "highest_score": max(scores) if scores else 0,
            "lowest_score": min(scores) if scores else 0,
            "attempts": [
                {
                    "attempt_id": a.id,
                    "user_id": a.user_id,
                    "user_name": f"{first} {last}",
                    "attempt_number": a.attempt_number,
                    "score": a.score,
                    "passed": a.passed,
                    "completed_at": a.completed_at,
                }
                for a, first, last in rows
            ],
        }
