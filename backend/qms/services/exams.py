"""
Прохождение экзамена: выдача вопросов, попытки, проверка ответов.

Ответы всегда передаются в исходных индексах опций: при перемешивании
клиент получает опции как [{"index", "text"}], а порядок предъявления
сохраняется в ExamAttempt.presentation.
"""

from __future__ import annotations

import random
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.audit import log_audit
from qms.core.errors import ConflictError, NotFoundError, ValidationError
from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.base import as_utc, utcnow
from qms.db.enums import AssignmentStatus, ExamAttemptStatus
from qms.db.models.training import Exam, ExamAttempt, Training, TrainingAssignment
from qms.services.assignments import AssignmentService, complete_assignment
from qms.services.notifications import NotificationService

log = get_logger("exams")

EXAM_READY_STATUSES = frozenset({AssignmentStatus.EXAM_PENDING, AssignmentStatus.EXAM_FAILED})
# Запас на сетевые задержки при сдаче попытки с лимитом времени
TIME_LIMIT_GRACE_SECONDS = 60


def round_half_up(value: Decimal | float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_score(points_earned: float, total_points: float) -> int:
    """Процент набранных баллов, округлённый half-up. Пустой экзамен даёт 0."""
    if not total_points:
        return 0
    return round_half_up(Decimal(str(points_earned)) * 100 / Decimal(str(total_points)))


def grade_answers(
    questions: list[dict[str, Any]], answers: list[dict[str, Any]]
) -> tuple[list[dict[str, Any]], float, int]:
    """
    Проверяет ответы. Вопрос засчитывается целиком, если отсортированный
    набор выбранных индексов совпадает с отсортированными правильными.

    Returns:
        (результаты по вопросам, набранные баллы, максимум баллов)
    """
    selected_by_id = {
        str(a.get("question_id")): sorted(set(a.get("selected_answers") or [])) for a in answers
    }
    results: list[dict[str, Any]] = []
    earned = 0.0
    total = 0
    for question in questions:
        points = question.get("points") or 1
        total += points
        selected = selected_by_id.get(str(question["id"]), [])
        is_correct = bool(selected) and selected == sorted(question.get("correct_answers") or [])
        if is_correct:
            earned += points
        results.append(
            {
                "question_id": question["id"],
                "selected_answers": selected,
                "is_correct": is_correct,
                "points_earned": points if is_correct else 0,
            }
        )
    return results, earned, total


def build_presentation(
    questions: list[dict[str, Any]],
    shuffle_questions: bool,
    shuffle_options: bool,
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    """Порядок вопросов и опций для попытки (option_order - исходные индексы)."""
    rng = rng or random.Random()
    order = list(questions)
    if shuffle_questions:
        rng.shuffle(order)
    presentation = []
    for question in order:
        option_order = list(range(len(question.get("options") or [])))
        if shuffle_options:
            rng.shuffle(option_order)
        presentation.append({"question_id": question["id"], "option_order": option_order})
    return presentation


def question_view(question: dict[str, Any], option_order: list[int] | None = None) -> dict[str, Any]:
    """Вопрос для экзаменуемого: без правильных ответов и пояснений."""
    options = question.get("options") or []
    order = option_order if option_order is not None else list(range(len(options)))
    return {
        "id": question["id"],
        "question_text": question.get("question_text", ""),
        "question_type": question.get("question_type", "multiple_choice"),
        "points": question.get("points") or 1,
        "options": [{"index": i, "text": options[i]} for i in order],
    }


def present_questions(
    questions: list[dict[str, Any]], presentation: list[dict[str, Any]] | None
) -> list[dict[str, Any]]:
    if not presentation:
        return [question_view(q) for q in questions]
    by_id = {str(q["id"]): q for q in questions}
    return [
        question_view(by_id[str(p["question_id"])], p.get("option_order"))
        for p in presentation
        if str(p["question_id"]) in by_id
    ]


class ExamService:
    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None) -> None:
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.assignments = AssignmentService(db, self.notifications)

    async def take(self, ctx: RequestContext, assignment_id: UUID) -> dict[str, Any]:
        """Экзамен для прохождения (вопросы без ответов) и счётчики попыток."""
        assignment, exam = await self._ready(ctx, assignment_id)
        open_attempt = await self._open_attempt(assignment.id)
        return {
            "exam_id": exam.id,
            "assignment_id": assignment.id,
            "title": exam.title,
            "description": exam.description,
            "instructions": exam.instructions,
            "time_limit": exam.time_limit,
            "passing_score": exam.passing_score,
            "total_points": exam.total_points,
            "max_attempts": exam.max_attempts,
            "attempts_used": assignment.exam_attempts,
            "attempts_remaining": max(exam.max_attempts - assignment.exam_attempts, 0),
            "open_attempt_id": open_attempt.id if open_attempt else None,
            "questions": present_questions(
                exam.questions, open_attempt.presentation if open_attempt else None
            ),
        }

    async def start(self, ctx: RequestContext, assignment_id: UUID) -> dict[str, Any]:
        """
        Открывает попытку. Если незавершённая попытка уже есть, возвращает её.

        Raises:
            ValidationError: назначение не ждёт экзамена или попытки исчерпаны
        """
        assignment, exam = await self._ready(ctx, assignment_id)
        attempt = await self._open_attempt(assignment.id)
        if attempt is None:
            if assignment.exam_attempts >= exam.max_attempts:
                raise ValidationError(
                    "Maximum exam attempts reached",
                    details={"max_attempts": exam.max_attempts, "attempts": assignment.exam_attempts},
                )
            attempt = ExamAttempt(
                tenant_id=ctx.tenant_id,
                exam_id=exam.id,
                assignment_id=assignment.id,
                user_id=ctx.user_id,
                training_id=assignment.training_id,
                attempt_number=assignment.exam_attempts + 1,
                total_points=exam.total_points,
                started_at=utcnow(),
                status=ExamAttemptStatus.IN_PROGRESS,
                presentation=build_presentation(
                    exam.questions, exam.shuffle_questions, exam.shuffle_options
                ),
            )
            self.db.add(attempt)
            assignment.exam_attempts += 1
            await self.db.commit()
            await self.db.refresh(attempt)
            log.info(f"Exam attempt {attempt.attempt_number} started (assignment={assignment.id})")
        return {
            "attempt_id": attempt.id,
            "attempt_number": attempt.attempt_number,
            "started_at": attempt.started_at,
            "time_limit": exam.time_limit,
            "questions": present_questions(exam.questions, attempt.presentation),
        }

    async def submit(
        self, ctx: RequestContext, attempt_id: UUID, answers: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """
        Проверяет попытку и обновляет назначение.

        Сдан: назначение completed + сертификат. Не сдан: exam_failed.
        Попытка, сданная позже лимита времени, получает статус timed_out и не засчитывается.
        """
        attempt = await self._own_attempt(ctx, attempt_id)
        if attempt.status != ExamAttemptStatus.IN_PROGRESS:
            raise ConflictError("Exam attempt already submitted", details={"status": attempt.status.value})
        exam = await self.db.get(Exam, attempt.exam_id)
        assignment = await self.db.get(TrainingAssignment, attempt.assignment_id)
        training = await self.db.get(Training, attempt.training_id)
        if exam is None or assignment is None or training is None:
            raise NotFoundError("ExamAttempt", str(attempt_id))

        now = utcnow()
        elapsed = int((now - as_utc(attempt.started_at)).total_seconds())
        timed_out = bool(exam.time_limit) and elapsed > exam.time_limit * 60 + TIME_LIMIT_GRACE_SECONDS

        results, earned, total = grade_answers(exam.questions, answers)
        score = calculate_score(earned, total)
        passed = score >= exam.passing_score and not timed_out

        attempt.answers = results
        attempt.points_earned = earned
        attempt.total_points = total
        attempt.score = score
        attempt.passed = passed
        attempt.completed_at = now
        attempt.time_spent = elapsed
        attempt.status = ExamAttemptStatus.TIMED_OUT if timed_out else ExamAttemptStatus.COMPLETED

        assignment.last_exam_score = score
        if assignment.best_exam_score is None or score > assignment.best_exam_score:
            assignment.best_exam_score = score

        if passed:
            assignment.exam_passed_at = now
            await complete_assignment(
                self.db,
                assignment,
                training,
                exam_score=score,
                exam_attempt_id=attempt.id,
                notifications=self.notifications,
            )
        else:
            assignment.status = AssignmentStatus.EXAM_FAILED

        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="exam_submit",
            entity_type="training_assignment",
            entity_id=str(assignment.id),
            after_json={
                "attempt_number": attempt.attempt_number,
                "score": score,
                "passed": passed,
                "status": attempt.status.value,
            },
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(attempt)
        await self.db.refresh(assignment)
        log.info(
            f"Exam attempt {attempt.attempt_number} submitted: score={score} passed={passed} "
            f"(assignment={assignment.id})"
        )

        response: dict[str, Any] = {
            "attempt_id": attempt.id,
            "score": score,
            "passed": passed,
            "points_earned": earned,
            "total_points": total,
            "passing_score": exam.passing_score,
            "status": attempt.status.value,
            "attempts_remaining": max(exam.max_attempts - assignment.exam_attempts, 0),
            "certificate_id": assignment.certificate_id,
            "results": None,
        }
        if exam.show_results:
            by_id = {str(q["id"]): q for q in exam.questions}
            detailed = []
            for result in results:
                item = dict(result)
                if exam.show_correct_answers and passed:
                    question = by_id[str(result["question_id"])]
                    item["correct_answers"] = question.get("correct_answers") or []
                    item["explanation"] = question.get("explanation")
                detailed.append(item)
            response["results"] = detailed
        return response

    async def attempts(self, ctx: RequestContext, assignment_id: UUID) -> list[ExamAttempt]:
        assignment = await self.assignments.get_visible(ctx, assignment_id)
        stmt = (
            select(ExamAttempt)
            .where(ExamAttempt.assignment_id == assignment.id, ExamAttempt.tenant_id == ctx.tenant_id)
            .order_by(ExamAttempt.attempt_number.asc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------ helpers

    async def _ready(self, ctx: RequestContext, assignment_id: UUID) -> tuple[TrainingAssignment, Exam]:
        assignment = await self.assignments.get_visible(ctx, assignment_id)
        if assignment.user_id != ctx.user_id:
            raise NotFoundError("TrainingAssignment", str(assignment_id))
        if assignment.status not in EXAM_READY_STATUSES:
            raise ValidationError(
                "Exam is not available for this assignment",
                details={"status": assignment.status.value},
            )
        stmt = select(Exam).where(
            Exam.training_id == assignment.training_id,
            Exam.tenant_id == ctx.tenant_id,
            Exam.is_active.is_(True),
        )
        exam = (await self.db.execute(stmt)).scalar_one_or_none()
        if exam is None:
            raise NotFoundError("Exam", str(assignment.training_id))
        return assignment, exam

    async def _open_attempt(self, assignment_id: UUID) -> ExamAttempt | None:
        stmt = select(ExamAttempt).where(
            ExamAttempt.assignment_id == assignment_id,
            ExamAttempt.status == ExamAttemptStatus.IN_PROGRESS,
        )
        return (await self.db.execute(stmt)).scalars().first()

    async def _own_attempt(self, ctx: RequestContext, attempt_id: UUID) -> ExamAttempt:
        stmt = select(ExamAttempt).where(
            ExamAttempt.id == attempt_id,
            ExamAttempt.tenant_id == ctx.tenant_id,
            ExamAttempt.user_id == ctx.user_id,
        )
        attempt = (await self.db.execute(stmt)).scalar_one_or_none()
        if attempt is None:
            raise NotFoundError("ExamAttempt", str(attempt_id))
        return attempt
