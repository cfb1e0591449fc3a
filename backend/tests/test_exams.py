"""Тесты для проверки экзаменов и прохождения попыток."""

import random
from datetime import timedelta
from decimal import Decimal

import pytest

from qms.core.errors import ConflictError, NotFoundError, ValidationError
from qms.db.enums import AssignmentStatus, ExamAttemptStatus, TrainingCategory, TrainingStatus, TrainingType
from qms.db.models.training import ExamAttempt
from qms.services.assignments import AssignmentService
from qms.services.exams import (
    ExamService,
    build_presentation,
    calculate_score,
    grade_answers,
    present_questions,
    question_view,
    round_half_up,
)
from qms.services.training import ExamAdminService, TrainingService, normalize_questions

QUESTIONS = [
    {
        "id": "q1",
        "question_text": "Storage range for refrigerated medicines?",
        "question_type": "multiple_choice",
        "options": ["0-4 °C", "2-8 °C", "8-15 °C"],
        "correct_answers": [1],
        "points": 1,
    },
    {
        "id": "q2",
        "question_text": "Which records belong to the fridge log?",
        "question_type": "multiple_select",
        "options": ["Current temperature", "Min/max", "Patient name"],
        "correct_answers": [0, 1],
        "points": 2,
        "explanation": "Patient data is never written to the fridge log",
    },
]


class TestScoring:
    """Тесты для подсчёта баллов."""

    def test_round_half_up(self):
        assert round_half_up(Decimal("66.5")) == 67
        assert round_half_up(2.5) == 3
        assert round_half_up(66.49) == 66

    def test_calculate_score(self):
        assert calculate_score(2, 3) == 67
        assert calculate_score(1, 3) == 33
        assert calculate_score(3, 3) == 100

    def test_empty_exam_scores_zero(self):
        assert calculate_score(0, 0) == 0

    def test_grade_all_correct(self):
        results, earned, total = grade_answers(
            QUESTIONS,
            [
                {"question_id": "q1", "selected_answers": [1]},
                {"question_id": "q2", "selected_answers": [1, 0]},
            ],
        )
        assert (earned, total) == (3, 3)
        assert all(r["is_correct"] for r in results)
        assert results[1]["selected_answers"] == [0, 1]

    def test_partial_selection_gets_no_points(self):
        """Тест, что вопрос засчитывается только целиком."""
        results, earned, total = grade_answers(
            QUESTIONS,
            [
                {"question_id": "q1", "selected_answers": [1]},
                {"question_id": "q2", "selected_answers": [0]},
            ],
        )
        assert earned == 1
        assert total == 3
        assert results[1]["is_correct"] is False
        assert results[1]["points_earned"] == 0

    def test_unanswered_question_is_wrong(self):
        results, earned, _ = grade_answers(QUESTIONS, [])
        assert earned == 0
        assert [r["selected_answers"] for r in results] == [[], []]


class TestPresentation:
    """Тесты для порядка вопросов и опций."""

    def test_without_shuffle_keeps_order(self):
        presentation = build_presentation(QUESTIONS, False, False)
        assert [p["question_id"] for p in presentation] == ["q1", "q2"]
        assert presentation[0]["option_order"] == [0, 1, 2]

    def test_shuffle_is_a_permutation(self):
        presentation = build_presentation(QUESTIONS, True, True, rng=random.Random(7))
        assert sorted(p["question_id"] for p in presentation) == ["q1", "q2"]
        for item in presentation:
            assert sorted(item["option_order"]) == [0, 1, 2]

    def test_question_view_hides_answers(self):
        view = question_view(QUESTIONS[1], [2, 0, 1])
        assert "correct_answers" not in view
        assert "explanation" not in view
        assert [o["index"] for o in view["options"]] == [2, 0, 1]
        assert view["options"][0]["text"] == "Patient name"

    def test_present_questions_follows_presentation(self):
        presentation = [
            {"question_id": "q2", "option_order": [0, 1, 2]},
            {"question_id": "q1", "option_order": [2, 1, 0]},
        ]
        views = present_questions(QUESTIONS, presentation)
        assert [v["id"] for v in views] == ["q2", "q1"]
        assert views[1]["options"][0]["index"] == 2


class TestNormalizeQuestions:
    """Тесты для проверки вопросов при создании экзамена."""

    def test_defaults(self):
        normalized = normalize_questions(
            [{"question_text": "Is it true?", "question_type": "true_false", "correct_answers": [0]}]
        )
        assert normalized[0]["id"] == "q1"
        assert normalized[0]["points"] == 1
        assert normalized[0]["options"] == ["True", "False"]

    def test_none_id_replaced(self):
        normalized = normalize_questions([{**QUESTIONS[0], "id": None}])
        assert normalized[0]["id"] == "q1"

    def test_answer_out_of_range(self):
        with pytest.raises(ValidationError):
            normalize_questions([{**QUESTIONS[0], "correct_answers": [5]}])

    def test_single_choice_needs_one_answer(self):
        with pytest.raises(ValidationError):
            normalize_questions([{**QUESTIONS[0], "correct_answers": [0, 1]}])

    def test_duplicate_ids(self):
        with pytest.raises(ValidationError):
            normalize_questions([QUESTIONS[0], QUESTIONS[0]])


async def _training_with_exam(db, admin_ctx, trainee, **exam_overrides):
    training = await TrainingService(db).create(
        admin_ctx,
        {
            "title": "Cold Chain Management",
            "description": "Handling of temperature-sensitive medicines",
            "training_type": TrainingType.INITIAL,
            "category": TrainingCategory.GMP,
            "certificate_validity_months": 12,
        },
    )
    exam_data = {
        "title": "Cold Chain Assessment",
        "questions": [dict(q) for q in QUESTIONS],
        "passing_score": 80,
        "max_attempts": 2,
        "show_correct_answers": True,
    }
    exam_data.update(exam_overrides)
    await ExamAdminService(db).create(admin_ctx, training.id, exam_data)
    await TrainingService(db).change_status(admin_ctx, training.id, TrainingStatus.PUBLISHED)
    result = await AssignmentService(db).assign(admin_ctx, training.id, user_ids=[trainee.id])
    return training, result["assigned"][0]


CORRECT = [
    {"question_id": "q1", "selected_answers": [1]},
    {"question_id": "q2", "selected_answers": [0, 1]},
]
WRONG = [
    {"question_id": "q1", "selected_answers": [0]},
    {"question_id": "q2", "selected_answers": [2]},
]


class TestExamService:
    """Тесты для сдачи экзамена по назначению."""

    async def test_training_without_content_goes_to_exam(self, db, admin_ctx, trainee, trainee_ctx):
        _, assignment = await _training_with_exam(db, admin_ctx, trainee)

        started = await AssignmentService(db).start(trainee_ctx, assignment.id)

        assert started.status == AssignmentStatus.EXAM_PENDING
        assert started.content_completed_at is not None

    async def test_pass_completes_assignment_with_certificate(self, db, admin_ctx, trainee, trainee_ctx):
        training, assignment = await _training_with_exam(db, admin_ctx, trainee)
        await AssignmentService(db).start(trainee_ctx, assignment.id)

        service = ExamService(db)
        attempt = await service.start(trainee_ctx, assignment.id)
        result = await service.submit(trainee_ctx, attempt["attempt_id"], CORRECT)

        assert result["score"] == 100
        assert result["passed"] is True
        assert result["status"] == ExamAttemptStatus.COMPLETED.value
        assert result["certificate_id"] is not None
        assert result["results"][1]["correct_answers"] == [0, 1]

        await db.refresh(assignment)
        assert assignment.status == AssignmentStatus.COMPLETED
        assert assignment.best_exam_score == 100
        await db.refresh(training)
        assert training.passed_count == 1

    async def test_fail_then_attempts_exhausted(self, db, admin_ctx, trainee, trainee_ctx):
        _, assignment = await _training_with_exam(db, admin_ctx, trainee)
        await AssignmentService(db).start(trainee_ctx, assignment.id)
        service = ExamService(db)

        first = await service.start(trainee_ctx, assignment.id)
        failed = await service.submit(trainee_ctx, first["attempt_id"], WRONG)
        assert failed["passed"] is False
        assert failed["certificate_id"] is None
        assert failed["attempts_remaining"] == 1

        await db.refresh(assignment)
        assert assignment.status == AssignmentStatus.EXAM_FAILED

        second = await service.start(trainee_ctx, assignment.id)
        assert second["attempt_number"] == 2
        await service.submit(trainee_ctx, second["attempt_id"], WRONG)

        with pytest.raises(ValidationError):
            await service.start(trainee_ctx, assignment.id)

    async def test_start_returns_open_attempt(self, db, admin_ctx, trainee, trainee_ctx):
        """Тест, что повторный start не открывает вторую попытку."""
        _, assignment = await _training_with_exam(db, admin_ctx, trainee)
        await AssignmentService(db).start(trainee_ctx, assignment.id)
        service = ExamService(db)

        first = await service.start(trainee_ctx, assignment.id)
        again = await service.start(trainee_ctx, assignment.id)

        assert again["attempt_id"] == first["attempt_id"]
        taken = await service.take(trainee_ctx, assignment.id)
        assert taken["attempts_used"] == 1
        assert taken["open_attempt_id"] == first["attempt_id"]

    async def test_double_submit_conflicts(self, db, admin_ctx, trainee, trainee_ctx):
        _, assignment = await _training_with_exam(db, admin_ctx, trainee)
        await AssignmentService(db).start(trainee_ctx, assignment.id)
        service = ExamService(db)
        attempt = await service.start(trainee_ctx, assignment.id)
        await service.submit(trainee_ctx, attempt["attempt_id"], CORRECT)

        with pytest.raises(ConflictError):
            await service.submit(trainee_ctx, attempt["attempt_id"], CORRECT)

    async def test_late_submission_times_out(self, db, admin_ctx, trainee, trainee_ctx):
        """Тест, что попытка после лимита времени не засчитывается."""
        _, assignment = await _training_with_exam(db, admin_ctx, trainee, time_limit=10)
        await AssignmentService(db).start(trainee_ctx, assignment.id)
        service = ExamService(db)
        started = await service.start(trainee_ctx, assignment.id)

        attempt = await db.get(ExamAttempt, started["attempt_id"])
        attempt.started_at = attempt.started_at - timedelta(minutes=30)
        await db.commit()

        result = await service.submit(trainee_ctx, started["attempt_id"], CORRECT)

        assert result["status"] == ExamAttemptStatus.TIMED_OUT.value
        assert result["passed"] is False
        assert result["score"] == 100

    async def test_exam_not_available_before_content(self, db, admin_ctx, trainee, trainee_ctx):
        _, assignment = await _training_with_exam(db, admin_ctx, trainee)

        with pytest.raises(ValidationError):
            await ExamService(db).start(trainee_ctx, assignment.id)

    async def test_failed_attempt_hides_correct_answers(self, db, admin_ctx, trainee, trainee_ctx):
        """Тест, что после неудачной попытки правильные ответы не раскрываются."""
        _, assignment = await _training_with_exam(db, admin_ctx, trainee, max_attempts=3)
        await AssignmentService(db).start(trainee_ctx, assignment.id)
        service = ExamService(db)
        attempt = await service.start(trainee_ctx, assignment.id)

        result = await service.submit(trainee_ctx, attempt["attempt_id"], WRONG)

        assert result["passed"] is False
        assert [item["question_id"] for item in result["results"]] == ["q1", "q2"]
        for item in result["results"]:
            assert "correct_answers" not in item
            assert "explanation" not in item


class TestExamAdmin:
    """Тесты для изменения экзамена при ожидающих назначениях."""

    async def test_delete_blocked_while_exam_pending(self, db, admin_ctx, trainee, trainee_ctx):
        training, assignment = await _training_with_exam(db, admin_ctx, trainee)
        await AssignmentService(db).start(trainee_ctx, assignment.id)

        with pytest.raises(ConflictError):
            await ExamAdminService(db).delete(admin_ctx, training.id)

        exam = await ExamAdminService(db).get_for_training(admin_ctx, training.id)
        assert exam.is_active is True

    async def test_deactivate_blocked_while_exam_failed(self, db, admin_ctx, trainee, trainee_ctx):
        training, assignment = await _training_with_exam(db, admin_ctx, trainee)
        await AssignmentService(db).start(trainee_ctx, assignment.id)
        service = ExamService(db)
        attempt = await service.start(trainee_ctx, assignment.id)
        await service.submit(trainee_ctx, attempt["attempt_id"], WRONG)

        with pytest.raises(ConflictError):
            await ExamAdminService(db).update(admin_ctx, training.id, {"is_active": False})

    async def test_delete_without_waiting_assignments(self, db, admin_ctx, trainee):
        training, _ = await _training_with_exam(db, admin_ctx, trainee)

        await ExamAdminService(db).delete(admin_ctx, training.id)

        await db.refresh(training)
        assert training.assessment_required is False
        with pytest.raises(NotFoundError):
            await ExamAdminService(db).get_for_training(admin_ctx, training.id)
