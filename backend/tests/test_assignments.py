"""Тесты для назначений тренингов и последовательного прохождения материалов."""

from datetime import timedelta
from uuid import uuid4

import pytest

from qms.core.config import settings
from qms.core.errors import NotFoundError, ValidationError
from qms.db.base import utcnow
from qms.db.enums import (
    AssignmentStatus,
    ContentType,
    NotificationType,
    TrainingCategory,
    TrainingStatus,
    TrainingType,
    UserRole,
)
from qms.db.models.training import TrainingContent
from qms.services.assignments import (
    AssignmentService,
    align_progress,
    all_content_completed,
    build_content_progress,
    can_access_content,
    check_dwell,
    new_progress_entry,
)
from qms.services.notifications import NotificationService
from qms.services.training import TrainingContentService, TrainingService


def _progress(*completed: bool) -> list[dict]:
    entries = []
    for flag in completed:
        entry = new_progress_entry(uuid4())
        entry["completed"] = flag
        entries.append(entry)
    return entries


class TestProgressHelpers:
    """Тесты для функций прогресса по материалам."""

    def test_first_item_always_accessible(self):
        assert can_access_content(_progress(False, False), 0)

    def test_item_locked_until_previous_completed(self):
        progress = _progress(True, False, False)
        assert can_access_content(progress, 1)
        assert not can_access_content(progress, 2)

    def test_negative_index(self):
        assert not can_access_content(_progress(True), -1)

    def test_all_completed(self):
        assert all_content_completed(_progress(True, True))
        assert not all_content_completed(_progress(True, False))
        assert all_content_completed([])

    def test_align_progress_follows_current_contents(self):
        """Тест, что прогресс перестраивается под текущий список материалов."""
        first = TrainingContent(id=uuid4())
        second = TrainingContent(id=uuid4())
        removed_id = uuid4()
        progress = [
            {**new_progress_entry(removed_id), "completed": True},
            {**new_progress_entry(first.id), "completed": True},
        ]

        aligned = align_progress(progress, [first, second])

        assert [p["content_id"] for p in aligned] == [str(first.id), str(second.id)]
        assert aligned[0]["completed"] is True
        assert aligned[1]["completed"] is False

    def test_build_content_progress(self):
        contents = [TrainingContent(id=uuid4()), TrainingContent(id=uuid4())]
        progress = build_content_progress(contents)
        assert [p["completed"] for p in progress] == [False, False]
        assert progress[0]["time_spent"] == 0


class TestCheckDwell:
    """Тесты для требования ко времени просмотра."""

    def test_video_by_playback_ratio(self):
        video = TrainingContent(content_type=ContentType.VIDEO, duration=10, slide_count=0)
        assert check_dwell(video, playback_ratio=0.9) is None
        assert check_dwell(video, playback_ratio=0.5) is not None

    def test_video_by_time_spent(self):
        video = TrainingContent(content_type=ContentType.VIDEO, duration=2, slide_count=0)
        assert check_dwell(video, time_spent=120) is None
        assert check_dwell(video, time_spent=119) is not None

    def test_presentation_needs_all_slides(self):
        deck = TrainingContent(content_type=ContentType.PPT, slide_count=3)
        assert check_dwell(deck, viewed_slides=3) is None
        assert "3 slides" in check_dwell(deck, viewed_slides=2)

    def test_document_minimum_seconds(self):
        document = TrainingContent(content_type=ContentType.PDF, slide_count=0)
        assert check_dwell(document, time_spent=settings.min_document_seconds) is None
        assert check_dwell(document, time_spent=5) is not None


async def _published_training(db, ctx, with_content: bool = True, **overrides):
    data = {
        "title": "Controlled Drugs Handling",
        "description": "Receipt, storage and dispensing of controlled drugs",
        "training_type": TrainingType.INITIAL,
        "category": TrainingCategory.SOP,
    }
    data.update(overrides)
    training = await TrainingService(db).create(ctx, data)
    contents = []
    if with_content:
        service = TrainingContentService(db)
        contents.append(
            await service.add(ctx, training.id, {"title": "SOP text", "content_type": ContentType.PDF})
        )
        contents.append(
            await service.add(
                ctx,
                training.id,
                {"title": "Walkthrough", "content_type": ContentType.VIDEO, "duration": 3},
            )
        )
    await TrainingService(db).change_status(ctx, training.id, TrainingStatus.PUBLISHED)
    return training, contents


class TestAssign:
    """Тесты для назначения тренинга."""

    async def test_assign_by_ids_and_skip_duplicates(self, db, admin_ctx, trainee):
        training, contents = await _published_training(db, admin_ctx)
        service = AssignmentService(db)

        result = await service.assign(admin_ctx, training.id, user_ids=[trainee.id])
        assert len(result["assigned"]) == 1
        assignment = result["assigned"][0]
        assert assignment.status == AssignmentStatus.ASSIGNED
        assert [p["content_id"] for p in assignment.content_progress] == [str(c.id) for c in contents]

        again = await service.assign(admin_ctx, training.id, user_ids=[trainee.id, uuid4()])
        assert again["assigned"] == []
        assert len(again["errors"]) == 2

    async def test_assign_by_role(self, db, tenant, admin_ctx, make_user):
        training, _ = await _published_training(db, admin_ctx)
        await make_user(tenant, UserRole.TECHNICIAN)
        await make_user(tenant, UserRole.TECHNICIAN)
        await make_user(tenant, UserRole.PHARMACIST)

        result = await AssignmentService(db).assign(
            admin_ctx, training.id, role_filter=UserRole.TECHNICIAN
        )

        assert len(result["assigned"]) == 2

    async def test_assign_notifies_user(self, db, admin_ctx, trainee, trainee_ctx):
        training, _ = await _published_training(db, admin_ctx)
        await AssignmentService(db).assign(admin_ctx, training.id, user_ids=[trainee.id])

        unread = await NotificationService(db).unread(trainee_ctx)
        assert [n.type for n in unread] == [NotificationType.TRAINING_ASSIGNED]

    async def test_cancelled_training_cannot_be_assigned(self, db, admin_ctx, trainee):
        training, _ = await _published_training(db, admin_ctx)
        await TrainingService(db).change_status(admin_ctx, training.id, TrainingStatus.CANCELLED)

        with pytest.raises(ValidationError):
            await AssignmentService(db).assign(admin_ctx, training.id, user_ids=[trainee.id])

    async def test_requires_users_or_role(self, db, admin_ctx):
        training, _ = await _published_training(db, admin_ctx)
        with pytest.raises(ValidationError):
            await AssignmentService(db).assign(admin_ctx, training.id)


class TestSequentialProgress:
    """Тесты для прохождения материалов по порядку."""

    async def _assigned(self, db, admin_ctx, trainee, **overrides):
        training, contents = await _published_training(db, admin_ctx, **overrides)
        result = await AssignmentService(db).assign(admin_ctx, training.id, user_ids=[trainee.id])
        return training, contents, result["assigned"][0]

    async def test_cannot_skip_ahead(self, db, admin_ctx, trainee, trainee_ctx):
        _, contents, assignment = await self._assigned(db, admin_ctx, trainee)

        with pytest.raises(ValidationError) as exc_info:
            await AssignmentService(db).complete_content(
                trainee_ctx, assignment.id, contents[1].id, playback_ratio=1.0
            )
        assert exc_info.value.details["blocking_content_id"] == str(contents[0].id)

    async def test_dwell_time_enforced(self, db, admin_ctx, trainee, trainee_ctx):
        _, contents, assignment = await self._assigned(db, admin_ctx, trainee)

        with pytest.raises(ValidationError):
            await AssignmentService(db).complete_content(
                trainee_ctx, assignment.id, contents[0].id, time_spent=10
            )

    async def test_dwell_check_can_be_disabled(self, db, admin_ctx, trainee, trainee_ctx, monkeypatch):
        monkeypatch.setattr(settings, "enforce_content_dwell", False)
        _, contents, assignment = await self._assigned(db, admin_ctx, trainee)

        updated = await AssignmentService(db).complete_content(trainee_ctx, assignment.id, contents[0].id)

        assert updated.content_progress[0]["completed"] is True

    async def test_full_flow_completes_with_certificate(self, db, admin_ctx, trainee, trainee_ctx):
        training, contents, assignment = await self._assigned(db, admin_ctx, trainee)
        service = AssignmentService(db)

        started = await service.start(trainee_ctx, assignment.id)
        assert started.status == AssignmentStatus.IN_PROGRESS
        assert started.started_at is not None

        after_first = await service.complete_content(
            trainee_ctx, assignment.id, contents[0].id, time_spent=75
        )
        assert after_first.status == AssignmentStatus.IN_PROGRESS
        assert after_first.total_time_spent == 75

        details = await service.details(trainee_ctx, assignment.id)
        assert [c["completed"] for c in details["contents"]] == [True, False]
        assert [c["can_access"] for c in details["contents"]] == [True, True]
        assert details["exam"] is None

        done = await service.complete_content(
            trainee_ctx, assignment.id, contents[1].id, time_spent=30, playback_ratio=0.95
        )
        assert done.status == AssignmentStatus.COMPLETED
        assert done.content_completed_at is not None
        assert done.certificate_id is not None
        await db.refresh(training)
        assert training.attendance_count == 1
        assert training.passed_count == 1

    async def test_start_twice_rejected(self, db, admin_ctx, trainee, trainee_ctx):
        _, _, assignment = await self._assigned(db, admin_ctx, trainee)
        service = AssignmentService(db)
        await service.start(trainee_ctx, assignment.id)

        with pytest.raises(ValidationError):
            await service.start(trainee_ctx, assignment.id)

    async def test_other_user_cannot_progress(self, db, tenant, admin_ctx, trainee, make_user, context_for):
        _, contents, assignment = await self._assigned(db, admin_ctx, trainee)
        colleague_ctx = await context_for(await make_user(tenant))

        with pytest.raises(NotFoundError):
            await AssignmentService(db).complete_content(
                colleague_ctx, assignment.id, contents[0].id, time_spent=120
            )

    async def test_new_content_reopens_gating(self, db, admin_ctx, trainee, trainee_ctx):
        """Тест, что материал, добавленный после назначения, появляется незавершённым."""
        training, contents, assignment = await self._assigned(db, admin_ctx, trainee)
        service = AssignmentService(db)
        await service.complete_content(trainee_ctx, assignment.id, contents[0].id, time_spent=60)

        extra = await TrainingContentService(db).add(
            admin_ctx, training.id, {"title": "Quiz sheet", "content_type": ContentType.DOCUMENT}
        )
        details = await service.details(trainee_ctx, assignment.id)

        assert [c["content"].id for c in details["contents"]] == [contents[0].id, contents[1].id, extra.id]
        assert [c["can_access"] for c in details["contents"]] == [True, True, False]

    async def test_reset(self, db, admin_ctx, trainee, trainee_ctx):
        _, contents, assignment = await self._assigned(db, admin_ctx, trainee)
        service = AssignmentService(db)
        await service.complete_content(trainee_ctx, assignment.id, contents[0].id, time_spent=60)

        reset = await service.reset(admin_ctx, assignment.id)

        assert reset.status == AssignmentStatus.ASSIGNED
        assert reset.total_time_spent == 0
        assert reset.started_at is None
        assert not any(p["completed"] for p in reset.content_progress)


class TestOverdue:
    """Тесты для просроченных назначений."""

    async def test_past_due_marked_overdue(self, db, admin_ctx, trainee, trainee_ctx):
        training, _ = await _published_training(db, admin_ctx)
        await AssignmentService(db).assign(
            admin_ctx,
            training.id,
            user_ids=[trainee.id],
            due_date=utcnow().date() - timedelta(days=1),
        )

        rows = await AssignmentService(db).list_mine(trainee_ctx)

        assert [a.status for a, _ in rows] == [AssignmentStatus.OVERDUE]
        types = {n.type for n in await NotificationService(db).unread(trainee_ctx)}
        assert NotificationType.TRAINING_OVERDUE in types

    async def test_overdue_can_still_progress(self, db, admin_ctx, trainee, trainee_ctx):
        training, contents = await _published_training(db, admin_ctx)
        assignment = (
            await AssignmentService(db).assign(
                admin_ctx,
                training.id,
                user_ids=[trainee.id],
                due_date=utcnow().date() - timedelta(days=1),
            )
        )["assigned"][0]
        service = AssignmentService(db)
        await service.refresh_overdue(admin_ctx)

        await service.complete_content(trainee_ctx, assignment.id, contents[0].id, time_spent=60)
        done = await service.complete_content(
            trainee_ctx, assignment.id, contents[1].id, playback_ratio=1.0
        )

        assert done.status == AssignmentStatus.COMPLETED

    async def test_overdue_first_content_marks_started(self, db, admin_ctx, trainee, trainee_ctx):
        """Тест, что первый материал просроченного назначения фиксирует начало прохождения."""
        training, contents = await _published_training(db, admin_ctx)
        assignment = (
            await AssignmentService(db).assign(
                admin_ctx,
                training.id,
                user_ids=[trainee.id],
                due_date=utcnow().date() - timedelta(days=1),
            )
        )["assigned"][0]
        service = AssignmentService(db)
        await service.refresh_overdue(admin_ctx)

        updated = await service.complete_content(trainee_ctx, assignment.id, contents[0].id, time_spent=60)

        assert updated.status == AssignmentStatus.OVERDUE
        assert updated.started_at is not None
        await db.refresh(training)
        assert training.attendance_count == 1

        await service.complete_content(trainee_ctx, assignment.id, contents[1].id, playback_ratio=1.0)
        await db.refresh(training)
        assert training.attendance_count == 1

    async def test_stats(self, db, admin_ctx, trainee):
        training, _ = await _published_training(db, admin_ctx)
        await AssignmentService(db).assign(admin_ctx, training.id, user_ids=[trainee.id])

        stats = await AssignmentService(db).stats(admin_ctx, training_id=training.id)

        assert stats["total"] == 1
        assert stats["by_status"]["assigned"] == 1
        assert stats["completion_rate"] == 0.0
        assert stats["average_exam_score"] is None
