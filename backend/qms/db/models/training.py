"""
Модели обучения: тренинг, его материалы, экзамен, назначения, попытки и сертификаты.

Назначение (TrainingAssignment) - единственный источник правды о прогрессе
пользователя: content_progress хранит по записи на каждый материал тренинга.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from qms.db.base import (
    AuthorshipMixin,
    Base,
    JSONVariant,
    TenantMixin,
    TimestampMixin,
    UUIDMixin,
    enum_column,
)
from qms.db.enums import (
    AssignmentStatus,
    ContentType,
    ExamAttemptStatus,
    TrainingCategory,
    TrainingPriority,
    TrainingStatus,
    TrainingType,
)


class Training(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    __tablename__ = "trainings"
    __table_args__ = (
        UniqueConstraint("tenant_id", "training_number", name="uq_trainings_tenant_number"),
    )

    training_number: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    training_type: Mapped[TrainingType] = mapped_column(
        enum_column(TrainingType, "training_type"), nullable=False
    )
    category: Mapped[TrainingCategory] = mapped_column(
        enum_column(TrainingCategory, "training_category"), nullable=False
    )
    status: Mapped[TrainingStatus] = mapped_column(
        enum_column(TrainingStatus, "training_status"),
        nullable=False,
        default=TrainingStatus.DRAFT,
    )
    priority: Mapped[TrainingPriority] = mapped_column(
        enum_column(TrainingPriority, "training_priority"),
        nullable=False,
        default=TrainingPriority.MEDIUM,
    )
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Длительность в минутах
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    trainer: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_roles: Mapped[list[str]] = mapped_column(JSONVariant, nullable=False, default=list)
    assessment_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    passing_score: Mapped[int] = mapped_column(Integer, nullable=False, default=80)
    certificate_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    certificate_template: Mapped[dict[str, Any] | None] = mapped_column(JSONVariant, nullable=True)
    certificate_validity_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    attendance_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Интервал повторения в месяцах
    recurrence_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class TrainingContent(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    __tablename__ = "training_contents"

    training_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[ContentType] = mapped_column(
        enum_column(ContentType, "content_type"), nullable=False
    )
    content_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Для ppt: список слайдов [{"slide_number", "image_url", "title", "notes"}]
    slides: Mapped[list[dict[str, Any]]] = mapped_column(JSONVariant, nullable=False, default=list)
    slide_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Длительность в минутах (для video - длина ролика)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Exam(UUIDMixin, TenantMixin, AuthorshipMixin, TimestampMixin, Base):
    __tablename__ = "exams"

    training_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("trainings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"id", "question_text", "question_type", "options", "correct_answers", "points", "explanation"}]
    questions: Mapped[list[dict[str, Any]]] = mapped_column(JSONVariant, nullable=False, default=list)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passing_score: Mapped[int] = mapped_column(Integer, nullable=False, default=80)
    # Лимит времени в минутах, None - без лимита
    time_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shuffle_options: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_results: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_correct_answers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TrainingAssignment(UUIDMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "training_assignments"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "training_id", "user_id", name="uq_training_assignments_tenant_training_user"
        ),
    )

    training_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        enum_column(AssignmentStatus, "assignment_status"),
        nullable=False,
        default=AssignmentStatus.ASSIGNED,
    )
    # [{"content_id", "completed", "completed_at", "time_spent"}] в порядке материалов
    content_progress: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONVariant, nullable=False, default=list
    )
    content_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    exam_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_exam_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_exam_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    exam_passed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    certificate_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    certificate_issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Секунды
    total_time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ExamAttempt(UUIDMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "exam_attempts"

    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("training_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    training_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    # [{"question_id", "selected_answers", "is_correct", "points_earned"}]
    answers: Mapped[list[dict[str, Any]]] = mapped_column(JSONVariant, nullable=False, default=list)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_earned: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Секунды
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[ExamAttemptStatus] = mapped_column(
        enum_column(ExamAttemptStatus, "exam_attempt_status"),
        nullable=False,
        default=ExamAttemptStatus.IN_PROGRESS,
    )
    # Порядок предъявления: [{"question_id", "option_order"}], option_order - исходные индексы
    presentation: Mapped[list[dict[str, Any]]] = mapped_column(JSONVariant, nullable=False, default=list)


class Certificate(UUIDMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "certificates"

    certificate_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    training_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False
    )
    assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("training_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exam_attempt_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    training_title: Mapped[str] = mapped_column(Text, nullable=False)
    user_name: Mapped[str] = mapped_column(Text, nullable=False)
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    exam_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completion_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    revoke_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_downloaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
