from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from qms.db.enums import (
    AssignmentStatus,
    ContentType,
    ExamAttemptStatus,
    QuestionType,
    TrainingCategory,
    TrainingPriority,
    TrainingStatus,
    TrainingType,
    UserRole,
)
from qms.schemas.common import RecordOutBase


# ------------------------------------------------------------------ trainings


class CertificateTemplate(BaseModel):
    title: str | None = None
    signature_name: str | None = None
    signature_title: str | None = None


class TrainingCreate(BaseModel):
    """Схема для создания тренинга. Статус всегда draft."""

    title: str
    description: str
    training_type: TrainingType
    category: TrainingCategory
    priority: TrainingPriority = TrainingPriority.MEDIUM
    scheduled_date: date | None = None
    due_date: date | None = None
    duration: int = Field(default=60, ge=0)
    trainer: str | None = None
    target_roles: list[UserRole] = []
    assessment_required: bool = False
    passing_score: int = Field(default=80, ge=0, le=100)
    certificate_enabled: bool = True
    certificate_template: CertificateTemplate | None = None
    certificate_validity_months: int = Field(default=12, ge=0)
    is_recurring: bool = False
    recurrence_interval: int | None = None


class TrainingUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    training_type: TrainingType | None = None
    category: TrainingCategory | None = None
    status: TrainingStatus | None = None
    priority: TrainingPriority | None = None
    scheduled_date: date | None = None
    due_date: date | None = None
    duration: int | None = Field(default=None, ge=0)
    trainer: str | None = None
    target_roles: list[UserRole] | None = None
    assessment_required: bool | None = None
    passing_score: int | None = Field(default=None, ge=0, le=100)
    certificate_enabled: bool | None = None
    certificate_template: CertificateTemplate | None = None
    certificate_validity_months: int | None = Field(default=None, ge=0)
    is_recurring: bool | None = None
    recurrence_interval: int | None = None
    next_due_date: date | None = None


class TrainingStatusUpdate(BaseModel):
    status: TrainingStatus
    comment: str | None = None


class TrainingOut(RecordOutBase):
    training_number: str
    title: str
    description: str
    training_type: TrainingType
    category: TrainingCategory
    status: TrainingStatus
    priority: TrainingPriority
    scheduled_date: date | None
    due_date: date | None
    duration: int
    trainer: str | None
    target_roles: list[str]
    assessment_required: bool
    passing_score: int
    certificate_enabled: bool
    certificate_template: dict[str, Any] | None
    certificate_validity_months: int
    attendance_count: int
    passed_count: int
    is_recurring: bool
    recurrence_interval: int | None
    next_due_date: date | None


class TrainingParticipants(BaseModel):
    assigned_to: list[UUID]
    completed_by: list[UUID]


# -------------------------------------------------------------------- content


class Slide(BaseModel):
    slide_number: int
    image_url: str | None = None
    title: str | None = None
    notes: str | None = None


class ContentCreate(BaseModel):
    title: str
    description: str | None = None
    content_type: ContentType
    content_url: str | None = None
    slides: list[Slide] = []
    duration: int | None = Field(default=None, ge=0)
    is_required: bool = True


class ContentUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    content_type: ContentType | None = None
    content_url: str | None = None
    slides: list[Slide] | None = None
    duration: int | None = Field(default=None, ge=0)
    is_required: bool | None = None


class ContentReorder(BaseModel):
    content_ids: list[UUID]


class ContentOut(BaseModel):
    id: UUID
    training_id: UUID
    title: str
    description: str | None
    content_type: ContentType
    content_url: str | None
    slides: list[dict[str, Any]]
    slide_count: int
    file_name: str | None
    file_size: int | None
    mime_type: str | None
    duration: int | None
    order: int
    is_required: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------- exam


class QuestionIn(BaseModel):
    id: str | None = None
    question_text: str
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str] = []
    correct_answers: list[int]
    points: int = Field(default=1, ge=1)
    explanation: str | None = None


class ExamCreate(BaseModel):
    title: str
    description: str | None = None
    instructions: str | None = None
    questions: list[QuestionIn]
    passing_score: int = Field(default=80, ge=0, le=100)
    time_limit: int | None = Field(default=None, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results: bool = True
    show_correct_answers: bool = False
    is_active: bool = True


class ExamUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    instructions: str | None = None
    questions: list[QuestionIn] | None = None
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, ge=1)
    max_attempts: int | None = Field(default=None, ge=1)
    shuffle_questions: bool | None = None
    shuffle_options: bool | None = None
    show_results: bool | None = None
    show_correct_answers: bool | None = None
    is_active: bool | None = None


class ExamOut(BaseModel):
    """Экзамен для администратора (с правильными ответами)."""

    id: UUID
    training_id: UUID
    title: str
    description: str | None
    instructions: str | None
    questions: list[dict[str, Any]]
    total_points: int
    passing_score: int
    time_limit: int | None
    max_attempts: int
    shuffle_questions: bool
    shuffle_options: bool
    show_results: bool
    show_correct_answers: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class OptionView(BaseModel):
    index: int
    text: str


class QuestionView(BaseModel):
    id: str
    question_text: str
    question_type: str
    points: int
    options: list[OptionView]


class ExamTakeOut(BaseModel):
    exam_id: UUID
    assignment_id: UUID
    title: str
    description: str | None
    instructions: str | None
    time_limit: int | None
    passing_score: int
    total_points: int
    max_attempts: int
    attempts_used: int
    attempts_remaining: int
    open_attempt_id: UUID | None
    questions: list[QuestionView]


class ExamStartOut(BaseModel):
    attempt_id: UUID
    attempt_number: int
    started_at: datetime
    time_limit: int | None
    questions: list[QuestionView]


class AnswerIn(BaseModel):
    question_id: str
    selected_answers: list[int] = []


class ExamSubmit(BaseModel):
    answers: list[AnswerIn]


class QuestionResult(BaseModel):
    question_id: str
    selected_answers: list[int]
    is_correct: bool
    points_earned: float
    correct_answers: list[int] | None = None
    explanation: str | None = None


class ExamSubmitOut(BaseModel):
    attempt_id: UUID
    score: int
    passed: bool
    points_earned: float
    total_points: int
    passing_score: int
    status: ExamAttemptStatus
    attempts_remaining: int
    certificate_id: UUID | None
    results: list[QuestionResult] | None


class ExamAttemptOut(BaseModel):
    id: UUID
    exam_id: UUID
    assignment_id: UUID
    attempt_number: int
    score: int
    points_earned: float
    total_points: int
    passed: bool
    started_at: datetime
    completed_at: datetime | None
    time_spent: int
    status: ExamAttemptStatus

    class Config:
        from_attributes = True


class AttemptSummary(BaseModel):
    attempt_id: UUID
    user_id: UUID
    user_name: str
    attempt_number: int
    score: int
    passed: bool
    completed_at: datetime | None


class ExamResultsOut(BaseModel):
    exam_id: UUID
    total_attempts: int
    unique_users: int
    passed_attempts: int
    pass_rate: float
    average_score: float
    highest_score: int
    lowest_score: int
    attempts: list[AttemptSummary]


# ---------------------------------------------------------------- assignments


class AssignRequest(BaseModel):
    """Назначение тренинга: по списку пользователей или по роли."""

    training_id: UUID
    user_ids: list[UUID] | None = None
    role_filter: UserRole | None = None
    due_date: date | None = None


class ContentCompletion(BaseModel):
    # Секунды, проведённые в материале за этот заход
    time_spent: int = Field(default=0, ge=0)
    playback_ratio: float | None = Field(default=None, ge=0, le=1)
    viewed_slides: int | None = Field(default=None, ge=0)


class AssignmentOut(BaseModel):
    id: UUID
    tenant_id: UUID
    training_id: UUID
    user_id: UUID
    assigned_by: UUID | None
    assigned_at: datetime | None
    due_date: date | None
    status: AssignmentStatus
    content_progress: list[dict[str, Any]]
    content_completed_at: datetime | None
    exam_attempts: int
    last_exam_score: int | None
    best_exam_score: int | None
    exam_passed_at: datetime | None
    certificate_id: UUID | None
    certificate_issued_at: datetime | None
    total_time_spent: int
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentErrorOut(BaseModel):
    user_id: UUID
    message: str


class AssignResultOut(BaseModel):
    assigned: list[AssignmentOut]
    errors: list[AssignmentErrorOut]


class TrainingBrief(BaseModel):
    id: UUID
    training_number: str
    title: str
    training_type: TrainingType
    category: TrainingCategory
    priority: TrainingPriority
    duration: int
    due_date: date | None
    assessment_required: bool
    certificate_enabled: bool

    class Config:
        from_attributes = True


class UserBrief(BaseModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    department: str | None

    class Config:
        from_attributes = True


class MyAssignmentOut(BaseModel):
    assignment: AssignmentOut
    training: TrainingBrief


class AssignmentListItem(BaseModel):
    assignment: AssignmentOut
    training: TrainingBrief
    user: UserBrief


class ContentAccessOut(BaseModel):
    content: ContentOut
    completed: bool
    can_access: bool


class ExamBrief(BaseModel):
    id: UUID
    title: str
    passing_score: int
    time_limit: int | None
    max_attempts: int
    total_points: int

    class Config:
        from_attributes = True


class AssignmentDetailOut(BaseModel):
    assignment: AssignmentOut
    training: TrainingBrief
    contents: list[ContentAccessOut]
    exam: ExamBrief | None


class AssignmentStats(BaseModel):
    total: int
    by_status: dict[str, int]
    completed: int
    overdue: int
    completion_rate: float
    average_exam_score: float | None


# --------------------------------------------------------------- certificates


class CertificateOut(BaseModel):
    id: UUID
    certificate_number: str
    training_id: UUID
    assignment_id: UUID
    user_id: UUID
    exam_attempt_id: UUID | None
    training_title: str
    user_name: str
    issue_date: datetime
    expiry_date: datetime | None
    exam_score: int | None
    completion_date: datetime
    is_valid: bool
    revoked_at: datetime | None
    revoke_reason: str | None
    verification_code: str
    download_count: int
    last_downloaded_at: datetime | None
    state: str | None = None

    class Config:
        from_attributes = True


class CertificateVerifyOut(BaseModel):
    valid: bool
    state: str
    certificate_number: str
    training_title: str
    user_name: str
    issue_date: datetime
    expiry_date: datetime | None
    completion_date: datetime
    revoked_at: datetime | None
    revoke_reason: str | None


class CertificateRevoke(BaseModel):
    reason: str = Field(min_length=1)


class CertificateStats(BaseModel):
    total: int
    valid: int
    expiring_soon: int
    expired: int
    revoked: int
    issued_this_month: int
