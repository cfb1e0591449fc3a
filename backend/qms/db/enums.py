"""
Единый модуль Python Enum-ов для доменной модели.

Эти enum-ы используются в ORM-моделях, pydantic-схемах и Alembic-миграциях.
Значения хранятся в БД как есть (например, "Self-Inspection"), поэтому
имена типов и значения менять только вместе с миграцией.
"""

from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    QA_MANAGER = "qa_manager"
    PHARMACIST = "pharmacist"
    TECHNICIAN = "technician"
    TRAINEE = "trainee"


class DocumentType(str, Enum):
    SOP = "SOP"
    POLICY = "Policy"
    FORM = "Form"
    PROTOCOL = "Protocol"
    RECORD = "Record"
    OTHER = "Other"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    ARCHIVED = "archived"


class DeviationSeverity(str, Enum):
    MINOR = "Minor"
    MAJOR = "Major"
    CRITICAL = "Critical"


class DeviationStatus(str, Enum):
    OPEN = "open"
    INVESTIGATION = "investigation"
    CAPA_REQUIRED = "capa_required"
    CAPA_IN_PROGRESS = "capa_in_progress"
    PENDING_CLOSURE = "pending_closure"
    CLOSED = "closed"
    REJECTED = "rejected"


class CAPAType(str, Enum):
    CORRECTIVE = "Corrective"
    PREVENTIVE = "Preventive"
    BOTH = "Both"


class Priority(str, Enum):
    """Приоритет CAPA, change control и аудитов."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class CAPAStatus(str, Enum):
    OPEN = "open"
    INVESTIGATION = "investigation"
    ACTION_PLAN = "action_plan"
    IMPLEMENTATION = "implementation"
    EFFECTIVENESS_CHECK = "effectiveness_check"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ChangeControlStatus(str, Enum):
    INITIATED = "initiated"
    ASSESSMENT = "assessment"
    APPROVAL_PENDING = "approval_pending"
    APPROVED = "approved"
    IMPLEMENTATION = "implementation"
    VERIFICATION = "verification"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class AuditType(str, Enum):
    INTERNAL = "Internal"
    EXTERNAL = "External"
    REGULATORY = "Regulatory"
    SUPPLIER = "Supplier"
    SELF_INSPECTION = "Self-Inspection"


class AuditStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    REPORT_DRAFT = "report_draft"
    REPORT_REVIEW = "report_review"
    COMPLETED = "completed"
    CLOSED = "closed"


class TrainingType(str, Enum):
    INITIAL = "Initial"
    REFRESHER = "Refresher"
    ANNUAL = "Annual"
    AD_HOC = "Ad-hoc"
    CERTIFICATION = "Certification"


class TrainingCategory(str, Enum):
    SOP = "SOP"
    GMP = "GMP"
    SAFETY = "Safety"
    COMPLIANCE = "Compliance"
    TECHNICAL = "Technical"
    SOFT_SKILLS = "Soft Skills"
    OTHER = "Other"


class TrainingStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class TrainingPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    MANDATORY = "Mandatory"


class ContentType(str, Enum):
    VIDEO = "video"
    PDF = "pdf"
    PPT = "ppt"
    DOCUMENT = "document"
    LINK = "link"
    SCORM = "scorm"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    MULTIPLE_SELECT = "multiple_select"


class ExamAttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    CONTENT_COMPLETED = "content_completed"
    EXAM_PENDING = "exam_pending"
    EXAM_FAILED = "exam_failed"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class NotificationType(str, Enum):
    TRAINING_ASSIGNED = "training_assigned"
    TRAINING_REMINDER = "training_reminder"
    TRAINING_OVERDUE = "training_overdue"
    EXAM_AVAILABLE = "exam_available"
    CERTIFICATE_ISSUED = "certificate_issued"
    GENERAL = "general"
