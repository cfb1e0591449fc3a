"""Initial schema for pharmacy QMS.

Создаёт enum-типы, тенанты и пользователей, журнал действий, записи качества
(documents, deviations, capas, change_controls, audits) и модуль обучения.
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_qms"
down_revision = None
branch_labels = None
depends_on = None


ENUMS: dict[str, tuple[str, ...]] = {
    "user_role": ("admin", "qa_manager", "pharmacist", "technician", "trainee"),
    "document_type": ("SOP", "Policy", "Form", "Protocol", "Record", "Other"),
    "document_status": ("draft", "review", "approved", "archived"),
    "deviation_severity": ("Minor", "Major", "Critical"),
    "deviation_status": (
        "open",
        "investigation",
        "capa_required",
        "capa_in_progress",
        "pending_closure",
        "closed",
        "rejected",
    ),
    "capa_type": ("Corrective", "Preventive", "Both"),
    "priority": ("Low", "Medium", "High", "Critical"),
    "capa_status": (
        "open",
        "investigation",
        "action_plan",
        "implementation",
        "effectiveness_check",
        "completed",
        "cancelled",
    ),
    "change_control_status": (
        "initiated",
        "assessment",
        "approval_pending",
        "approved",
        "implementation",
        "verification",
        "completed",
        "rejected",
        "cancelled",
    ),
    "risk_level": ("Low", "Medium", "High"),
    "audit_type": ("Internal", "External", "Regulatory", "Supplier", "Self-Inspection"),
    "audit_status": (
        "planned",
        "in_progress",
        "report_draft",
        "report_review",
        "completed",
        "closed",
    ),
    "training_type": ("Initial", "Refresher", "Annual", "Ad-hoc", "Certification"),
    "training_category": ("SOP", "GMP", "Safety", "Compliance", "Technical", "Soft Skills", "Other"),
    "training_status": (
        "draft",
        "published",
        "scheduled",
        "in_progress",
        "completed",
        "overdue",
        "cancelled",
    ),
    "training_priority": ("Low", "Medium", "High", "Mandatory"),
    "content_type": ("video", "pdf", "ppt", "document", "link", "scorm"),
    "exam_attempt_status": ("in_progress", "completed", "timed_out", "abandoned"),
    "assignment_status": (
        "assigned",
        "in_progress",
        "content_completed",
        "exam_pending",
        "exam_failed",
        "completed",
        "overdue",
    ),
    "notification_type": (
        "training_assigned",
        "training_reminder",
        "training_overdue",
        "exam_available",
        "certificate_issued",
        "general",
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _id() -> sa.Column:
    return sa.Column("id", _uuid(), primary_key=True)


def _tenant() -> sa.Column:
    return sa.Column(
        "tenant_id",
        _uuid(),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )


def _user_fk(name: str, nullable: bool = True, ondelete: str = "SET NULL") -> sa.Column:
    return sa.Column(name, _uuid(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _authorship() -> list[sa.Column]:
    return [_user_fk("created_by"), _user_fk("updated_by")]


def _jsonb(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.JSONB(), nullable=nullable)


def upgrade() -> None:
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # A) tenants / users
    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("subdomain", sa.Text(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _jsonb("settings"),
        *_timestamps(),
    )

    op.create_table(
        "users",
        _id(),
        _tenant(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False, server_default="trainee"),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("job_title", sa.Text(), nullable=True),
        sa.Column("employee_id", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        _jsonb("permissions"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    # B) audit log
    op.create_table(
        "audit_log",
        _id(),
        _tenant(),
        _user_fk("actor_user_id"),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        _jsonb("before_json", nullable=True),
        _jsonb("after_json", nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])

    # C) documents
    op.create_table(
        "documents",
        _id(),
        _tenant(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("document_type", _enum("document_type"), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("version", sa.Text(), nullable=False, server_default="1.0"),
        sa.Column("status", _enum("document_status"), nullable=False, server_default="draft"),
        _user_fk("approved_by"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("review_date", sa.Date(), nullable=True),
        _jsonb("tags"),
        *_authorship(),
        *_timestamps(),
    )
    op.create_index("ix_documents_tenant_id", "documents", ["tenant_id"])

    # D) CAPA (до deviations: deviations.capa_id ссылается на capas)
    op.create_table(
        "capas",
        _id(),
        _tenant(),
        sa.Column("capa_number", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", _enum("capa_type"), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("source_id", _uuid(), nullable=True),
        sa.Column("source_reference", sa.Text(), nullable=True),
        sa.Column("priority", _enum("priority"), nullable=False, server_default="Medium"),
        sa.Column("status", _enum("capa_status"), nullable=False, server_default="open"),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("corrective_action", sa.Text(), nullable=True),
        sa.Column("preventive_action", sa.Text(), nullable=True),
        sa.Column("action_plan", sa.Text(), nullable=True),
        sa.Column("effectiveness_check", sa.Text(), nullable=True),
        sa.Column("effectiveness_result", sa.Text(), nullable=True),
        _user_fk("assigned_to"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("implementation_date", sa.Date(), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        _user_fk("verified_by"),
        sa.Column("verification_date", sa.Date(), nullable=True),
        sa.Column("verification_comments", sa.Text(), nullable=True),
        *_authorship(),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "capa_number", name="uq_capas_tenant_number"),
    )
    op.create_index("ix_capas_tenant_id", "capas", ["tenant_id"])

    op.create_table(
        "deviations",
        _id(),
        _tenant(),
        sa.Column("deviation_number", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", _enum("deviation_severity"), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("status", _enum("deviation_status"), nullable=False, server_default="open"),
        sa.Column("occurrence_date", sa.Date(), nullable=False),
        _user_fk("detected_by"),
        _user_fk("assigned_to"),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("product_affected", sa.Text(), nullable=True),
        sa.Column("batch_number", sa.Text(), nullable=True),
        sa.Column("immediate_action", sa.Text(), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("investigation", sa.Text(), nullable=True),
        sa.Column("corrective_action", sa.Text(), nullable=True),
        sa.Column("preventive_action", sa.Text(), nullable=True),
        sa.Column("capa_id", _uuid(), sa.ForeignKey("capas.id", ondelete="SET NULL"), nullable=True),
        sa.Column("closure_date", sa.DateTime(timezone=True), nullable=True),
        _user_fk("verified_by"),
        sa.Column("verification_comments", sa.Text(), nullable=True),
        *_authorship(),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "deviation_number", name="uq_deviations_tenant_number"),
    )
    op.create_index("ix_deviations_tenant_id", "deviations", ["tenant_id"])

    op.create_table(
        "change_controls",
        _id(),
        _tenant(),
        sa.Column("change_number", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("change_type", sa.Text(), nullable=False),
        sa.Column("priority", _enum("priority"), nullable=False, server_default="Medium"),
        sa.Column("status", _enum("change_control_status"), nullable=False, server_default="initiated"),
        _user_fk("requestor_id"),
        _user_fk("approver_id"),
        sa.Column("implementation_date", sa.Date(), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("impact_assessment", sa.Text(), nullable=True),
        sa.Column("risk_level", _enum("risk_level"), nullable=False, server_default="Medium"),
        _jsonb("affected_systems"),
        sa.Column("approval_comments", sa.Text(), nullable=True),
        *_authorship(),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "change_number", name="uq_change_controls_tenant_number"),
    )
    op.create_index("ix_change_controls_tenant_id", "change_controls", ["tenant_id"])

    # E) audits
    op.create_table(
        "audits",
        _id(),
        _tenant(),
        sa.Column("audit_number", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("audit_type", _enum("audit_type"), nullable=False),
        sa.Column("status", _enum("audit_status"), nullable=False, server_default="planned"),
        sa.Column("scope", sa.Text(), nullable=False),
        sa.Column("standard", sa.Text(), nullable=True),
        sa.Column("priority", _enum("priority"), nullable=False, server_default="Medium"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        _user_fk("lead_auditor"),
        sa.Column("auditee", sa.Text(), nullable=True),
        sa.Column("external_organization", sa.Text(), nullable=True),
        sa.Column("auditor_name", sa.Text(), nullable=True),
        sa.Column("department", sa.Text(), nullable=True),
        _jsonb("findings_count"),
        sa.Column("executive_summary", sa.Text(), nullable=True),
        sa.Column("follow_up_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("follow_up_date", sa.Date(), nullable=True),
        sa.Column("capa_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        _jsonb("capa_references"),
        *_authorship(),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "audit_number", name="uq_audits_tenant_number"),
    )
    op.create_index("ix_audits_tenant_id", "audits", ["tenant_id"])

    # F) training
    op.create_table(
        "trainings",
        _id(),
        _tenant(),
        sa.Column("training_number", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("training_type", _enum("training_type"), nullable=False),
        sa.Column("category", _enum("training_category"), nullable=False),
        sa.Column("status", _enum("training_status"), nullable=False, server_default="draft"),
        sa.Column("priority", _enum("training_priority"), nullable=False, server_default="Medium"),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("trainer", sa.Text(), nullable=True),
        _jsonb("target_roles"),
        sa.Column("assessment_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("certificate_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        _jsonb("certificate_template", nullable=True),
        sa.Column("certificate_validity_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("attendance_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("passed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurrence_interval", sa.Integer(), nullable=True),
        sa.Column("next_due_date", sa.Date(), nullable=True),
        *_authorship(),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "training_number", name="uq_trainings_tenant_number"),
    )
    op.create_index("ix_trainings_tenant_id", "trainings", ["tenant_id"])

    op.create_table(
        "training_contents",
        _id(),
        _tenant(),
        sa.Column(
            "training_id", _uuid(), sa.ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content_type", _enum("content_type"), nullable=False),
        sa.Column("content_url", sa.Text(), nullable=True),
        _jsonb("slides"),
        sa.Column("slide_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.Text(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_authorship(),
        *_timestamps(),
    )
    op.create_index("ix_training_contents_tenant_id", "training_contents", ["tenant_id"])
    op.create_index("ix_training_contents_training_id", "training_contents", ["training_id"])

    op.create_table(
        "exams",
        _id(),
        _tenant(),
        sa.Column(
            "training_id",
            _uuid(),
            sa.ForeignKey("trainings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=True),
        _jsonb("questions"),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("time_limit", sa.Integer(), nullable=True),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("shuffle_questions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("shuffle_options", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("show_results", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("show_correct_answers", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_authorship(),
        *_timestamps(),
    )
    op.create_index("ix_exams_tenant_id", "exams", ["tenant_id"])

    op.create_table(
        "training_assignments",
        _id(),
        _tenant(),
        sa.Column(
            "training_id", _uuid(), sa.ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False
        ),
        _user_fk("user_id", nullable=False, ondelete="CASCADE"),
        _user_fk("assigned_by"),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", _enum("assignment_status"), nullable=False, server_default="assigned"),
        _jsonb("content_progress"),
        sa.Column("content_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exam_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_exam_score", sa.Integer(), nullable=True),
        sa.Column("best_exam_score", sa.Integer(), nullable=True),
        sa.Column("exam_passed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("certificate_id", _uuid(), nullable=True),
        sa.Column("certificate_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id",
            "training_id",
            "user_id",
            name="uq_training_assignments_tenant_training_user",
        ),
    )
    op.create_index("ix_training_assignments_tenant_id", "training_assignments", ["tenant_id"])
    op.create_index("ix_training_assignments_training_id", "training_assignments", ["training_id"])
    op.create_index("ix_training_assignments_user_id", "training_assignments", ["user_id"])

    op.create_table(
        "exam_attempts",
        _id(),
        _tenant(),
        sa.Column("exam_id", _uuid(), sa.ForeignKey("exams.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "assignment_id",
            _uuid(),
            sa.ForeignKey("training_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id", nullable=False, ondelete="CASCADE"),
        sa.Column(
            "training_id", _uuid(), sa.ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        _jsonb("answers"),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_earned", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", _enum("exam_attempt_status"), nullable=False, server_default="in_progress"),
        _jsonb("presentation"),
        *_timestamps(),
    )
    op.create_index("ix_exam_attempts_tenant_id", "exam_attempts", ["tenant_id"])
    op.create_index("ix_exam_attempts_exam_id", "exam_attempts", ["exam_id"])
    op.create_index("ix_exam_attempts_assignment_id", "exam_attempts", ["assignment_id"])

    op.create_table(
        "certificates",
        _id(),
        _tenant(),
        sa.Column("certificate_number", sa.Text(), nullable=False, unique=True),
        sa.Column(
            "training_id", _uuid(), sa.ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "assignment_id",
            _uuid(),
            sa.ForeignKey("training_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id", nullable=False, ondelete="CASCADE"),
        sa.Column("exam_attempt_id", _uuid(), nullable=True),
        sa.Column("training_title", sa.Text(), nullable=False),
        sa.Column("user_name", sa.Text(), nullable=False),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exam_score", sa.Integer(), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("revoked_by"),
        sa.Column("revoke_reason", sa.Text(), nullable=True),
        sa.Column("verification_code", sa.Text(), nullable=False, unique=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_downloaded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_certificates_tenant_id", "certificates", ["tenant_id"])
    op.create_index("ix_certificates_user_id", "certificates", ["user_id"])

    # G) notifications
    op.create_table(
        "notifications",
        _id(),
        _tenant(),
        _user_fk("user_id", nullable=False, ondelete="CASCADE"),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("related_id", _uuid(), nullable=True),
        sa.Column("related_type", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    for table in (
        "notifications",
        "certificates",
        "exam_attempts",
        "training_assignments",
        "exams",
        "training_contents",
        "trainings",
        "audits",
        "change_controls",
        "deviations",
        "capas",
        "documents",
        "audit_log",
        "users",
        "tenants",
    ):
        op.drop_table(table)

    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
