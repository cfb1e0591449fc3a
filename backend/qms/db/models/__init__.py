"""
Пакет ORM-моделей QMS.

Модели сгруппированы по доменам:
- tenants: tenants / users
- audit_log: audit_log (журнал действий и история статусов)
- documents: documents
- quality: deviations / capas / change_controls
- audits: audits
- training: trainings / training_contents / exams / training_assignments /
  exam_attempts / certificates
- notifications: notifications
"""

from __future__ import annotations

from .audit_log import AuditLog  # noqa: F401
from .audits import Audit  # noqa: F401
from .documents import Document  # noqa: F401
from .notifications import Notification  # noqa: F401
from .quality import CAPA, ChangeControl, Deviation  # noqa: F401
from .tenants import Tenant, User  # noqa: F401
from .training import (  # noqa: F401
    Certificate,
    Exam,
    ExamAttempt,
    Training,
    TrainingAssignment,
    TrainingContent,
)
