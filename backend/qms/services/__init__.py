from __future__ import annotations

from qms.services.assignments import AssignmentService
from qms.services.audits import AuditService
from qms.services.certificates import CertificateService
from qms.services.documents import DocumentService
from qms.services.email import EmailSender
from qms.services.exams import ExamService
from qms.services.notifications import NotificationService
from qms.services.quality import CAPAService, ChangeControlService, DeviationService
from qms.services.reports import ReportService
from qms.services.training import ExamAdminService, TrainingContentService, TrainingService
from qms.services.users import AuthService, TenantService, UserService

__all__ = [
    "AssignmentService",
    "AuditService",
    "AuthService",
    "CAPAService",
    "CertificateService",
    "ChangeControlService",
    "DeviationService",
    "DocumentService",
    "EmailSender",
    "ExamAdminService",
    "ExamService",
    "NotificationService",
    "ReportService",
    "TenantService",
    "TrainingContentService",
    "TrainingService",
    "UserService",
]
