from __future__ import annotations

from qms.schemas.audits import AuditCreate, AuditOut, AuditStatusUpdate, AuditUpdate
from qms.schemas.auth import (
    LoginRequest,
    LoginResponse,
    PasswordChange,
    ProfileUpdate,
    TenantOut,
    UserCreate,
    UserOut,
    UserUpdate,
)
from qms.schemas.common import ErrorResponse, HistoryEntryOut, MessageResponse, StatusStats
from qms.schemas.documents import DocumentCreate, DocumentOut, DocumentStatusUpdate, DocumentUpdate
from qms.schemas.notifications import NotificationOut, NotificationPage
from qms.schemas.quality import (
    CAPACreate,
    CAPAOut,
    CAPAStatusUpdate,
    CAPAUpdate,
    ChangeControlCreate,
    ChangeControlOut,
    ChangeControlStatusUpdate,
    ChangeControlUpdate,
    DeviationCreate,
    DeviationOut,
    DeviationStatusUpdate,
    DeviationUpdate,
)
from qms.schemas.training import (
    AssignmentOut,
    CertificateOut,
    ContentOut,
    ExamOut,
    TrainingCreate,
    TrainingOut,
    TrainingUpdate,
)

__all__ = [
    "AssignmentOut",
    "AuditCreate",
    "AuditOut",
    "AuditStatusUpdate",
    "AuditUpdate",
    "CAPACreate",
    "CAPAOut",
    "CAPAStatusUpdate",
    "CAPAUpdate",
    "CertificateOut",
    "ChangeControlCreate",
    "ChangeControlOut",
    "ChangeControlStatusUpdate",
    "ChangeControlUpdate",
    "ContentOut",
    "DeviationCreate",
    "DeviationOut",
    "DeviationStatusUpdate",
    "DeviationUpdate",
    "DocumentCreate",
    "DocumentOut",
    "DocumentStatusUpdate",
    "DocumentUpdate",
    "ErrorResponse",
    "ExamOut",
    "HistoryEntryOut",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "NotificationOut",
    "NotificationPage",
    "PasswordChange",
    "ProfileUpdate",
    "StatusStats",
    "TenantOut",
    "TrainingCreate",
    "TrainingOut",
    "TrainingUpdate",
    "UserCreate",
    "UserOut",
    "UserUpdate",
]
