"""
Пароли, JWT-токены и контекст запроса.

Токен и тенант не хранятся в глобальном состоянии: каждый запрос получает
неизменяемый RequestContext, который явно передаётся в сервисы.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import bcrypt
import jwt

from qms.core.config import settings
from qms.core.errors import UnauthorizedError
from qms.db.enums import UserRole

PERMISSION_FLAGS: tuple[str, ...] = (
    "can_manage_users",
    "can_manage_trainings",
    "can_create_exams",
    "can_assign_trainings",
    "can_view_reports",
    "can_issue_certificates",
    "can_manage_documents",
)

ROLE_PERMISSIONS: dict[UserRole, dict[str, bool]] = {
    UserRole.ADMIN: {flag: True for flag in PERMISSION_FLAGS},
    UserRole.QA_MANAGER: {
        "can_manage_users": False,
        "can_manage_trainings": True,
        "can_create_exams": True,
        "can_assign_trainings": True,
        "can_view_reports": True,
        "can_issue_certificates": True,
        "can_manage_documents": True,
    },
    UserRole.PHARMACIST: {
        "can_manage_users": False,
        "can_manage_trainings": False,
        "can_create_exams": False,
        "can_assign_trainings": False,
        "can_view_reports": True,
        "can_issue_certificates": False,
        "can_manage_documents": True,
    },
    UserRole.TECHNICIAN: {flag: False for flag in PERMISSION_FLAGS},
    UserRole.TRAINEE: {flag: False for flag in PERMISSION_FLAGS},
}

MANAGER_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.QA_MANAGER})


def default_permissions(role: UserRole) -> dict[str, bool]:
    """Набор флагов по умолчанию для роли."""
    return dict(ROLE_PERMISSIONS[role])


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Невалидный хэш в БД (например, после ручной правки) считаем несовпадением
        return False


def create_access_token(
    user_id: UUID,
    tenant_id: UUID,
    role: UserRole,
    expires_minutes: int | None = None,
) -> str:
    """Создаёт подписанный JWT для пользователя."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
        "role": role.value,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Проверяет подпись и срок действия токена.

    Raises:
        UnauthorizedError: если токен невалиден, просрочен или без обязательных полей
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid token")
    if not payload.get("sub") or not payload.get("tenant_id"):
        raise UnauthorizedError("Invalid token")
    return payload


@dataclass(frozen=True)
class RequestContext:
    """Кто выполняет запрос и в каком тенанте."""

    user_id: UUID
    tenant_id: UUID
    role: UserRole
    permissions: dict[str, bool] = field(default_factory=dict)
    email: str = ""
    full_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def has_permission(self, flag: str) -> bool:
        if self.is_admin:
            return True
        return bool(self.permissions.get(flag, False))
