from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from qms.db.enums import UserRole


class LoginRequest(BaseModel):
    """Вход: тенант задаётся поддоменом или id."""

    email: EmailStr
    password: str
    tenant: str | None = None
    tenant_id: UUID | None = None


class UserOut(BaseModel):
    id: UUID
    tenant_id: UUID
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: UserRole
    department: str | None
    job_title: str | None
    employee_id: str | None
    phone: str | None
    permissions: dict[str, bool]
    is_active: bool
    email_notifications: bool
    last_login: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    tenant_id: UUID
    user: UserOut
    branding: dict[str, Any]


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    role: UserRole = UserRole.TRAINEE
    department: str | None = None
    job_title: str | None = None
    employee_id: str | None = None
    phone: str | None = None
    permissions: dict[str, bool] | None = None
    email_notifications: bool = True


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: UserRole | None = None
    department: str | None = None
    job_title: str | None = None
    employee_id: str | None = None
    phone: str | None = None
    permissions: dict[str, bool] | None = None
    is_active: bool | None = None
    email_notifications: bool | None = None


class ProfileUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    department: str | None = None
    job_title: str | None = None
    email_notifications: bool | None = None


class PasswordChange(BaseModel):
    current_password: str | None = None
    new_password: str = Field(min_length=8)


class TenantOut(BaseModel):
    id: UUID
    name: str
    subdomain: str
    is_active: bool
    settings: dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True
