"""Пользователи, тенанты и вход в систему."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.audit import log_audit
from qms.core.errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from qms.core.logging import get_logger
from qms.core.security import (
    PERMISSION_FLAGS,
    RequestContext,
    create_access_token,
    default_permissions,
    hash_password,
    verify_password,
)
from qms.db.base import utcnow
from qms.db.enums import UserRole
from qms.db.models.tenants import Tenant, User, default_tenant_settings

log = get_logger("users")

MIN_PASSWORD_LENGTH = 8
# Поля профиля, которые пользователь может менять сам
PROFILE_FIELDS = ("first_name", "last_name", "phone", "department", "job_title", "email_notifications")


def merge_permissions(role: UserRole, overrides: dict[str, bool] | None) -> dict[str, bool]:
    """Флаги роли по умолчанию с явными переопределениями. Неизвестные флаги отбрасываются."""
    permissions = default_permissions(role)
    for flag, value in (overrides or {}).items():
        if flag in PERMISSION_FLAGS:
            permissions[flag] = bool(value)
    return permissions


def tenant_branding(tenant: Tenant) -> dict[str, Any]:
    branding = dict(default_tenant_settings()["branding"])
    branding.update((tenant.settings or {}).get("branding") or {})
    if not branding.get("company_name"):
        branding["company_name"] = tenant.name
    return branding


class AuthService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def login(
        self,
        email: str,
        password: str,
        tenant: str | None = None,
        tenant_id: UUID | None = None,
    ) -> dict[str, Any]:
        """
        Вход по email и паролю в тенанте (поддомен или id).

        Если тенант не указан, email должен однозначно определять пользователя.

        Raises:
            UnauthorizedError: неверные учётные данные, неактивный тенант или пользователь
        """
        stmt = (
            select(User, Tenant)
            .join(Tenant, Tenant.id == User.tenant_id)
            .where(User.email == email.strip().lower())
        )
        if tenant_id is not None:
            stmt = stmt.where(Tenant.id == tenant_id)
        elif tenant:
            stmt = stmt.where(Tenant.subdomain == tenant.strip().lower())
        rows = (await self.db.execute(stmt)).all()
        if len(rows) != 1:
            log.warning(f"Login failed for {email}: {len(rows)} matching accounts")
            raise UnauthorizedError("Invalid email or password")

        user, found_tenant = rows[0]
        if not verify_password(password, user.password_hash):
            log.warning(f"Login failed for {email}: wrong password")
            raise UnauthorizedError("Invalid email or password")
        if not user.is_active or not found_tenant.is_active:
            raise UnauthorizedError("Account is inactive")

        user.last_login = utcnow()
        await self.db.commit()
        await self.db.refresh(user)
        log.info(f"User {user.email} logged in (tenant={found_tenant.subdomain})")
        return {
            "access_token": create_access_token(user.id, found_tenant.id, user.role),
            "token_type": "bearer",
            "tenant_id": found_tenant.id,
            "user": user,
            "branding": tenant_branding(found_tenant),
        }

    async def load_context(self, user_id: UUID, tenant_id: UUID) -> RequestContext:
        """Контекст запроса для активного пользователя из токена."""
        user = await self.db.get(User, user_id)
        if user is None or user.tenant_id != tenant_id or not user.is_active:
            raise UnauthorizedError("User not found or inactive")
        return RequestContext(
            user_id=user.id,
            tenant_id=user.tenant_id,
            role=user.role,
            permissions=merge_permissions(user.role, user.permissions),
            email=user.email,
            full_name=user.full_name,
        )


class TenantService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def current(self, ctx: RequestContext) -> Tenant:
        tenant = await self.db.get(Tenant, ctx.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", str(ctx.tenant_id))
        return tenant

    async def create(self, name: str, subdomain: str, settings: dict[str, Any] | None = None) -> Tenant:
        tenant = Tenant(
            name=name,
            subdomain=subdomain.strip().lower(),
            settings={**default_tenant_settings(), **(settings or {})},
        )
        self.db.add(tenant)
        await self.db.commit()
        await self.db.refresh(tenant)
        return tenant


class UserService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_users(
        self,
        ctx: RequestContext,
        role: UserRole | None = None,
        department: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> list[User]:
        stmt = select(User).where(User.tenant_id == ctx.tenant_id)
        if role is not None:
            stmt = stmt.where(User.role == role)
        if department:
            stmt = stmt.where(User.department == department)
        if is_active is not None:
            stmt = stmt.where(User.is_active.is_(is_active))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                User.email.ilike(pattern) | User.first_name.ilike(pattern) | User.last_name.ilike(pattern)
            )
        stmt = stmt.order_by(User.last_name.asc(), User.first_name.asc())
        return list((await self.db.execute(stmt)).scalars().all())

    async def by_role(self, ctx: RequestContext, role: UserRole) -> list[User]:
        return await self.list_users(ctx, role=role, is_active=True)

    async def get(self, ctx: RequestContext, user_id: UUID) -> User:
        stmt = select(User).where(User.id == user_id, User.tenant_id == ctx.tenant_id)
        user = (await self.db.execute(stmt)).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    async def create(self, ctx: RequestContext, data: dict[str, Any]) -> User:
        return await self.create_in_tenant(ctx.tenant_id, data, actor_user_id=ctx.user_id)

    async def create_in_tenant(
        self, tenant_id: UUID, data: dict[str, Any], actor_user_id: UUID | None = None
    ) -> User:
        """Создаёт пользователя. Email уникален в пределах тенанта."""
        data = dict(data)
        email = data.pop("email").strip().lower()
        password = data.pop("password")
        _check_password(password)
        existing = await self.db.execute(
            select(User.id).where(User.tenant_id == tenant_id, User.email == email)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("User with this email already exists", details={"email": email})

        role = data.pop("role", None) or UserRole.TRAINEE
        user = User(
            tenant_id=tenant_id,
            email=email,
            password_hash=hash_password(password),
            role=role,
            permissions=merge_permissions(role, data.pop("permissions", None)),
            **data,
        )
        self.db.add(user)
        await self.db.flush()
        await log_audit(
            db=self.db,
            tenant_id=tenant_id,
            action="create",
            entity_type="user",
            entity_id=str(user.id),
            after_json={"email": email, "role": role.value},
            actor_user_id=actor_user_id,
        )
        await self.db.commit()
        await self.db.refresh(user)
        log.info(f"User created: {email} ({role.value})")
        return user

    async def update(self, ctx: RequestContext, user_id: UUID, data: dict[str, Any]) -> User:
        """Обновление админом. Смена роли сбрасывает флаги к флагам новой роли."""
        user = await self.get(ctx, user_id)
        data = dict(data)
        if "email" in data and data["email"]:
            email = data.pop("email").strip().lower()
            if email != user.email:
                clash = await self.db.execute(
                    select(User.id).where(User.tenant_id == ctx.tenant_id, User.email == email)
                )
                if clash.scalar_one_or_none() is not None:
                    raise ConflictError("User with this email already exists", details={"email": email})
                user.email = email
        if user.id == ctx.user_id and data.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account")

        overrides = data.pop("permissions", None)
        role = data.pop("role", None)
        if role is not None and role != user.role:
            user.role = role
            user.permissions = merge_permissions(role, overrides)
        elif overrides is not None:
            user.permissions = merge_permissions(user.role, {**user.permissions, **overrides})
        for key, value in data.items():
            setattr(user, key, value)

        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="update",
            entity_type="user",
            entity_id=str(user.id),
            after_json={"role": user.role.value, "is_active": user.is_active},
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def deactivate(self, ctx: RequestContext, user_id: UUID) -> User:
        if user_id == ctx.user_id:
            raise ValidationError("You cannot deactivate your own account")
        user = await self.get(ctx, user_id)
        user.is_active = False
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="deactivate",
            entity_type="user",
            entity_id=str(user.id),
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()
        await self.db.refresh(user)
        log.info(f"User deactivated: {user.email}")
        return user

    async def update_profile(self, ctx: RequestContext, data: dict[str, Any]) -> User:
        user = await self.get(ctx, ctx.user_id)
        for key in PROFILE_FIELDS:
            if key in data and data[key] is not None:
                setattr(user, key, data[key])
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def change_password(
        self,
        ctx: RequestContext,
        user_id: UUID,
        new_password: str,
        current_password: str | None = None,
    ) -> None:
        """
        Смена пароля. Админ может сменить пароль любому пользователю тенанта,
        остальные только себе и с подтверждением текущего пароля.
        """
        if user_id != ctx.user_id and not ctx.is_admin:
            raise ForbiddenError("You can only change your own password")
        user = await self.get(ctx, user_id)
        if not ctx.is_admin:
            if not current_password or not verify_password(current_password, user.password_hash):
                raise ValidationError("Current password is incorrect")
        _check_password(new_password)
        user.password_hash = hash_password(new_password)
        await log_audit(
            db=self.db,
            tenant_id=ctx.tenant_id,
            action="password_change",
            entity_type="user",
            entity_id=str(user.id),
            actor_user_id=ctx.user_id,
        )
        await self.db.commit()


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
