from __future__ import annotations

from collections.abc import Awaitable, Callable
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.errors import ForbiddenError, UnauthorizedError
from qms.core.security import RequestContext, decode_access_token
from qms.db.enums import UserRole
from qms.db.session import get_db
from qms.services.users import AuthService

__all__ = ["get_db", "get_request_context", "require_manager", "require_permission", "require_roles"]

_bearer = HTTPBearer(auto_error=False)


async def get_request_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    x_tenant_id: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    """
    Dependency: контекст запроса из Bearer-токена.

    Заголовок X-Tenant-ID необязателен, но если передан, должен совпадать
    с тенантом токена.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    try:
        user_id = UUID(payload["sub"])
        tenant_id = UUID(payload["tenant_id"])
    except ValueError:
        raise UnauthorizedError("Invalid token")

    if x_tenant_id and x_tenant_id != str(tenant_id):
        raise ForbiddenError("Tenant mismatch", details={"header": x_tenant_id})
    return await AuthService(db).load_context(user_id, tenant_id)


def require_permission(flag: str) -> Callable[..., Awaitable[RequestContext]]:
    """Dependency: у пользователя есть флаг разрешения (admin проходит всегда)."""

    async def dependency(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not ctx.has_permission(flag):
            raise ForbiddenError(
                "Insufficient permissions",
                details={"permission": flag},
            )
        return ctx

    return dependency


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[RequestContext]]:
    """Dependency: роль пользователя входит в список."""

    async def dependency(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if ctx.role not in roles:
            raise ForbiddenError(
                "Insufficient permissions",
                details={"roles": [r.value for r in roles]},
            )
        return ctx

    return dependency


require_manager = require_roles(UserRole.ADMIN, UserRole.QA_MANAGER)
