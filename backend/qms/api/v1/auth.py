from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context
from qms.core.security import RequestContext
from qms.schemas.auth import LoginRequest, LoginResponse, UserOut
from qms.schemas.common import MessageResponse
from qms.services.users import AuthService, UserService

router = APIRouter(prefix="/auth")


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> LoginResponse:
    result = await AuthService(db).login(
        payload.email, payload.password, tenant=payload.tenant, tenant_id=payload.tenant_id
    )
    return LoginResponse.model_validate(result, from_attributes=True)


@router.get("/me", response_model=UserOut)
async def me(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    return UserOut.model_validate(await UserService(db).get(ctx, ctx.user_id))


@router.post("/logout", response_model=MessageResponse)
async def logout(ctx: RequestContext = Depends(get_request_context)) -> MessageResponse:
    """Токены не хранятся на сервере: клиент просто забывает свой токен."""
    return MessageResponse(message="Logged out")
