from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context, require_permission
from qms.core.security import RequestContext
from qms.db.enums import UserRole
from qms.schemas.auth import PasswordChange, ProfileUpdate, UserCreate, UserOut, UserUpdate
from qms.schemas.common import MessageResponse
from qms.services.users import UserService

router = APIRouter(prefix="/users")

_manage = require_permission("can_manage_users")


@router.get("", response_model=list[UserOut])
async def list_users(
    role: UserRole | None = Query(default=None),
    department: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    search: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[UserOut]:
    users = await UserService(db).list_users(
        ctx, role=role, department=department, is_active=is_active, search=search
    )
    return [UserOut.model_validate(u) for u in users]


@router.get("/by-role/{role}", response_model=list[UserOut])
async def users_by_role(
    role: UserRole,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> list[UserOut]:
    return [UserOut.model_validate(u) for u in await UserService(db).by_role(ctx, role)]


@router.put("/me/profile", response_model=UserOut)
async def update_profile(
    payload: ProfileUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    user = await UserService(db).update_profile(ctx, payload.model_dump(exclude_unset=True))
    return UserOut.model_validate(user)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    return UserOut.model_validate(await UserService(db).get(ctx, user_id))


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    return UserOut.model_validate(await UserService(db).create(ctx, payload.model_dump()))


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    user = await UserService(db).update(ctx, user_id, payload.model_dump(exclude_unset=True))
    return UserOut.model_validate(user)


@router.put("/{user_id}/password", response_model=MessageResponse)
async def change_password(
    user_id: UUID,
    payload: PasswordChange,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await UserService(db).change_password(
        ctx, user_id, payload.new_password, current_password=payload.current_password
    )
    return MessageResponse(message="Password updated")


@router.delete("/{user_id}", response_model=UserOut)
async def deactivate_user(
    user_id: UUID,
    ctx: RequestContext = Depends(_manage),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    """Пользователи не удаляются: запись деактивируется."""
    return UserOut.model_validate(await UserService(db).deactivate(ctx, user_id))
