from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from qms.api.deps import get_db, get_request_context
from qms.core.security import RequestContext
from qms.schemas.auth import TenantOut
from qms.services.users import TenantService

router = APIRouter(prefix="/tenants")


@router.get("/current", response_model=TenantOut)
async def current_tenant(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> TenantOut:
    return TenantOut.model_validate(await TenantService(db).current(ctx))
