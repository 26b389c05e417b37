from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_principal, get_sharing_context
from app.schemas.user import UserAdminUpdate, user_response
from app.services.sharing_context import SharingContext
from app.services.sharing_state import Principal
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    return [user_response(u) for u in await UserService(ctx).list_users(principal)]


@router.delete("/me")
async def delete_own_account(
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    """Permanently delete the caller's account after handing over owned dashboards."""
    return await UserService(ctx).self_delete(principal)


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    body: UserAdminUpdate,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    updated = await UserService(ctx).admin_update(
        user_id, principal, role=body.role, is_active=body.is_active
    )
    return user_response(updated)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    return await UserService(ctx).admin_delete(user_id, principal)
