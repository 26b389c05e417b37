from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_principal, get_sharing_context
from app.schemas.policy import PolicyUpdate
from app.services.permission_service import PermissionService
from app.services.sharing_context import SharingContext
from app.services.sharing_state import Principal

router = APIRouter(prefix="/policy", tags=["policy"])


@router.get("/public")
async def get_public_policy(ctx: SharingContext = Depends(get_sharing_context)):
    """Policy subset clients need before signing in. No authentication required."""
    return (await ctx.policy.get()).public_view()


@router.get("")
async def get_policy(
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    PermissionService.require_permission(principal, "policy.view")
    return (await ctx.policy.get()).as_dict()


@router.patch("")
async def update_policy(
    body: PolicyUpdate,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    PermissionService.require_permission(principal, "policy.manage")
    changes = body.model_dump(exclude_unset=True)
    state = await ctx.policy.set(changes, actor_user_id=principal.user_id)
    if changes:
        await ctx.audit.record(
            "policy.updated",
            actor_user_id=principal.user_id,
            target_type="policy",
            metadata={"changes": changes},
        )
    return state.as_dict()
