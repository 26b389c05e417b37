"""Dashboard ownership reassignment."""

from __future__ import annotations

from app.core.errors import ForbiddenError, ValidationFailedError
from app.services.permission_service import PermissionService
from app.services.sharing_context import SharingContext
from app.services.sharing_state import AclEntry, Principal, SharingState, utcnow_iso


def transfer_ownership(
    state: SharingState,
    new_owner_id: str,
    granted_by: str | None,
    granted_at: str | None = None,
) -> SharingState:
    """Hand the dashboard to ``new_owner_id``; the previous owner stays on as editor.

    Transferring to the current owner returns ``state`` unchanged.
    """
    new_owner_id = str(new_owner_id)
    previous_owner = state.owner_id
    if new_owner_id == previous_owner:
        return state
    kept = [e for e in state.acl if e.user_id not in (previous_owner, new_owner_id)]
    kept.append(
        AclEntry(
            user_id=previous_owner,
            access_level="editor",
            granted_by=granted_by,
            granted_at=granted_at or utcnow_iso(),
        )
    )
    return state.evolve(owner_id=new_owner_id, acl=tuple(kept))


class OwnershipService:
    def __init__(self, ctx: SharingContext) -> None:
        self.ctx = ctx

    async def transfer(self, dashboard_id: str, new_owner_id: str, actor: Principal):
        record, state = await self.ctx.load(dashboard_id)
        perms = PermissionService.require_dashboard_capability(state, actor)
        if not (perms.is_owner or actor.is_admin):
            raise ForbiddenError("Only the owner or an administrator can transfer ownership")

        new_owner = await self.ctx.users.find_active(new_owner_id)
        if new_owner is None:
            raise ValidationFailedError("The new owner must be an active user")

        next_state = transfer_ownership(state, str(new_owner.id), actor.user_id)
        if next_state == state:
            return record
        return await self.ctx.commit_sharing(
            next_state,
            actor=actor,
            action="dashboard.ownership.transferred",
            metadata={"from": state.owner_id, "to": next_state.owner_id},
        )
