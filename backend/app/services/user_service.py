"""Account administration and deletion workflows.

Both deletion paths run the offboarding reconciler to completion before the
user row is removed.
"""

from __future__ import annotations

import logging

from app.core.errors import ForbiddenError, NotFoundError, PreconditionFailedError
from app.core.policy import normalize_role
from app.services.admin_quorum import ensure_quorum
from app.services.offboarding_service import OffboardingService
from app.services.permission_service import PermissionService
from app.services.sharing_context import SharingContext
from app.services.sharing_state import Principal

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "User not found"


class UserService:
    def __init__(self, ctx: SharingContext) -> None:
        self.ctx = ctx
        self.offboarding = OffboardingService(ctx)

    async def list_users(self, actor: Principal):
        PermissionService.require_permission(actor, "users.view")
        return await self.ctx.users.list_all()

    async def admin_update(
        self,
        user_id: str,
        actor: Principal,
        *,
        role: str | None = None,
        is_active: bool | None = None,
    ):
        PermissionService.require_permission(actor, "users.manage")
        user = await self.ctx.users.get(user_id)
        if user is None:
            raise NotFoundError(USER_NOT_FOUND)

        next_role = normalize_role(role) if role is not None else user.role
        next_active = bool(is_active) if is_active is not None else user.is_active
        role_changed = next_role != user.role
        active_changed = next_active != user.is_active
        if not role_changed and not active_changed:
            return user

        is_self = str(user.id) == actor.user_id
        if is_self and role_changed and user.role == "admin":
            raise ForbiddenError("Administrators cannot demote themselves")
        if is_self and not next_active:
            raise ForbiddenError("Administrators cannot deactivate themselves")

        strips_admin = user.role == "admin" and user.is_active and (
            next_role != "admin" or not next_active
        )
        if strips_admin:
            await ensure_quorum(self.ctx.users, excluding_user_id=str(user.id))

        updated = await self.ctx.users.update_account(
            str(user.id),
            role=next_role if role_changed else None,
            is_active=next_active if active_changed else None,
            bump_session=True,
        )
        self.ctx.events.close_user_streams(str(user.id))
        await self.ctx.audit.record(
            "user.updated",
            actor_user_id=actor.user_id,
            target_type="user",
            target_id=str(user.id),
            metadata={
                "role": {"from": user.role, "to": next_role} if role_changed else None,
                "is_active": {"from": user.is_active, "to": next_active} if active_changed else None,
            },
        )
        return updated

    async def admin_delete(self, user_id: str, actor: Principal) -> dict:
        PermissionService.require_permission(actor, "users.manage")
        if str(user_id) == actor.user_id:
            raise ForbiddenError("Use account self-deletion to remove your own account")
        user = await self.ctx.users.get(user_id)
        if user is None:
            raise NotFoundError(USER_NOT_FOUND)
        if user.is_active:
            raise PreconditionFailedError("Deactivate the user account before permanent deletion")
        if user.role == "admin":
            await ensure_quorum(self.ctx.users, excluding_user_id=str(user.id))

        result = await self.offboarding.reconcile(
            str(user.id), actor.user_id, actor.user_id, reason="admin_delete"
        )
        await self._delete_account(str(user.id), actor.user_id, "admin_delete", result.as_dict())
        return result.as_dict()

    async def self_delete(self, actor: Principal) -> dict:
        if actor.is_anonymous:
            raise ForbiddenError("Authentication required")
        user = await self.ctx.users.get(actor.user_id)
        if user is None:
            raise NotFoundError(USER_NOT_FOUND)
        if user.role == "admin" and user.is_active:
            await ensure_quorum(self.ctx.users, excluding_user_id=str(user.id))

        replacement = await self.ctx.users.oldest_active_admin(excluding_user_id=str(user.id))
        result = await self.offboarding.reconcile(
            str(user.id),
            str(replacement.id) if replacement is not None else None,
            actor.user_id,
            reason="self_delete",
        )
        await self._delete_account(str(user.id), actor.user_id, "self_delete", result.as_dict())
        return result.as_dict()

    async def _delete_account(self, user_id: str, actor_user_id, reason: str, reconciled: dict):
        if not await self.ctx.users.delete(user_id):
            raise NotFoundError(USER_NOT_FOUND)
        self.ctx.events.close_user_streams(user_id)
        await self.ctx.audit.record(
            "user.deleted",
            actor_user_id=actor_user_id,
            target_type="user",
            target_id=user_id,
            metadata={"reason": reason, **reconciled},
        )
        logger.info(
            "Deleted user %s (%s)", user_id, reason, extra={"actor_user_id": actor_user_id}
        )
