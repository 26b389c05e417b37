"""Per-user collaborator grants on a dashboard.

Ownership is never represented as an ACL row: the owner cannot be granted or
revoked. Grants are unique per user and the last write wins.
"""

from __future__ import annotations

from email_validator import EmailNotValidError, validate_email

from app.core.errors import ForbiddenError, ValidationFailedError
from app.core.policy import normalize_access_level, normalize_email
from app.services.permission_service import PermissionService
from app.services.sharing_context import SharingContext
from app.services.sharing_state import AclEntry, Principal, SharingState, dedupe_acl, utcnow_iso

OWNER_NOT_COLLABORATOR = "The dashboard owner cannot be added to or removed from the access list"


def upsert_acl_entry(
    state: SharingState,
    target_user_id: str,
    access_level: str,
    granted_by: str | None,
    granted_at: str | None = None,
) -> SharingState:
    level = normalize_access_level(access_level)
    if target_user_id == state.owner_id:
        raise ForbiddenError(OWNER_NOT_COLLABORATOR)
    entry = AclEntry(
        user_id=target_user_id,
        access_level=level,
        granted_by=granted_by,
        granted_at=granted_at or utcnow_iso(),
    )
    existing = [e for e in state.acl if e.user_id != target_user_id]
    if len(existing) == len(state.acl):
        acl = [*state.acl, entry]
    else:
        # Replace in place to keep the list order stable
        acl = [entry if e.user_id == target_user_id else e for e in state.acl]
    return state.evolve(acl=dedupe_acl(acl))


def revoke_acl_entry(state: SharingState, target_user_id: str) -> SharingState:
    if target_user_id == state.owner_id:
        raise ForbiddenError(OWNER_NOT_COLLABORATOR)
    return state.evolve(acl=tuple(e for e in state.acl if e.user_id != target_user_id))


def normalize_collaborator_email(email: str) -> str:
    normalized = normalize_email(email)
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailedError("The email is not valid") from exc
    return normalized


class AclService:
    def __init__(self, ctx: SharingContext) -> None:
        self.ctx = ctx

    async def upsert_access(
        self, dashboard_id: str, email: str, access_level: str, actor: Principal
    ):
        _, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, actor, "can_manage_sharing")
        level = normalize_access_level(access_level)
        target = await self.ctx.users.find_active_by_email(normalize_collaborator_email(email))
        if target is None:
            raise ValidationFailedError("Collaborators must be active users")

        next_state = upsert_acl_entry(state, str(target.id), level, actor.user_id)
        return await self.ctx.commit_sharing(
            next_state,
            actor=actor,
            action="dashboard.acl.granted",
            metadata={"user_id": str(target.id), "access_level": level},
            audit=next_state.acl_grants() != state.acl_grants(),
        )

    async def revoke_access(self, dashboard_id: str, target_user_id: str, actor: Principal):
        record, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, actor, "can_manage_sharing")
        next_state = revoke_acl_entry(state, str(target_user_id))
        if next_state.acl_grants() == state.acl_grants():
            return record
        return await self.ctx.commit_sharing(
            next_state,
            actor=actor,
            action="dashboard.acl.revoked",
            metadata={"user_id": str(target_user_id)},
        )

    async def list_collaborators(self, dashboard_id: str, actor: Principal) -> list[dict]:
        _, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, actor)
        users = await self.ctx.users.find_many(e.user_id for e in state.acl)
        collaborators = []
        for entry in state.acl:
            user = users.get(entry.user_id)
            collaborators.append(
                {
                    **entry.to_dict(),
                    "email": user.email if user else None,
                    "display_name": user.display_name if user else None,
                    "is_active": bool(user and user.is_active),
                }
            )
        return collaborators
