"""Dashboard reads and content writes.

Sharing-specific mutations live in the visibility, ACL and ownership services;
this service covers read, list, create, update and delete.
"""

from __future__ import annotations

import logging

from app.core.errors import ForbiddenError, NotFoundError
from app.core.policy import coerce_visibility, normalize_visibility
from app.core.security import generate_share_token, share_tokens_match
from app.models.dashboard import Dashboard
from app.services.dashboard_store import dashboard_content, sharing_values
from app.services.permission_service import PermissionService
from app.services.sharing_context import SharingContext
from app.services.sharing_state import Principal, SharingState
from app.services.trusted_payload import CONTENT_FIELDS, ensure_payload_trusted
from app.services.visibility_service import (
    apply_visibility,
    initial_share_token,
    resolve_create_visibility,
)
from app.schemas.dashboard import dashboard_view

logger = logging.getLogger(__name__)


def allowed_content(payload: dict) -> dict:
    """Keep only allow-listed content fields; owner, id, acl and share token never pass."""
    return {key: payload[key] for key in CONTENT_FIELDS if key in payload}


def view_for(record, viewer: Principal, share_token_matched: bool = False) -> dict:
    state = SharingState.from_dashboard(record)
    perms = PermissionService.resolve_dashboard_permissions(state, viewer, share_token_matched)
    return dashboard_view(record, perms)


class DashboardService:
    def __init__(self, ctx: SharingContext) -> None:
        self.ctx = ctx

    async def read(self, dashboard_id: str, viewer: Principal) -> dict:
        record, state = await self.ctx.load(dashboard_id)
        perms = PermissionService.require_dashboard_capability(state, viewer)
        return dashboard_view(record, perms)

    async def read_by_token(self, token: str, viewer: Principal) -> dict:
        record = await self.ctx.store.get_by_share_token(token)
        if record is None:
            raise NotFoundError()
        state = SharingState.from_dashboard(record)
        matched = share_tokens_match(token, state.share_token)
        perms = PermissionService.require_dashboard_capability(
            state, viewer, share_token_matched=matched
        )
        return dashboard_view(record, perms)

    async def list_dashboards(self, viewer: Principal) -> list[dict]:
        """Owned and shared dashboards; administrators see every dashboard."""
        if viewer.is_anonymous:
            return []
        if PermissionService.has_app_permission(viewer, "dashboards.manage_all"):
            records = await self.ctx.store.list_all()
        else:
            records = await self.ctx.store.list_for_member(viewer.user_id)
        return [view_for(r, viewer) for r in records]

    async def list_public(self, viewer: Principal) -> list[dict]:
        policy = await self.ctx.policy.get()
        if not policy.dashboard_public_listing_enabled:
            raise ForbiddenError("Public dashboard listing is disabled")
        return [view_for(r, viewer) for r in await self.ctx.store.list_public()]

    async def create(self, payload: dict, actor: Principal) -> dict:
        PermissionService.require_permission(actor, "dashboards.create")
        policy = await self.ctx.policy.get()
        visibility = resolve_create_visibility(payload.get("visibility"), actor, policy)
        content = allowed_content(payload)
        ensure_payload_trusted(content, None, policy.execution_mode)

        record = await self.ctx.store.insert(
            Dashboard(
                owner_id=actor.user_id,
                visibility=visibility,
                share_token=initial_share_token(visibility, generate_share_token),
                acl=[],
                **content,
            )
        )
        await self.ctx.audit.record(
            "dashboard.created",
            actor_user_id=actor.user_id,
            target_type="dashboard",
            target_id=str(record.id),
            metadata={"visibility": visibility},
        )
        logger.info(
            "Created dashboard %s",
            record.id,
            extra={"dashboard_id": str(record.id), "actor_user_id": actor.user_id},
        )
        return view_for(record, actor)

    async def update(self, dashboard_id: str, payload: dict, actor: Principal) -> dict:
        record, state = await self.ctx.load(dashboard_id)
        perms = PermissionService.require_dashboard_capability(state, actor, "can_edit")
        policy = await self.ctx.policy.get()

        next_state = state
        requested = payload.get("visibility")
        if requested is not None and normalize_visibility(requested) != coerce_visibility(
            state.visibility
        ):
            if not perms.can_manage_sharing:
                raise ForbiddenError("You cannot change the visibility of this dashboard")
            next_state = apply_visibility(state, requested, actor, policy)

        content = allowed_content(payload)
        ensure_payload_trusted(content, dashboard_content(record), policy.execution_mode)

        values = dict(content)
        if next_state != state:
            values.update(sharing_values(next_state))
        if not values:
            return dashboard_view(record, perms)

        updated = await self.ctx.store.replace(state.dashboard_id, values)
        if updated is None:
            raise NotFoundError()
        metadata = {"fields": sorted(content)}
        if next_state.visibility != state.visibility:
            metadata["visibility"] = {"from": state.visibility, "to": next_state.visibility}
        await self.ctx.audit.record(
            "dashboard.updated",
            actor_user_id=actor.user_id,
            target_type="dashboard",
            target_id=state.dashboard_id,
            metadata=metadata,
        )
        await self.ctx.publish(updated, "dashboard.updated")
        return view_for(updated, actor)

    async def delete(self, dashboard_id: str, actor: Principal) -> None:
        record, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, actor, "can_delete")
        if not await self.ctx.store.delete(state.dashboard_id):
            raise NotFoundError()
        await self.ctx.audit.record(
            "dashboard.deleted",
            actor_user_id=actor.user_id,
            target_type="dashboard",
            target_id=state.dashboard_id,
            metadata={"title": record.title, "owner_id": state.owner_id},
        )
        await self.ctx.events.publish(state.dashboard_id, "dashboard.deleted", None)
        logger.info(
            "Deleted dashboard %s",
            state.dashboard_id,
            extra={"dashboard_id": state.dashboard_id, "actor_user_id": actor.user_id},
        )

    async def ensure_can_subscribe(self, dashboard_id: str, viewer: Principal) -> None:
        """Only viewers who can edit may follow live updates."""
        _, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, viewer, "can_edit")
