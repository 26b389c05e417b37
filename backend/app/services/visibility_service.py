"""Visibility transitions and share-token issuance.

All six transitions between private, link and public are legal. Only leaving
private is gated by policy (admins bypass it) and only leaving private, or
holding no token yet, issues a fresh token. Going back to private clears the
token so a dashboard carries one exactly while it is externally reachable.
"""

from __future__ import annotations

from collections.abc import Callable

from app.core.errors import ForbiddenError, PreconditionFailedError
from app.core.policy import coerce_visibility, is_externally_visible, normalize_visibility
from app.core.security import generate_share_token
from app.services.permission_service import PermissionService
from app.services.policy_store import PolicyState
from app.services.sharing_context import SharingContext
from app.services.sharing_state import Principal, SharingState

PUBLISH_DENIED = "Editors are not allowed to publish dashboards"


def can_publish(actor: Principal, policy: PolicyState) -> bool:
    return PermissionService.has_app_permission(actor, "dashboards.publish") or (
        not actor.is_anonymous and policy.editor_can_publish
    )


def resolve_create_visibility(
    requested: str | None, actor: Principal, policy: PolicyState
) -> str:
    """Visibility for a new dashboard.

    Without an explicit request the policy default applies, silently downgraded
    to private when the actor may not publish. An explicit external request the
    actor may not make fails loudly.
    """
    if requested is None:
        default = coerce_visibility(policy.dashboard_default_visibility)
        if is_externally_visible(default) and not can_publish(actor, policy):
            return "private"
        return default

    visibility = normalize_visibility(requested)
    if is_externally_visible(visibility) and not can_publish(actor, policy):
        raise ForbiddenError(PUBLISH_DENIED)
    return visibility


def initial_share_token(visibility: str, token_factory: Callable[[], str] = generate_share_token):
    return token_factory() if is_externally_visible(visibility) else None


def apply_visibility(
    state: SharingState,
    requested: str,
    actor: Principal,
    policy: PolicyState,
    token_factory: Callable[[], str] = generate_share_token,
) -> SharingState:
    target = normalize_visibility(requested)
    current = coerce_visibility(state.visibility)
    if target == current:
        return state

    if target == "private":
        return state.evolve(visibility="private", share_token=None)

    token = state.share_token
    if current == "private":
        if not can_publish(actor, policy):
            raise ForbiddenError(PUBLISH_DENIED)
        token = token_factory()
    elif not token:
        token = token_factory()
    return state.evolve(visibility=target, share_token=token)


def rotate_share_token(
    state: SharingState, token_factory: Callable[[], str] = generate_share_token
) -> SharingState:
    if not is_externally_visible(state.visibility):
        raise PreconditionFailedError(
            "Share links only exist for dashboards shared by link or publicly"
        )
    token = token_factory()
    while token == state.share_token:
        token = token_factory()
    return state.evolve(share_token=token)


class VisibilityService:
    def __init__(self, ctx: SharingContext) -> None:
        self.ctx = ctx

    async def create_visibility(self, requested: str | None, actor: Principal) -> str:
        return resolve_create_visibility(requested, actor, await self.ctx.policy.get())

    async def set_visibility(self, dashboard_id: str, visibility: str, actor: Principal):
        record, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, actor, "can_manage_sharing")
        next_state = apply_visibility(state, visibility, actor, await self.ctx.policy.get())
        if next_state == state:
            return record
        return await self.ctx.commit_sharing(
            next_state,
            actor=actor,
            action="dashboard.visibility.changed",
            metadata={
                "from": coerce_visibility(state.visibility),
                "to": next_state.visibility,
                "token_changed": next_state.share_token != state.share_token,
            },
        )

    async def rotate_share_token(self, dashboard_id: str, actor: Principal):
        _, state = await self.ctx.load(dashboard_id)
        PermissionService.require_dashboard_capability(state, actor, "can_manage_sharing")
        return await self.ctx.commit_sharing(
            rotate_share_token(state),
            actor=actor,
            action="dashboard.share_token.rotated",
            metadata={"visibility": coerce_visibility(state.visibility)},
        )
