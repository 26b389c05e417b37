"""Centralized permission checking service. All route handlers should use this."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from app.core.errors import ForbiddenError, NotFoundError
from app.core.permissions import ROLE_PERMISSIONS
from app.core.policy import coerce_visibility
from app.services.sharing_state import Principal, SharingState


@dataclass(frozen=True)
class DashboardPermissions:
    can_read: bool = False
    can_edit: bool = False
    can_manage_sharing: bool = False
    can_delete: bool = False
    is_owner: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


NO_ACCESS = DashboardPermissions()


class PermissionService:
    """Centralized permission checking. All route handlers should use this."""

    @staticmethod
    def has_app_permission(principal: Principal, permission: str) -> bool:
        """Check if the principal's role grants the given app-level permission."""
        if principal.is_anonymous:
            return False
        perms = ROLE_PERMISSIONS.get(principal.role or "", {})
        if perms.get("*"):
            return True
        return bool(perms.get(permission, False))

    @staticmethod
    def require_permission(principal: Principal, permission: str) -> None:
        """Raise 403 if the role check fails."""
        if not PermissionService.has_app_permission(principal, permission):
            raise ForbiddenError("Insufficient permissions")

    @staticmethod
    def resolve_dashboard_permissions(
        state: SharingState | None,
        viewer: Principal | None,
        share_token_matched: bool = False,
    ) -> DashboardPermissions:
        """Effective rights of ``viewer`` on the dashboard snapshot.

        Admins and the owner get everything. An ACL editor can edit, manage
        sharing and delete but never transfer ownership (that check lives in the
        ownership service). Anonymous viewers can only ever read, and only via
        public visibility or a matched link token. Unknown visibility values are
        handled as private.
        """
        if state is None:
            return NO_ACCESS
        viewer = viewer or Principal()
        visibility = coerce_visibility(state.visibility)
        externally_readable = visibility == "public" or (
            visibility == "link" and share_token_matched
        )

        if viewer.is_anonymous:
            return DashboardPermissions(can_read=externally_readable)

        is_owner = state.owner_id == viewer.user_id
        if is_owner or viewer.is_admin:
            return DashboardPermissions(
                can_read=True,
                can_edit=True,
                can_manage_sharing=True,
                can_delete=True,
                is_owner=is_owner,
            )

        entry = state.acl_entry_for(viewer.user_id)
        if entry is not None and entry.access_level == "editor":
            return DashboardPermissions(
                can_read=True, can_edit=True, can_manage_sharing=True, can_delete=True
            )
        return DashboardPermissions(can_read=entry is not None or externally_readable)

    @staticmethod
    def require_dashboard_capability(
        state: SharingState | None,
        viewer: Principal | None,
        capability: str = "can_read",
        share_token_matched: bool = False,
    ) -> DashboardPermissions:
        """Return permissions or raise.

        A viewer who cannot read gets NOT_FOUND, same as a missing dashboard.
        A viewer who can read but lacks ``capability`` gets FORBIDDEN.
        """
        perms = PermissionService.resolve_dashboard_permissions(
            state, viewer, share_token_matched
        )
        if not perms.can_read:
            raise NotFoundError()
        if not getattr(perms, capability):
            raise ForbiddenError("You do not have permission to perform this action on the dashboard")
        return perms
