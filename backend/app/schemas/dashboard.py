from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.core.policy import coerce_visibility
from app.services.permission_service import DashboardPermissions
from app.services.sharing_state import SharingState


class DashboardPayload(BaseModel):
    """Allow-listed dashboard fields. Anything else (owner, id, acl, share token) is dropped."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str | None = None
    version: str | None = None
    visibility: str | None = None
    image: str | None = None
    datasources: list | None = None
    columns: int | None = None
    panes: list | None = None
    width: str | None = None
    auth_providers: list | None = Field(default=None, alias="authProviders")
    settings: dict | None = None


class DashboardCreate(DashboardPayload):
    pass


class DashboardUpdate(DashboardPayload):
    pass


class VisibilityUpdate(BaseModel):
    visibility: str


class AccessGrant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    access_level: str = Field(alias="accessLevel")


class OwnershipTransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_owner_id: str = Field(alias="newOwnerId")


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def dashboard_view(dashboard, perms: DashboardPermissions) -> dict:
    """Serialize a stored dashboard for a viewer with ``perms``.

    The share token and ACL are only exposed to viewers who can manage sharing.
    """
    state = SharingState.from_dashboard(dashboard)
    view = {
        "id": str(dashboard.id),
        "title": dashboard.title,
        "version": dashboard.version,
        "visibility": coerce_visibility(state.visibility),
        "image": dashboard.image,
        "datasources": dashboard.datasources or [],
        "columns": dashboard.columns,
        "panes": dashboard.panes or [],
        "width": dashboard.width,
        "auth_providers": dashboard.auth_providers or [],
        "settings": dashboard.settings or {},
        "owner_id": state.owner_id,
        "is_owner": perms.is_owner,
        "can_edit": perms.can_edit,
        "can_manage_sharing": perms.can_manage_sharing,
        "can_delete": perms.can_delete,
        "share_token": None,
        "acl": [],
        "created_at": _iso(getattr(dashboard, "created_at", None)),
        "updated_at": _iso(getattr(dashboard, "updated_at", None)),
    }
    if perms.can_manage_sharing:
        view["share_token"] = state.share_token
        view["acl"] = state.acl_dicts()
    return view
