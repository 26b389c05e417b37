"""Permission key registry: single source of truth for role capabilities.

Dashboard-level rights (read/edit/manage sharing/delete) are not listed here;
they come from ownership, ACL grants and visibility and are computed by
``PermissionService.resolve_dashboard_permissions``.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# App-level permissions
# ---------------------------------------------------------------------------

APP_PERMISSIONS: dict[str, dict] = {
    "dashboards": {
        "label": "Dashboards",
        "permissions": {
            "dashboards.view": "View dashboards shared with you or published",
            "dashboards.create": "Create new dashboards",
            "dashboards.publish": "Expose dashboards by link or publicly without a policy grant",
            "dashboards.manage_all": "Read, edit and re-share any dashboard",
        },
    },
    "users": {
        "label": "Users",
        "permissions": {
            "users.view": "List user accounts",
            "users.manage": "Change roles, deactivate and delete user accounts",
        },
    },
    "policy": {
        "label": "Policy",
        "permissions": {
            "policy.view": "Read the full deployment policy",
            "policy.manage": "Change registration, publishing and execution policy",
        },
    },
}

ALL_APP_PERMISSION_KEYS: set[str] = set()
for _group in APP_PERMISSIONS.values():
    ALL_APP_PERMISSION_KEYS.update(_group["permissions"].keys())

# ---------------------------------------------------------------------------
# Role defaults
# ---------------------------------------------------------------------------

ADMIN_PERMISSIONS: dict[str, bool] = {"*": True}

EDITOR_PERMISSIONS: dict[str, bool] = {
    "dashboards.view": True,
    "dashboards.create": True,
    "dashboards.publish": False,
    "dashboards.manage_all": False,
    "users.view": False,
    "users.manage": False,
    "policy.view": False,
    "policy.manage": False,
}

VIEWER_PERMISSIONS: dict[str, bool] = {
    "dashboards.view": True,
    "dashboards.create": False,
    "dashboards.publish": False,
    "dashboards.manage_all": False,
    "users.view": False,
    "users.manage": False,
    "policy.view": False,
    "policy.manage": False,
}

ROLE_PERMISSIONS: dict[str, dict[str, bool]] = {
    "admin": ADMIN_PERMISSIONS,
    "editor": EDITOR_PERMISSIONS,
    "viewer": VIEWER_PERMISSIONS,
}
