"""Policy constants and normalization helpers shared by every service."""

from __future__ import annotations

from app.core.errors import ValidationFailedError

USER_ROLES = ("viewer", "editor", "admin")
NON_ADMIN_USER_ROLES = ("viewer", "editor")
REGISTRATION_MODES = ("disabled", "invite", "open")
EXECUTION_MODES = ("safe", "trusted")
DASHBOARD_VISIBILITIES = ("private", "link", "public")
EXTERNAL_VISIBILITIES = frozenset({"link", "public"})
ACCESS_LEVELS = ("viewer", "editor")


def _normalize(value, allowed: tuple[str, ...], label: str) -> str:
    normalized = str(value if value is not None else "").strip().lower()
    if normalized not in allowed:
        raise ValidationFailedError(
            f"Invalid {label} '{value}'. Allowed values: {', '.join(allowed)}"
        )
    return normalized


def normalize_role(role) -> str:
    return _normalize(role, USER_ROLES, "role")


def normalize_non_admin_role(role) -> str:
    return _normalize(role, NON_ADMIN_USER_ROLES, "non-admin role")


def normalize_registration_mode(mode) -> str:
    return _normalize(mode, REGISTRATION_MODES, "registration mode")


def normalize_execution_mode(mode) -> str:
    return _normalize(mode, EXECUTION_MODES, "execution mode")


def normalize_visibility(visibility) -> str:
    return _normalize(visibility, DASHBOARD_VISIBILITIES, "visibility")


def normalize_access_level(level) -> str:
    return _normalize(level, ACCESS_LEVELS, "access level")


def coerce_visibility(visibility) -> str:
    """Lenient read-side variant: anything unrecognised is treated as private."""
    normalized = str(visibility or "").strip().lower()
    return normalized if normalized in DASHBOARD_VISIBILITIES else "private"


def is_externally_visible(visibility) -> bool:
    return coerce_visibility(visibility) in EXTERNAL_VISIBILITIES


def normalize_email(email) -> str:
    return str(email or "").strip().lower()
