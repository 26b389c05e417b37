"""Persisted, deployment-overridable policy values.

Reads merge stored overrides over the environment defaults in ``app.config``.
Writes validate every value strictly; read-time normalization only exists so a
hand-edited row can never take the service down.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings as app_config
from app.core.errors import ForbiddenError, ValidationFailedError
from app.core.policy import (
    normalize_execution_mode,
    normalize_non_admin_role,
    normalize_registration_mode,
    normalize_visibility,
)
from app.models.policy import Policy

logger = logging.getLogger(__name__)

POLICY_KEYS: dict[str, str] = {
    "registration_mode": "auth.registration.mode",
    "registration_default_role": "auth.registration.defaultRole",
    "editor_can_publish": "auth.publish.editorCanPublish",
    "dashboard_default_visibility": "dashboard.defaultVisibility",
    "dashboard_public_listing_enabled": "dashboard.publicListingEnabled",
    "execution_mode": "app.execution.mode",
}

# Used when both the stored value and the environment default are unusable
_SAFE_FALLBACKS: dict[str, object] = {
    "registration_mode": "disabled",
    "registration_default_role": "viewer",
    "editor_can_publish": False,
    "dashboard_default_visibility": "private",
    "dashboard_public_listing_enabled": False,
    "execution_mode": "safe",
}


def _strict_bool(value) -> bool:
    if not isinstance(value, bool):
        raise ValidationFailedError(f"Expected a boolean, got '{value}'")
    return value


_VALIDATORS = {
    "registration_mode": normalize_registration_mode,
    "registration_default_role": normalize_non_admin_role,
    "editor_can_publish": _strict_bool,
    "dashboard_default_visibility": normalize_visibility,
    "dashboard_public_listing_enabled": _strict_bool,
    "execution_mode": normalize_execution_mode,
}


@dataclass(frozen=True)
class PolicyState:
    registration_mode: str = "disabled"
    registration_default_role: str = "viewer"
    editor_can_publish: bool = False
    dashboard_default_visibility: str = "private"
    dashboard_public_listing_enabled: bool = False
    execution_mode: str = "safe"
    policy_edit_lock: bool = False

    def as_dict(self) -> dict:
        return asdict(self)

    def public_view(self) -> dict:
        """Subset safe to expose to anonymous clients."""
        return {
            "registration_mode": self.registration_mode,
            "editor_can_publish": self.editor_can_publish,
            "dashboard_public_listing_enabled": self.dashboard_public_listing_enabled,
            "execution_mode": self.execution_mode,
        }


def policy_defaults() -> dict:
    return {
        "registration_mode": app_config.AUTH_REGISTRATION_MODE,
        "registration_default_role": app_config.AUTH_REGISTRATION_DEFAULT_ROLE,
        "editor_can_publish": app_config.AUTH_EDITOR_CAN_PUBLISH,
        "dashboard_default_visibility": app_config.DASHBOARD_DEFAULT_VISIBILITY,
        "dashboard_public_listing_enabled": app_config.DASHBOARD_PUBLIC_LISTING_ENABLED,
        "execution_mode": app_config.EXECUTION_MODE,
    }


def _lenient(name: str, value):
    """Read-side normalization: booleans are coerced, enums compared case-insensitively."""
    if name in ("editor_can_publish", "dashboard_public_listing_enabled"):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)
    return _VALIDATORS[name](value)


def merge_policy(stored: dict, defaults: dict, policy_edit_lock: bool = False) -> PolicyState:
    """Merge stored overrides (by field name) over defaults into a ``PolicyState``."""
    values: dict = {}
    for name in POLICY_KEYS:
        candidates = []
        if stored.get(name) is not None:
            candidates.append(("stored", stored[name]))
        candidates.append(("default", defaults.get(name)))
        for source, raw in candidates:
            try:
                values[name] = _lenient(name, raw)
                break
            except ValidationFailedError:
                logger.warning("Ignoring invalid %s policy value %r for %s", source, raw, name)
        else:
            values[name] = _SAFE_FALLBACKS[name]
    return PolicyState(**values, policy_edit_lock=policy_edit_lock)


def validate_policy_input(partial: dict) -> dict:
    """Validate a partial update. Unknown keys and invalid values are rejected, never coerced."""
    unknown = sorted(set(partial) - set(POLICY_KEYS))
    if unknown:
        raise ValidationFailedError(f"Unknown policy keys: {', '.join(unknown)}")
    return {name: _VALIDATORS[name](value) for name, value in partial.items()}


class DatabasePolicyStore:
    """PolicyStore backed by the ``policies`` table."""

    def __init__(
        self,
        db: AsyncSession,
        defaults: dict | None = None,
        policy_edit_lock: bool | None = None,
    ) -> None:
        self.db = db
        self.defaults = defaults if defaults is not None else policy_defaults()
        self.policy_edit_lock = (
            app_config.POLICY_EDIT_LOCK if policy_edit_lock is None else policy_edit_lock
        )

    async def _stored(self) -> dict:
        result = await self.db.execute(
            select(Policy).where(Policy.key.in_(list(POLICY_KEYS.values())))
        )
        by_key = {row.key: row.value for row in result.scalars().all()}
        return {name: by_key.get(key) for name, key in POLICY_KEYS.items()}

    async def get(self) -> PolicyState:
        return merge_policy(await self._stored(), self.defaults, self.policy_edit_lock)

    async def set(self, partial: dict, actor_user_id: str | None = None) -> PolicyState:
        if self.policy_edit_lock:
            raise ForbiddenError("Policy is locked by deployment configuration")
        validated = validate_policy_input(partial)
        for name, value in validated.items():
            await self.db.merge(Policy(key=POLICY_KEYS[name], value=value, updated_by=actor_user_id))
        if validated:
            await self.db.commit()
        return await self.get()
