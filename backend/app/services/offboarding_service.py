"""Reconciles dashboards before a user account is permanently deleted.

The reconciler must finish before the user row is removed. Each dashboard is
written independently; a failure mid-run leaves earlier dashboards committed
and a rerun picks up from the persisted state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.errors import PreconditionFailedError
from app.core.metrics import offboarding_dashboards_total
from app.services.sharing_context import SharingContext
from app.services.sharing_state import SharingState

logger = logging.getLogger(__name__)

REASSIGNED = "dashboard.ownership.reassigned"
REVOKED = "dashboard.acl.revoked"

MISSING_REPLACEMENT = (
    "This user owns dashboards and no active administrator recovery owner is "
    "available. Promote or reactivate another administrator before deleting "
    "the account."
)


def reconcile_dashboard(
    state: SharingState, target_user_id: str, replacement_owner_id: str | None
) -> tuple[SharingState, str] | None:
    """Next state for one dashboard and the audit action, or None if untouched."""
    target_user_id = str(target_user_id)
    if state.owner_id == target_user_id:
        if not replacement_owner_id:
            raise PreconditionFailedError(MISSING_REPLACEMENT)
        replacement = str(replacement_owner_id)
        acl = tuple(e for e in state.acl if e.user_id not in (target_user_id, replacement))
        return (
            state.evolve(owner_id=replacement, visibility="private", share_token=None, acl=acl),
            REASSIGNED,
        )

    if state.acl_entry_for(target_user_id) is not None:
        acl = tuple(e for e in state.acl if e.user_id != target_user_id)
        return state.evolve(acl=acl), REVOKED
    return None


@dataclass
class OffboardingResult:
    reassigned: list[str] = field(default_factory=list)
    revoked: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"reassigned": list(self.reassigned), "revoked": list(self.revoked)}


class OffboardingService:
    def __init__(self, ctx: SharingContext) -> None:
        self.ctx = ctx

    async def _replacement_available(self, target_user_id: str, replacement_owner_id) -> bool:
        if not replacement_owner_id or str(replacement_owner_id) == str(target_user_id):
            return False
        return await self.ctx.users.find_active(replacement_owner_id) is not None

    async def reconcile(
        self,
        target_user_id: str,
        replacement_owner_id: str | None,
        actor_user_id: str | None,
        reason: str,
    ) -> OffboardingResult:
        target_user_id = str(target_user_id)
        dashboards = await self.ctx.store.list_for_member(target_user_id)
        states = [SharingState.from_dashboard(d) for d in dashboards]

        owns_any = any(s.owner_id == target_user_id for s in states)
        if owns_any and not await self._replacement_available(target_user_id, replacement_owner_id):
            raise PreconditionFailedError(MISSING_REPLACEMENT)
        replacement = str(replacement_owner_id) if owns_any else None

        result = OffboardingResult()
        for state in states:
            outcome = reconcile_dashboard(state, target_user_id, replacement)
            if outcome is None:
                continue
            next_state, action = outcome
            updated = await self.ctx.store.replace_sharing(next_state)
            if updated is None:
                # Deleted concurrently; nothing left to reconcile
                continue
            if action == REASSIGNED:
                result.reassigned.append(state.dashboard_id)
                metadata = {
                    "reason": reason,
                    "previous_owner_id": target_user_id,
                    "new_owner_id": replacement,
                    "previous_visibility": state.visibility,
                }
            else:
                result.revoked.append(state.dashboard_id)
                metadata = {"reason": reason, "user_id": target_user_id}
            offboarding_dashboards_total.labels(outcome=action.rsplit(".", 1)[-1]).inc()
            await self.ctx.audit.record(
                action,
                actor_user_id=actor_user_id,
                target_type="dashboard",
                target_id=state.dashboard_id,
                metadata=metadata,
            )
            await self.ctx.publish(updated, action)

        logger.info(
            "Offboarded user %s: %d dashboards reassigned, %d access entries revoked",
            target_user_id,
            len(result.reassigned),
            len(result.revoked),
            extra={"actor_user_id": actor_user_id, "action": "user.offboarded"},
        )
        return result
