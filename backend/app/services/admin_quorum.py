"""Guard for the "at least one active administrator" invariant.

The check is a live count at call time and is not locked against concurrent
writers: two requests deactivating the last two admins can both pass.
"""

from __future__ import annotations

from app.core.errors import PreconditionFailedError

QUORUM_MESSAGE = (
    "At least one active administrator must remain. "
    "Promote or reactivate another administrator before continuing."
)


def has_admin_quorum(active_admins_remaining: int) -> bool:
    return active_admins_remaining > 0


async def ensure_quorum(users, excluding_user_id: str | None) -> None:
    """Raise PRECONDITION_FAILED if no active admin other than ``excluding_user_id`` exists."""
    remaining = await users.count_active_admins(excluding_user_id=excluding_user_id)
    if not has_admin_quorum(remaining):
        raise PreconditionFailedError(QUORUM_MESSAGE)
