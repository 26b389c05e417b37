"""Collaborators shared by the dashboard sharing services.

Each request builds one context around its database session; tests build one
around in-memory fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.metrics import sharing_mutations_total
from app.services.audit_service import DatabaseAuditSink
from app.services.dashboard_store import DashboardStore
from app.services.event_bus import DashboardEventBus, event_bus
from app.services.policy_store import DatabasePolicyStore
from app.services.sharing_state import Principal, SharingState
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class SharingContext:
    store: DashboardStore
    users: UserDirectory
    policy: DatabasePolicyStore
    audit: DatabaseAuditSink
    events: DashboardEventBus

    @classmethod
    def for_session(cls, db: AsyncSession) -> SharingContext:
        return cls(
            store=DashboardStore(db),
            users=UserDirectory(db),
            policy=DatabasePolicyStore(db),
            audit=DatabaseAuditSink(db),
            events=event_bus,
        )

    async def load(self, dashboard_id: str):
        """Return ``(record, state)``; both None when the dashboard does not exist."""
        record = await self.store.get(dashboard_id)
        if record is None:
            return None, None
        return record, SharingState.from_dashboard(record)

    async def publish(self, record, action: str) -> None:
        await self.events.publish(str(record.id), action, record)

    async def commit_sharing(
        self,
        next_state: SharingState,
        *,
        actor: Principal | None,
        action: str,
        metadata: dict | None = None,
        audit: bool = True,
    ):
        """Replace the sharing fields atomically, then audit and notify subscribers."""
        updated = await self.store.replace_sharing(next_state)
        if updated is None:
            raise NotFoundError()
        sharing_mutations_total.labels(action=action).inc()
        if audit:
            await self.audit.record(
                action,
                actor_user_id=actor.user_id if actor else None,
                target_type="dashboard",
                target_id=next_state.dashboard_id,
                metadata=metadata or {},
            )
        await self.publish(updated, action)
        logger.info(
            "Committed %s on dashboard %s",
            action,
            next_state.dashboard_id,
            extra={"dashboard_id": next_state.dashboard_id, "action": action},
        )
        return updated
