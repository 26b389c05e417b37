"""Fire-and-forget audit trail.

``record`` never raises: a failed write is logged, counted and dropped so it
can never change the outcome of the mutation that triggered it.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.metrics import audit_failures_total
from app.models.audit_event import AuditEvent

logger = logging.getLogger(__name__)


class DatabaseAuditSink:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self,
        action: str,
        *,
        actor_user_id: str | None = None,
        target_type: str | None = None,
        target_id: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        if not action:
            return
        try:
            self.db.add(
                AuditEvent(
                    actor_user_id=actor_user_id,
                    action=action,
                    target_type=target_type,
                    target_id=str(target_id) if target_id is not None else None,
                    event_metadata=metadata or {},
                )
            )
            await self.db.commit()
        except Exception:
            audit_failures_total.inc()
            logger.warning("Audit event persistence failed for %s", action, exc_info=True)
            try:
                await self.db.rollback()
            except Exception:
                logger.warning("Rollback after audit failure also failed", exc_info=True)
