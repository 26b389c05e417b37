import asyncio
import json
import logging
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import datetime, timezone

from app.schemas.dashboard import dashboard_view
from app.services.permission_service import PermissionService
from app.services.sharing_state import Principal, SharingState

logger = logging.getLogger(__name__)

ACCESS_REVOKED = "dashboard.access.revoked"


@dataclass
class Subscriber:
    principal: Principal
    queue: asyncio.Queue


class DashboardEventBus:
    """In-process per-dashboard pub/sub with SSE streaming.

    Every sharing, visibility or ownership mutation publishes the post-mutation
    dashboard. Each subscriber's rights are resolved again at delivery: the
    view is rendered for that subscriber, and a subscriber who can no longer
    edit gets a final ``dashboard.access.revoked`` event and its stream ends.
    Delivery follows local commit order; slow subscribers whose queue
    overflows are dropped.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, dict[str, Subscriber]] = {}

    async def publish(self, dashboard_id: str, action: str, record) -> dict:
        """Deliver ``record`` (None once deleted) to the dashboard's subscribers."""
        event = {
            "id": str(uuid.uuid4()),
            "dashboard_id": str(dashboard_id),
            "action": action,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        state = SharingState.from_dashboard(record) if record is not None else None

        subscribers = self._subscribers.get(str(dashboard_id), {})
        for sub_id, sub in list(subscribers.items()):
            if state is None:
                self._close(dashboard_id, sub_id, sub, {**event, "dashboard": None})
                continue
            perms = PermissionService.resolve_dashboard_permissions(state, sub.principal)
            if not perms.can_edit:
                logger.info("Closing stream %s: subscriber lost edit access", sub_id)
                self._close(
                    dashboard_id, sub_id, sub, {**event, "action": ACCESS_REVOKED, "dashboard": None}
                )
                continue
            try:
                sub.queue.put_nowait({**event, "dashboard": dashboard_view(record, perms)})
            except asyncio.QueueFull:
                logger.warning("Dropping events for slow subscriber %s", sub_id)
                self._close(dashboard_id, sub_id, sub)

        return event

    def subscribe(self, dashboard_id: str, principal: Principal) -> tuple[str, asyncio.Queue]:
        sub_id = str(uuid.uuid4())
        queue: asyncio.Queue = asyncio.Queue(maxsize=256)
        self._subscribers.setdefault(str(dashboard_id), {})[sub_id] = Subscriber(principal, queue)
        return sub_id, queue

    def unsubscribe(self, dashboard_id: str, sub_id: str) -> None:
        subscribers = self._subscribers.get(str(dashboard_id))
        if subscribers is None:
            return
        subscribers.pop(sub_id, None)
        if not subscribers:
            self._subscribers.pop(str(dashboard_id), None)

    def close_user_streams(self, user_id: str) -> int:
        """End every stream opened by ``user_id``; used when its session is revoked."""
        closed = 0
        for dashboard_id, subscribers in list(self._subscribers.items()):
            for sub_id, sub in list(subscribers.items()):
                if sub.principal.user_id == str(user_id):
                    self._close(dashboard_id, sub_id, sub)
                    closed += 1
        return closed

    def subscriber_count(self, dashboard_id: str) -> int:
        return len(self._subscribers.get(str(dashboard_id), {}))

    def _close(self, dashboard_id: str, sub_id: str, sub: Subscriber, final: dict | None = None) -> None:
        # Pending events were rendered for rights the subscriber may no longer hold
        self.unsubscribe(dashboard_id, sub_id)
        while not sub.queue.empty():
            sub.queue.get_nowait()
        if final is not None:
            sub.queue.put_nowait(final)
        sub.queue.put_nowait(None)

    async def stream(
        self, dashboard_id: str, sub_id: str, queue: asyncio.Queue
    ) -> AsyncGenerator[str, None]:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield f"data: {json.dumps(event, default=str)}\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            self.unsubscribe(dashboard_id, sub_id)


# Global singleton
event_bus = DashboardEventBus()
