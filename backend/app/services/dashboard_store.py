"""Document-style access to the ``dashboards`` table.

Every write is a single ``UPDATE ... WHERE id = :id`` (or insert/delete) and is
committed immediately. There is no version check: a concurrent writer landing
between read and replace is overwritten, last committer wins.
"""

from __future__ import annotations

from sqlalchemy import String, cast, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.dashboard import Dashboard
from app.services.sharing_state import SharingState
from app.services.trusted_payload import CONTENT_FIELDS


def dashboard_content(dashboard: Dashboard | None) -> dict | None:
    """Allow-listed content fields of a stored dashboard as a plain dict."""
    if dashboard is None:
        return None
    return {name: getattr(dashboard, name) for name in CONTENT_FIELDS}


def sharing_values(state: SharingState) -> dict:
    return {
        "owner_id": state.owner_id,
        "visibility": state.visibility,
        "share_token": state.share_token,
        "acl": state.acl_dicts(),
    }


class DashboardStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, dashboard_id: str) -> Dashboard | None:
        result = await self.db.execute(
            select(Dashboard)
            .where(Dashboard.id == str(dashboard_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_share_token(self, token: str) -> Dashboard | None:
        if not token:
            return None
        result = await self.db.execute(select(Dashboard).where(Dashboard.share_token == token))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[Dashboard]:
        result = await self.db.execute(select(Dashboard).order_by(Dashboard.created_at.desc()))
        return list(result.scalars().all())

    async def list_public(self) -> list[Dashboard]:
        result = await self.db.execute(
            select(Dashboard)
            .where(Dashboard.visibility == "public")
            .order_by(Dashboard.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_member(self, user_id: str) -> list[Dashboard]:
        """Dashboards the user owns or holds an ACL row on."""
        user_id = str(user_id)
        # Text containment narrows the scan; the exact check happens below
        result = await self.db.execute(
            select(Dashboard)
            .where(
                or_(
                    Dashboard.owner_id == user_id,
                    cast(Dashboard.acl, String).contains(user_id),
                )
            )
            .order_by(Dashboard.created_at.desc())
            .execution_options(populate_existing=True)
        )
        dashboards = []
        for dashboard in result.scalars().all():
            state = SharingState.from_dashboard(dashboard)
            if state.owner_id == user_id or state.acl_entry_for(user_id) is not None:
                dashboards.append(dashboard)
        return dashboards

    async def insert(self, dashboard: Dashboard) -> Dashboard:
        self.db.add(dashboard)
        await self.db.commit()
        await self.db.refresh(dashboard)
        return dashboard

    async def replace(self, dashboard_id: str, values: dict) -> Dashboard | None:
        """Atomically overwrite the given columns. Returns None if the row is gone."""
        result = await self.db.execute(
            update(Dashboard)
            .where(Dashboard.id == str(dashboard_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount == 0:
            return None
        return await self.get(dashboard_id)

    async def replace_sharing(self, state: SharingState) -> Dashboard | None:
        return await self.replace(state.dashboard_id, sharing_values(state))

    async def delete(self, dashboard_id: str) -> bool:
        result = await self.db.execute(
            delete(Dashboard)
            .where(Dashboard.id == str(dashboard_id))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0
