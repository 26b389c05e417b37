"""Lookups against user accounts, plus the two account writes the engine needs."""

from __future__ import annotations

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.policy import normalize_email
from app.models.user import User


class UserDirectory:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: str) -> User | None:
        result = await self.db.execute(
            select(User)
            .where(User.id == str(user_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        user = await self.get(user_id)
        return user if user is not None and user.is_active else None

    async def find_active_by_email(self, email: str | None) -> User | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        result = await self.db.execute(
            select(User).where(User.email == normalized, User.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def find_many(self, user_ids) -> dict[str, User]:
        ids = [str(u) for u in user_ids]
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {u.id: u for u in result.scalars().all()}

    async def count_active_admins(self, excluding_user_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(User).where(
            User.role == "admin", User.is_active.is_(True)
        )
        if excluding_user_id:
            stmt = stmt.where(User.id != str(excluding_user_id))
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def oldest_active_admin(self, excluding_user_id: str | None = None) -> User | None:
        stmt = select(User).where(User.role == "admin", User.is_active.is_(True))
        if excluding_user_id:
            stmt = stmt.where(User.id != str(excluding_user_id))
        result = await self.db.execute(stmt.order_by(User.created_at.asc(), User.id.asc()).limit(1))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[User]:
        """Admins first, then by registration date."""
        admin_first = case((User.role == "admin", 0), else_=1)
        result = await self.db.execute(
            select(User).order_by(admin_first, User.created_at.asc(), User.email.asc())
        )
        return list(result.scalars().all())

    async def update_account(
        self,
        user_id: str,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        bump_session: bool = False,
    ) -> User | None:
        values: dict = {}
        if role is not None:
            values["role"] = role
        if is_active is not None:
            values["is_active"] = is_active
        if bump_session:
            values["session_version"] = User.session_version + 1
        if values:
            await self.db.execute(
                update(User)
                .where(User.id == str(user_id))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return await self.get(user_id)

    async def delete(self, user_id: str) -> bool:
        result = await self.db.execute(
            delete(User)
            .where(User.id == str(user_id))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0
