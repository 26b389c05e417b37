from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decode_access_token
from app.database import get_db
from app.models.user import User
from app.services.sharing_context import SharingContext
from app.services.sharing_state import ANONYMOUS, Principal


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = auth[7:]
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("sub")
    result = await db.execute(
        select(User)
        .where(User.id == str(user_id))
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    # Role or activation changes invalidate previously issued tokens
    if payload.get("sv", 0) != (user.session_version or 0):
        raise HTTPException(status_code=401, detail="Session expired, please sign in again")
    return user


async def get_optional_user(request: Request, db: AsyncSession = Depends(get_db)) -> User | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    try:
        return await get_current_user(request, db)
    except HTTPException:
        return None


async def get_principal(user: User = Depends(get_current_user)) -> Principal:
    return Principal.from_user(user)


async def get_optional_principal(user: User | None = Depends(get_optional_user)) -> Principal:
    return Principal.from_user(user) if user is not None else ANONYMOUS


async def get_sharing_context(db: AsyncSession = Depends(get_db)) -> SharingContext:
    return SharingContext.for_session(db)
