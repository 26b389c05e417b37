from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.permissions import ALL_APP_PERMISSION_KEYS
from app.core.policy import normalize_email
from app.core.rate_limit import limiter
from app.core.security import create_access_token, hash_password, verify_password
from app.database import get_db
from app.models.user import User
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from app.schemas.user import user_response
from app.services.permission_service import PermissionService
from app.services.policy_store import DatabasePolicyStore
from app.services.sharing_state import Principal

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _token_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.role, user.session_version or 0)
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
@limiter.limit("5/minute")
async def register(request: Request, body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    policy = await DatabasePolicyStore(db).get()
    if policy.registration_mode == "disabled":
        raise HTTPException(403, "Self-registration is disabled. Contact an administrator.")
    if policy.registration_mode == "invite":
        raise HTTPException(403, "Registration requires an invitation from an administrator.")

    email = normalize_email(body.email)
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise HTTPException(400, "Data provided is not valid")

    user = User(
        email=email,
        display_name=body.display_name or email.split("@", 1)[0],
        password_hash=hash_password(body.password),
        role=policy.registration_default_role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Registered user %s as %s", user.id, user.role)
    return _token_for(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
async def login(request: Request, body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == normalize_email(body.email)))
    user = result.scalar_one_or_none()
    if not user or not user.password_hash:
        raise HTTPException(401, "Invalid credentials")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(401, "Invalid credentials")
    if not user.is_active:
        raise HTTPException(403, "Account disabled")

    user.last_login = datetime.now(timezone.utc)
    await db.commit()
    return _token_for(user)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    principal = Principal.from_user(user)
    return {
        **user_response(user),
        "permissions": {
            key: PermissionService.has_app_permission(principal, key)
            for key in sorted(ALL_APP_PERMISSION_KEYS)
        },
    }
