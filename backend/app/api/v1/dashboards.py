from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_optional_principal, get_principal, get_sharing_context
from app.config import settings
from app.core.rate_limit import limiter
from app.core.security import decode_access_token
from app.database import get_db
from app.schemas.dashboard import (
    AccessGrant,
    DashboardCreate,
    DashboardUpdate,
    OwnershipTransferRequest,
    VisibilityUpdate,
)
from app.services.acl_service import AclService
from app.services.dashboard_service import DashboardService, view_for
from app.services.ownership_service import OwnershipService
from app.services.sharing_context import SharingContext
from app.services.sharing_state import Principal
from app.services.visibility_service import VisibilityService

router = APIRouter(prefix="/dashboards", tags=["dashboards"])
logger = logging.getLogger(__name__)


@router.get("")
async def list_dashboards(
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    return await DashboardService(ctx).list_dashboards(principal)


@router.get("/public")
async def list_public_dashboards(
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_optional_principal),
):
    return await DashboardService(ctx).list_public(principal)


@router.get("/shared/{token}")
@limiter.limit(settings.SHARE_TOKEN_RATE_LIMIT)
async def read_shared_dashboard(
    request: Request,
    token: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_optional_principal),
):
    return await DashboardService(ctx).read_by_token(token, principal)


@router.post("", status_code=201)
async def create_dashboard(
    body: DashboardCreate,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    return await DashboardService(ctx).create(body.model_dump(exclude_unset=True), principal)


@router.get("/{dashboard_id}")
async def read_dashboard(
    dashboard_id: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_optional_principal),
):
    return await DashboardService(ctx).read(dashboard_id, principal)


@router.patch("/{dashboard_id}")
async def update_dashboard(
    dashboard_id: str,
    body: DashboardUpdate,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    return await DashboardService(ctx).update(
        dashboard_id, body.model_dump(exclude_unset=True), principal
    )


@router.delete("/{dashboard_id}", status_code=204)
async def delete_dashboard(
    dashboard_id: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    await DashboardService(ctx).delete(dashboard_id, principal)
    return Response(status_code=204)


@router.put("/{dashboard_id}/visibility")
async def set_visibility(
    dashboard_id: str,
    body: VisibilityUpdate,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    updated = await VisibilityService(ctx).set_visibility(dashboard_id, body.visibility, principal)
    return view_for(updated, principal)


@router.post("/{dashboard_id}/share-token")
async def rotate_share_token(
    dashboard_id: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    updated = await VisibilityService(ctx).rotate_share_token(dashboard_id, principal)
    return view_for(updated, principal)


@router.get("/{dashboard_id}/collaborators")
async def list_collaborators(
    dashboard_id: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    return await AclService(ctx).list_collaborators(dashboard_id, principal)


@router.put("/{dashboard_id}/acl")
async def upsert_access(
    dashboard_id: str,
    body: AccessGrant,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    updated = await AclService(ctx).upsert_access(
        dashboard_id, body.email, body.access_level, principal
    )
    return view_for(updated, principal)


@router.delete("/{dashboard_id}/acl/{user_id}")
async def revoke_access(
    dashboard_id: str,
    user_id: str,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    updated = await AclService(ctx).revoke_access(dashboard_id, user_id, principal)
    return view_for(updated, principal)


@router.post("/{dashboard_id}/transfer")
async def transfer_ownership(
    dashboard_id: str,
    body: OwnershipTransferRequest,
    ctx: SharingContext = Depends(get_sharing_context),
    principal: Principal = Depends(get_principal),
):
    updated = await OwnershipService(ctx).transfer(dashboard_id, body.new_owner_id, principal)
    return view_for(updated, principal)


@router.get("/{dashboard_id}/events")
async def dashboard_events(
    request: Request,
    dashboard_id: str,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """SSE endpoint. Accepts token via query parameter because EventSource cannot set headers.

    The session is closed before streaming starts so an open stream never holds a
    pooled connection.
    """
    ctx = SharingContext.for_session(db)
    try:
        payload = decode_access_token(token)
        if payload is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user = await ctx.users.find_active(payload.get("sub"))
        if user is None or payload.get("sv", 0) != (user.session_version or 0):
            raise HTTPException(status_code=401, detail="User not found or inactive")
        principal = Principal.from_user(user)
        await DashboardService(ctx).ensure_can_subscribe(dashboard_id, principal)
    finally:
        await db.close()

    sub_id, queue = ctx.events.subscribe(dashboard_id, principal)
    logger.info(
        "Stream %s opened on dashboard %s (%d open)",
        sub_id,
        dashboard_id,
        ctx.events.subscriber_count(dashboard_id),
        extra={"dashboard_id": dashboard_id, "actor_user_id": principal.user_id},
    )

    async def generate():
        async for data in ctx.events.stream(dashboard_id, sub_id, queue):
            if await request.is_disconnected():
                break
            yield data

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
