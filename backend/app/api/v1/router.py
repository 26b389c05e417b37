from fastapi import APIRouter

from app.api.v1 import auth, dashboards, policy, users

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(dashboards.router)
api_router.include_router(users.router)
api_router.include_router(policy.router)
