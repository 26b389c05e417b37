from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UserAdminUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str | None = None
    is_active: bool | None = Field(default=None, alias="active")


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def user_response(u) -> dict:
    return {
        "id": str(u.id),
        "email": u.email,
        "display_name": u.display_name,
        "role": u.role,
        "is_active": u.is_active,
        "session_version": u.session_version or 0,
        "registration_date": _iso(u.created_at),
        "last_login": _iso(u.last_login),
    }
