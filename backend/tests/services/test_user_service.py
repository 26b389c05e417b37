"""Account administration, quorum enforcement and deletion workflows."""

from __future__ import annotations

import pytest

from app.core.errors import ForbiddenError, NotFoundError, PreconditionFailedError, ValidationFailedError
from app.services.sharing_state import Principal
from app.services.user_service import UserService
from tests.fakes import make_context


def _setup(admins=1):
    ctx = make_context()
    for i in range(admins):
        ctx.users.add(f"admin-{i + 1}", role="admin", registered_days_ago=100 - i)
    ctx.users.add("editor", role="editor")
    return ctx


def _p(ctx, user_id):
    return Principal.from_user(ctx.users.users[user_id])


class TestListUsers:
    async def test_admin_lists(self):
        ctx = _setup()
        users = await UserService(ctx).list_users(_p(ctx, "admin-1"))
        assert users[0].role == "admin"

    async def test_non_admin_forbidden(self):
        ctx = _setup()
        with pytest.raises(ForbiddenError):
            await UserService(ctx).list_users(_p(ctx, "editor"))


class TestAdminUpdate:
    async def test_role_change_bumps_session_version(self):
        ctx = _setup()
        updated = await UserService(ctx).admin_update("editor", _p(ctx, "admin-1"), role="VIEWER")
        assert updated.role == "viewer"
        assert updated.session_version == 1
        assert ctx.audit.actions() == ["user.updated"]

    async def test_role_change_closes_open_streams(self):
        ctx = _setup()
        dashboard = ctx.store.add("editor")
        _, queue = ctx.events.subscribe(dashboard.id, _p(ctx, "editor"))
        await UserService(ctx).admin_update("editor", _p(ctx, "admin-1"), role="viewer")
        assert queue.get_nowait() is None
        assert ctx.events.subscriber_count(dashboard.id) == 0

    async def test_unchanged_values_do_not_bump(self):
        ctx = _setup()
        updated = await UserService(ctx).admin_update(
            "editor", _p(ctx, "admin-1"), role="editor", is_active=True
        )
        assert updated.session_version == 0
        assert ctx.audit.events == []

    async def test_invalid_role(self):
        ctx = _setup()
        with pytest.raises(ValidationFailedError):
            await UserService(ctx).admin_update("editor", _p(ctx, "admin-1"), role="owner")

    async def test_admin_cannot_demote_self(self):
        ctx = _setup(admins=2)
        with pytest.raises(ForbiddenError):
            await UserService(ctx).admin_update("admin-1", _p(ctx, "admin-1"), role="editor")

    async def test_admin_cannot_deactivate_self(self):
        ctx = _setup(admins=2)
        with pytest.raises(ForbiddenError):
            await UserService(ctx).admin_update("admin-1", _p(ctx, "admin-1"), is_active=False)

    async def test_demoting_other_admin_respects_quorum(self):
        ctx = _setup(admins=2)
        service = UserService(ctx)
        await service.admin_update("admin-2", _p(ctx, "admin-1"), role="editor")
        assert ctx.users.users["admin-2"].role == "editor"

    async def test_deactivating_last_other_admin_fails(self):
        ctx = _setup(admins=1)
        ctx.users.add("admin-x", role="admin")
        ctx.users.users["admin-1"].is_active = False
        with pytest.raises(PreconditionFailedError):
            await UserService(ctx).admin_update("admin-x", Principal("admin-1", "admin"), is_active=False)

    async def test_non_admin_forbidden(self):
        ctx = _setup()
        with pytest.raises(ForbiddenError):
            await UserService(ctx).admin_update("admin-1", _p(ctx, "editor"), role="viewer")

    async def test_missing_user(self):
        ctx = _setup()
        with pytest.raises(NotFoundError):
            await UserService(ctx).admin_update("ghost", _p(ctx, "admin-1"), role="viewer")


class TestAdminDelete:
    async def test_active_user_must_be_deactivated_first(self):
        ctx = _setup()
        with pytest.raises(PreconditionFailedError) as exc_info:
            await UserService(ctx).admin_delete("editor", _p(ctx, "admin-1"))
        assert "Deactivate the user account" in exc_info.value.detail

    async def test_acting_admin_inherits_dashboards(self):
        ctx = _setup()
        ctx.users.users["editor"].is_active = False
        owned = ctx.store.add("editor", visibility="public", share_token="t")

        result = await UserService(ctx).admin_delete("editor", _p(ctx, "admin-1"))

        assert result["reassigned"] == [owned.id]
        assert ctx.store.state(owned.id).owner_id == "admin-1"
        assert "editor" not in ctx.users.users
        assert ctx.audit.actions()[-1] == "user.deleted"

    async def test_cannot_delete_self_through_admin_path(self):
        ctx = _setup(admins=2)
        with pytest.raises(ForbiddenError):
            await UserService(ctx).admin_delete("admin-1", _p(ctx, "admin-1"))

    async def test_deleting_inactive_admin(self):
        ctx = _setup(admins=2)
        ctx.users.users["admin-2"].is_active = False
        await UserService(ctx).admin_delete("admin-2", _p(ctx, "admin-1"))
        assert "admin-2" not in ctx.users.users


class TestSelfDelete:
    async def test_oldest_other_admin_inherits(self):
        ctx = _setup(admins=3)
        owned = ctx.store.add("admin-2")
        await UserService(ctx).self_delete(_p(ctx, "admin-2"))
        assert ctx.store.state(owned.id).owner_id == "admin-1"
        assert "admin-2" not in ctx.users.users

    async def test_last_admin_cannot_leave(self):
        ctx = _setup(admins=1)
        with pytest.raises(PreconditionFailedError):
            await UserService(ctx).self_delete(_p(ctx, "admin-1"))
        assert "admin-1" in ctx.users.users

    async def test_editor_without_dashboards(self):
        ctx = _setup()
        result = await UserService(ctx).self_delete(_p(ctx, "editor"))
        assert result == {"reassigned": [], "revoked": []}
        assert "editor" not in ctx.users.users

    async def test_owner_without_any_admin_is_blocked_before_deletion(self):
        ctx = make_context()
        ctx.users.add("editor", role="editor")
        ctx.store.add("editor")
        with pytest.raises(PreconditionFailedError) as exc_info:
            await UserService(ctx).self_delete(Principal("editor", "editor"))
        assert "active administrator recovery owner" in exc_info.value.detail
        assert "editor" in ctx.users.users

    async def test_anonymous(self):
        ctx = _setup()
        with pytest.raises(ForbiddenError):
            await UserService(ctx).self_delete(Principal())
