"""Collaborator grants: upsert, revoke and listing."""

from __future__ import annotations

import pytest

from app.core.errors import ForbiddenError, NotFoundError, ValidationFailedError
from app.services.acl_service import AclService, revoke_acl_entry, upsert_acl_entry
from app.services.dashboard_service import DashboardService
from app.services.sharing_state import AclEntry, Principal, SharingState
from app.services.visibility_service import VisibilityService
from tests.fakes import make_context

OWNER = Principal("owner", "editor")


def _state(*entries):
    return SharingState("d1", "owner", acl=tuple(entries))


class TestUpsertAclEntry:
    def test_appends_new_entry(self):
        nxt = upsert_acl_entry(_state(AclEntry("a", "viewer")), "b", "editor", "owner", "t1")
        assert [(e.user_id, e.access_level) for e in nxt.acl] == [("a", "viewer"), ("b", "editor")]
        assert nxt.acl[1].granted_by == "owner"
        assert nxt.acl[1].granted_at == "t1"

    def test_replaces_existing_entry_in_place(self):
        state = _state(AclEntry("a", "viewer"), AclEntry("b", "viewer"))
        nxt = upsert_acl_entry(state, "a", "EDITOR", "owner")
        assert [(e.user_id, e.access_level) for e in nxt.acl] == [("a", "editor"), ("b", "viewer")]

    def test_owner_cannot_be_granted(self):
        with pytest.raises(ForbiddenError):
            upsert_acl_entry(_state(), "owner", "editor", "admin")

    def test_invalid_level(self):
        with pytest.raises(ValidationFailedError):
            upsert_acl_entry(_state(), "a", "owner", "owner")


class TestRevokeAclEntry:
    def test_removes_entry(self):
        nxt = revoke_acl_entry(_state(AclEntry("a", "viewer"), AclEntry("b", "editor")), "a")
        assert [e.user_id for e in nxt.acl] == ["b"]

    def test_absent_entry_is_noop(self):
        state = _state(AclEntry("a", "viewer"))
        assert revoke_acl_entry(state, "zzz").acl == state.acl

    def test_owner_is_never_a_target(self):
        with pytest.raises(ForbiddenError):
            revoke_acl_entry(_state(), "owner")


class TestAclService:
    async def test_upsert_twice_keeps_one_row_with_latest_level(self):
        ctx = make_context()
        ctx.users.add("u1", email="user@example.com")
        dashboard = ctx.store.add("owner")
        service = AclService(ctx)

        await service.upsert_access(dashboard.id, "user@example.com", "viewer", OWNER)
        await service.upsert_access(dashboard.id, "User@Example.com", "editor", OWNER)

        acl = ctx.store.state(dashboard.id).acl
        assert len(acl) == 1
        assert (acl[0].user_id, acl[0].access_level) == ("u1", "editor")

    async def test_audit_only_when_grants_change(self):
        ctx = make_context()
        ctx.users.add("u1", email="user@example.com")
        dashboard = ctx.store.add("owner")
        service = AclService(ctx)

        await service.upsert_access(dashboard.id, "user@example.com", "viewer", OWNER)
        await service.upsert_access(dashboard.id, "user@example.com", "viewer", OWNER)

        assert ctx.audit.actions() == ["dashboard.acl.granted"]
        assert len(ctx.store.writes) == 2

    async def test_target_must_be_active_user(self):
        ctx = make_context()
        ctx.users.add("u1", email="gone@example.com", is_active=False)
        dashboard = ctx.store.add("owner")
        with pytest.raises(ValidationFailedError):
            await AclService(ctx).upsert_access(dashboard.id, "gone@example.com", "viewer", OWNER)

    async def test_malformed_email(self):
        ctx = make_context()
        dashboard = ctx.store.add("owner")
        with pytest.raises(ValidationFailedError):
            await AclService(ctx).upsert_access(dashboard.id, "not-an-email", "viewer", OWNER)

    async def test_owner_cannot_be_added(self):
        ctx = make_context()
        ctx.users.add("owner", email="owner@example.com")
        dashboard = ctx.store.add("owner")
        with pytest.raises(ForbiddenError):
            await AclService(ctx).upsert_access(dashboard.id, "owner@example.com", "editor", OWNER)
        assert ctx.store.writes == []

    async def test_requires_manage_sharing(self):
        ctx = make_context()
        ctx.users.add("u1", email="user@example.com")
        dashboard = ctx.store.add("owner", acl=[{"user_id": "v", "access_level": "viewer"}])
        with pytest.raises(ForbiddenError):
            await AclService(ctx).upsert_access(
                dashboard.id, "user@example.com", "viewer", Principal("v", "editor")
            )

    async def test_stranger_gets_not_found(self):
        ctx = make_context()
        ctx.users.add("u1", email="user@example.com")
        dashboard = ctx.store.add("owner")
        with pytest.raises(NotFoundError):
            await AclService(ctx).upsert_access(
                dashboard.id, "user@example.com", "viewer", Principal("x", "editor")
            )

    async def test_acl_editor_can_share(self):
        ctx = make_context()
        ctx.users.add("u1", email="user@example.com")
        dashboard = ctx.store.add("owner", acl=[{"user_id": "e", "access_level": "editor"}])
        await AclService(ctx).upsert_access(
            dashboard.id, "user@example.com", "viewer", Principal("e", "viewer")
        )
        assert ctx.store.state(dashboard.id).acl_entry_for("u1") is not None

    async def test_revoke_absent_entry_writes_nothing(self):
        ctx = make_context()
        dashboard = ctx.store.add("owner")
        await AclService(ctx).revoke_access(dashboard.id, "nobody", OWNER)
        assert ctx.store.writes == []
        assert ctx.audit.events == []

    async def test_revoke_existing_entry(self):
        ctx = make_context()
        dashboard = ctx.store.add("owner", acl=[{"user_id": "u1", "access_level": "viewer"}])
        await AclService(ctx).revoke_access(dashboard.id, "u1", OWNER)
        assert ctx.store.state(dashboard.id).acl == ()
        assert ctx.audit.actions() == ["dashboard.acl.revoked"]

    async def test_revoked_editor_stream_never_sees_rotated_token(self):
        ctx = make_context()
        dashboard = ctx.store.add(
            "owner",
            visibility="link",
            share_token="old",
            acl=[{"user_id": "ed", "access_level": "editor"}],
        )
        editor = Principal("ed", "editor")
        await DashboardService(ctx).ensure_can_subscribe(dashboard.id, editor)
        _, queue = ctx.events.subscribe(dashboard.id, editor)

        await AclService(ctx).revoke_access(dashboard.id, "ed", OWNER)
        rotated = await VisibilityService(ctx).rotate_share_token(dashboard.id, OWNER)

        delivered = []
        while not queue.empty():
            delivered.append(queue.get_nowait())
        assert delivered[-1] is None
        assert all(rotated.share_token not in str(event) for event in delivered)
        assert ctx.events.subscriber_count(dashboard.id) == 0

    async def test_list_collaborators_enriched(self):
        ctx = make_context()
        ctx.users.add("u1", email="user@example.com")
        dashboard = ctx.store.add(
            "owner",
            acl=[
                {"user_id": "u1", "access_level": "editor"},
                {"user_id": "ghost", "access_level": "viewer"},
            ],
        )
        rows = await AclService(ctx).list_collaborators(dashboard.id, Principal("u1", "viewer"))
        assert rows[0]["email"] == "user@example.com"
        assert rows[0]["access_level"] == "editor"
        assert rows[1]["email"] is None
        assert rows[1]["is_active"] is False


class TestOwnerNeverInAcl:
    async def test_after_mixed_operations(self):
        from app.services.ownership_service import OwnershipService

        ctx = make_context()
        ctx.users.add("owner", email="owner@example.com")
        ctx.users.add("u1", email="u1@example.com")
        ctx.users.add("u2", email="u2@example.com")
        dashboard = ctx.store.add("owner")
        acl = AclService(ctx)
        ownership = OwnershipService(ctx)
        admin = Principal("admin", "admin")

        await acl.upsert_access(dashboard.id, "u1@example.com", "editor", admin)
        await ownership.transfer(dashboard.id, "u1", admin)
        await acl.upsert_access(dashboard.id, "u2@example.com", "viewer", admin)
        await ownership.transfer(dashboard.id, "u2", admin)
        await acl.revoke_access(dashboard.id, "owner", admin)
        await ownership.transfer(dashboard.id, "owner", admin)

        state = ctx.store.state(dashboard.id)
        assert state.owner_id == "owner"
        assert state.acl_entry_for(state.owner_id) is None
        assert len({e.user_id for e in state.acl}) == len(state.acl)
