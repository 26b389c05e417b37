"""Integration tests for /auth endpoints."""

from __future__ import annotations

from app.models.policy import Policy
from app.services.policy_store import POLICY_KEYS
from tests.conftest import auth_headers, create_user


async def _open_registration(db, default_role="viewer"):
    db.add(Policy(key=POLICY_KEYS["registration_mode"], value="open"))
    db.add(Policy(key=POLICY_KEYS["registration_default_role"], value=default_role))
    await db.commit()


class TestRegister:
    async def test_disabled_by_default(self, client):
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "new@example.com", "password": "SecurePass123"},
        )
        assert resp.status_code == 403

    async def test_invite_mode_blocks(self, client, db):
        db.add(Policy(key=POLICY_KEYS["registration_mode"], value="invite"))
        await db.commit()
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "new@example.com", "password": "SecurePass123"},
        )
        assert resp.status_code == 403

    async def test_open_registration_uses_default_role(self, client, db):
        await _open_registration(db, default_role="editor")
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "New@Example.com", "password": "SecurePass123"},
        )
        assert resp.status_code == 201
        token = resp.json()["access_token"]

        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "new@example.com"
        assert me.json()["role"] == "editor"

    async def test_duplicate_email(self, client, db):
        await _open_registration(db)
        await create_user(db, email="dup@example.com")
        await db.commit()
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "dup@example.com", "password": "SecurePass123"},
        )
        assert resp.status_code == 400

    async def test_weak_password(self, client, db):
        await _open_registration(db)
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "weak@example.com", "password": "short"},
        )
        assert resp.status_code == 422


class TestLogin:
    async def test_success(self, client, db):
        await create_user(db, email="login@example.com", password="SecurePass123")
        await db.commit()
        resp = await client.post(
            "/api/v1/auth/login",
            json={"email": "LOGIN@example.com", "password": "SecurePass123"},
        )
        assert resp.status_code == 200
        assert resp.json()["token_type"] == "bearer"

    async def test_wrong_password(self, client, db):
        await create_user(db, email="login@example.com", password="SecurePass123")
        await db.commit()
        resp = await client.post(
            "/api/v1/auth/login",
            json={"email": "login@example.com", "password": "WrongPass123"},
        )
        assert resp.status_code == 401

    async def test_disabled_account(self, client, db):
        await create_user(db, email="off@example.com", password="SecurePass123", is_active=False)
        await db.commit()
        resp = await client.post(
            "/api/v1/auth/login",
            json={"email": "off@example.com", "password": "SecurePass123"},
        )
        assert resp.status_code == 403


class TestMe:
    async def test_permissions_map(self, client, db):
        viewer = await create_user(db, role="viewer")
        resp = await client.get("/api/v1/auth/me", headers=auth_headers(viewer))
        assert resp.status_code == 200
        perms = resp.json()["permissions"]
        assert perms["dashboards.view"] is True
        assert perms["dashboards.create"] is False

    async def test_requires_token(self, client):
        assert (await client.get("/api/v1/auth/me")).status_code == 401
