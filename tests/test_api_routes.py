"""
tests/test_api_routes.py -- Integration tests for the v1 API routes.

These tests exercise the full stack: FastAPI routing -> require_scopes /
Authenticator -> usecases -> SQLite stores -> response model serialization ->
exception handlers. Unit testing individual route functions would miss
middleware, dependency injection, and the error envelope.

Coverage:
  - Verdicts: 401 without a token, 500 for an expired token, 403 on scope denial
  - Registration: 201 + cookies, REQUIRED_FIELD, duplicate email 409
  - Session: login, invalid credentials, me, refresh from cookie, logout
  - Permissions: assign (role fallback and scoped), list, revoke
  - Users (admin): list, get, patch, delete, self-delete guard

Fixtures used (from conftest.py):
  - api_env: (client, services) -- TestClient over an isolated in-memory DB.
"""

from __future__ import annotations

import itertools

import pytest
from conftest import issue_token
from fastapi.testclient import TestClient

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(api_env) -> None:
    """Login/register set cookies on the client; start every test without them."""
    client, _services = api_env
    client.cookies.clear()


def _register(client: TestClient, **overrides) -> dict:
    n = next(_seq)
    body = {
        "fullname": f"User {n}",
        "password": "correct-horse-9",
        "username": f"user{n}",
        "email": f"user{n}@example.com",
        "phone_number": f"+1555000{n:04d}",
    }
    body.update(overrides)
    resp = client.post("/api/v1/identity/register", json=body)
    assert resp.status_code == 201, resp.text
    client.cookies.clear()
    return resp.json()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestVerdicts:
    """The Authenticator's verdicts surface as the error envelope."""

    def test_no_token_is_401(self, api_env) -> None:
        client, _ = api_env
        resp = client.post("/api/v1/permissions/assign", json={"user_id": 1, "permission_ids": ["a:b"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"
        assert resp.json()["error"]["message"] == "request unauthorized: failed to retrieve token"

    def test_me_without_token_is_401(self, api_env) -> None:
        client, _ = api_env
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_expired_token_is_500(self, api_env) -> None:
        client, services = api_env
        token = issue_token(services.maker, 1, "alice", duration=-1000)
        resp = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "AUTHENTICATION_ERROR"
        assert "token has expired" in error["message"]

    def test_scope_denied_is_403(self, api_env) -> None:
        client, services = api_env
        token = issue_token(services.maker, 1, "guest", permission="user:read", role="GUEST")
        resp = client.get("/api/v1/permissions/users/1", headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "PERMISSION_DENIED"


class TestRegistration:
    def test_register_returns_user_and_tokens(self, api_env) -> None:
        client, services = api_env
        resp = client.post(
            "/api/v1/identity/register",
            json={
                "fullname": "Ada Lovelace",
                "password": "analytical-engine",
                "username": "ada",
                "email": "ada@example.com",
                "phone_number": "+447700900000",
            },
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["email"] == "ada@example.com"
        assert "password" not in data["user"]
        assert data["token_type"] == "bearer"
        assert resp.cookies.get("access_token") == data["access_token"]
        assert resp.cookies.get("refresh_token") == data["refresh_token"]
        assert services.maker.verify_token(data["access_token"]).username == "ada"

    def test_missing_field_is_400_required_field(self, api_env) -> None:
        client, _ = api_env
        resp = client.post(
            "/api/v1/identity/register",
            json={"fullname": "No Email", "password": "pw-123456", "username": "noemail", "phone_number": "1"},
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "REQUIRED_FIELD"
        assert error["detail"] == {"field": "email"}

    def test_duplicate_email_is_409(self, api_env) -> None:
        client, _ = api_env
        first = _register(client)
        resp = client.post(
            "/api/v1/identity/register",
            json={
                "fullname": "Copy",
                "password": "pw-123456",
                "username": "someone-else",
                "email": first["user"]["email"],
                "phone_number": "1",
            },
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "23505"


class TestSession:
    def test_login_and_me(self, api_env) -> None:
        client, _ = api_env
        user = _register(client)["user"]

        resp = client.post("/api/v1/auth/login", json={"email": user["email"], "password": "correct-horse-9"})
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        token = resp.json()["access_token"]

        me = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert me.status_code == 200
        assert me.json()["user_id"] == str(user["id"])
        assert me.json()["permissions"] == []

    def test_me_accepts_the_cookie(self, api_env) -> None:
        client, _ = api_env
        user = _register(client)["user"]
        client.post("/api/v1/auth/login", json={"email": user["email"], "password": "correct-horse-9"})
        assert client.get("/api/v1/auth/me").status_code == 200

    def test_invalid_credentials(self, api_env) -> None:
        client, _ = api_env
        user = _register(client)["user"]
        wrong = client.post("/api/v1/auth/login", json={"email": user["email"], "password": "nope"})
        unknown = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_refresh_from_cookie(self, api_env) -> None:
        client, services = api_env
        registered = _register(client)
        resp = client.post("/api/v1/auth/refresh", headers={"Cookie": f"refresh_token={registered['refresh_token']}"})
        assert resp.status_code == 200, resp.text
        assert services.maker.verify_token(resp.json()["access_token"]).user_id == str(registered["user"]["id"])

    def test_refresh_rejects_access_token(self, api_env) -> None:
        client, _ = api_env
        registered = _register(client)
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["access_token"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    def test_logout_clears_cookies(self, api_env) -> None:
        client, _ = api_env
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        set_cookie = ",".join(resp.headers.get_list("set-cookie"))
        assert "access_token=" in set_cookie
        assert "refresh_token=" in set_cookie

    def test_login_validation_error_envelope(self, api_env) -> None:
        client, _ = api_env
        resp = client.post("/api/v1/auth/login", json={"email": "x@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestPermissionRoutes:
    def test_user_role_falls_back_and_assigns(self, api_env) -> None:
        client, services = api_env
        target = _register(client)["user"]
        caller = issue_token(services.maker, 999, "granter", role="USER")

        resp = client.post(
            "/api/v1/permissions/assign",
            json={"user_id": target["id"], "permission_ids": ["read:user", "create:post", "read:user"]},
            headers=_bearer(caller),
        )
        assert resp.status_code == 201, resp.text
        grants = resp.json()
        assert [g["permission_id"] for g in grants] == ["read:user", "create:post"]
        assert {g["created_by"] for g in grants} == {"granter"}

    def test_scoped_non_user_role_can_assign(self, api_env) -> None:
        client, services = api_env
        target = _register(client)["user"]
        caller = issue_token(services.maker, 999, "service", permission="permission:*", role="SERVICE")
        resp = client.post(
            "/api/v1/permissions/assign",
            json={"user_id": target["id"], "permission_ids": ["read:report"]},
            headers=_bearer(caller),
        )
        assert resp.status_code == 201, resp.text

    def test_assign_to_missing_user_rolls_back(self, api_env) -> None:
        client, services = api_env
        caller = issue_token(services.maker, 999, "granter")
        resp = client.post(
            "/api/v1/permissions/assign",
            json={"user_id": 987654, "permission_ids": ["orphan:permission"]},
            headers=_bearer(caller),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "23503"
        assert services.permission_store.get_permission("orphan:permission").error.code == "NOT_FOUND"

    def test_list_and_revoke(self, api_env) -> None:
        client, services = api_env
        target = _register(client)["user"]
        caller = _bearer(issue_token(services.maker, 999, "granter"))
        client.post(
            "/api/v1/permissions/assign",
            json={"user_id": target["id"], "permission_ids": ["read:user", "create:post"]},
            headers=caller,
        )

        listed = client.get(f"/api/v1/permissions/users/{target['id']}", headers=caller)
        assert listed.status_code == 200
        assert [p["permission_id"] for p in listed.json()["permissions"]] == ["read:user", "create:post"]

        revoked = client.post(
            "/api/v1/permissions/revoke",
            json={"user_id": target["id"], "permission_ids": ["read:user"]},
            headers=caller,
        )
        assert revoked.status_code == 200
        assert [p["permission_id"] for p in revoked.json()] == ["read:user"]

        again = client.post(
            "/api/v1/permissions/revoke",
            json={"user_id": target["id"], "permission_ids": ["read:user"]},
            headers=caller,
        )
        assert again.status_code == 404
        assert again.json()["error"]["code"] == "NO_DATA"

    def test_login_token_carries_granted_permissions(self, api_env) -> None:
        client, services = api_env
        target = _register(client)["user"]
        client.post(
            "/api/v1/permissions/assign",
            json={"user_id": target["id"], "permission_ids": ["user:read", "post:*"]},
            headers=_bearer(issue_token(services.maker, 999, "granter")),
        )
        login = client.post("/api/v1/auth/login", json={"email": target["email"], "password": "correct-horse-9"})
        me = client.get("/api/v1/auth/me", headers=_bearer(login.json()["access_token"]))
        assert me.json()["permissions"] == ["user:read", "post:*"]


class TestUserRoutes:
    def test_admin_lists_users(self, api_env) -> None:
        client, services = api_env
        _register(client)
        _register(client)
        admin = _bearer(issue_token(services.maker, 1, "root", role="ADMIN"))
        resp = client.get("/api/v1/users", params={"limit": 1}, headers=admin)
        assert resp.status_code == 200, resp.text
        page = resp.json()
        assert page["page_info"]["count"] == 1
        assert page["page_info"]["has_next_page"] is True
        assert "password" not in page["data"][0]

    def test_user_without_scope_is_denied(self, api_env) -> None:
        client, services = api_env
        resp = client.get("/api/v1/users", headers=_bearer(issue_token(services.maker, 2, "plain")))
        assert resp.status_code == 403

    def test_user_with_scope_is_allowed(self, api_env) -> None:
        client, services = api_env
        token = issue_token(services.maker, 2, "auditor", permission="user:read")
        assert client.get("/api/v1/users", headers=_bearer(token)).status_code == 200

    def test_get_patch_delete(self, api_env) -> None:
        client, services = api_env
        user = _register(client)["user"]
        admin = _bearer(issue_token(services.maker, 1, "root", role="ADMIN"))

        assert client.get(f"/api/v1/users/{user['id']}", headers=admin).json()["email"] == user["email"]

        patched = client.patch(
            f"/api/v1/users/{user['id']}",
            json={"fullname": "Renamed", "status": "USER_STATUS_INACTIVE"},
            headers=admin,
        )
        assert patched.status_code == 200, patched.text
        assert patched.json()["fullname"] == "Renamed"
        assert patched.json()["status"] == "USER_STATUS_INACTIVE"

        empty = client.patch(f"/api/v1/users/{user['id']}", json={}, headers=admin)
        assert empty.status_code == 400
        assert empty.json()["error"]["code"] == "no_changes"

        assert client.delete(f"/api/v1/users/{user['id']}", headers=admin).status_code == 204
        missing = client.get(f"/api/v1/users/{user['id']}", headers=admin)
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND"

    def test_cannot_delete_self(self, api_env) -> None:
        client, services = api_env
        user = _register(client)["user"]
        token = issue_token(services.maker, user["id"], user["username"], role="ADMIN")
        resp = client.delete(f"/api/v1/users/{user['id']}", headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_deletion"
