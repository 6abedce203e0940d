"""Integration tests: authentication endpoints."""
import pytest

from firehouse.db.models import UserStatus

pytestmark = pytest.mark.asyncio

PASSWORD = "Passw0rd!"


# ─── POST /auth/register ──────────────────────────────────────────────────────

async def test_register_returns_201_and_pending_user_cannot_login(client):
    resp = await client.post(
        "/api/v1/auth/register",
        json={
            "email": "new@example.com",
            "name": "New Recruit",
            "username": "recruit",
            "password": "secret1",
        },
    )
    assert resp.status_code == 201
    assert resp.json()["success"] is True
    assert isinstance(resp.json()["user_id"], int)

    login = await client.post(
        "/api/v1/auth/login", json={"username": "recruit", "password": "secret1"}
    )
    assert login.status_code == 403
    assert login.json()["error"]["code"] == "AUTH_004"


async def test_register_duplicate_username_is_409(client, make_user):
    await make_user("taken")
    resp = await client.post(
        "/api/v1/auth/register",
        json={"email": "x@example.com", "name": "X", "username": "TAKEN", "password": "secret1"},
    )
    assert resp.status_code == 409
    assert resp.json()["success"] is False


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "not-an-email", "name": "X", "username": "xman", "password": "secret1"},
        {"email": "x@example.com", "name": "X", "username": "xman", "password": "short"},
        {"email": "x@example.com", "name": "X", "username": "xman"},
    ],
)
async def test_register_validation_errors_are_400(client, payload):
    resp = await client.post("/api/v1/auth/register", json=payload)
    assert resp.status_code == 400
    assert resp.json()["success"] is False


# ─── POST /auth/login ─────────────────────────────────────────────────────────

async def test_login_success_is_case_insensitive(client, make_user):
    await make_user("Captain", ["officer", "training"])
    resp = await client.post(
        "/api/v1/auth/login", json={"username": "captain", "password": PASSWORD}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["user"]["roles"] == ["training", "officer"]
    assert body["user"]["primary_role"] == "training"
    assert "password_hash" not in body["user"]


async def test_login_wrong_password(client, make_user):
    await make_user("captain")
    resp = await client.post(
        "/api/v1/auth/login", json={"username": "captain", "password": "wrongpassword"}
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_001"


async def test_login_unknown_user(client):
    resp = await client.post(
        "/api/v1/auth/login", json={"username": "ghost", "password": "irrelevant"}
    )
    assert resp.status_code == 401


# ─── POST /auth/refresh ───────────────────────────────────────────────────────

async def test_refresh_returns_new_access_token(client, make_user):
    await make_user("captain")
    login = await client.post(
        "/api/v1/auth/login", json={"username": "captain", "password": PASSWORD}
    )
    resp = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": login.json()["refresh_token"]}
    )
    assert resp.status_code == 200
    assert resp.json()["access_token"]


async def test_refresh_with_access_token_fails(client, make_user):
    await make_user("captain")
    login = await client.post(
        "/api/v1/auth/login", json={"username": "captain", "password": PASSWORD}
    )
    resp = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": login.json()["access_token"]}
    )
    assert resp.status_code == 401


async def test_refresh_with_invalid_token_fails(client):
    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": "not.a.valid.token"})
    assert resp.status_code == 401


# ─── GET /auth/me ─────────────────────────────────────────────────────────────

async def test_me_requires_auth(client):
    resp = await client.get("/api/v1/auth/me")
    assert resp.status_code == 401


async def test_me_returns_current_user(client, make_user, auth):
    user = await make_user("captain", ["officer"])
    resp = await client.get("/api/v1/auth/me", headers=auth(user))
    assert resp.status_code == 200
    assert resp.json()["username"] == "captain"
    assert resp.json()["status"] == "active"


async def test_pending_account_token_is_refused(client, make_user, auth):
    user = await make_user("penny", status=UserStatus.PENDING)
    resp = await client.get("/api/v1/auth/me", headers=auth(user))
    assert resp.status_code == 403


# ─── Forced password change ───────────────────────────────────────────────────

async def test_forced_change_blocks_everything_but_change_password(
    client, db_session, make_user, auth
):
    user = await make_user("temp", password="temporary1")
    user.must_change_password = True
    await db_session.commit()
    headers = auth(user)

    blocked = await client.get("/api/v1/bulletins/all", headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "AUTH_005"

    me = await client.get("/api/v1/auth/me", headers=headers)
    assert me.json()["must_change_password"] is True

    changed = await client.post(
        "/api/v1/auth/change-password",
        json={"old_password": "temporary1", "new_password": "permanent1"},
        headers=headers,
    )
    assert changed.status_code == 200

    allowed = await client.get("/api/v1/bulletins/all", headers=headers)
    assert allowed.status_code == 200


async def test_change_password_wrong_old_password(client, make_user, auth):
    user = await make_user("captain")
    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"old_password": "nope", "new_password": "permanent1"},
        headers=auth(user),
    )
    assert resp.status_code == 401


# ─── POST /auth/request-password-reset ────────────────────────────────────────

async def test_request_reset_does_not_reveal_accounts(client, make_user):
    await make_user("captain")
    known = await client.post(
        "/api/v1/auth/request-password-reset", json={"username": "captain"}
    )
    unknown = await client.post(
        "/api/v1/auth/request-password-reset", json={"username": "ghost"}
    )
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
