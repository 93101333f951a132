"""HTTP-level tests through the FastAPI application."""

import pytest
from fastapi.testclient import TestClient

from bookworm_auth.main import create_app
from bookworm_auth.models.user import Role

from conftest import PASSWORD


@pytest.fixture
def app(settings, mailbox):
    return create_app(settings, email_provider=mailbox, enable_scheduler=False)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def drain(client):
    client.portal.call(client.app.state.services.notifier.drain)


def signup(client, mailbox, username="alice", email="alice@example.com"):
    response = client.post(
        "/api/auth/register", json={"username": username, "email": email, "password": PASSWORD}
    )
    assert response.status_code == 201, response.text
    drain(client)
    token = mailbox.last_token("verification")
    verified = client.post("/api/auth/verify-email", json={"token": token})
    assert verified.status_code == 200, verified.text
    return response.json()["user"]


def login(client, email="alice@example.com", password=PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_register_validation_error_format(client):
    response = client.post("/api/auth/register", json={"username": "A!", "email": "nope", "password": "short"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    fields = {item["field"] for item in body["details"]}
    assert {"username", "email", "password"} <= fields


def test_register_conflict(client, mailbox):
    signup(client, mailbox)

    response = client.post(
        "/api/auth/register", json={"username": "other", "email": " ALICE@example.com", "password": PASSWORD}
    )

    assert response.status_code == 409
    assert response.json()["code"] == "EMAIL_EXISTS"


def test_login_before_verification(client):
    client.post("/api/auth/register", json={"username": "alice", "email": "alice@example.com", "password": PASSWORD})

    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})

    assert response.status_code == 401
    assert response.json()["code"] == "EMAIL_NOT_VERIFIED"


def test_login_sets_cookie_and_me(client, mailbox):
    user = signup(client, mailbox)

    body = login(client)

    assert client.cookies.get("token") == body["session"]["token"]
    assert body["session"]["csrf_token"]
    assert body["location"]["formatted"] == "Unknown Location"
    assert "password_hash" not in body["user"]

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["id"] == user["id"]
    assert me.json()["needs_onboarding"] is False


def test_wrong_password_is_generic(client, mailbox):
    signup(client, mailbox)

    wrong = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "Wrongpass1"})
    unknown = client.post("/api/auth/login", json={"email": "bob@example.com", "password": "Wrongpass1"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_me_requires_authentication(client):
    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_REQUIRED"


def test_cookie_auth_requires_csrf_on_unsafe_methods(client, mailbox):
    signup(client, mailbox)
    body = login(client)

    rejected = client.patch("/api/users/profile", json={"bio": "hi"})
    assert rejected.status_code == 403
    assert rejected.json()["code"] == "CSRF_MISMATCH"

    accepted = client.patch(
        "/api/users/profile", json={"bio": " hi "}, headers={"X-CSRF-Token": body["session"]["csrf_token"]}
    )
    assert accepted.status_code == 200
    assert accepted.json()["user"]["bio"] == "hi"


def test_bearer_auth_skips_csrf(client, mailbox):
    signup(client, mailbox)
    token = login(client)["session"]["token"]
    client.cookies.clear()

    response = client.patch(
        "/api/users/profile", json={"location": "Oxford"}, headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 200
    assert response.json()["user"]["location"] == "Oxford"


def test_sessions_listing_and_revocation(client, mailbox):
    signup(client, mailbox)
    other = login(client)["session"]["token"]
    current = login(client)
    headers = {"X-CSRF-Token": current["session"]["csrf_token"]}

    sessions = client.get("/api/auth/sessions").json()["sessions"]
    assert len(sessions) == 2
    assert [s["is_current"] for s in sessions] == [True, False]
    assert all("token" not in s for s in sessions)

    revoked = client.delete(f"/api/auth/sessions/{sessions[1]['id']}", headers=headers)
    assert revoked.status_code == 200
    missing = client.delete(f"/api/auth/sessions/{sessions[1]['id']}", headers=headers)
    assert missing.status_code == 404

    client.cookies.clear()
    stale = client.get("/api/auth/me", headers={"Authorization": f"Bearer {other}"})
    assert stale.status_code == 401
    live = client.get("/api/auth/me", headers={"Authorization": f"Bearer {current['session']['token']}"})
    assert live.status_code == 200


def test_logout_clears_session(client, mailbox):
    signup(client, mailbox)
    body = login(client)
    token = body["session"]["token"]

    response = client.post("/api/auth/logout", headers={"X-CSRF-Token": body["session"]["csrf_token"]})

    assert response.status_code == 200
    client.cookies.clear()
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 401
    assert me.json()["code"] == "INVALID_SESSION"


def test_password_reset_flow(client, mailbox):
    signup(client, mailbox)
    old_token = login(client)["session"]["token"]
    client.cookies.clear()

    forgot = client.post("/api/auth/forgot-password", json={"email": "alice@example.com"})
    ghost = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert forgot.status_code == ghost.status_code == 200
    assert forgot.json() == ghost.json()
    drain(client)

    reset = client.post(
        "/api/auth/reset-password",
        json={"token": mailbox.last_token("password_reset"), "password": "Newpassw0rd"},
    )
    assert reset.status_code == 200

    stale = client.get("/api/auth/me", headers={"Authorization": f"Bearer {old_token}"})
    assert stale.status_code == 401
    login(client, password="Newpassw0rd")

    reused = client.post(
        "/api/auth/reset-password",
        json={"token": mailbox.last_token("password_reset"), "password": "Another1pass"},
    )
    assert reused.status_code == 400
    assert reused.json()["code"] == "TOKEN_ALREADY_USED"


def test_delete_account_requires_confirmation(client, mailbox):
    user = signup(client, mailbox)
    csrf = login(client)["session"]["csrf_token"]
    headers = {"X-CSRF-Token": csrf}

    unconfirmed = client.request(
        "DELETE", "/api/users/account", json={"password": PASSWORD, "confirmation": "yes"}, headers=headers
    )
    assert unconfirmed.status_code == 400

    deleted = client.request(
        "DELETE",
        "/api/users/account",
        json={"password": PASSWORD, "confirmation": "DELETE MY ACCOUNT"},
        headers=headers,
    )
    assert deleted.status_code == 200
    assert client.get(f"/api/users/{user['id']}").status_code == 404


def test_admin_routes_require_admin_role(client, mailbox):
    signup(client, mailbox)
    member = signup(client, mailbox, username="bob", email="bob@example.com")
    body = login(client)
    headers = {"X-CSRF-Token": body["session"]["csrf_token"]}

    forbidden = client.delete(f"/api/admin/users/{member['id']}", headers=headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "INSUFFICIENT_PERMISSIONS"

    services = client.app.state.services
    database = client.app.state.database

    async def promote():
        async with database.session() as session:
            await services.accounts.add_role(session, body["user"]["id"], Role.ADMIN)

    client.portal.call(promote)

    promoted = client.patch(
        f"/api/admin/users/{member['id']}/roles", json={"action": "add", "role": "ADMIN"}, headers=headers
    )
    assert promoted.status_code == 200
    assert promoted.json()["user"]["roles"] == ["USER", "ADMIN"]

    refused = client.delete(f"/api/admin/users/{member['id']}", headers=headers)
    assert refused.status_code == 403

    client.patch(f"/api/admin/users/{member['id']}/roles", json={"action": "remove", "role": "ADMIN"}, headers=headers)
    removed = client.delete(f"/api/admin/users/{member['id']}", headers=headers)
    assert removed.status_code == 200

    purge = client.post("/api/admin/maintenance/purge", headers=headers)
    assert purge.json() == {"sessions_deleted": 0, "tokens_deleted": 0}


def test_public_profile_hides_private_fields(client, mailbox):
    alice = signup(client, mailbox)
    signup(client, mailbox, username="bob", email="bob@example.com")

    anonymous = client.get(f"/api/users/{alice['id']}").json()["user"]
    assert anonymous["username"] == "alice"
    assert anonymous["email"] is None
    assert anonymous["roles"] is None

    bob_token = login(client, email="bob@example.com")["session"]["token"]
    client.cookies.clear()
    other = client.get(f"/api/users/{alice['id']}", headers={"Authorization": f"Bearer {bob_token}"})
    assert other.json()["user"]["email"] is None

    login(client)
    own = client.get(f"/api/users/{alice['id']}").json()["user"]
    assert own["email"] == "alice@example.com"
    assert own["roles"] == ["USER"]


def test_public_profile_ignores_invalid_credentials(client, mailbox):
    alice = signup(client, mailbox)

    response = client.get(f"/api/users/{alice['id']}", headers={"Authorization": "Bearer " + "0" * 64})

    assert response.status_code == 200
    assert response.json()["user"]["email"] is None


def test_blank_display_name_rejected(client, mailbox):
    signup(client, mailbox)
    csrf = login(client)["session"]["csrf_token"]

    response = client.patch("/api/users/profile", json={"display_name": "    "}, headers={"X-CSRF-Token": csrf})

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "display_name"
    assert client.get("/api/auth/me").json()["needs_onboarding"] is False


def test_admin_user_listing(client, mailbox):
    admin = signup(client, mailbox)
    signup(client, mailbox, username="bob", email="bob@example.com")
    client.post("/api/auth/register", json={"username": "carol", "email": "carol@example.com", "password": PASSWORD})
    login(client)

    assert client.get("/api/admin/users").status_code == 403

    services = client.app.state.services
    database = client.app.state.database

    async def promote():
        async with database.session() as session:
            await services.accounts.add_role(session, admin["id"], Role.ADMIN)

    client.portal.call(promote)

    listing = client.get("/api/admin/users", params={"limit": 2})
    assert listing.status_code == 200
    body = listing.json()
    assert len(body["users"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    assert all("password_hash" not in user for user in body["users"])

    unverified = client.get("/api/admin/users", params={"verified": "false"}).json()
    assert [user["username"] for user in unverified["users"]] == ["carol"]

    admins = client.get("/api/admin/users", params={"role": "ADMIN", "search": "ALI"}).json()
    assert [user["username"] for user in admins["users"]] == ["alice"]

    too_big = client.get("/api/admin/users", params={"limit": 101})
    assert too_big.status_code == 400
    assert too_big.json()["code"] == "VALIDATION_ERROR"
