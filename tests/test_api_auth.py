"""Integration tests for the auth HTTP surface (api/routes/v1/*).

Covers:
- POST /auth/login sets httponly cookies; Secure only behind HTTPS
- login failures share one 400 error; disabled password login is 401
- POST /auth/admin-sign-up on a fresh server, then 400 once an admin exists
- GET /auth/me and POST /auth/validate-token via cookie or bearer header
- POST /auth/change-password
- POST /auth/logout clears cookies and picks the redirect by auth type
- OAuth config + callback round-trip with the state kept in the session
- GET/PUT /system-config is admin-only and validates updates
- WS /ws accepts a valid token and closes unauthenticated sockets with 1008
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest
from starlette.websockets import WebSocketDisconnect

from auth.constants import ACCESS_COOKIE, AUTH_TYPE_COOKIE, DEFAULT_LOGOUT_REDIRECT, AuthType
from auth.tokens import SessionTokenManager

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, IDP_ISSUER

CALLBACK = "https://photos.example.com/auth/callback"


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _set_cookies(resp) -> dict[str, str]:
    """Map cookie name -> raw Set-Cookie header value."""
    return {h.split("=", 1)[0]: h for h in resp.headers.get_list("set-cookie")}


def _enable_oauth(client) -> None:
    client.app.state.config_store.update(
        {"oauth.enabled": True, "oauth.issuer_url": IDP_ISSUER, "oauth.client_id": "photovault"}
    )


# ---------------------------------------------------------------------------
# Password login
# ---------------------------------------------------------------------------


def test_login_sets_session_cookies(api_client):
    client, _, admin_id = api_client

    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    assert resp.status_code == 200
    data = resp.json()
    assert data["user_id"] == admin_id
    assert data["is_admin"] is True
    assert resp.headers["cache-control"] == "no-store"
    cookies = _set_cookies(resp)
    assert set(cookies) >= {ACCESS_COOKIE, AUTH_TYPE_COOKIE}
    assert "httponly" in cookies[ACCESS_COOKIE].lower()
    assert "samesite=lax" in cookies[ACCESS_COOKIE].lower()
    assert "; secure" not in cookies[ACCESS_COOKIE].lower()
    assert cookies[AUTH_TYPE_COOKIE].startswith(f"{AUTH_TYPE_COOKIE}=password")


def test_login_over_https_sets_secure_cookies(api_client):
    client, _, _ = api_client

    resp = client.post("https://testserver/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    assert resp.status_code == 200
    cookies = _set_cookies(resp)
    assert "; secure" in cookies[ACCESS_COOKIE].lower()
    assert "; secure" in cookies[AUTH_TYPE_COOKIE].lower()


def test_login_email_is_case_insensitive(api_client):
    client, _, _ = api_client
    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL.upper(), "password": ADMIN_PASSWORD})
    assert resp.status_code == 200


@pytest.mark.parametrize(
    "email,password",
    [(ADMIN_EMAIL, "wrong-password"), ("nobody@photovault.test", ADMIN_PASSWORD)],
)
def test_login_failures_are_indistinguishable(api_client, email, password):
    client, _, _ = api_client

    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})

    assert resp.status_code == 400
    assert resp.json()["error"] == {"code": "bad_request", "message": "Incorrect email or password", "detail": None}
    assert ACCESS_COOKIE not in _set_cookies(resp)


def test_login_when_password_login_disabled(api_client):
    client, _, _ = api_client
    client.app.state.config_store.update({"password_login_enabled": False})

    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_login_validation_error(api_client):
    client, _, _ = api_client
    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


# ---------------------------------------------------------------------------
# Admin bootstrap
# ---------------------------------------------------------------------------


def test_admin_sign_up_on_fresh_server(empty_api_client):
    body = {"email": "Owner@PhotoVault.test", "password": "owner-pass-1", "first_name": "Owen", "last_name": "Er"}

    resp = empty_api_client.post("/api/v1/auth/admin-sign-up", json=body)

    assert resp.status_code == 201
    assert resp.json()["email"] == "owner@photovault.test"
    login = empty_api_client.post(
        "/api/v1/auth/login", json={"email": "owner@photovault.test", "password": "owner-pass-1"}
    )
    assert login.json()["is_admin"] is True


def test_admin_sign_up_rejected_once_admin_exists(api_client):
    client, _, _ = api_client
    body = {"email": "second@photovault.test", "password": "second-pass", "first_name": "S", "last_name": "A"}

    resp = client.post("/api/v1/auth/admin-sign-up", json=body)

    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "The server already has an admin"


def test_admin_sign_up_short_password(empty_api_client):
    body = {"email": "owner@photovault.test", "password": "short", "first_name": "O", "last_name": "E"}
    assert empty_api_client.post("/api/v1/auth/admin-sign-up", json=body).status_code == 422


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


def test_me_with_bearer_token(api_client):
    client, token, admin_id = api_client

    resp = client.get("/api/v1/auth/me", headers=_auth(token))

    assert resp.status_code == 200
    assert resp.json() == {"id": admin_id, "email": ADMIN_EMAIL, "is_admin": True}


def test_me_with_login_cookie(api_client):
    client, _, admin_id = api_client
    client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    resp = client.get("/api/v1/auth/me")

    assert resp.status_code == 200
    assert resp.json()["id"] == admin_id


def test_me_without_credentials(api_client):
    client, _, _ = api_client
    resp = client.get("/api/v1/auth/me")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_validate_token(api_client):
    client, token, _ = api_client
    assert client.post("/api/v1/auth/validate-token", headers=_auth(token)).json() == {"auth_status": True}
    assert client.post("/api/v1/auth/validate-token", headers=_auth("not-a-jwt")).status_code == 401


def test_change_password(api_client):
    client, token, _ = api_client

    resp = client.post(
        "/api/v1/auth/change-password",
        headers=_auth(token),
        json={"password": ADMIN_PASSWORD, "new_password": "brand-new-pass"},
    )

    assert resp.status_code == 200
    assert resp.json()["should_change_password"] is False
    old = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    new = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "brand-new-pass"})
    assert old.status_code == 400
    assert new.status_code == 200


def test_change_password_wrong_old_password(api_client):
    client, token, _ = api_client
    resp = client.post(
        "/api/v1/auth/change-password",
        headers=_auth(token),
        json={"password": "not-the-password", "new_password": "brand-new-pass"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Wrong password"


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


def test_logout_password_session(api_client):
    client, _, _ = api_client
    client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

    resp = client.post("/api/v1/auth/logout")

    assert resp.status_code == 200
    assert resp.json() == {"successful": True, "redirect_uri": DEFAULT_LOGOUT_REDIRECT}
    cleared = _set_cookies(resp)
    assert 'max-age=0' in cleared[ACCESS_COOKIE].lower()
    assert 'max-age=0' in cleared[AUTH_TYPE_COOKIE].lower()
    assert client.get("/api/v1/auth/me").status_code == 401


def test_logout_oauth_session_redirects_to_provider(api_client):
    client, _, _ = api_client
    _enable_oauth(client)
    client.cookies.set(AUTH_TYPE_COOKIE, AuthType.OAUTH.value)

    resp = client.post("/api/v1/auth/logout")

    assert resp.json()["redirect_uri"] == f"{IDP_ISSUER}/logout"


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


def test_oauth_config_when_disabled(api_client):
    client, _, _ = api_client

    resp = client.post("/api/v1/oauth/config", json={"redirect_uri": CALLBACK})

    assert resp.status_code == 200
    assert resp.json()["enabled"] is False
    assert resp.json()["url"] is None


def test_oauth_round_trip(api_client):
    client, _, _ = api_client
    _enable_oauth(client)

    config = client.post("/api/v1/oauth/config", json={"redirect_uri": CALLBACK}).json()
    state = parse_qs(urlsplit(config["url"]).query)["state"][0]
    assert "state" not in config

    resp = client.post("/api/v1/oauth/callback", json={"url": f"{CALLBACK}?code=abc&state={state}"})

    assert resp.status_code == 200
    assert resp.json()["user_email"] == "jane.doe@example.com"
    assert _set_cookies(resp)[AUTH_TYPE_COOKIE].startswith(f"{AUTH_TYPE_COOKIE}=oauth")
    assert client.get("/api/v1/auth/me").json()["email"] == "jane.doe@example.com"

    # The state was consumed; replaying the same callback fails.
    replay = client.post("/api/v1/oauth/callback", json={"url": f"{CALLBACK}?code=abc&state={state}"})
    assert replay.status_code == 401
    assert replay.json()["error"]["code"] == "oauth_state_mismatch"


def test_oauth_callback_with_forged_state(api_client):
    client, _, _ = api_client
    _enable_oauth(client)
    client.post("/api/v1/oauth/config", json={"redirect_uri": CALLBACK})

    resp = client.post("/api/v1/oauth/callback", json={"url": f"{CALLBACK}?code=abc&state=forged"})

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "oauth_state_mismatch"


def test_oauth_callback_when_disabled(api_client):
    client, _, _ = api_client
    resp = client.post("/api/v1/oauth/callback", json={"url": f"{CALLBACK}?code=abc&state=s"})
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# System config
# ---------------------------------------------------------------------------


def test_system_config_requires_admin(api_client):
    client, _, _ = api_client
    store = client.app.state.user_store
    member = store.create({"email": "member@photovault.test"})
    member_token = SessionTokenManager(store).issue(member, AuthType.PASSWORD)

    assert client.get("/api/v1/system-config").status_code == 401
    resp = client.get("/api/v1/system-config", headers=_auth(member_token))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_system_config_update(api_client):
    client, token, _ = api_client

    resp = client.put(
        "/api/v1/system-config",
        headers=_auth(token),
        json={"oauth_enabled": True, "oauth_issuer_url": IDP_ISSUER, "oauth_client_secret": "shh"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["oauth_enabled"] is True
    assert data["oauth_client_secret_set"] is True
    assert "oauth_client_secret" not in data
    assert client.get("/api/v1/system-config", headers=_auth(token)).json()["oauth_issuer_url"] == IDP_ISSUER


def test_system_config_update_rejects_none_algorithm(api_client):
    client, token, _ = api_client

    resp = client.put("/api/v1/system-config", headers=_auth(token), json={"oauth_signing_algorithms": ["none"]})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_config"


def test_system_config_update_without_changes(api_client):
    client, token, _ = api_client
    resp = client.put("/api/v1/system-config", headers=_auth(token), json={})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "no_changes"


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


def test_websocket_accepts_valid_token(api_client):
    client, token, admin_id = api_client
    with client.websocket_connect("/api/v1/ws", headers=_auth(token)) as ws:
        assert ws.receive_json() == {"event": "ready", "user_id": admin_id}


def test_websocket_rejects_missing_token(api_client):
    client, _, _ = api_client
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/api/v1/ws") as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_websocket_rejects_invalid_token(api_client):
    client, _, _ = api_client
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/api/v1/ws", headers=_auth("garbage")) as ws:
            ws.receive_json()
    assert exc.value.code == 1008
